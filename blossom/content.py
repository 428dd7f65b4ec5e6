"""Content loading for Blossom.

This module discovers markdown notes, parses their metadata and builds
immutable Document objects. Documents are rebuilt from disk on every build;
only their content hash outlives a build (in the manifest).

Key classes:
- Document: One publishable note with normalized metadata.
- NoteLoader: Discovers note files under the notes directory.
- ContentLoader: Facade returning the ordered document list and about page.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path

from .extractors import (
    CompositeMetadataExtractor,
    FrontmatterError,
    GitHistory,
    default_metadata_extractor,
    extract_frontmatter,
)
from .utils import hash_bytes

logger = logging.getLogger(__name__)

ATTACHMENTS_DIR = "attachments"


class ContentError(Exception):
    """A note could not be read or parsed.

    Attributes:
        source_path: The offending note.
        message: Human-readable description.
    """

    def __init__(self, source_path: Path, message: str):
        self.source_path = source_path
        self.message = message
        super().__init__(f"{source_path}: {message}")


@dataclass(frozen=True)
class Document:
    """A publishable note.

    Attributes:
        slug: URL slug (``/blog/<slug>/``). Not checked for uniqueness.
        title: Human-readable title.
        date: Publication date.
        body: Markdown body without frontmatter.
        tags: Lowercased tags.
        draft: Whether the note is marked as a draft.
        is_about: Whether the note fills the about page.
        content_hash: SHA-256 of the raw file bytes.
        excerpt: Short plain-text summary.
        description: Meta description (explicit or the excerpt).
        word_count: Words of prose, excluding fenced code.
        reading_time: Estimated minutes to read (at least 1).
        source_path: Absolute path of the note.
        rel_path: Path relative to the notes directory, POSIX style.
        updated: Last modification (git history or mtime).
    """

    slug: str
    title: str
    date: date
    body: str
    tags: tuple[str, ...]
    draft: bool
    is_about: bool
    content_hash: str
    excerpt: str
    description: str
    word_count: int
    reading_time: int
    source_path: Path
    rel_path: str
    updated: datetime | None = None

    @property
    def folder(self) -> str:
        parent = Path(self.rel_path).parent.as_posix()
        return "" if parent == "." else parent

    @property
    def url(self) -> str:
        return f"/blog/{self.slug}/"

    @property
    def iso_date(self) -> str:
        return self.date.isoformat()


@dataclass
class LoadedContent:
    """Result of loading the notes directory.

    Attributes:
        documents: Listed documents, newest first (ties keep path order).
        about: The about-page document, if any.
    """

    documents: list[Document]
    about: Document | None = None


class NoteLoader:
    """Discovers markdown notes.

    Walks the notes directory recursively in sorted order, skipping the
    reserved attachments subtree.
    """

    def __init__(self, notes_dir: Path):
        self.notes_dir = notes_dir

    def iter_files(self) -> list[Path]:
        if not self.notes_dir.is_dir():
            return []
        files: list[Path] = []
        for path in sorted(self.notes_dir.rglob("*.md")):
            rel = path.relative_to(self.notes_dir)
            if rel.parts[0] == ATTACHMENTS_DIR:
                continue
            if not path.is_file():
                continue
            files.append(path)
        return files


class DocumentBuilder:
    """Builds a Document from one note file."""

    def __init__(
        self,
        notes_dir: Path,
        extractor: CompositeMetadataExtractor,
        history: GitHistory | None = None,
    ):
        self.notes_dir = notes_dir
        self.extractor = extractor
        self.history = history

    def build(self, path: Path) -> tuple[Document, bool]:
        """Read and parse a note.

        Returns:
            The document and whether it is marked for publication.

        Raises:
            ContentError: If the file cannot be read, is not UTF-8, or has
                malformed frontmatter.
        """
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise ContentError(path, f"Could not read note: {exc}") from exc
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ContentError(path, f"Note is not valid UTF-8: {exc}") from exc
        try:
            frontmatter, body = extract_frontmatter(text)
        except FrontmatterError as exc:
            raise ContentError(path, str(exc)) from exc

        meta = self.extractor.extract(frontmatter, body, path)
        rel = path.relative_to(self.notes_dir).as_posix()
        updated = self.history.last_modified(path) if self.history else None
        return Document(
            slug=meta["slug"],
            title=meta["title"],
            date=meta["date"],
            body=body,
            tags=meta["tags"],
            draft=meta["draft"],
            is_about=meta["is_about"],
            content_hash=hash_bytes(raw),
            excerpt=meta["excerpt"],
            description=meta["description"],
            word_count=meta["word_count"],
            reading_time=meta["reading_time"],
            source_path=path,
            rel_path=rel,
            updated=updated,
        ), meta["publish"]


class ContentLoader:
    """Loads the notes directory into documents.

    Applies the publication rules: ``publish: false`` always excludes a
    note; drafts and future-dated notes are excluded unless the matching
    override is set.

    Attributes:
        notes_dir: Directory containing the notes.
        today: The build's current date.
    """

    def __init__(
        self,
        notes_dir: Path,
        today: date,
        words_per_minute: int = 200,
        excerpt_length: int = 240,
        history: GitHistory | None = None,
    ):
        self.notes_dir = notes_dir
        self.today = today
        self._loader = NoteLoader(notes_dir)
        self._builder = DocumentBuilder(
            notes_dir,
            default_metadata_extractor(today, words_per_minute, excerpt_length),
            history,
        )

    def load(
        self, include_drafts: bool = False, include_future: bool = False
    ) -> LoadedContent:
        """Load all notes.

        Args:
            include_drafts: Keep notes marked ``draft: true``.
            include_future: Keep notes dated after ``today``.

        Returns:
            LoadedContent with documents sorted newest first.
        """
        documents: list[Document] = []
        about: Document | None = None
        for path in self._loader.iter_files():
            document, publish = self._builder.build(path)
            if not publish:
                logger.debug("Skipping unpublished note %s", document.rel_path)
                continue
            if document.draft and not include_drafts:
                logger.debug("Skipping draft %s", document.rel_path)
                continue
            if document.is_about:
                if about is None:
                    about = document
                else:
                    logger.warning(
                        "Ignoring extra about note %s (using %s)",
                        document.rel_path,
                        about.rel_path,
                    )
                continue
            if document.date > self.today and not include_future:
                logger.debug("Skipping future-dated note %s", document.rel_path)
                continue
            documents.append(document)
        documents.sort(key=lambda d: d.date, reverse=True)
        return LoadedContent(documents=documents, about=about)
