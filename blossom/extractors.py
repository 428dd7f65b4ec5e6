"""Metadata extraction for Blossom notes.

Each extractor normalizes one piece of document metadata from the parsed
frontmatter and body. ``CompositeMetadataExtractor`` runs them in order and
merges the results.

Key classes:
- FrontmatterError: Raised for a frontmatter block that is not valid YAML.
- TitleExtractor, SlugExtractor, DateExtractor, TagExtractor, FlagExtractor,
  DescriptionExtractor, StatsExtractor: single-field extractors.
- GitHistory: Last-modification timestamps from version control.
"""

from __future__ import annotations

import logging
import math
import re
import shutil
import subprocess
from datetime import date, datetime
from pathlib import Path
from typing import Any

import yaml

from .utils import parse_bool, slugify

logger = logging.getLogger(__name__)

FRONTMATTER_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
FENCE_RE = re.compile(r"^\s*(```|~~~)")
TAG_SPLIT_RE = re.compile(r"[,\s]+")

ABOUT_FILENAME = "about.md"


class FrontmatterError(ValueError):
    """Raised when a note's frontmatter block is not a valid YAML mapping."""


class _FrontmatterLoader(yaml.SafeLoader):
    """SafeLoader that keeps impossible timestamps such as 2025-02-30 as text."""

    def construct_yaml_timestamp(self, node):
        try:
            return super().construct_yaml_timestamp(node)
        except ValueError:
            return self.construct_scalar(node)


_FrontmatterLoader.add_constructor(
    "tag:yaml.org,2002:timestamp", _FrontmatterLoader.construct_yaml_timestamp
)


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Split YAML frontmatter from the body.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (frontmatter dict, remaining body).

    Raises:
        FrontmatterError: If the block exists but is not a YAML mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.load(match.group(1), Loader=_FrontmatterLoader) or {}
    except yaml.YAMLError as exc:
        raise FrontmatterError(f"Invalid frontmatter YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise FrontmatterError("Frontmatter must be a mapping of keys to values")
    return data, text[match.end() :]


def parse_date(value: Any, fallback: date) -> date:
    """Coerce a frontmatter date to a calendar date.

    Accepts YAML dates/datetimes and ISO strings; anything malformed
    returns ``fallback``.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if value is None:
        return fallback
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        logger.debug("Unparseable date %r; using %s", value, fallback)
        return fallback


def normalize_tags(value: Any) -> tuple[str, ...]:
    """Lowercase tags from a list or a comma/space separated string."""
    if isinstance(value, (list, tuple, set)):
        raw = [str(t) for t in value if t is not None]
    elif isinstance(value, str):
        raw = TAG_SPLIT_RE.split(value)
    else:
        raw = []
    seen: list[str] = []
    for tag in raw:
        cleaned = tag.strip().lstrip("#").lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return tuple(seen)


def strip_fenced_code(body: str) -> str:
    """Return the body with fenced code blocks removed."""
    lines: list[str] = []
    fence: str | None = None
    for line in body.splitlines():
        match = FENCE_RE.match(line)
        if match:
            marker = match.group(1)
            if fence is None:
                fence = marker
                continue
            if marker == fence:
                fence = None
                continue
        if fence is None:
            lines.append(line)
    return "\n".join(lines)


def first_paragraph(text: str) -> str:
    """Extract the first prose paragraph from markdown text.

    Skips headings, fences, images, rules and footnote definitions.
    """
    paragraphs = [p.strip() for p in strip_fenced_code(text).split("\n\n") if p.strip()]
    for para in paragraphs:
        if para.startswith(("#", "![", "---", "[^", "<")):
            continue
        return " ".join(para.split())
    return ""


class TitleExtractor:
    """Title from frontmatter, falling back to the filename stem."""

    def extract(self, frontmatter: dict[str, Any], body: str, path: Path) -> dict[str, Any]:
        title = frontmatter.get("title")
        if title is None or not str(title).strip():
            return {"title": path.stem}
        return {"title": str(title).strip()}


class SlugExtractor:
    """Slug from an explicit ``slug`` field or the title.

    Must run after TitleExtractor.
    """

    def extract(self, frontmatter: dict[str, Any], body: str, path: Path) -> dict[str, Any]:
        explicit = frontmatter.get("slug")
        source = str(explicit) if explicit else frontmatter.get("_title", "")
        slug = slugify(source) or slugify(path.stem) or "untitled"
        return {"slug": slug}


class DateExtractor:
    """Calendar date; malformed or missing values become the build day."""

    def __init__(self, today: date):
        self.today = today

    def extract(self, frontmatter: dict[str, Any], body: str, path: Path) -> dict[str, Any]:
        return {"date": parse_date(frontmatter.get("date"), self.today)}


class TagExtractor:
    """Lowercased, de-duplicated tags."""

    def extract(self, frontmatter: dict[str, Any], body: str, path: Path) -> dict[str, Any]:
        return {"tags": normalize_tags(frontmatter.get("tags"))}


class FlagExtractor:
    """Publication, draft and about-page flags."""

    def extract(self, frontmatter: dict[str, Any], body: str, path: Path) -> dict[str, Any]:
        is_about = (
            parse_bool(frontmatter.get("publishAbout"))
            or parse_bool(frontmatter.get("about"))
            or path.name.lower() == ABOUT_FILENAME
        )
        return {
            "publish": parse_bool(frontmatter.get("publish"), default=True),
            "draft": parse_bool(frontmatter.get("draft")),
            "is_about": is_about,
        }


class DescriptionExtractor:
    """Excerpt and description.

    The excerpt is the explicit ``excerpt`` field or the first prose
    paragraph, truncated to ``limit`` characters.
    """

    def __init__(self, limit: int = 240):
        self.limit = limit

    def extract(self, frontmatter: dict[str, Any], body: str, path: Path) -> dict[str, Any]:
        explicit = frontmatter.get("excerpt")
        excerpt = " ".join(str(explicit).split()) if explicit else first_paragraph(body)
        excerpt = _truncate(excerpt, self.limit)
        description = frontmatter.get("description")
        description = " ".join(str(description).split()) if description else excerpt
        return {"excerpt": excerpt, "description": description}


class StatsExtractor:
    """Word count (prose only) and reading time in whole minutes."""

    def __init__(self, words_per_minute: int = 200):
        self.words_per_minute = words_per_minute

    def extract(self, frontmatter: dict[str, Any], body: str, path: Path) -> dict[str, Any]:
        words = len(strip_fenced_code(body).split())
        reading_time = max(1, math.ceil(words / self.words_per_minute))
        return {"word_count": words, "reading_time": reading_time}


class CompositeMetadataExtractor:
    """Runs extractors in order and merges their results.

    The title is made available to later extractors as ``_title`` so the
    slug can be derived from it.
    """

    def __init__(self, extractors: list):
        self._extractors = list(extractors)

    def extract(self, frontmatter: dict[str, Any], body: str, path: Path) -> dict[str, Any]:
        result: dict[str, Any] = {}
        scratch = dict(frontmatter)
        for extractor in self._extractors:
            extracted = extractor.extract(scratch, body, path)
            result.update(extracted)
            if "title" in extracted:
                scratch["_title"] = extracted["title"]
        return result


def default_metadata_extractor(
    today: date, words_per_minute: int = 200, excerpt_length: int = 240
) -> CompositeMetadataExtractor:
    return CompositeMetadataExtractor(
        [
            TitleExtractor(),
            SlugExtractor(),
            DateExtractor(today),
            TagExtractor(),
            FlagExtractor(),
            DescriptionExtractor(excerpt_length),
            StatsExtractor(words_per_minute),
        ]
    )


class GitHistory:
    """Looks up last-commit timestamps, falling back to file mtimes.

    Git availability is probed once; a missing binary or a directory that is
    not a repository degrades to mtimes with a single warning.
    """

    def __init__(self, root: Path):
        self.root = root
        self._git = shutil.which("git")
        self._warned = False
        if self._git is None:
            self._warn("git not found; using file modification times")

    def _warn(self, message: str) -> None:
        if not self._warned:
            logger.warning(message)
            self._warned = True

    def last_modified(self, path: Path) -> datetime:
        if self._git is not None:
            stamp = self._git_timestamp(path)
            if stamp is not None:
                return stamp
        return datetime.fromtimestamp(path.stat().st_mtime).astimezone()

    def _git_timestamp(self, path: Path) -> datetime | None:
        try:
            result = subprocess.run(
                [self._git, "log", "-1", "--format=%cI", "--", str(path)],
                cwd=self.root,
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            self._git = None
            self._warn(f"git unavailable ({exc}); using file modification times")
            return None
        if result.returncode != 0:
            self._warn("no git history for notes; using file modification times")
            return None
        output = result.stdout.strip()
        if not output:
            return None
        try:
            return datetime.fromisoformat(output)
        except ValueError:
            return None


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    cut = text[:limit].rsplit(" ", 1)[0].rstrip(",.;:")
    return f"{cut}…"
