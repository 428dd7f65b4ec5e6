"""Utility functions for Blossom.

String sanitizing, hashing and filesystem helpers shared across the build.

Key functions:
    slugify: Sanitize a title or explicit slug into a URL slug.
    tag_slug: Directory-safe form of a tag name.
    heading_id: Anchor id for a heading.
    hash_bytes / hash_file / short_hash: Content hashing.
    hash_paths: Hash a set of files (names and bytes) into one digest.
    ensure_clean_dir: Ensure a directory exists and is empty.
    write_file / write_if_changed: Write outputs, optionally avoiding churn.
    copy_tree: Mirror a source tree into the output, skipping identical files.
"""

from __future__ import annotations

import filecmp
import hashlib
import os
import re
import shutil
import unicodedata
from collections.abc import Iterable
from pathlib import Path

# Characters removed outright before slugging (mirrors the note tooling).
SLUG_STRIP_CHARS = "*+~.()'\"!:@?"

HEADING_ID_MAX_LENGTH = 80

_STRIP_RE = re.compile("[" + re.escape(SLUG_STRIP_CHARS) + "]")
_NON_WORD_RE = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE_RE = re.compile(r"\s+")
_HYPHENS_RE = re.compile(r"-{2,}")
_TAG_SEPARATOR_RE = re.compile(r"[^\w]+")

_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0", ""}


def _ascii_fold(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text)
    return normalized.encode("ascii", "ignore").decode("ascii")


def slugify(text: str) -> str:
    """Convert a title (or explicit slug) into a URL slug.

    Lowercases, removes the reserved punctuation set and any other character
    that is not a letter, digit, space or hyphen, then replaces whitespace
    runs with single hyphens.

    Args:
        text: Title or slug candidate.

    Returns:
        URL-friendly slug. May be empty if nothing survives sanitizing.

    Examples:
        >>> slugify("Multi Feature Test")
        'multi-feature-test'

        >>> slugify("What's new? (2025)")
        'whats-new-2025'
    """
    cleaned = _ascii_fold(str(text)).lower()
    cleaned = _STRIP_RE.sub("", cleaned)
    cleaned = _NON_WORD_RE.sub("", cleaned)
    cleaned = _WHITESPACE_RE.sub("-", cleaned.strip())
    cleaned = _HYPHENS_RE.sub("-", cleaned)
    return cleaned.strip("-")


def tag_slug(tag: str) -> str:
    """Return the directory name used for a tag.

    Unicode letters and digits are kept. A tag with neither is named by a
    short hash of the tag.

    Examples:
        >>> tag_slug("Machine Learning")
        'machine-learning'
    """
    slug = _TAG_SEPARATOR_RE.sub("-", tag.lower()).strip("-")
    return slug or f"tag-{hash_text(tag)[:8]}"


def heading_id(text: str, limit: int = HEADING_ID_MAX_LENGTH) -> str:
    """Generate an anchor id from plain heading text.

    Args:
        text: Heading text with markup already removed.
        limit: Maximum id length.

    Returns:
        Lowercase hyphenated id, truncated to ``limit`` characters.
    """
    slug = _ascii_fold(text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")[:limit].rstrip("-")


def parse_bool(value: object, default: bool = False) -> bool:
    """Interpret a frontmatter flag.

    YAML booleans pass through; strings such as ``"yes"``/``"false"`` are
    understood; anything else falls back to ``default``.
    """
    if isinstance(value, bool):
        return value
    if value is None:
        return default
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return default


def hash_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def hash_text(text: str) -> str:
    return hash_bytes(text.encode("utf-8"))


def hash_file(path: Path) -> str:
    return hash_bytes(path.read_bytes())


def short_hash(data: bytes, length: int = 10) -> str:
    """Return a short, stable hex digest of ``data`` for use in filenames."""
    return hash_bytes(data)[:length]


def hash_paths(paths: Iterable[Path], base: Path | None = None) -> str:
    """Hash file names and contents into a single digest.

    Files are visited in sorted order of their (relative) path so the result
    does not depend on enumeration order.
    """
    digest = hashlib.sha256()
    entries = []
    for path in paths:
        rel = path
        if base is not None:
            try:
                rel = path.relative_to(base)
            except ValueError:
                rel = path
        entries.append((rel.as_posix(), path))
    for rel, path in sorted(entries):
        digest.update(rel.encode("utf-8"))
        digest.update(b"\0")
        digest.update(path.read_bytes())
        digest.update(b"\0")
    return digest.hexdigest()


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            for item in path.rglob("*"):
                if item.is_file():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)


def write_file(path: Path, content: str | bytes) -> None:
    """Write ``content`` to ``path``, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        path.write_text(content, encoding="utf-8")


def write_if_changed(path: Path, content: str | bytes) -> bool:
    """Write ``content`` only when it differs from what is on disk.

    Leaves the file (and its modification time) untouched otherwise.

    Returns:
        True if the file was written.
    """
    data = content.encode("utf-8") if isinstance(content, str) else content
    if path.is_file() and path.read_bytes() == data:
        return False
    write_file(path, data)
    return True


def write_atomic(path: Path, content: str | bytes) -> None:
    """Write via a sibling temp file and ``os.replace``.

    Readers never observe a partially written file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.tmp")
    if isinstance(content, bytes):
        tmp.write_bytes(content)
    else:
        tmp.write_text(content, encoding="utf-8")
    os.replace(tmp, path)


def copy_tree(
    source: Path, dest: Path, skip: Iterable[str] = ()
) -> list[Path]:
    """Mirror ``source`` into ``dest``, copying only new or changed files.

    Args:
        source: Directory to copy from. Missing directories are ignored.
        dest: Destination directory.
        skip: Top-level entry names under ``source`` to leave out.

    Returns:
        Destination paths that were (re)written.
    """
    if not source.is_dir():
        return []
    skipped = set(skip)
    copied: list[Path] = []
    for item in sorted(source.rglob("*")):
        if item.is_dir():
            continue
        rel = item.relative_to(source)
        if rel.parts[0] in skipped:
            continue
        target = dest / rel
        if target.is_file() and filecmp.cmp(item, target, shallow=False):
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(item, target)
        copied.append(target)
    return copied


def remove_path(path: Path) -> None:
    """Delete a file or directory tree if present."""
    if path.is_dir():
        shutil.rmtree(path)
    elif path.exists():
        path.unlink()
