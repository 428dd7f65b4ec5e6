"""Internal link checking for Blossom.

After a build, every emitted page is parsed and each internal reference is
resolved against the output tree. Broken links are returned as data; the CLI
decides whether they fail the run.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlsplit

from bs4 import BeautifulSoup

from .html_utils import is_external_url, strip_base

logger = logging.getLogger(__name__)

CHECKED_ATTRIBUTES = (
    ("a", "href"),
    ("link", "href"),
    ("img", "src"),
    ("script", "src"),
    ("source", "srcset"),
)


@dataclass(frozen=True)
class BrokenLink:
    """A reference that does not resolve to an output file.

    Attributes:
        page: Page containing the reference, relative to the output root.
        url: The reference as written.
        reason: Why it failed.
    """

    page: str
    url: str
    reason: str

    def __str__(self) -> str:
        return f"{self.page}: {self.url} ({self.reason})"


def _candidate_urls(tag_name: str, value: str) -> list[str]:
    if tag_name == "source":
        return [part.strip().split()[0] for part in value.split(",") if part.strip()]
    return [value]


def _target_exists(output_dir: Path, site_path: str) -> bool:
    rel = site_path.lstrip("/")
    target = output_dir / rel if rel else output_dir
    if target.is_file():
        return True
    return target.is_dir() and (target / "index.html").is_file()


def check_page(output_dir: Path, page: Path, base_path: str = "") -> list[BrokenLink]:
    """Check the internal references in one page."""
    rel_page = page.relative_to(output_dir).as_posix()
    page_dir = "/" + posixpath.dirname(rel_page)
    soup = BeautifulSoup(page.read_text(encoding="utf-8"), "html.parser")
    broken: list[BrokenLink] = []
    for tag_name, attr in CHECKED_ATTRIBUTES:
        for tag in soup.find_all(tag_name):
            value = tag.get(attr)
            if not value:
                continue
            for url in _candidate_urls(tag_name, value):
                if is_external_url(url):
                    continue
                path = unquote(urlsplit(url).path)
                if not path:
                    continue
                if path.startswith("/"):
                    site_path = strip_base(path, base_path)
                    if site_path is None:
                        broken.append(BrokenLink(rel_page, url, f"outside base path {base_path}"))
                        continue
                else:
                    # Relative to the page directory, which already sits below the base.
                    site_path = posixpath.normpath(posixpath.join(page_dir, path))
                if not _target_exists(output_dir, site_path):
                    broken.append(BrokenLink(rel_page, url, "target not found"))
    return broken


def check_links(output_dir: Path, base_path: str = "") -> list[BrokenLink]:
    """Check every HTML page under ``output_dir``.

    Args:
        output_dir: Output root.
        base_path: Prefix every root-relative link must carry.

    Returns:
        Broken links in page order.
    """
    broken: list[BrokenLink] = []
    for page in sorted(output_dir.rglob("*.html")):
        broken.extend(check_page(output_dir, page, base_path))
    for link in broken:
        logger.warning("Broken link in %s", link)
    return broken
