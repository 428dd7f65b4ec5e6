"""Open Graph preview images for Blossom.

Each listed document gets a 1200x630 card at ``og/<slug>.png`` showing its
title over a gradient. Without Pillow an SVG card is written instead. Cards
are regenerated only when their manifest fingerprint changes or the file is
missing.

A post-pass then points each document page's ``og:image``/``twitter:image``
meta tags at its card.
"""

from __future__ import annotations

import io
import logging
import textwrap
from collections.abc import Iterable
from pathlib import Path

from bs4 import BeautifulSoup

from .content import Document
from .html_utils import escape_html, join_root_url, with_base
from .utils import hash_text, write_atomic

try:
    from PIL import Image, ImageDraw, ImageFont
except ImportError:  # pragma: no cover
    Image = None
    ImageDraw = None
    ImageFont = None

logger = logging.getLogger(__name__)

OG_DIR = "og"
OG_WIDTH = 1200
OG_HEIGHT = 630
OG_CARD_VERSION = "1"
GRADIENT_START = (0x2A, 0x12, 0x40)
GRADIENT_END = (0x17, 0x0D, 0x28)
TITLE_COLOR = "#d665ff"
MUTED_COLOR = "#8891a8"
TITLE_WRAP = 28
TITLE_MAX_LINES = 4


def card_format() -> str:
    return "png" if Image is not None else "svg"


def card_fingerprint(title: str, site_title: str) -> str:
    return hash_text("\n".join([OG_CARD_VERSION, card_format(), site_title, title]))


def card_url(slug: str) -> str:
    return f"/{OG_DIR}/{slug}.{card_format()}"


def wrap_title(title: str) -> list[str]:
    lines = textwrap.wrap(title, width=TITLE_WRAP) or [title]
    if len(lines) > TITLE_MAX_LINES:
        lines = lines[:TITLE_MAX_LINES]
        lines[-1] = lines[-1].rstrip(".") + "..."
    return lines


def render_svg(title: str, site_title: str) -> str:
    tspans = "".join(
        f'<tspan x="60" dy="{0 if i == 0 else 76}">{escape_html(line)}</tspan>'
        for i, line in enumerate(wrap_title(title))
    )
    return (
        f'<svg width="{OG_WIDTH}" height="{OG_HEIGHT}" viewBox="0 0 {OG_WIDTH} {OG_HEIGHT}" '
        'xmlns="http://www.w3.org/2000/svg"><defs><linearGradient id="g" x1="0" y1="0" '
        'x2="1" y2="1"><stop stop-color="#2a1240"/><stop offset="1" stop-color="#170d28"/>'
        f'</linearGradient></defs><rect fill="url(#g)" width="{OG_WIDTH}" height="{OG_HEIGHT}"/>'
        "<text x=\"60\" y=\"260\" font-family=\"'IBM Plex Mono', monospace\" font-size=\"64\" "
        f'fill="{TITLE_COLOR}">{tspans}</text>'
        "<text x=\"60\" y=\"570\" font-family=\"'IBM Plex Mono', monospace\" font-size=\"28\" "
        f'fill="{MUTED_COLOR}">{escape_html(site_title)}</text></svg>\n'
    )


def render_png(title: str, site_title: str) -> bytes:
    """Draw a card with Pillow.

    Raises:
        OSError: If the image cannot be drawn or encoded.
    """
    image = Image.new("RGB", (OG_WIDTH, OG_HEIGHT))
    draw = ImageDraw.Draw(image)
    for y in range(OG_HEIGHT):
        ratio = y / (OG_HEIGHT - 1)
        color = tuple(
            round(start + (end - start) * ratio)
            for start, end in zip(GRADIENT_START, GRADIENT_END)
        )
        draw.line([(0, y), (OG_WIDTH, y)], fill=color)
    title_font = ImageFont.load_default(size=64)
    site_font = ImageFont.load_default(size=28)
    y = 200
    for line in wrap_title(title):
        draw.text((60, y), line, font=title_font, fill=TITLE_COLOR)
        y += 76
    draw.text((60, 545), site_title, font=site_font, fill=MUTED_COLOR)
    buffer = io.BytesIO()
    image.save(buffer, "PNG", optimize=True)
    return buffer.getvalue()


class OpenGraphGenerator:
    """Writes preview cards for documents.

    Attributes:
        output_dir: Output root.
        site_title: Shown under each title.
        previous: Slug to card fingerprint from the last successful build.
    """

    def __init__(self, output_dir: Path, site_title: str, previous: dict[str, str] | None = None):
        self.output_dir = output_dir
        self.og_dir = output_dir / OG_DIR
        self.site_title = site_title
        self.previous = previous or {}

    def run(self, documents: Iterable[Document]) -> dict[str, str]:
        """Generate missing or outdated cards and prune orphans.

        Returns:
            Slug to fingerprint for the manifest.
        """
        if Image is None:
            logger.warning("Pillow not installed; writing SVG preview cards")
        records: dict[str, str] = {}
        generated = 0
        for document in documents:
            fingerprint = card_fingerprint(document.title, self.site_title)
            target = self.og_dir / f"{document.slug}.{card_format()}"
            records[document.slug] = fingerprint
            if self.previous.get(document.slug) == fingerprint and target.is_file():
                continue
            self._write_card(target, document.title)
            generated += 1
        self._prune(set(records))
        logger.info("Open Graph cards: %d generated, %d reused", generated, len(records) - generated)
        return records

    def _write_card(self, target: Path, title: str) -> None:
        if Image is not None:
            try:
                write_atomic(target, render_png(title, self.site_title))
                return
            except OSError as exc:
                logger.warning("PNG card for %r failed (%s); writing SVG", title, exc)
                target = target.with_suffix(".svg")
        write_atomic(target, render_svg(title, self.site_title))

    def _prune(self, slugs: set[str]) -> None:
        if not self.og_dir.is_dir():
            return
        for path in self.og_dir.iterdir():
            if path.suffix in (".png", ".svg") and path.stem not in slugs:
                path.unlink()
                logger.debug("Pruned preview card %s", path.name)


class OpenGraphInjector:
    """Adds image meta tags to document pages.

    Attributes:
        site_url: Canonical origin; image URLs are absolute when set.
        base_path: Site base path.
    """

    card = "summary_large_image"

    def __init__(self, site_url: str = "", base_path: str = ""):
        self.site_url = site_url
        self.base_path = base_path

    def image_url(self, slug: str) -> str:
        path = with_base(card_url(slug), self.base_path)
        return join_root_url(self.site_url, path) if self.site_url else path

    def inject_soup(self, soup: BeautifulSoup, image_url: str) -> bool:
        """Add or update the image meta tags of a parsed page in place."""
        head = soup.head
        if head is None:
            return False
        changed = False
        wanted = (
            ("property", "og:image", image_url),
            ("name", "twitter:image", image_url),
            ("name", "twitter:card", self.card),
        )
        for attr, key, value in wanted:
            tag = head.find("meta", attrs={attr: key})
            if tag is None:
                head.append(soup.new_tag("meta", attrs={attr: key, "content": value}))
                changed = True
            elif tag.get("content") != value:
                tag["content"] = value
                changed = True
        return changed
