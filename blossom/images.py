"""Responsive image variants for Blossom.

Raster images published from ``public/`` and from the notes tree are encoded
into WebP variants at the configured widths. Each source is encoded in its
own worker thread; the tasks are gathered on one event loop.

Every source gets an explicit record in the manifest (source hash, size and
variant list). A record is trusted only if the hash matches and every
variant file is still on disk; otherwise the source is re-encoded.

As each page is finished, ``PictureRewriter`` replaces matching ``<img>`` tags
with ``<picture>`` markup listing all variants.

Key components:
- ImageSource: A raster file and the site path it is published under.
- VariantSet: Encoded variants for one source (ascending width).
- ImageOptimizer: Encodes or reuses variants and prunes unused files.
- PictureRewriter: Tree rewrite of ``<img>`` into responsive pictures.
"""

from __future__ import annotations

import asyncio
import io
import logging
import posixpath
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup

from .content import ATTACHMENTS_DIR
from .html_utils import is_external_url, strip_base, with_base
from .renderers import MEDIA_PREFIX
from .utils import hash_file, write_atomic

try:
    from PIL import Image, ImageOps
except ImportError:  # pragma: no cover
    Image = None
    ImageOps = None

logger = logging.getLogger(__name__)

RASTER_EXTENSIONS = {".png", ".jpg", ".jpeg", ".webp"}
VARIANT_DIR = "img"
VARIANT_QUALITY = 80
DEFAULT_SIZES = "(max-width: 48rem) 100vw, 48rem"

_VARIANT_RE = re.compile(r"^.+-\d+\.[0-9a-f]{8}\.webp$")
_MANAGED_IMG_ATTRS = ("src", "srcset", "sizes", "width", "height", "loading", "decoding")


def images_available() -> bool:
    return Image is not None


@dataclass(frozen=True)
class ImageSource:
    """A raster image and its published location.

    Attributes:
        key: Root-relative URL the original is served from (no base path).
        path: Source file on disk.
    """

    key: str
    path: Path


@dataclass
class VariantSet:
    """Responsive variants of one source image.

    Attributes:
        key: Root-relative URL of the original.
        hash: SHA-256 of the source bytes.
        width: Width of the original (after EXIF rotation).
        height: Height of the original.
        variants: ``(width, url)`` pairs sorted by ascending width.
    """

    key: str
    hash: str
    width: int
    height: int
    variants: list[tuple[int, str]] = field(default_factory=list)

    @property
    def largest(self) -> tuple[int, str]:
        return self.variants[-1]

    def height_for(self, width: int) -> int:
        return max(1, round(self.height * width / self.width))

    def filenames(self) -> list[str]:
        return [posixpath.basename(url) for _, url in self.variants]

    def to_record(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "width": self.width,
            "height": self.height,
            "variants": [[w, url] for w, url in self.variants],
        }

    @classmethod
    def from_record(cls, key: str, record: dict[str, Any]) -> VariantSet | None:
        try:
            variants = [(int(w), str(url)) for w, url in record["variants"]]
            return cls(
                key=key,
                hash=str(record["hash"]),
                width=int(record["width"]),
                height=int(record["height"]),
                variants=sorted(variants),
            )
        except (KeyError, TypeError, ValueError):
            return None


def plan_widths(original_width: int, widths: tuple[int, ...]) -> list[int]:
    """Choose variant widths for an image.

    Returns:
        Configured widths not exceeding the original, or the original width
        alone when it is smaller than every configured width.

    Examples:
        >>> plan_widths(1000, (320, 640, 960, 1280))
        [320, 640, 960]
        >>> plan_widths(200, (320, 640))
        [200]
    """
    chosen = [w for w in sorted(widths) if w <= original_width]
    return chosen or [original_width]


def variant_name(stem: str, width: int, source_hash: str) -> str:
    return f"{stem}-{width}.{source_hash[:8]}.webp"


def discover_sources(public_dir: Path, notes_dir: Path) -> list[ImageSource]:
    """Find raster images that will be published.

    Public images keep their path relative to ``public/``; note images are
    served under the media prefix. Attachments are never optimized.
    """
    sources: list[ImageSource] = []
    if public_dir.is_dir():
        for path in sorted(public_dir.rglob("*")):
            if path.is_file() and path.suffix.lower() in RASTER_EXTENSIONS:
                rel = path.relative_to(public_dir).as_posix()
                sources.append(ImageSource(key=f"/{rel}", path=path))
    if notes_dir.is_dir():
        for path in sorted(notes_dir.rglob("*")):
            rel = path.relative_to(notes_dir)
            if rel.parts[0] == ATTACHMENTS_DIR:
                continue
            if path.is_file() and path.suffix.lower() in RASTER_EXTENSIONS:
                sources.append(ImageSource(key=f"{MEDIA_PREFIX}/{rel.as_posix()}", path=path))
    return sources


class ImageOptimizer:
    """Encodes responsive variants into ``<output>/img``.

    Attributes:
        output_dir: Output root.
        widths: Configured variant widths.
        previous: Image records from the last successful build.
    """

    def __init__(
        self,
        output_dir: Path,
        widths: tuple[int, ...],
        previous: dict[str, dict[str, Any]] | None = None,
    ):
        self.output_dir = output_dir
        self.variant_dir = output_dir / VARIANT_DIR
        self.widths = widths
        self.previous = previous or {}
        self.encoded = 0
        self.reused = 0

    def run(self, sources: list[ImageSource]) -> dict[str, VariantSet]:
        """Produce variants for every source.

        Returns:
            Key to VariantSet for each source that could be processed. Empty
            when Pillow is not installed.
        """
        if not images_available():
            logger.warning("Pillow not installed; skipping responsive images")
            return {}
        results = asyncio.run(self._process_all(sources))
        variants: dict[str, VariantSet] = {}
        for result, reused in results:
            if result is None:
                continue
            variants[result.key] = result
            if reused:
                self.reused += 1
            else:
                self.encoded += 1
        self._prune(variants.values())
        logger.info("Images: %d encoded, %d reused", self.encoded, self.reused)
        return variants

    async def _process_all(
        self, sources: list[ImageSource]
    ) -> list[tuple[VariantSet | None, bool]]:
        tasks = [asyncio.to_thread(self.process, source) for source in sources]
        return list(await asyncio.gather(*tasks))

    def process(self, source: ImageSource) -> tuple[VariantSet | None, bool]:
        """Reuse or encode the variants for one source.

        Returns:
            The variant set (None if the image is unreadable) and whether it
            came from the previous build.
        """
        try:
            source_hash = hash_file(source.path)
        except OSError as exc:
            logger.warning("Could not read image %s: %s", source.path, exc)
            return None, False
        cached = self._cached(source.key, source_hash)
        if cached is not None:
            logger.debug("Reusing variants for %s", source.key)
            return cached, True
        try:
            result = self._encode(source, source_hash)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            logger.warning("Skipping unreadable image %s: %s", source.path, exc)
            return None, False
        return result, False

    def _cached(self, key: str, source_hash: str) -> VariantSet | None:
        record = self.previous.get(key)
        if not isinstance(record, dict) or record.get("hash") != source_hash:
            return None
        cached = VariantSet.from_record(key, record)
        if cached is None or not cached.variants:
            return None
        if not all((self.variant_dir / name).is_file() for name in cached.filenames()):
            return None
        return cached

    def _encode(self, source: ImageSource, source_hash: str) -> VariantSet:
        with Image.open(source.path) as opened:
            img = ImageOps.exif_transpose(opened)
            img = img.convert("RGBA" if img.mode in ("RGBA", "LA", "P", "PA") else "RGB")
            width, height = img.size
            result = VariantSet(key=source.key, hash=source_hash, width=width, height=height)
            stem = source.path.stem
            for target_width in plan_widths(width, self.widths):
                name = variant_name(stem, target_width, source_hash)
                if target_width == width:
                    resized = img
                else:
                    size = (target_width, result.height_for(target_width))
                    resized = img.resize(size, Image.Resampling.LANCZOS)
                buffer = io.BytesIO()
                resized.save(buffer, "WEBP", quality=VARIANT_QUALITY, method=4)
                write_atomic(self.variant_dir / name, buffer.getvalue())
                result.variants.append((target_width, f"/{VARIANT_DIR}/{name}"))
        logger.debug("Encoded %d variants for %s", len(result.variants), source.key)
        return result

    def _prune(self, kept: Any) -> None:
        if not self.variant_dir.is_dir():
            return
        in_use = {name for variant_set in kept for name in variant_set.filenames()}
        for path in self.variant_dir.iterdir():
            if path.is_file() and _VARIANT_RE.match(path.name) and path.name not in in_use:
                path.unlink()
                logger.debug("Pruned unused variant %s", path.name)


class PictureRewriter:
    """Rewrites ``<img>`` tags that point at optimized sources.

    Pictures this class produced carry ``data-responsive`` with the source
    key, so later builds re-derive them from the current variants instead of
    trusting stale markup.

    Attributes:
        variants: Key to VariantSet for this build.
        base_path: Site base path.
        sizes: Value of the ``sizes`` attribute.
    """

    def __init__(
        self,
        variants: dict[str, VariantSet],
        base_path: str = "",
        sizes: str = DEFAULT_SIZES,
    ):
        self.variants = variants
        self.base_path = base_path
        self.sizes = sizes

    def rewrite_soup(self, soup: BeautifulSoup, page_path: str = "/") -> bool:
        """Rewrite pictures in a parsed page in place.

        Image sources in ``soup`` are expected to carry the base path already.

        Returns:
            True if the tree changed.
        """
        changed = False
        for picture in soup.find_all("picture", attrs={"data-responsive": True}):
            if self._refresh_picture(soup, picture):
                changed = True
        for img in soup.find_all("img"):
            if img.find_parent("picture") is not None:
                continue
            key = self._key_for(img.get("src", ""), page_path)
            if key is None or key not in self.variants:
                continue
            img.replace_with(self._picture(soup, key, img))
            changed = True
        return changed

    def _key_for(self, src: str, page_path: str) -> str | None:
        if not src or is_external_url(src):
            return None
        src = src.split("#", 1)[0].split("?", 1)[0]
        if src.startswith("/"):
            return strip_base(src, self.base_path)
        resolved = posixpath.normpath(posixpath.join(page_path, src))
        return strip_base(resolved, self.base_path)

    def _refresh_picture(self, soup: BeautifulSoup, picture) -> bool:
        key = picture["data-responsive"]
        img = picture.find("img")
        if img is None:
            return False
        if key not in self.variants:
            # Source gone or optimizer unavailable: fall back to the original.
            plain = soup.new_tag("img", attrs=_carried_attrs(img))
            plain["src"] = with_base(key, self.base_path)
            picture.replace_with(plain)
            return True
        fresh = self._picture(soup, key, img)
        if str(fresh) == str(picture):
            return False
        picture.replace_with(fresh)
        return True

    def _picture(self, soup: BeautifulSoup, key: str, original):
        variant_set = self.variants[key]
        picture = soup.new_tag("picture", attrs={"data-responsive": key})
        srcset = ", ".join(
            f"{with_base(url, self.base_path)} {width}w"
            for width, url in variant_set.variants
        )
        source = soup.new_tag(
            "source", attrs={"type": "image/webp", "srcset": srcset, "sizes": self.sizes}
        )
        largest_width, largest_url = variant_set.largest
        attrs = _carried_attrs(original)
        attrs.update(
            {
                "src": with_base(largest_url, self.base_path),
                "width": str(largest_width),
                "height": str(variant_set.height_for(largest_width)),
                "loading": "lazy",
                "decoding": "async",
            }
        )
        picture.append(source)
        picture.append(soup.new_tag("img", attrs=attrs))
        return picture


def _carried_attrs(img) -> dict[str, Any]:
    attrs = {}
    for name, value in img.attrs.items():
        if name in _MANAGED_IMG_ATTRS:
            continue
        attrs[name] = " ".join(value) if isinstance(value, list) else value
    return attrs
