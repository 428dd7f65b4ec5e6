"""Stylesheet and script pipeline for Blossom.

Every build fingerprints the stylesheet and each script entry: the output
filename embeds a short hash of the final bytes, so browsers never hold a
stale copy. A critical subset of the stylesheet is extracted for inlining in
page heads.

Key components:
- AssetBundle: Logical asset name to fingerprinted URL, plus critical CSS.
- StylesheetProcessor / ScriptProcessor: One processor per asset type.
- AssetPipeline: Runs the processors and returns the bundle.
- extract_critical_css: Heuristic above-the-fold CSS extraction.
"""

from __future__ import annotations

import logging
import re
import shutil
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from .config import SiteConfig
from .renderers import get_highlighter
from .utils import hash_text, short_hash, write_if_changed

try:
    from rjsmin import jsmin
except ImportError:  # pragma: no cover
    jsmin = None

logger = logging.getLogger(__name__)


def fingerprint_name(name: str, data: bytes) -> str:
    """Insert a content hash before the extension.

    Examples:
        >>> fingerprint_name("style.css", b"body{}")  # doctest: +SKIP
        'style.1f2e3d4c5b.css'
    """
    stem, dot, suffix = name.rpartition(".")
    if not dot:
        return f"{name}.{short_hash(data)}"
    return f"{stem}.{short_hash(data)}.{suffix}"


def extract_critical_css(css: str, selectors: Iterable[str]) -> str:
    """Keep the rule blocks that mention any allow-listed selector.

    The stylesheet is split on closing braces; each retained block gets its
    brace back and all whitespace runs are collapsed.

    Args:
        css: Full stylesheet text.
        selectors: Selector fragments that mark a block as critical.

    Returns:
        Minimal inline CSS, or "" if nothing matched.
    """
    wanted = tuple(selectors)
    css = re.sub(r"/\*.*?\*/", "", css, flags=re.DOTALL)
    kept: list[str] = []
    for block in css.split("}"):
        if "{" not in block:
            continue
        if any(selector in block for selector in wanted):
            kept.append(block.strip() + "}")
    return re.sub(r"\s+", " ", "".join(kept)).strip()


@dataclass
class AssetBundle:
    """Fingerprinted assets for one build.

    Attributes:
        stylesheet: Root-relative URL of the fingerprinted stylesheet, or "".
        scripts: Script entry name to root-relative fingerprinted URL.
        critical_css: CSS inlined into every page head.
    """

    stylesheet: str = ""
    scripts: dict[str, str] = field(default_factory=dict)
    critical_css: str = ""

    def fingerprint(self) -> str:
        parts = [self.stylesheet, self.critical_css]
        parts.extend(f"{name}={url}" for name, url in sorted(self.scripts.items()))
        return hash_text("\n".join(parts))


class BaseAssetProcessor(ABC):
    """Base class for fingerprinting processors.

    Subclasses produce the final bytes for a source file; this class writes
    them under a fingerprinted name and removes older fingerprinted copies.
    """

    def __init__(self, source_dir: Path, dest_dir: Path, url_prefix: str):
        self.source_dir = source_dir
        self.dest_dir = dest_dir
        self.url_prefix = url_prefix

    @abstractmethod
    def can_process(self, path: Path) -> bool:
        ...

    @abstractmethod
    def transform(self, source: Path) -> bytes:
        """Return the final bytes to publish for ``source``."""
        ...

    def process(self, source: Path) -> str:
        """Publish ``source`` and return its root-relative URL."""
        data = self.transform(source)
        rel = source.relative_to(self.source_dir)
        name = fingerprint_name(rel.name, data)
        target = self.dest_dir / rel.parent / name
        write_if_changed(target, data)
        self._remove_stale(target, rel.name)
        url_path = (rel.parent / name).as_posix()
        return f"{self.url_prefix}/{url_path}"

    @staticmethod
    def _remove_stale(current: Path, logical_name: str) -> None:
        stem, _, suffix = logical_name.rpartition(".")
        pattern = re.compile(rf"^{re.escape(stem)}\.[0-9a-f]{{10}}\.{re.escape(suffix)}$")
        for sibling in current.parent.iterdir():
            if sibling != current and pattern.match(sibling.name):
                sibling.unlink()
                logger.debug("Removed stale asset %s", sibling.name)


class StylesheetProcessor(BaseAssetProcessor):
    """Publishes the site stylesheet with highlighter styles appended."""

    def __init__(self, source_dir: Path, dest_dir: Path, url_prefix: str, name: str):
        super().__init__(source_dir, dest_dir, url_prefix)
        self.name = name

    def can_process(self, path: Path) -> bool:
        return path.name == self.name

    def transform(self, source: Path) -> bytes:
        css = source.read_text(encoding="utf-8")
        pygments_css = get_highlighter().style_defs()
        if pygments_css:
            css = f"{css.rstrip()}\n\n/* syntax highlighting */\n{pygments_css}\n"
        return css.encode("utf-8")


class ScriptProcessor(BaseAssetProcessor):
    """Minifies scripts with rjsmin when available."""

    def can_process(self, path: Path) -> bool:
        return path.parent == self.source_dir and path.suffix.lower() == ".js"

    def transform(self, source: Path) -> bytes:
        text = source.read_text(encoding="utf-8")
        if jsmin is not None:
            text = jsmin(text)
        return text.encode("utf-8")


class AssetPipeline:
    """Builds the asset bundle.

    Runs on every build: fingerprints are cheap and must always reflect the
    current bytes.

    Attributes:
        config: Site configuration.
        output_dir: Output root.
    """

    def __init__(self, config: SiteConfig, output_dir: Path):
        self.config = config
        self.output_dir = output_dir
        self.stylesheet_processor = StylesheetProcessor(
            config.css_path, output_dir / "css", "/css", config.stylesheet
        )
        self.script_processor = ScriptProcessor(config.js_path, output_dir / "js", "/js")

    def run(self) -> AssetBundle:
        bundle = AssetBundle()
        bundle_stylesheet = self.config.css_path / self.config.stylesheet
        if bundle_stylesheet.is_file():
            bundle.stylesheet = self.stylesheet_processor.process(bundle_stylesheet)
            bundle.critical_css = extract_critical_css(
                bundle_stylesheet.read_text(encoding="utf-8"),
                self.config.critical_selectors,
            )
        else:
            logger.warning("Stylesheet %s not found; pages will be unstyled", bundle_stylesheet)
        self._copy_other(self.config.css_path, self.output_dir / "css", self.stylesheet_processor)

        if self.config.js_path.is_dir():
            if jsmin is None:
                logger.warning("rjsmin not installed; scripts will not be minified")
            for script in sorted(self.config.js_path.glob("*.js")):
                bundle.scripts[script.stem] = self.script_processor.process(script)
        self._copy_other(self.config.js_path, self.output_dir / "js", self.script_processor)
        return bundle

    @staticmethod
    def _copy_other(source_dir: Path, dest_dir: Path, processor: BaseAssetProcessor) -> None:
        """Copy files no processor handles (fonts, maps, images)."""
        if not source_dir.is_dir():
            return
        for item in sorted(source_dir.rglob("*")):
            if item.is_dir() or processor.can_process(item):
                continue
            target = dest_dir / item.relative_to(source_dir)
            if target.is_file() and target.read_bytes() == item.read_bytes():
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(item, target)
