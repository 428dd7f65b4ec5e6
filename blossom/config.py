"""Site configuration for Blossom.

Configuration lives in an optional ``blossom.yaml`` at the project root and is
layered over ``DEFAULT_CONFIG``. CLI flags may override the base path and the
canonical origin.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .html_utils import normalize_base_path

CONFIG_FILENAME = "blossom.yaml"

DEFAULT_CRITICAL_SELECTORS = (
    ":root",
    "html",
    "body",
    ".site-header",
    ".brand",
    ".logo",
    ".site-title",
    ".main-nav",
    ".content",
    "[data-theme",
)

DEFAULT_CONFIG: dict[str, Any] = {
    "title": "himu",
    "description": "",
    "author": "",
    "site_url": "",
    "base_path": "",
    "output_dir": "dist",
    "notes_dir": "notes",
    "public_dir": "public",
    "css_dir": "css",
    "js_dir": "js",
    "manifest": ".blossom-manifest.json",
    "stylesheet": "style.css",
    "image_widths": [320, 640, 960, 1280],
    "critical_selectors": list(DEFAULT_CRITICAL_SELECTORS),
    "words_per_minute": 200,
    "excerpt_length": 240,
    "home_recent": 5,
    "logo": "",
}


class ConfigError(Exception):
    """Raised when ``blossom.yaml`` cannot be parsed or holds invalid values."""


@dataclass
class SiteConfig:
    """Resolved site configuration.

    Attributes:
        project_root: Root directory of the project.
        title: Site title used in page titles, feeds and OG images.
        site_url: Canonical origin (``https://example.com``); empty if unset.
        base_path: Prefix for every internal absolute link (``/repo``).
        image_widths: Widths generated for responsive images, ascending.
        critical_selectors: Selectors whose rule blocks are inlined in pages.
    """

    project_root: Path
    title: str = DEFAULT_CONFIG["title"]
    description: str = ""
    author: str = ""
    site_url: str = ""
    base_path: str = ""
    output_dir: str = DEFAULT_CONFIG["output_dir"]
    notes_dir: str = DEFAULT_CONFIG["notes_dir"]
    public_dir: str = DEFAULT_CONFIG["public_dir"]
    css_dir: str = DEFAULT_CONFIG["css_dir"]
    js_dir: str = DEFAULT_CONFIG["js_dir"]
    manifest: str = DEFAULT_CONFIG["manifest"]
    stylesheet: str = DEFAULT_CONFIG["stylesheet"]
    image_widths: tuple[int, ...] = tuple(DEFAULT_CONFIG["image_widths"])
    critical_selectors: tuple[str, ...] = DEFAULT_CRITICAL_SELECTORS
    words_per_minute: int = 200
    excerpt_length: int = 240
    home_recent: int = 5
    logo: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, project_root: Path, values: dict[str, Any]) -> SiteConfig:
        merged = {**DEFAULT_CONFIG, **values}
        try:
            widths = tuple(sorted({int(w) for w in merged["image_widths"] if int(w) > 0}))
            config = cls(
                project_root=project_root,
                title=str(merged["title"]),
                description=str(merged["description"] or ""),
                author=str(merged["author"] or ""),
                site_url=str(merged["site_url"] or "").rstrip("/"),
                base_path=normalize_base_path(merged["base_path"]),
                output_dir=str(merged["output_dir"]),
                notes_dir=str(merged["notes_dir"]),
                public_dir=str(merged["public_dir"]),
                css_dir=str(merged["css_dir"]),
                js_dir=str(merged["js_dir"]),
                manifest=str(merged["manifest"]),
                stylesheet=str(merged["stylesheet"]),
                image_widths=widths,
                critical_selectors=tuple(str(s) for s in merged["critical_selectors"]),
                words_per_minute=max(1, int(merged["words_per_minute"])),
                excerpt_length=max(1, int(merged["excerpt_length"])),
                home_recent=max(0, int(merged["home_recent"])),
                logo=str(merged["logo"] or ""),
                extra={k: v for k, v in values.items() if k not in DEFAULT_CONFIG},
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid value in {CONFIG_FILENAME}: {exc}") from exc
        if not config.image_widths:
            raise ConfigError("image_widths must list at least one positive width")
        return config

    @property
    def output_path(self) -> Path:
        return self.project_root / self.output_dir

    @property
    def notes_path(self) -> Path:
        return self.project_root / self.notes_dir

    @property
    def public_path(self) -> Path:
        return self.project_root / self.public_dir

    @property
    def css_path(self) -> Path:
        return self.project_root / self.css_dir

    @property
    def js_path(self) -> Path:
        return self.project_root / self.js_dir

    @property
    def manifest_path(self) -> Path:
        return self.project_root / self.manifest

    def rendering_inputs(self) -> dict[str, Any]:
        """Configuration values that affect rendered pages.

        These feed the site-version fingerprint: changing any of them
        invalidates every cached page.
        """
        values = asdict(self)
        values.pop("project_root")
        return {
            key: list(value) if isinstance(value, tuple) else value
            for key, value in sorted(values.items())
        }


def load_config(
    project_root: Path,
    base_path: str | None = None,
    site_url: str | None = None,
) -> SiteConfig:
    """Load site configuration from blossom.yaml.

    Args:
        project_root: Root directory of the project.
        base_path: Optional override for ``base_path``.
        site_url: Optional override for ``site_url`` (canonical origin).

    Returns:
        Resolved SiteConfig with defaults applied.

    Raises:
        ConfigError: If the YAML is malformed or values have the wrong type.
    """
    config_path = project_root / CONFIG_FILENAME
    values: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Could not parse {config_path}: {exc}") from exc
        if isinstance(loaded, dict):
            values.update(loaded)
    if base_path is not None:
        values["base_path"] = base_path
    if site_url is not None:
        values["site_url"] = site_url
    return SiteConfig.from_mapping(project_root, values)
