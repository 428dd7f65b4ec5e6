"""Page composition for Blossom.

This module uses Jinja2 to wrap body fragments in the site layout: head
metadata, navigation, header, footer and references to fingerprinted assets.
Composition is pure; callers write the result.

Key components:
- PageMeta: Per-page title, description, canonical path and structured data.
- PageComposer: Renders listing fragments and full pages.
- render_toc: Nested table-of-contents markup.

Templates emit root-relative URLs; the build prefixes the base path on the
final page.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from markupsafe import Markup, escape

from .assets import AssetBundle
from .config import SiteConfig
from .html_utils import join_root_url, with_base
from .renderers import TocEntry
from .utils import tag_slug

__all__ = ["PageComposer", "PageMeta", "TEMPLATES_DIR", "render_toc"]

TEMPLATES_DIR = Path(__file__).parent / "templates"

NAV_ITEMS = (
    ("/home/", "/", "/home/"),
    ("/blog/", "/blog/", "/blog/"),
    ("/tags/", "/tags/", "/tags/"),
    ("/about/", "/about/", "/about/"),
    ("/rss/", "/feed.xml", "/rss/"),
)


def render_toc(toc: tuple[TocEntry, ...]) -> Markup:
    """Render a table of contents as nested HTML.

    Args:
        toc: Entries from the renderer; level-2 entries carry their level-3
            children.

    Returns:
        Markup-safe ``<nav class="toc">`` block, or empty Markup if there is
        no TOC.
    """
    if not toc:
        return Markup("")
    return Markup(
        '<nav class="toc" aria-label="Table of contents">'
        '<p class="toc-title">Contents</p>'
        f"{_toc_list(toc)}</nav>"
    )


def _toc_list(entries: tuple[TocEntry, ...]) -> str:
    items = []
    for entry in entries:
        children = _toc_list(entry.children) if entry.children else ""
        items.append(f'<li><a href="#{escape(entry.id)}">{escape(entry.text)}</a>{children}</li>')
    return f"<ul>{''.join(items)}</ul>"


@dataclass
class PageMeta:
    """Metadata for one page.

    Attributes:
        title: Page title (``<title>`` and social previews).
        description: Meta description; falls back to the site description.
        canonical_path: Root-relative path of the page.
        structured_data: JSON-LD object, if any.
        og_type: Open Graph type (``website`` or ``article``).
        heading: Header text; defaults to the capitalized title.
    """

    title: str
    description: str = ""
    canonical_path: str = "/"
    structured_data: dict[str, Any] | None = None
    og_type: str = "website"
    heading: str | None = None

    @property
    def display_heading(self) -> str:
        return self.heading or self.title[:1].upper() + self.title[1:]


class PageComposer:
    """Template rendering for pages and fragments.

    Attributes:
        config: Site configuration.
        assets: Fingerprinted assets for this build.
        env: Jinja2 environment over the package templates.
    """

    def __init__(self, config: SiteConfig, assets: AssetBundle, templates_dir: Path = TEMPLATES_DIR):
        self.config = config
        self.assets = assets
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir)),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
            undefined=StrictUndefined,
            keep_trailing_newline=True,
        )
        self._install_globals()

    def _install_globals(self) -> None:
        self.env.globals["site"] = self.config
        self.env.globals["assets"] = self.assets
        self.env.globals["nav_items"] = NAV_ITEMS
        self.env.globals["render_toc"] = render_toc
        self.env.filters["tag_slug"] = tag_slug

    def absolute_url(self, path: str) -> str:
        """Canonical URL for a root-relative path, including the base path."""
        prefixed = with_base(path, self.config.base_path)
        if self.config.site_url:
            return join_root_url(self.config.site_url, prefixed)
        return prefixed

    def fragment(self, name: str, **context: Any) -> Markup:
        """Render a body fragment template such as ``blog`` or ``post``."""
        template = self.env.get_template(f"{name}.html.jinja")
        return Markup(template.render(**context))

    def compose(self, body: str, active: str, meta: PageMeta) -> str:
        """Wrap ``body`` in the site layout.

        Args:
            body: Trusted HTML for the main element.
            active: Navigation key of the current section (``/blog/``).
            meta: Page metadata.

        Returns:
            The complete HTML document.
        """
        template = self.env.get_template("layout.html.jinja")
        return template.render(
            body=Markup(body),
            active=active,
            meta=meta,
            canonical=self.absolute_url(meta.canonical_path),
            description=meta.description or self.config.description or self.config.title,
        )
