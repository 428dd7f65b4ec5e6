"""Feed generation for Blossom.

This module generates the syndication surfaces (RSS, Atom, JSON Feed), the
sitemap and the public ``content/posts.json`` listing from the document
sequence. Every surface is regenerated on each build; output depends only on
the documents and site settings, never on the wall clock.

Classes:
    FeedGenerator: Base class for feed generators.
    RSSGenerator: RSS 2.0 (``feed.xml``).
    AtomGenerator: Atom 1.0 (``feed.atom``).
    JSONFeedGenerator: JSON Feed 1.1 (``feed.json``).
    SitemapGenerator: ``sitemap.xml``; requires a canonical origin.
    PostsIndexGenerator: ``content/posts.json``.
    FeedRegistry: Registry for managing feed generators.

Functions:
    create_default_feed_registry: Site-wide generators.
    create_tag_feed_registry: Generators written once per tag.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date, datetime, time, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Any

from .collections import DocumentCollection
from .content import Document
from .html_utils import escape_html, join_root_url, with_base
from .utils import tag_slug, write_if_changed

JSON_FEED_VERSION = "https://jsonfeed.org/version/1.1"


def site_link(data: dict[str, Any], path: str) -> str:
    """Link to a site path, absolute when a canonical origin is configured."""
    prefixed = with_base(path, str(data.get("base_path", "")))
    url = str(data.get("url", "")).rstrip("/")
    return join_root_url(url, prefixed) if url else prefixed


def _midnight(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _syndicated(documents: Iterable[Document]) -> DocumentCollection:
    return DocumentCollection(documents).published()


class FeedGenerator(ABC):
    """Abstract base class for feed generators.

    Subclasses implement one output format. ``data`` carries the site
    settings: ``title``, ``description``, ``author``, ``url`` (canonical
    origin), ``base_path`` and ``feed_path`` (root-relative directory the
    feed is published in).
    """

    @property
    @abstractmethod
    def filename(self) -> str:
        """Return the output filename, relative to the feed directory."""
        ...

    @abstractmethod
    def generate(
        self,
        documents: Iterable[Document],
        data: dict[str, Any],
    ) -> str | None:
        """Generate feed content.

        Returns:
            Feed content as a string, or None if the feed cannot be
            generated (e.g., missing required configuration).
        """
        ...

    def write(
        self,
        output_dir: Path,
        documents: Iterable[Document],
        data: dict[str, Any],
    ) -> bool:
        """Generate and write the feed under ``output_dir``.

        Returns:
            True if the feed was produced, False if skipped.
        """
        content = self.generate(documents, data)
        if content is None:
            return False
        write_if_changed(output_dir / self.filename, content)
        return True

    def self_link(self, data: dict[str, Any]) -> str:
        feed_path = str(data.get("feed_path", "/"))
        return site_link(data, f"{feed_path.rstrip('/')}/{self.filename}")


class RSSGenerator(FeedGenerator):
    """Generates an RSS 2.0 feed, newest first."""

    @property
    def filename(self) -> str:
        return "feed.xml"

    def generate(
        self,
        documents: Iterable[Document],
        data: dict[str, Any],
    ) -> str | None:
        items = _syndicated(documents)
        title = escape_html(data.get("title", ""))
        description = escape_html(data.get("description", "") or data.get("title", ""))
        home = escape_html(site_link(data, "/"))
        rss = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom"><channel>',
            f"<title>{title}</title>",
            f"<link>{home}</link>",
            f"<description>{description}</description>",
            f'<atom:link href="{escape_html(self.self_link(data))}" rel="self" '
            'type="application/rss+xml"/>',
        ]
        if items:
            rss.append(f"<lastBuildDate>{format_datetime(_midnight(items[0].date))}</lastBuildDate>")
        for document in items:
            link = escape_html(site_link(data, document.url))
            categories = "".join(f"<category>{escape_html(t)}</category>" for t in document.tags)
            rss.append(
                f"<item><title>{escape_html(document.title)}</title><link>{link}</link>"
                f'<guid isPermaLink="true">{link}</guid>'
                f"<description>{escape_html(document.description)}</description>"
                f"{categories}<pubDate>{format_datetime(_midnight(document.date))}</pubDate></item>"
            )
        rss.append("</channel></rss>")
        return "\n".join(rss) + "\n"


class AtomGenerator(FeedGenerator):
    """Generates an Atom 1.0 feed, newest first."""

    @property
    def filename(self) -> str:
        return "feed.atom"

    def generate(
        self,
        documents: Iterable[Document],
        data: dict[str, Any],
    ) -> str | None:
        items = _syndicated(documents)
        home = site_link(data, "/")
        updated = _midnight(items[0].date if items else date(1970, 1, 1)).isoformat()
        author = escape_html(data.get("author", "") or data.get("title", ""))
        atom = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom">',
            f"<title>{escape_html(data.get('title', ''))}</title>",
            f"<id>{escape_html(home)}</id>",
            f'<link href="{escape_html(home)}"/>',
            f'<link href="{escape_html(self.self_link(data))}" rel="self"/>',
            f"<updated>{updated}</updated>",
            f"<author><name>{author}</name></author>",
        ]
        for document in items:
            link = escape_html(site_link(data, document.url))
            categories = "".join(f'<category term="{escape_html(t)}"/>' for t in document.tags)
            stamp = _midnight(document.date).isoformat()
            atom.append(
                f"<entry><title>{escape_html(document.title)}</title>"
                f'<link href="{link}"/><id>{link}</id>'
                f"<published>{stamp}</published><updated>{stamp}</updated>"
                f"<summary>{escape_html(document.description)}</summary>{categories}</entry>"
            )
        atom.append("</feed>")
        return "\n".join(atom) + "\n"


class JSONFeedGenerator(FeedGenerator):
    """Generates a JSON Feed 1.1 document."""

    @property
    def filename(self) -> str:
        return "feed.json"

    def generate(
        self,
        documents: Iterable[Document],
        data: dict[str, Any],
    ) -> str | None:
        feed = {
            "version": JSON_FEED_VERSION,
            "title": data.get("title", ""),
            "home_page_url": site_link(data, "/"),
            "feed_url": self.self_link(data),
            "description": data.get("description", ""),
            "items": [
                {
                    "id": site_link(data, document.url),
                    "url": site_link(data, document.url),
                    "title": document.title,
                    "summary": document.description,
                    "date_published": _midnight(document.date).isoformat(),
                    "tags": list(document.tags),
                }
                for document in _syndicated(documents)
            ],
        }
        return json.dumps(feed, indent=2, ensure_ascii=False) + "\n"


class SitemapGenerator(FeedGenerator):
    """Generates sitemap.xml for search engine indexing.

    Lists the static routes, the tag pages and every document. Requires
    ``url`` in site data to generate absolute URLs.
    """

    static_routes = ("/", "/about/", "/blog/", "/tags/")

    @property
    def filename(self) -> str:
        return "sitemap.xml"

    def generate(
        self,
        documents: Iterable[Document],
        data: dict[str, Any],
    ) -> str | None:
        if not str(data.get("url", "")):
            return None
        items = _syndicated(documents)
        lines = [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        ]
        for route in self.static_routes:
            lines.append(f"  <url><loc>{escape_html(site_link(data, route))}</loc></url>")
        tags = sorted({tag for document in items for tag in document.tags})
        for tag in tags:
            loc = escape_html(site_link(data, f"/tags/{tag_slug(tag)}/"))
            lines.append(f"  <url><loc>{loc}</loc></url>")
        for document in items:
            loc = escape_html(site_link(data, document.url))
            lastmod = document.date.strftime("%Y-%m-%d")
            lines.append(f"  <url><loc>{loc}</loc><lastmod>{lastmod}</lastmod></url>")
        lines.append("</urlset>")
        return "\n".join(lines) + "\n"


class PostsIndexGenerator(FeedGenerator):
    """Generates the public JSON listing of documents.

    Unlike the syndication feeds this lists every listed document, so drafts
    appear only when the build includes them.
    """

    @property
    def filename(self) -> str:
        return "content/posts.json"

    def generate(
        self,
        documents: Iterable[Document],
        data: dict[str, Any],
    ) -> str | None:
        payload = [
            {
                "slug": document.slug,
                "title": document.title,
                "date": document.iso_date,
                "excerpt": document.excerpt,
                "tags": list(document.tags),
                "wordCount": document.word_count,
                "readingTimeMin": document.reading_time,
                "updated": document.updated.isoformat() if document.updated else None,
            }
            for document in documents
        ]
        return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"


class FeedRegistry:
    """Registry for managing feed generators.

    Attributes:
        _generators: List of registered feed generators.
    """

    def __init__(self) -> None:
        self._generators: list[FeedGenerator] = []

    def register(self, generator: FeedGenerator) -> None:
        self._generators.append(generator)

    def generate_all(
        self,
        output_dir: Path,
        documents: Iterable[Document],
        data: dict[str, Any],
    ) -> list[str]:
        """Generate all registered feeds.

        Returns:
            Filenames that were generated.
        """
        documents_list = list(documents)
        generated = []
        for generator in self._generators:
            if generator.write(output_dir, documents_list, data):
                generated.append(generator.filename)
        return generated


def create_default_feed_registry() -> FeedRegistry:
    """Create a registry with the site-wide generators."""
    registry = FeedRegistry()
    registry.register(RSSGenerator())
    registry.register(AtomGenerator())
    registry.register(JSONFeedGenerator())
    registry.register(SitemapGenerator())
    registry.register(PostsIndexGenerator())
    return registry


def create_tag_feed_registry() -> FeedRegistry:
    """Create a registry with the generators written for each tag."""
    registry = FeedRegistry()
    registry.register(RSSGenerator())
    registry.register(AtomGenerator())
    return registry
