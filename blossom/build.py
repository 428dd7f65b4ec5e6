"""Site building functionality for Blossom.

This module contains the incremental build: it loads notes, decides per
document whether the previous output page can be kept, regenerates every
listing surface, runs the image and Open Graph passes, checks links and
finally commits the manifest.

Reuse needs a manifest from the last successful build, an unchanged site
version, an unchanged content hash and the page still on disk. Anything else
re-renders. The manifest is written last and only when no stage raised.

Key functions:
- build_site: Main function to build the entire site.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup
from jinja2 import TemplateError, TemplateSyntaxError
from markupsafe import Markup

from .assets import AssetPipeline
from .collections import DocumentCollection, TagCollection
from .config import SiteConfig, load_config
from .content import ATTACHMENTS_DIR, ContentError, ContentLoader, Document
from .extractors import GitHistory
from .feeds import create_default_feed_registry, create_tag_feed_registry
from .html_utils import rebase_urls, with_base
from .images import ImageOptimizer, PictureRewriter, VariantSet, discover_sources
from .links import BrokenLink, check_links
from .manifest import Manifest, can_reuse, compute_site_version
from .og import OpenGraphGenerator, OpenGraphInjector
from .renderers import MarkdownRenderer
from .templates import PageComposer, PageMeta
from .utils import (
    copy_tree,
    ensure_clean_dir,
    remove_path,
    write_file,
    write_if_changed,
)

logger = logging.getLogger(__name__)


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        documents: Listed documents, newest first.
        about: The about document, if any.
        output_dir: Directory where the site was built.
        rendered: Slugs whose page was rendered this build.
        reused: Slugs whose previous page was kept untouched.
        broken_links: Internal references that do not resolve.
        site_version: Fingerprint of generator, configuration and assets.
        incremental: Whether a previous manifest was used.
    """

    documents: list[Document]
    about: Document | None
    output_dir: Path
    rendered: list[str] = field(default_factory=list)
    reused: list[str] = field(default_factory=list)
    broken_links: list[BrokenLink] = field(default_factory=list)
    site_version: str = ""
    incremental: bool = False


def build_site(
    project_root: Path,
    include_drafts: bool = False,
    include_future: bool = False,
    strict_links: bool = False,
    base_path: str | None = None,
    site_url: str | None = None,
    today: date | None = None,
    full: bool = False,
) -> BuildResult:
    """Build the site, reusing unchanged document pages.

    Args:
        project_root: Root directory of the project.
        include_drafts: Publish notes marked as drafts.
        include_future: Publish notes dated after ``today``.
        strict_links: Log broken links as errors rather than warnings.
        base_path: Optional override for the configured base path.
        site_url: Optional override for the canonical origin.
        today: The build date (defaults to the current date).
        full: Ignore the manifest and rebuild from a clean output directory.

    Returns:
        BuildResult describing what was rendered, reused and found broken.

    Raises:
        BuildError: If a note or template cannot be processed.
        ConfigError: If blossom.yaml is invalid.
    """
    config = load_config(project_root, base_path=base_path, site_url=site_url)
    today = today or date.today()
    output_dir = config.output_path

    manifest = None if full else Manifest.load(config.manifest_path)
    incremental = manifest is not None
    if incremental:
        output_dir.mkdir(parents=True, exist_ok=True)
    else:
        logger.info("Full build into %s", output_dir)
        ensure_clean_dir(output_dir)

    loader = ContentLoader(
        config.notes_path,
        today,
        words_per_minute=config.words_per_minute,
        excerpt_length=config.excerpt_length,
        history=GitHistory(project_root),
    )
    try:
        content = loader.load(include_drafts=include_drafts, include_future=include_future)
    except ContentError as exc:
        raise BuildError(exc.source_path, exc.message, exc) from exc

    _copy_static(config, output_dir)

    bundle = AssetPipeline(config, output_dir).run()
    site_version = compute_site_version(config.rendering_inputs(), bundle.fingerprint())
    site_changed = manifest is None or manifest.site_version != site_version
    if incremental and site_changed:
        logger.info("Site version changed; re-rendering every document")

    variants = ImageOptimizer(
        output_dir,
        config.image_widths,
        previous=manifest.images if manifest else None,
    ).run(discover_sources(config.public_path, config.notes_path))
    og_records = OpenGraphGenerator(
        output_dir,
        config.title,
        previous=manifest.og if manifest else None,
    ).run(content.documents)

    site = _SiteWriter(config, output_dir, PageComposer(config, bundle), variants)
    result = BuildResult(
        documents=content.documents,
        about=content.about,
        output_dir=output_dir,
        site_version=site_version,
        incremental=incremental,
    )

    hashes: dict[str, str] = {}
    for document in content.documents:
        target = site.document_path(document)
        duplicate = document.slug in hashes
        if duplicate:
            logger.warning("Duplicate slug %r from %s", document.slug, document.rel_path)
        if not duplicate and can_reuse(
            manifest, site_changed, document.slug, document.content_hash, target
        ):
            result.reused.append(document.slug)
            if site.refresh_document(document):
                logger.debug("Refreshed images and card tags of %s", document.slug)
            else:
                logger.debug("Reusing %s", document.slug)
        else:
            site.write_document(document)
            result.rendered.append(document.slug)
        hashes[document.slug] = document.content_hash
        write_if_changed(output_dir / "content" / "posts" / f"{document.slug}.md", document.body)
    logger.info("Documents: %d rendered, %d reused", len(result.rendered), len(result.reused))

    _prune_documents(output_dir, set(hashes))
    site.write_listings(content.documents, content.about)

    result.broken_links = check_links(output_dir, config.base_path)
    if strict_links and result.broken_links:
        logger.error("%d broken internal links", len(result.broken_links))

    Manifest(
        site_version=site_version,
        documents=hashes,
        images={key: variant_set.to_record() for key, variant_set in variants.items()},
        og=og_records,
    ).save(config.manifest_path)
    return result


class _SiteWriter:
    """Renders and writes the pages of one build."""

    def __init__(
        self,
        config: SiteConfig,
        output_dir: Path,
        composer: PageComposer,
        variants: dict[str, VariantSet],
    ):
        self.config = config
        self.output_dir = output_dir
        self.composer = composer
        self.renderer = MarkdownRenderer()
        self.pictures = PictureRewriter(variants, config.base_path)
        self.injector = OpenGraphInjector(config.site_url, config.base_path)

    def document_path(self, document: Document) -> Path:
        return self.output_dir / "blog" / document.slug / "index.html"

    def write_document(self, document: Document) -> None:
        try:
            rendered = self.renderer.render(document.body, document.folder)
            body = self.composer.fragment(
                "post", doc=document, toc=rendered.toc, body=Markup(rendered.html)
            )
            html = self.composer.compose(body, "/blog/", _document_meta(document, self.composer))
        except TemplateSyntaxError as exc:
            raise BuildError(
                document.source_path,
                f"Template syntax error on line {exc.lineno}: {exc.message}",
                exc,
            ) from exc
        except Exception as exc:
            raise BuildError(document.source_path, _format_error_message(exc), exc) from exc
        html = self._finish(html, document.url, self.injector.image_url(document.slug))
        write_file(self.document_path(document), html)

    def refresh_document(self, document: Document) -> bool:
        """Bring the pictures and card tags of a reused page up to date."""
        target = self.document_path(document)
        soup = BeautifulSoup(target.read_text(encoding="utf-8"), "html.parser")
        changed = self.pictures.rewrite_soup(soup, self._served(document.url))
        if self.injector.inject_soup(soup, self.injector.image_url(document.slug)):
            changed = True
        return changed and write_if_changed(target, str(soup))

    def write_listings(self, documents: list[Document], about: Document | None) -> None:
        """Regenerate every page and feed that aggregates documents."""
        config = self.config
        collection = DocumentCollection(documents)
        tags = collection.tags()

        home = self.composer.fragment("home", recent=collection.latest(config.home_recent))
        self._write_page(
            "/",
            home,
            "/home/",
            PageMeta(
                title="home",
                description=config.description,
                canonical_path="/",
                structured_data={
                    "@context": "https://schema.org",
                    "@type": "WebSite",
                    "name": config.title,
                    "url": self.composer.absolute_url("/"),
                },
            ),
        )

        about_body = Markup("")
        about_description = ""
        if about is not None:
            try:
                about_body = Markup(self.renderer.render(about.body, about.folder).html)
            except Exception as exc:
                raise BuildError(about.source_path, _format_error_message(exc), exc) from exc
            about_description = about.description
        self._write_page(
            "/about/",
            self.composer.fragment("about", body=about_body),
            "/about/",
            PageMeta(title="about", description=about_description, canonical_path="/about/"),
        )

        self._write_page(
            "/blog/",
            self.composer.fragment("blog", documents=collection),
            "/blog/",
            PageMeta(title="blog", canonical_path="/blog/"),
        )
        self._write_page(
            "/tags/",
            self.composer.fragment("tags", tags=tags),
            "/tags/",
            PageMeta(title="tags", canonical_path="/tags/"),
        )
        self._write_tags(tags)

        not_found = self.composer.compose(
            self.composer.fragment("404"), "", PageMeta(title="not found", canonical_path="/404.html", heading="404")
        )
        write_if_changed(self.output_dir / "404.html", self._finish(not_found, "/"))

        data = self.feed_data("/")
        create_default_feed_registry().generate_all(self.output_dir, collection, data)

    def _write_tags(self, tags: TagCollection) -> None:
        registry = create_tag_feed_registry()
        slugs = tags.slugs()
        owners: dict[str, str] = {}
        for tag, slug in slugs.items():
            if slug in owners:
                logger.warning("Tags %r and %r share the directory tags/%s", owners[slug], tag, slug)
            owners.setdefault(slug, tag)
        for tag, documents in tags.items():
            path = f"/tags/{slugs[tag]}/"
            self._write_page(
                path,
                self.composer.fragment("tag", tag=tag, documents=documents),
                "/tags/",
                PageMeta(
                    title=f"#{tag}",
                    description=f"Posts tagged {tag}",
                    canonical_path=path,
                    heading=f"#{tag}",
                ),
            )
            data = self.feed_data(path)
            data["title"] = f"{self.config.title} #{tag}"
            registry.generate_all(self.output_dir / "tags" / slugs[tag], documents, data)
        tags_dir = self.output_dir / "tags"
        if tags_dir.is_dir():
            current = set(slugs.values())
            for child in tags_dir.iterdir():
                if child.is_dir() and child.name not in current:
                    logger.debug("Removing stale tag directory %s", child.name)
                    remove_path(child)

    def feed_data(self, feed_path: str) -> dict[str, Any]:
        return {
            "title": self.config.title,
            "description": self.config.description,
            "author": self.config.author,
            "url": self.config.site_url,
            "base_path": self.config.base_path,
            "feed_path": feed_path,
        }

    def _write_page(self, path: str, body: str, active: str, meta: PageMeta) -> None:
        html = self.composer.compose(body, active, meta)
        target = self.output_dir / path.strip("/") / "index.html"
        write_if_changed(target, self._finish(html, path))

    def _served(self, path: str) -> str:
        return with_base(path, self.config.base_path)

    def _finish(self, html: str, path: str, image_url: str | None = None) -> str:
        """Apply the base path, responsive pictures and card tags to a page."""
        soup = BeautifulSoup(html, "html.parser")
        rebase_urls(soup, self.config.base_path)
        self.pictures.rewrite_soup(soup, self._served(path))
        if image_url is not None:
            self.injector.inject_soup(soup, image_url)
        return str(soup)


def _document_meta(document: Document, composer: PageComposer) -> PageMeta:
    structured: dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "BlogPosting",
        "headline": document.title,
        "datePublished": document.iso_date,
        "description": document.description,
        "url": composer.absolute_url(document.url),
    }
    if document.tags:
        structured["keywords"] = list(document.tags)
    if composer.config.author:
        structured["author"] = {"@type": "Person", "name": composer.config.author}
    return PageMeta(
        title=document.title,
        description=document.description,
        canonical_path=document.url,
        structured_data=structured,
        og_type="article",
        heading=document.title,
    )


def _copy_static(config: SiteConfig, output_dir: Path) -> None:
    """Copy public files, attachments and note media into the output."""
    copy_tree(config.public_path, output_dir)
    copy_tree(config.notes_path / ATTACHMENTS_DIR, output_dir / ATTACHMENTS_DIR)
    notes_dir = config.notes_path
    if not notes_dir.is_dir():
        return
    media_dir = output_dir / "media"
    for path in sorted(notes_dir.rglob("*")):
        rel = path.relative_to(notes_dir)
        if rel.parts[0] == ATTACHMENTS_DIR or path.is_dir() or path.suffix.lower() == ".md":
            continue
        write_if_changed(media_dir / rel, path.read_bytes())


def _prune_documents(output_dir: Path, slugs: set[str]) -> None:
    """Remove pages and markdown copies of documents that are gone."""
    blog_dir = output_dir / "blog"
    if blog_dir.is_dir():
        for child in blog_dir.iterdir():
            if child.is_dir() and child.name not in slugs:
                logger.info("Removing page of deleted document %s", child.name)
                remove_path(child)
    posts_dir = output_dir / "content" / "posts"
    if posts_dir.is_dir():
        for child in posts_dir.glob("*.md"):
            if child.stem not in slugs:
                remove_path(child)


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if isinstance(exc, TemplateError):
        return f"Template error: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"

    return f"{error_type}: {error_msg}"
