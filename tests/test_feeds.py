import json
from datetime import date, datetime, timezone
from pathlib import Path

from blossom.content import Document
from blossom.feeds import (
    AtomGenerator,
    JSONFeedGenerator,
    PostsIndexGenerator,
    RSSGenerator,
    SitemapGenerator,
    create_default_feed_registry,
    create_tag_feed_registry,
    site_link,
)

SITE = {
    "title": "Garden & Co",
    "description": "Notes",
    "author": "Sam",
    "url": "https://example.com",
    "base_path": "",
    "feed_path": "/",
}


def make_document(slug, day, tags=(), draft=False, updated=None):
    return Document(
        slug=slug,
        title=f"{slug.title()} <post>",
        date=day,
        body="",
        tags=tuple(tags),
        draft=draft,
        is_about=False,
        content_hash=slug,
        excerpt=f"About {slug}",
        description=f"About {slug}",
        word_count=120,
        reading_time=1,
        source_path=Path(f"/notes/{slug}.md"),
        rel_path=f"{slug}.md",
        updated=updated,
    )


DOCUMENTS = [
    make_document("newest", date(2025, 8, 2), tags=["python"], draft=True),
    make_document("middle", date(2025, 7, 1), tags=["python", "Machine Learning"]),
    make_document("oldest", date(2025, 1, 1)),
]


def test_site_link():
    assert site_link(SITE, "/blog/x/") == "https://example.com/blog/x/"
    assert site_link({"base_path": "/repo"}, "/blog/x/") == "/repo/blog/x/"
    assert site_link({"url": "https://e.org/", "base_path": "/repo"}, "/") == "https://e.org/repo/"


def test_rss_excludes_drafts_and_escapes():
    rss = RSSGenerator().generate(DOCUMENTS, SITE)
    assert "<title>Garden &amp; Co</title>" in rss
    assert "newest" not in rss
    assert "<title>Middle &lt;post&gt;</title>" in rss
    assert '<guid isPermaLink="true">https://example.com/blog/middle/</guid>' in rss
    assert "<pubDate>Tue, 01 Jul 2025 00:00:00 +0000</pubDate>" in rss
    assert "<lastBuildDate>Tue, 01 Jul 2025 00:00:00 +0000</lastBuildDate>" in rss
    assert 'href="https://example.com/feed.xml" rel="self"' in rss
    assert rss.index("middle") < rss.index("oldest")


def test_atom_and_json_feed():
    atom = AtomGenerator().generate(DOCUMENTS, SITE)
    assert "<updated>2025-07-01T00:00:00+00:00</updated>" in atom
    assert '<category term="Machine Learning"/>' in atom
    assert "<name>Sam</name>" in atom

    feed = json.loads(JSONFeedGenerator().generate(DOCUMENTS, SITE))
    assert feed["version"] == "https://jsonfeed.org/version/1.1"
    assert feed["feed_url"] == "https://example.com/feed.json"
    assert [item["id"] for item in feed["items"]] == [
        "https://example.com/blog/middle/",
        "https://example.com/blog/oldest/",
    ]


def test_feeds_use_relative_links_without_site_url():
    data = {**SITE, "url": "", "base_path": "/repo", "feed_path": "/tags/python/"}
    rss = RSSGenerator().generate(DOCUMENTS, data)
    assert "<link>/repo/blog/middle/</link>" in rss
    assert 'href="/repo/tags/python/feed.xml" rel="self"' in rss


def test_sitemap_requires_site_url():
    assert SitemapGenerator().generate(DOCUMENTS, {**SITE, "url": ""}) is None
    sitemap = SitemapGenerator().generate(DOCUMENTS, SITE)
    assert "<loc>https://example.com/about/</loc>" in sitemap
    assert "<loc>https://example.com/tags/machine-learning/</loc>" in sitemap
    assert "<lastmod>2025-07-01</lastmod>" in sitemap
    assert "newest" not in sitemap


def test_posts_index_lists_every_given_document():
    updated = datetime(2025, 8, 3, 12, 0, tzinfo=timezone.utc)
    documents = [make_document("one", date(2025, 8, 2), tags=["a"], draft=True, updated=updated)]
    payload = json.loads(PostsIndexGenerator().generate(documents, SITE))
    assert payload == [
        {
            "slug": "one",
            "title": "One <post>",
            "date": "2025-08-02",
            "excerpt": "About one",
            "tags": ["a"],
            "wordCount": 120,
            "readingTimeMin": 1,
            "updated": "2025-08-03T12:00:00+00:00",
        }
    ]


def test_registries_write_files(tmp_path):
    written = create_default_feed_registry().generate_all(tmp_path, DOCUMENTS, SITE)
    assert written == ["feed.xml", "feed.atom", "feed.json", "sitemap.xml", "content/posts.json"]
    assert (tmp_path / "content" / "posts.json").is_file()

    no_url = create_default_feed_registry().generate_all(tmp_path / "b", DOCUMENTS, {**SITE, "url": ""})
    assert "sitemap.xml" not in no_url

    tag_dir = tmp_path / "tags" / "python"
    assert create_tag_feed_registry().generate_all(tag_dir, DOCUMENTS[:2], SITE) == [
        "feed.xml",
        "feed.atom",
    ]
    assert (tag_dir / "feed.atom").is_file()
