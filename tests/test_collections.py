from datetime import date
from pathlib import Path

from blossom.collections import DocumentCollection, TagCollection
from blossom.content import Document


def make_document(slug, day, tags=(), draft=False):
    return Document(
        slug=slug,
        title=slug.title(),
        date=day,
        body="",
        tags=tuple(tags),
        draft=draft,
        is_about=False,
        content_hash=slug,
        excerpt="",
        description="",
        word_count=0,
        reading_time=1,
        source_path=Path(f"/notes/{slug}.md"),
        rel_path=f"{slug}.md",
    )


def test_document_collection_filters_and_latest():
    documents = DocumentCollection(
        [
            make_document("a", date(2024, 1, 2)),
            make_document("b", date(2024, 1, 3), draft=True),
            make_document("c", date(2024, 1, 1), tags=["python"]),
        ]
    )
    assert len(documents) == 3
    assert [d.slug for d in documents.published()] == ["a", "c"]
    assert documents.latest(1)[0].slug == "b"
    assert [d.slug for d in documents.sorted(reverse=False)] == ["c", "a", "b"]
    assert documents[0].slug == "a"


def test_sorting_keeps_order_for_same_date():
    documents = DocumentCollection(
        [
            make_document("first", date(2024, 1, 1)),
            make_document("second", date(2024, 1, 1)),
            make_document("newer", date(2024, 2, 1)),
        ]
    )
    assert [d.slug for d in documents.sorted()] == ["newer", "first", "second"]


def test_tag_collection_groups_and_orders():
    documents = DocumentCollection(
        [
            make_document("a", date(2024, 1, 2), tags=["web", "Machine Learning"]),
            make_document("b", date(2024, 1, 1), tags=["web"]),
        ]
    )
    tags = documents.tags()
    assert list(tags) == ["Machine Learning", "web"]
    assert [d.slug for d in tags["web"]] == ["a", "b"]
    assert tags.slugs() == {"Machine Learning": "machine-learning", "web": "web"}
    assert len(TagCollection({})) == 0
