from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence

from .content import Document
from .utils import tag_slug


class DocumentCollection(Sequence[Document]):
    """Lightweight helper for working with lists of Documents in templates and code."""

    def __init__(self, documents: Iterable[Document]):
        self._documents = list(documents)

    def __iter__(self) -> Iterator[Document]:
        return iter(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __getitem__(self, item):
        return self._documents[item]

    def published(self) -> DocumentCollection:
        return DocumentCollection(d for d in self._documents if not d.draft)

    def sorted(self, reverse: bool = True) -> DocumentCollection:
        """Sort by date (newest first by default).

        The sort is stable, so documents sharing a date keep their current
        relative order.
        """
        return DocumentCollection(sorted(self._documents, key=lambda d: d.date, reverse=reverse))

    def latest(self, count: int = 5) -> DocumentCollection:
        return DocumentCollection(self.sorted()[:count])

    def tags(self) -> TagCollection:
        return TagCollection.from_documents(self._documents)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"DocumentCollection({len(self._documents)} documents)"


class TagCollection(Mapping[str, DocumentCollection]):
    """Mapping of tag name to DocumentCollection, ordered by tag name."""

    def __init__(self, mapping: dict[str, Iterable[Document]]):
        self._mapping = {k: DocumentCollection(mapping[k]) for k in sorted(mapping)}

    @classmethod
    def from_documents(cls, documents: Iterable[Document]) -> TagCollection:
        grouped: dict[str, list[Document]] = {}
        for document in documents:
            for tag in document.tags:
                grouped.setdefault(tag, []).append(document)
        return cls(grouped)

    def __getitem__(self, key: str) -> DocumentCollection:
        return self._mapping[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)

    def slugs(self) -> dict[str, str]:
        """Tag name to output directory name."""
        return {tag: tag_slug(tag) for tag in self._mapping}

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"TagCollection({len(self._mapping)} tags)"
