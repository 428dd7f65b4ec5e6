"""Footnote extraction for Blossom.

Footnotes are handled before markdown parsing. Definition lines
(``[^label]: text``) are lifted out of the body and every reference
(``[^label]``) becomes a numbered button that client-side code can turn into
a popover. Numbers follow the order in which references first appear.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field

from .html_utils import escape_html

DEFINITION_RE = re.compile(r"^\[\^([A-Za-z0-9_-]+)\]:[ \t]*(.*)$")
REFERENCE_RE = re.compile(r"\[\^([A-Za-z0-9_-]+)\](?!:)")
FENCE_RE = re.compile(r"^\s*(```|~~~)")
CODE_SPAN_RE = re.compile(r"(`+)(.+?)\1")


@dataclass
class Footnote:
    """One footnote definition.

    Attributes:
        label: Label used in the source (``a`` in ``[^a]``).
        text: Raw markdown text of the definition.
        index: 1-based number, or None when never referenced.
        ref_ids: Ids of every reference control pointing at this footnote.
    """

    label: str
    text: str
    index: int | None = None
    ref_ids: list[str] = field(default_factory=list)

    @property
    def note_id(self) -> str:
        return f"fn-{self.label}"


@dataclass
class FootnoteResult:
    body: str
    footnotes: list[Footnote]


def extract_footnotes(body: str) -> FootnoteResult:
    """Remove footnote definitions and replace references with controls.

    Lines inside fenced code blocks and inline code spans are left alone.
    References without a matching definition stay as literal text.

    Args:
        body: Markdown body.

    Returns:
        FootnoteResult with the rewritten body and footnotes ordered by first
        reference, followed by unreferenced definitions in source order.
    """
    definitions: dict[str, Footnote] = {}
    kept: list[str] = []
    fence: str | None = None
    for line in body.splitlines():
        fence, in_code = _track_fence(line, fence)
        if not in_code:
            match = DEFINITION_RE.match(line)
            if match:
                label, text = match.group(1), match.group(2).strip()
                definitions.setdefault(label, Footnote(label=label, text=text))
                continue
        kept.append(line)

    if not definitions:
        return FootnoteResult(body=body, footnotes=[])

    ordered: list[Footnote] = []

    def reference(match: re.Match) -> str:
        note = definitions.get(match.group(1))
        if note is None:
            return match.group(0)
        if note.index is None:
            ordered.append(note)
            note.index = len(ordered)
        ref_id = f"fnref-{note.label}"
        if note.ref_ids:
            ref_id = f"{ref_id}-{len(note.ref_ids) + 1}"
        note.ref_ids.append(ref_id)
        return (
            f'<sup><button type="button" class="fn-ref" id="{ref_id}" '
            f'data-fn="{note.label}" aria-describedby="{note.note_id}">'
            f"{note.index}</button></sup>"
        )

    rewritten: list[str] = []
    fence = None
    for line in kept:
        fence, in_code = _track_fence(line, fence)
        if in_code:
            rewritten.append(line)
        else:
            rewritten.append(_outside_code_spans(line, lambda s: REFERENCE_RE.sub(reference, s)))

    unreferenced = [note for note in definitions.values() if note.index is None]
    trailing = "\n" if body.endswith("\n") else ""
    return FootnoteResult(body="\n".join(rewritten) + trailing, footnotes=ordered + unreferenced)


def render_footnotes(footnotes: list[Footnote], render_inline: Callable[[str], str]) -> str:
    """Render the hidden definition block and the visible footnote list.

    Args:
        footnotes: Footnotes from ``extract_footnotes``.
        render_inline: Converts definition markdown to inline HTML.

    Returns:
        HTML to append after the document body, or "" without footnotes.
    """
    if not footnotes:
        return ""
    defs: list[str] = []
    items: list[str] = []
    for note in footnotes:
        html = render_inline(note.text)
        label = escape_html(note.label)
        defs.append(f'<div data-fn-def="{label}">{html}</div>')
        back = ""
        if note.ref_ids:
            back = (
                f' <a href="#{note.ref_ids[0]}" class="fn-back" '
                f'aria-label="Back to reference {note.index}">&#8617;</a>'
            )
        items.append(f'<li id="{note.note_id}">{html}{back}</li>')
    return (
        '<div class="footnote-defs" hidden>\n'
        + "\n".join(defs)
        + '\n</div>\n<section class="footnotes">\n<ol>\n'
        + "\n".join(items)
        + "\n</ol>\n</section>\n"
    )


def _track_fence(line: str, fence: str | None) -> tuple[str | None, bool]:
    """Advance fenced-code state for ``line``.

    Returns:
        The new fence marker (None outside code) and whether ``line`` itself
        belongs to a code block.
    """
    match = FENCE_RE.match(line)
    if match:
        marker = match.group(1)
        if fence is None:
            return marker, True
        if marker == fence:
            return None, True
    return fence, fence is not None


def _outside_code_spans(line: str, transform: Callable[[str], str]) -> str:
    parts: list[str] = []
    last = 0
    for match in CODE_SPAN_RE.finditer(line):
        parts.append(transform(line[last : match.start()]))
        parts.append(match.group(0))
        last = match.end()
    parts.append(transform(line[last:]))
    return "".join(parts)
