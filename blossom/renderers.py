"""Markdown rendering for Blossom.

Turns a note body into HTML: footnotes are extracted first, then the body is
parsed with mistune using a renderer that assigns heading ids, highlights
fenced code with Pygments and rewrites relative image paths.

Key classes:
- Highlighter: Pygments wrapper with a language alias table.
- HeadingInfo / TocEntry: Headings collected while rendering.
- MarkdownRenderer: Entry point returning a RenderedDocument.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import PurePosixPath

import mistune
from markupsafe import Markup

from .footnotes import extract_footnotes, render_footnotes
from .html_utils import escape_html, is_external_url
from .utils import heading_id

logger = logging.getLogger(__name__)

MEDIA_PREFIX = "/media"
TOC_LEVELS = (2, 3)
TOC_MIN_HEADINGS = 2

EXPLICIT_ID_RE = re.compile(r"\s*\{#([A-Za-z][\w-]*)\}\s*$")

LANGUAGE_ALIASES = {
    "js": "javascript",
    "mjs": "javascript",
    "cjs": "javascript",
    "ts": "typescript",
    "py": "python",
    "py3": "python",
    "rb": "ruby",
    "rs": "rust",
    "golang": "go",
    "sh": "bash",
    "shell": "bash",
    "zsh": "bash",
    "console": "shell-session",
    "ps": "powershell",
    "ps1": "powershell",
    "yml": "yaml",
    "md": "markdown",
    "c++": "cpp",
    "cs": "csharp",
    "kt": "kotlin",
    "htm": "html",
    "jsonc": "json",
    "dockerfile": "docker",
    "tf": "terraform",
}


class Highlighter:
    """Syntax highlighter backed by Pygments.

    Falls back to escaped plain text when Pygments is missing, the language
    is unknown, or highlighting raises. It never propagates an error.
    """

    css_class = "highlight"

    def __init__(self):
        try:
            from pygments import highlight
            from pygments.formatters import HtmlFormatter
            from pygments.lexers import get_lexer_by_name
            from pygments.util import ClassNotFound
        except ImportError:
            logger.warning("Pygments not installed; code blocks will not be highlighted")
            self._highlight = None
            return
        self._highlight = highlight
        self._get_lexer = get_lexer_by_name
        self._not_found = ClassNotFound
        self._formatter = HtmlFormatter(cssclass=self.css_class)

    @property
    def available(self) -> bool:
        return self._highlight is not None

    @staticmethod
    def canonical_language(info: str | None) -> str:
        if not info:
            return ""
        lang = info.strip().split()[0].lower()
        return LANGUAGE_ALIASES.get(lang, lang)

    def highlight(self, code: str, info: str | None = None) -> str:
        """Highlight ``code`` in the language named by the fence ``info``.

        Returns:
            HTML for the code block.
        """
        lang = self.canonical_language(info)
        if lang and self._highlight is not None:
            try:
                lexer = self._lexer(lang)
            except self._not_found:
                logger.debug("No lexer for %r; rendering plain code", lang)
            else:
                try:
                    html = self._highlight(code, lexer, self._formatter)
                except Exception as exc:
                    logger.warning("Highlighting %s code failed: %s", lang, exc)
                else:
                    return html.replace(
                        f'<div class="{self.css_class}">',
                        f'<div class="{self.css_class}" data-lang="{escape_html(lang)}">',
                        1,
                    )
        return plain_code_block(code, lang)

    def style_defs(self) -> str:
        """CSS rules for the highlighter's token classes."""
        if self._highlight is None:
            return ""
        return self._formatter.get_style_defs(f".{self.css_class}")

    def _lexer(self, lang: str):
        return _cached_lexer(self._get_lexer, lang)


@lru_cache(maxsize=64)
def _cached_lexer(factory, lang: str):
    return factory(lang, stripall=False)


_highlighter: Highlighter | None = None


def get_highlighter() -> Highlighter:
    """Return the process-wide Highlighter, creating it on first use."""
    global _highlighter
    if _highlighter is None:
        _highlighter = Highlighter()
    return _highlighter


def plain_code_block(code: str, lang: str = "") -> str:
    lang_class = f' class="language-{escape_html(lang)}"' if lang else ""
    return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


def rewrite_image_path(src: str, folder: str) -> str:
    """Point relative note images at the published media directory.

    Args:
        src: Image source from markdown.
        folder: Folder of the note, relative to the notes directory.

    Returns:
        Root-relative path for relative sources; other sources unchanged.

    Examples:
        >>> rewrite_image_path("img/cat.png", "posts")
        '/media/posts/img/cat.png'
    """
    if not src or is_external_url(src) or src.startswith("/"):
        return src
    joined = PurePosixPath(folder) / src if folder else PurePosixPath(src)
    parts: list[str] = []
    for part in joined.parts:
        if part == "..":
            if parts:
                parts.pop()
        elif part != ".":
            parts.append(part)
    return f"{MEDIA_PREFIX}/{'/'.join(parts)}"


@dataclass(frozen=True)
class HeadingInfo:
    """A heading seen while rendering.

    Attributes:
        id: Anchor id.
        text: Plain text of the heading.
        level: Heading level (1-6).
    """

    id: str
    text: str
    level: int


@dataclass(frozen=True)
class TocEntry:
    """A table-of-contents entry; level-2 entries nest their level-3s."""

    id: str
    text: str
    level: int
    children: tuple[TocEntry, ...] = ()


@dataclass
class RenderedDocument:
    """Rendered body of a document.

    Attributes:
        html: Body HTML including footnote blocks.
        headings: Every heading in document order.
        toc: Table of contents, empty when fewer than two eligible headings.
    """

    html: str
    headings: list[HeadingInfo] = field(default_factory=list)
    toc: tuple[TocEntry, ...] = ()


def build_toc(headings: list[HeadingInfo]) -> tuple[TocEntry, ...]:
    """Nest level-3 headings under the preceding level-2 heading.

    Level-3 headings that appear before any level-2 heading become top-level
    entries.

    Returns:
        The TOC, or an empty tuple when fewer than two headings qualify.
    """
    eligible = [h for h in headings if h.level in TOC_LEVELS]
    if len(eligible) < TOC_MIN_HEADINGS:
        return ()
    entries: list[tuple[HeadingInfo, list[HeadingInfo]]] = []
    for heading in eligible:
        if heading.level == 3 and entries and entries[-1][0].level == 2:
            entries[-1][1].append(heading)
        else:
            entries.append((heading, []))
    return tuple(
        TocEntry(
            id=parent.id,
            text=parent.text,
            level=parent.level,
            children=tuple(TocEntry(id=c.id, text=c.text, level=c.level) for c in children),
        )
        for parent, children in entries
    )


class _NoteRenderer(mistune.HTMLRenderer):
    """mistune renderer with heading ids, highlighting and media paths.

    Attributes:
        folder: Folder of the note being rendered.
        headings: Headings collected during rendering.
    """

    def __init__(self, folder: str, highlighter: Highlighter):
        super().__init__(escape=False)
        self.folder = folder
        self.highlighter = highlighter
        self.headings: list[HeadingInfo] = []
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        explicit = EXPLICIT_ID_RE.search(text)
        if explicit:
            text = text[: explicit.start()]
        plain = Markup(text).striptags()
        if explicit:
            anchor = explicit.group(1)
        else:
            base_id = heading_id(plain) or "section"
            if base_id in self._heading_id_counts:
                self._heading_id_counts[base_id] += 1
                anchor = f"{base_id}-{self._heading_id_counts[base_id]}"
            else:
                self._heading_id_counts[base_id] = 0
                anchor = base_id
        self.headings.append(HeadingInfo(id=anchor, text=plain, level=level))
        return f'<h{level} id="{escape_html(anchor)}">{text}</h{level}>\n'

    def image(self, text: str, url: str, title: str | None = None) -> str:
        return super().image(text, rewrite_image_path(url, self.folder), title)

    def block_code(self, code: str, info: str | None = None) -> str:
        return self.highlighter.highlight(code, info)


class MarkdownRenderer:
    """Renders note bodies to HTML.

    Rendering is deterministic: the same body always produces the same HTML.
    """

    plugins = ["strikethrough", "table", "url"]

    def __init__(self, highlighter: Highlighter | None = None):
        self.highlighter = highlighter or get_highlighter()
        self._inline = mistune.create_markdown(escape=False, plugins=["strikethrough", "url"])

    def render(self, body: str, folder: str = "") -> RenderedDocument:
        """Render a markdown body.

        Args:
            body: Markdown text without frontmatter.
            folder: Note folder, used to resolve relative image paths.

        Returns:
            RenderedDocument with HTML, headings and table of contents.
        """
        extracted = extract_footnotes(body)
        renderer = _NoteRenderer(folder, self.highlighter)
        markdown = mistune.create_markdown(renderer=renderer, plugins=self.plugins)
        html = markdown(extracted.body)
        html += render_footnotes(extracted.footnotes, self.render_inline)
        return RenderedDocument(
            html=html, headings=renderer.headings, toc=build_toc(renderer.headings)
        )

    def render_inline(self, text: str) -> str:
        """Render a single line of markdown without the paragraph wrapper."""
        html = self._inline(text).strip()
        if html.startswith("<p>") and html.endswith("</p>"):
            html = html[3:-4]
        return html
