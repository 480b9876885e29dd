"""Body renderers for Barn.

This module turns a unit body into HTML. Each renderer handles one source
type; cross-references are resolved before the body is rendered.

Key classes:
- Heading: A heading collected for the table of contents.
- MarkdownRenderer: Renders Markdown to HTML with syntax highlighting.
- HTMLRenderer: Passes through HTML content.
- RendererRegistry: Looks up the renderer for a source type.

Key functions:
- resolve_references: Replace [[name]] / [[name|label]] links with anchors.
- find_references: List the names a body references.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass

import mistune
from markupsafe import escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .errors import BrokenReference
from .protocols import BodyRenderer

# Code is matched before links so links inside it are left alone.
_FENCE = r"(?P<fence>^(?P<marker>```|~~~)[^\n]*\n.*?^(?P=marker)[^\n]*$)"
_CODE_SPAN = r"(?P<code>(?<!`)(?P<ticks>`+)(?!`)[^\n]+?(?<!`)(?P=ticks)(?!`))"
_INDENTED = r"(?P<indented>(?:\A|(?<=\n\n))(?:(?: {4}|\t)[^\n]*(?:\n|\Z))+)"
_LINK = r"\[\[(?P<target>[^\]|\n]+)(?:\|(?P<label>[^\]\n]+))?\]\]"

_REFERENCE_RE = re.compile("|".join((_FENCE, _CODE_SPAN, _LINK)), re.MULTILINE | re.DOTALL)
# Markdown also treats indented blocks as code; HTML does not.
_MARKDOWN_REFERENCE_RE = re.compile(
    "|".join((_FENCE, _CODE_SPAN, _INDENTED, _LINK)), re.MULTILINE | re.DOTALL
)


def _reference_re(markdown: bool) -> re.Pattern:
    return _MARKDOWN_REFERENCE_RE if markdown else _REFERENCE_RE


@dataclass(frozen=True)
class Heading:
    """A heading extracted from Markdown content for TOC generation.

    Attributes:
        id: Anchor ID for the heading (URL-friendly slug).
        text: The text content of the heading.
        level: Heading level (1-6).
    """

    id: str
    text: str
    level: int


def resolve_references(
    body: str,
    source_path: str,
    lookup: Callable[[str], tuple[str, str] | None],
    markdown: bool = True,
) -> str:
    """Replace wiki-style references with HTML anchors.

    Args:
        body: Unit body.
        source_path: Unit path used in error messages.
        lookup: Maps a reference name to (href, default label), or None
            when the name does not resolve.
        markdown: Whether the body is Markdown, where indented blocks are
            code as well.

    Returns:
        Body with every reference replaced by an anchor.

    Raises:
        BrokenReference: If any reference does not resolve. All missing
            names are listed in the message.
    """
    missing: list[str] = []

    def repl(match: re.Match) -> str:
        if match.group("target") is None:
            return match.group(0)
        name = match.group("target").strip()
        found = lookup(name)
        if found is None:
            if name not in missing:
                missing.append(name)
            return match.group(0)
        href, default_label = found
        label = (match.group("label") or "").strip() or default_label
        return f'<a href="{escape(href)}">{escape(label)}</a>'

    resolved = _reference_re(markdown).sub(repl, body)
    if missing:
        names = ", ".join(f"'{name}'" for name in missing)
        raise BrokenReference(source_path, f"unresolved reference to {names}")
    return resolved


def find_references(body: str, markdown: bool = True) -> list[str]:
    """Return the names a body references, in order of first use.

    References inside code are not counted.
    """
    names: list[str] = []
    for match in _reference_re(markdown).finditer(body):
        target = match.group("target")
        if target is not None and target.strip() not in names:
            names.append(target.strip())
    return names


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text."""
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-") or "section"


class _HighlightRenderer(mistune.HTMLRenderer):
    """Markdown renderer with heading anchors and syntax highlighting.

    Attributes:
        headings: Heading objects collected during rendering.
    """

    def __init__(self):
        super().__init__(escape=False)
        self.headings: list[Heading] = []
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with a unique id and record it for the TOC."""
        base_id = _generate_heading_id(text)

        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id

        plain = re.sub(r"<[^>]+>", "", text)
        self.headings.append(Heading(id=heading_id, text=plain, level=level))
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block, highlighted with Pygments when the language is known."""
        lang = info.split()[0] if info and info.strip() else None
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = code.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
        lang_class = f' class="language-{escape(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MarkdownRenderer:
    """Renders Markdown content to HTML."""

    source_type = "markdown"

    def render(self, content: str) -> tuple[str, list[Heading]]:
        """Render Markdown content to HTML.

        Args:
            content: Markdown source.

        Returns:
            Tuple of (rendered HTML, list of Heading objects).
        """
        renderer = _HighlightRenderer()
        markdown = mistune.create_markdown(
            renderer=renderer, plugins=["strikethrough", "footnotes", "table", "url"]
        )
        html = markdown(content)
        return html, renderer.headings


class HTMLRenderer:
    """Passes through HTML content unchanged."""

    source_type = "html"

    def render(self, content: str) -> tuple[str, list[Heading]]:
        return content, []


class RendererRegistry:
    """Registry of body renderers keyed by source type.

    New renderers can be registered without touching the render engine.
    """

    def __init__(self):
        self._renderers: dict[str, BodyRenderer] = {}
        self.register(MarkdownRenderer())
        self.register(HTMLRenderer())

    def register(self, renderer: BodyRenderer) -> None:
        self._renderers[renderer.source_type] = renderer

    def get_renderer(self, source_type: str) -> BodyRenderer | None:
        """Return the renderer for a source type, or None."""
        return self._renderers.get(source_type)


# Default renderer registry instance
default_renderer_registry = RendererRegistry()
