"""Markdown rendering for StaticForge.

Converts Markdown bodies to HTML with mistune, giving every heading a stable
anchor id and highlighting fenced code blocks with Pygments.

Key functions:
- render_markdown: Render Markdown to HTML plus the heading list.
- render_toc: Render headings as a nested table of contents.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import mistune
from markupsafe import Markup, escape
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]


@dataclass
class Heading:
    """A heading extracted for the table of contents.

    Attributes:
        id: Anchor id assigned to the heading.
        text: Heading text as rendered.
        level: Heading level (1-6).
    """

    id: str
    text: str
    level: int


def _generate_heading_id(text: str) -> str:
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-") or "section"


class _HighlightRenderer(mistune.HTMLRenderer):
    """HTML renderer adding heading ids and Pygments code highlighting.

    Attributes:
        headings: Headings seen during rendering, in document order.
    """

    def __init__(self) -> None:
        super().__init__(escape=False)
        self.headings: list[Heading] = []
        self._heading_id_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        base_id = _generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id

        self.headings.append(Heading(id=heading_id, text=text, level=level))
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block, highlighted when the language is known."""
        lang = info.split()[0] if info else ""
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        lang_class = f' class="language-{lang}"' if lang else ""
        return f"<pre><code{lang_class}>{escape(code)}</code></pre>\n"


def render_markdown(content: str) -> tuple[str, list[Heading]]:
    """Render Markdown content to HTML.

    Args:
        content: Markdown source (frontmatter already removed).

    Returns:
        Tuple of (rendered HTML, list of Heading objects).
    """
    renderer = _HighlightRenderer()
    markdown = mistune.create_markdown(renderer=renderer, plugins=MARKDOWN_PLUGINS)
    html = markdown(content)
    return html, renderer.headings


def render_toc(headings: list[Heading]) -> Markup:
    """Render headings as nested ``<ul>`` lists.

    Args:
        headings: Headings in document order.

    Returns:
        Markup-safe HTML, empty when there are no headings.
    """
    if not headings:
        return Markup("")

    html_parts: list[str] = []
    level_stack: list[int] = []
    for heading in headings:
        level = heading.level
        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ul>")

        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        else:
            html_parts.append("<ul>")
            level_stack.append(level)

        html_parts.append(f'<li><a href="#{escape(heading.id)}">{escape(heading.text)}</a>')

    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ul>")
    return Markup("".join(html_parts))


def pygments_css(selector: str = ".highlight") -> str:
    """Return Pygments CSS for highlighted code blocks."""
    return HtmlFormatter().get_style_defs(selector)
