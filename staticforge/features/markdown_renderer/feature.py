"""Markdown renderer feature: ``.md`` sources rendered with mistune."""

from __future__ import annotations

from staticforge.events import Event
from staticforge.features.base import DEFAULT_TITLE, BaseRendererFeature
from staticforge.renderers import Heading, render_markdown
from staticforge.utils import strip_tags


class Feature(BaseRendererFeature):
    name = "MarkdownRenderer"
    extensions = (".md",)
    event_listeners = {
        Event.RENDER: {"method": "handle_render", "priority": 100},
    }

    def render_body(self, body: str) -> tuple[str, list[Heading]]:
        return render_markdown(body)

    def default_title(self, html: str, headings: list[Heading]) -> str:
        """Use the first top-level heading when frontmatter has no title."""
        for heading in headings:
            if heading.level == 1:
                return " ".join(strip_tags(heading.text).split()) or DEFAULT_TITLE
        return DEFAULT_TITLE
