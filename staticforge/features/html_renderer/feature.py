"""HTML renderer feature: ``.html`` sources wrapped in the theme layout."""

from __future__ import annotations

import re

from staticforge.events import Event
from staticforge.features.base import DEFAULT_TITLE, BaseRendererFeature
from staticforge.renderers import Heading
from staticforge.utils import strip_tags

TITLE_RE = re.compile(r"<h1[^>]*>(.*?)</h1>", re.IGNORECASE | re.DOTALL)


class Feature(BaseRendererFeature):
    name = "HtmlRenderer"
    extensions = (".html",)
    event_listeners = {
        Event.RENDER: {"method": "handle_render", "priority": 100},
    }

    def render_body(self, body: str) -> tuple[str, list[Heading]]:
        return body, []

    def default_title(self, html: str, headings: list[Heading]) -> str:
        match = TITLE_RE.search(html)
        if match:
            return " ".join(strip_tags(match.group(1)).split()) or DEFAULT_TITLE
        return DEFAULT_TITLE
