"""Estimated reading time feature.

Counts the words of each source file (frontmatter and markup removed) and adds
``reading_time_minutes`` and ``reading_time_label`` to the page metadata.

Configuration (``reading_time`` in staticforge.yaml):
    wpm: Words per minute, default 200.
    label_singular / label_plural: Label after the number, default "min read".
    exclude: Substrings; files whose path contains one are left alone.
"""

from __future__ import annotations

import math
import re
from typing import Any

from staticforge.context import RenderContext
from staticforge.discovery import extract_frontmatter
from staticforge.events import Event
from staticforge.features.base import BaseFeature
from staticforge.services import Services
from staticforge.utils import strip_tags

DEFAULT_WPM = 200
DEFAULT_LABEL = "min read"
WORD_RE = re.compile(r"[A-Za-z0-9'\-]+")


def estimate_reading_time(
    text: str,
    wpm: int = DEFAULT_WPM,
    singular: str = DEFAULT_LABEL,
    plural: str = DEFAULT_LABEL,
) -> tuple[int, str]:
    """Estimate reading time for a block of text or HTML.

    Returns:
        Tuple of (minutes, label). Minutes are rounded up and never below 1.
    """
    words = len(WORD_RE.findall(strip_tags(text)))
    minutes = max(1, math.ceil(words / max(1, wpm)))
    label = singular if minutes == 1 else plural
    return minutes, f"{minutes} {label}"


class Feature(BaseFeature):
    name = "EstimatedReadingTime"
    event_listeners = {
        Event.PRE_RENDER: {"method": "handle_pre_render", "priority": 50},
    }

    def handle_pre_render(self, services: Services, context: RenderContext) -> RenderContext:
        settings: dict[str, Any] = dict(self.config(services).get("reading_time") or {})
        path = context.file_path
        if any(str(exclude) in str(path) for exclude in settings.get("exclude", [])):
            return context
        if not path.is_file():
            return context

        _frontmatter, body = extract_frontmatter(path.read_text(encoding="utf-8"), path.suffix)
        minutes, label = estimate_reading_time(
            body,
            wpm=int(settings.get("wpm", DEFAULT_WPM)),
            singular=str(settings.get("label_singular", DEFAULT_LABEL)),
            plural=str(settings.get("label_plural", DEFAULT_LABEL)),
        )
        context.metadata["reading_time_minutes"] = minutes
        context.metadata["reading_time_label"] = label
        return context
