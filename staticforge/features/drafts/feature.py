"""Drafts feature: files marked ``draft: true`` are skipped unless drafts are enabled."""

from __future__ import annotations

from staticforge.context import RenderContext
from staticforge.events import Event
from staticforge.features.base import BaseFeature
from staticforge.services import Services


class Feature(BaseFeature):
    name = "Drafts"
    event_listeners = {
        Event.PRE_RENDER: {"method": "handle_pre_render", "priority": 10},
    }

    def handle_pre_render(self, services: Services, context: RenderContext) -> RenderContext:
        if context.file_metadata.get("draft") is not True:
            return context
        if self.config(services).get("include_drafts"):
            return context
        self.logger.info("Skipping draft", file=str(context.file_path))
        context.skip_file = True
        return context
