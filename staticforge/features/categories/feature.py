"""Categories feature: top-level pages with a ``category`` move into its directory.

``content/post.md`` with ``category: Release Notes`` is written to
``release-notes/post.html``, the same location discovery gives it as a URL.
Pages already inside a directory keep their location.

A category definition file (``type: category``) may name a ``template``. Pages in
that category whose frontmatter does not pick a layout of their own use it.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from staticforge.context import RenderContext
from staticforge.discovery import category_relative_path
from staticforge.events import Event
from staticforge.features.base import DEFAULT_TEMPLATE, BaseFeature
from staticforge.services import Services
from staticforge.utils import slugify

CATEGORY_TYPE = "category"


def category_slug(value: Any) -> str:
    return slugify(str(value)) if value else ""


class Feature(BaseFeature):
    name = "Categories"
    event_listeners = {
        Event.POST_GLOB: {"method": "handle_post_glob", "priority": 250},
        Event.PRE_RENDER: {"method": "handle_pre_render", "priority": 100},
        # after the renderers, so the render loop claims the final path
        Event.RENDER: {"method": "handle_render", "priority": 200},
    }

    def __init__(self) -> None:
        super().__init__()
        self.templates: dict[str, str] = {}

    def handle_post_glob(self, services: Services, parameters: dict[str, Any]) -> dict[str, Any]:
        """Collect category templates and page counts per category."""
        self.templates = {}
        counts: dict[str, int] = {}
        for discovered in services.get("discovered_files") or []:
            metadata = discovered.metadata
            if metadata.get("type") == CATEGORY_TYPE:
                template = metadata.get("template")
                if template:
                    self.templates[slugify(discovered.path.stem)] = str(template)
                continue
            slug = category_slug(metadata.get("category"))
            if slug:
                counts[slug] = counts.get(slug, 0) + 1

        features = dict(parameters.get("features") or {})
        features[self.name] = {
            "categories": dict(sorted(counts.items())),
            "templates": dict(self.templates),
        }
        self.logger.info(
            "Collected categories", category_count=len(counts), template_count=len(self.templates)
        )
        return {**parameters, "features": features}

    def handle_pre_render(self, services: Services, context: RenderContext) -> RenderContext:
        frontmatter = context.file_metadata
        if frontmatter.get("type") == CATEGORY_TYPE:
            return context
        template = self.templates.get(category_slug(frontmatter.get("category")))
        if not template or "template" in context.metadata:
            return context
        if frontmatter.get("template", DEFAULT_TEMPLATE) != DEFAULT_TEMPLATE:
            return context
        context.metadata["template"] = template
        self.logger.debug("Applied category template", file=str(context.file_path), template=template)
        return context

    def handle_render(self, services: Services, context: RenderContext) -> RenderContext:
        if context.output_path is None or context.rendered_content is None:
            return context
        output_dir = Path(services.require("output_dir"))
        try:
            relative = Path(context.output_path).relative_to(output_dir)
        except ValueError:
            return context
        categorized = category_relative_path(relative, context.metadata.get("category"))
        if categorized != relative:
            context.output_path = output_dir / categorized
            self.logger.debug(
                "Categorized output", file=str(context.file_path), output=str(context.output_path)
            )
        return context
