"""Base classes shared by the built-in features.

Key classes:
- BaseFeature: declarative listener table plus service capture.
- BaseRendererFeature: RENDER handler that reads a source file, renders its body
  and wraps it in the theme layout.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, ClassVar

from staticforge.context import RenderContext
from staticforge.discovery import extract_frontmatter
from staticforge.events import EventBus
from staticforge.log import feature_logger
from staticforge.plugins import register_listeners
from staticforge.render_loop import compute_output_path
from staticforge.renderers import Heading
from staticforge.services import Services

DEFAULT_TEMPLATE = "base"
DEFAULT_TITLE = "Untitled Page"


class BaseFeature:
    """Feature with a class-level ``{event: {"method", "priority"}}`` table.

    Attributes:
        name: Registry key.
        event_listeners: Listener table registered on the bus.
        services: Services container captured during ``register()``.
    """

    name: ClassVar[str] = ""
    event_listeners: ClassVar[dict[str, dict[str, Any]]] = {}

    def __init__(self) -> None:
        self.services: Services | None = None
        self.logger = feature_logger()

    def register(self, bus: EventBus, services: Services) -> None:
        self.services = services
        self.logger = services.get("logger") or self.logger
        register_listeners(self, bus, self.event_listeners)

    def get_event_listeners(self) -> list[str]:
        return list(self.event_listeners)

    def config(self, services: Services) -> dict[str, Any]:
        return dict(services.get("config") or {})


class BaseRendererFeature(BaseFeature, ABC):
    """Renders files with one of ``extensions`` during RENDER.

    Subclasses implement ``render_body``; this class handles frontmatter,
    metadata defaults, layout rendering and the output path.
    """

    extensions: ClassVar[tuple[str, ...]] = ()

    def register(self, bus: EventBus, services: Services) -> None:
        super().register(bus, services)
        registry = services.require("extension_registry")
        for extension in self.extensions:
            registry.register_extension(extension)

    def handles(self, path: Path) -> bool:
        return path.suffix.lower() in self.extensions

    @abstractmethod
    def render_body(self, body: str) -> tuple[str, list[Heading]]:
        """Convert a source body to HTML and collect its headings."""

    def default_title(self, html: str, headings: list[Heading]) -> str:
        return DEFAULT_TITLE

    def handle_render(self, services: Services, context: RenderContext) -> RenderContext:
        """Render the file into ``context`` if this feature handles its extension."""
        path = context.file_path
        if context.rendered_content is not None or not self.handles(path):
            return context

        text = path.read_text(encoding="utf-8")
        frontmatter, body = extract_frontmatter(text, path.suffix)
        html, headings = self.render_body(body)

        metadata: dict[str, Any] = {
            "template": DEFAULT_TEMPLATE,
            "title": self.default_title(html, headings),
        }
        metadata.update(frontmatter)
        metadata.update(context.metadata)
        context.metadata = metadata

        renderer = services.require("template_renderer")
        variables = renderer.build_variables(
            html,
            metadata,
            path,
            toc=headings,
            tag_data=context.extra.get("tag_data"),
        )
        context.rendered_content = renderer.render(metadata.get("template"), variables)
        context.output_path = compute_output_path(
            path, services.require("source_dir"), services.require("output_dir")
        )
        self.logger.debug("Rendered file", feature=self.name, file=str(path))
        return context
