"""Template rendering for StaticForge.

Renderer features wrap page bodies in a Jinja2 layout taken from the active
theme (``template_dir/<template>``). When no layout can be found the body is
emitted as-is.

Key class:
- TemplateRenderer: Resolves layouts and builds the template variables.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import structlog
from jinja2 import Environment, FileSystemLoader, Template, TemplateNotFound, select_autoescape
from markupsafe import Markup

from .config import flatten_config
from .renderers import Heading, pygments_css, render_toc

log = structlog.get_logger(__name__)

DEFAULT_LAYOUT = "base"
FALLBACK_TEMPLATE = "{{ content | safe }}"


class TemplateRenderer:
    """Jinja2 layout rendering for pages.

    Attributes:
        template_dir: Directory holding one subdirectory per theme.
        theme: Active theme name.
        site_data: Data loaded from the project's data directory.
        config: Project configuration.
        env: Jinja2 environment.
    """

    def __init__(
        self,
        template_dir: Path,
        theme: str = "default",
        site_data: Mapping[str, Any] | None = None,
        config: Mapping[str, Any] | None = None,
    ):
        self.template_dir = template_dir
        self.theme = theme
        self.site_data = dict(site_data or {})
        self.config = dict(config or {})
        self.env = Environment(
            loader=FileSystemLoader([template_dir / theme, template_dir]),
            autoescape=select_autoescape(["html", "xml", "jinja"]),
        )
        self.env.globals["pygments_css"] = pygments_css
        self.env.globals["url_for"] = self.url_for

    def url_for(self, path: str) -> str:
        """Prefix a site-relative path with ``site_base_url`` when configured."""
        if path.startswith(("http://", "https://", "//")):
            return path
        path = path if path.startswith("/") else f"/{path}"
        base = str(self.config.get("site_base_url") or "").rstrip("/")
        return f"{base}{path}"

    def resolve_layout(self, name: str) -> Template:
        """Find the layout template for a name.

        Tries ``<name>.html.jinja``, ``<name>.jinja``, ``<name>.html`` and the
        bare name, in that order.

        Returns:
            The first template found, or a pass-through template.
        """
        for candidate in (f"{name}.html.jinja", f"{name}.jinja", f"{name}.html", name):
            try:
                return self.env.get_template(candidate)
            except TemplateNotFound:
                continue
        log.debug("Layout not found, rendering content only", template=name, theme=self.theme)
        return self.env.from_string(FALLBACK_TEMPLATE)

    def build_variables(
        self,
        content: str,
        metadata: Mapping[str, Any],
        source_file: Path | str,
        toc: list[Heading] | None = None,
        tag_data: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Assemble template variables.

        Later sources win: site data, flattened config, ``site_name`` and
        ``site_base_url``, the page variables, then the page metadata itself.
        """
        variables: dict[str, Any] = {}
        variables.update(self.site_data)
        variables.update(flatten_config(self.config))
        variables["site_name"] = self.config.get("site_name", "")
        variables["site_base_url"] = self.config.get("site_base_url", "")
        variables.update(
            {
                "title": metadata.get("title", "Untitled Page"),
                "content": Markup(content),
                "toc": render_toc(toc or []),
                "source_file": str(source_file),
                "tag_data": dict(tag_data or {}),
                "page": dict(metadata),
            }
        )
        variables.update(metadata)
        # metadata may not replace the rendered body
        variables["content"] = Markup(content)
        return variables

    def render(self, template_name: str | None, variables: Mapping[str, Any]) -> str:
        """Render the layout with the given variables."""
        template = self.resolve_layout(template_name or DEFAULT_LAYOUT)
        return template.render(**variables)
