"""Sitemap feature: writes ``sitemap.xml`` for every page rendered in the run.

URLs are collected after each file is rendered and the sitemap is written once
the loop is over. Locations are prefixed with ``site_base_url``; the last
modification date comes from the page's ``date`` metadata, falling back to the
source file's modification time.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from markupsafe import escape

from staticforge.context import RenderContext
from staticforge.events import Event
from staticforge.features.base import BaseFeature
from staticforge.services import Services
from staticforge.utils import file_date, write_text_file

SITEMAP_FILENAME = "sitemap.xml"


@dataclass(frozen=True)
class SitemapEntry:
    loc: str
    lastmod: str


def build_sitemap(entries: list[SitemapEntry]) -> str:
    """Render sitemap entries following the sitemaps.org protocol."""
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
    ]
    for entry in entries:
        lines.append(
            f"  <url><loc>{escape(entry.loc)}</loc><lastmod>{entry.lastmod}</lastmod></url>"
        )
    lines.append("</urlset>")
    return "\n".join(lines) + "\n"


class Feature(BaseFeature):
    name = "Sitemap"
    event_listeners = {
        Event.POST_RENDER: {"method": "handle_post_render", "priority": 100},
        Event.POST_LOOP: {"method": "handle_post_loop", "priority": 100},
    }

    def __init__(self) -> None:
        super().__init__()
        self.entries: list[SitemapEntry] = []

    def handle_post_render(self, services: Services, context: RenderContext) -> RenderContext:
        if not context.output_path or context.rendered_content is None:
            return context
        output_dir = Path(services.require("output_dir"))
        try:
            relative = Path(context.output_path).relative_to(output_dir).as_posix()
        except ValueError:
            self.logger.debug("Output outside output_dir, not in sitemap", file=str(context.file_path))
            return context
        base_url = str(self.config(services).get("site_base_url") or "").rstrip("/")
        self.entries.append(
            SitemapEntry(loc=f"{base_url}/{relative}", lastmod=self._lastmod(context))
        )
        return context

    def _lastmod(self, context: RenderContext) -> str:
        value = context.metadata.get("date", context.file_metadata.get("date"))
        return file_date(value, context.file_path).isoformat()

    def handle_post_loop(self, services: Services, parameters: dict[str, Any]) -> None:
        entries, self.entries = self.entries, []
        if not entries:
            self.logger.info("No URLs collected, skipping sitemap")
            return None
        path = Path(services.require("output_dir")) / SITEMAP_FILENAME
        write_text_file(path, build_sitemap(entries))
        self.logger.info("Wrote sitemap", path=str(path), url_count=len(entries))
        return None
