"""robots.txt feature.

Pages whose frontmatter says ``robots: no`` are disallowed by URL. A category
definition file (``type: category``) with ``robots: no`` disallows the whole
category directory. When ``site_base_url`` is set the file also points crawlers
at the sitemap.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from staticforge.events import Event
from staticforge.features.base import BaseFeature
from staticforge.features.sitemap.feature import SITEMAP_FILENAME
from staticforge.services import Services
from staticforge.utils import slugify, write_text_file

ROBOTS_FILENAME = "robots.txt"


def is_disallowed(metadata: dict[str, Any]) -> bool:
    return str(metadata.get("robots", "yes")).strip().lower() in ("no", "false")


def build_robots_txt(disallowed: list[str], base_url: str = "") -> str:
    """Render robots.txt for all user agents.

    An empty ``Disallow:`` line allows everything.
    """
    lines = ["User-agent: *"]
    if disallowed:
        lines.extend(f"Disallow: {path}" for path in disallowed)
    else:
        lines.append("Disallow:")
    if base_url:
        lines.extend(["", f"Sitemap: {base_url.rstrip('/')}/{SITEMAP_FILENAME}"])
    return "\n".join(lines) + "\n"


class Feature(BaseFeature):
    name = "RobotsTxt"
    event_listeners = {
        Event.POST_GLOB: {"method": "handle_post_glob", "priority": 150},
        Event.POST_LOOP: {"method": "handle_post_loop", "priority": 100},
    }

    def __init__(self) -> None:
        super().__init__()
        self.disallowed: list[str] = []
        self.file_count = 0

    def handle_post_glob(self, services: Services, parameters: dict[str, Any]) -> None:
        disallowed: list[str] = []
        discovered_files = list(services.get("discovered_files") or [])
        for discovered in discovered_files:
            metadata = dict(discovered.metadata)
            if not is_disallowed(metadata):
                continue
            if metadata.get("type") == "category":
                slug = slugify(str(metadata.get("category") or discovered.path.stem))
                path = f"/{slug}/" if slug else discovered.url
            else:
                path = discovered.url
            if path and path not in disallowed:
                disallowed.append(path)
        self.disallowed = disallowed
        self.file_count = len(discovered_files)
        self.logger.info("Collected robots rules", disallowed_count=len(disallowed))
        return None

    def handle_post_loop(self, services: Services, parameters: dict[str, Any]) -> None:
        if not self.file_count:
            self.logger.info("No files discovered, skipping robots.txt")
            return None
        base_url = str(self.config(services).get("site_base_url") or "")
        path = Path(services.require("output_dir")) / ROBOTS_FILENAME
        write_text_file(path, build_robots_txt(self.disallowed, base_url))
        self.logger.info("Wrote robots.txt", path=str(path), disallowed_count=len(self.disallowed))
        return None
