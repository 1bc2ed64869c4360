"""Tags feature.

After discovery the feature indexes the ``tags`` frontmatter of every file and
publishes the index as ``services["features"]["Tags"]``. Before each file is
rendered it adds ``tag_data`` to ``context.extra``: the file's tags and the
files sharing the most tags with it.
"""

from __future__ import annotations

from typing import Any

from staticforge.context import RenderContext
from staticforge.events import Event
from staticforge.features.base import BaseFeature
from staticforge.services import Services

RELATED_LIMIT = 10


def normalize_tags(raw: Any) -> list[str]:
    """Normalize a frontmatter ``tags`` value to lowercase, de-duplicated names.

    Accepts a list or a comma separated string.
    """
    if not raw:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    elif not isinstance(raw, (list, tuple, set)):
        raw = [raw]
    tags: list[str] = []
    for tag in raw:
        name = str(tag).strip().lower()
        if name and name not in tags:
            tags.append(name)
    return tags


class Feature(BaseFeature):
    name = "Tags"
    event_listeners = {
        Event.POST_GLOB: {"method": "handle_post_glob", "priority": 150},
        Event.PRE_RENDER: {"method": "handle_pre_render", "priority": 100},
    }

    def __init__(self) -> None:
        super().__init__()
        self.tag_index: dict[str, list[str]] = {}

    def handle_post_glob(self, services: Services, parameters: dict[str, Any]) -> dict[str, Any]:
        self.tag_index = {}
        discovered = services.get("discovered_files") or []
        for discovered_file in discovered:
            for tag in normalize_tags(discovered_file.metadata.get("tags")):
                files = self.tag_index.setdefault(tag, [])
                path = str(discovered_file.path)
                if path not in files:
                    files.append(path)

        features = dict(parameters.get("features") or {})
        features[self.name] = {
            "all_tags": self.all_tags(),
            "tag_index": {tag: list(files) for tag, files in self.tag_index.items()},
            "tag_counts": self.tag_counts(),
        }
        self.logger.info(
            "Collected tags", tag_count=len(self.tag_index), file_count=len(discovered)
        )
        return {**parameters, "features": features}

    def handle_pre_render(self, services: Services, context: RenderContext) -> RenderContext:
        tags = normalize_tags(context.file_metadata.get("tags"))
        context.extra["tag_data"] = {
            "tags": tags,
            "related_files": self.related_files(str(context.file_path), tags),
            "all_tags": self.all_tags(),
            "tag_counts": self.tag_counts(),
        }
        return context

    def all_tags(self) -> list[str]:
        return sorted(self.tag_index)

    def tag_counts(self) -> dict[str, int]:
        """Return file counts per tag, most used first."""
        counts = {tag: len(files) for tag, files in self.tag_index.items()}
        return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))

    def related_files(self, current: str, tags: list[str]) -> list[str]:
        """Return up to RELATED_LIMIT files ranked by the number of shared tags."""
        scores: dict[str, int] = {}
        for tag in tags:
            for path in self.tag_index.get(tag, []):
                if path != current:
                    scores[path] = scores.get(path, 0) + 1
        ranked = sorted(scores, key=lambda path: (-scores[path], path))
        return ranked[:RELATED_LIMIT]
