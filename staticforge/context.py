"""Records passed between discovery, the render loop and plugins.

Key classes:
- DiscoveredFile: immutable record produced by discovery for each source file.
- RenderContext: mutable record threaded through the per-file events.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any


@dataclass(frozen=True)
class DiscoveredFile:
    """A source file found by discovery, before the render loop starts.

    Attributes:
        path: Path to the source file. Must be non-empty and stable for the run.
        url: Public URL path derived for the file.
        metadata: Frontmatter mapping; always present, possibly empty.
    """

    path: Path
    url: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not str(self.path) or str(self.path) == ".":
            raise ValueError("DiscoveredFile.path must be non-empty")
        if not isinstance(self.path, Path):
            object.__setattr__(self, "path", Path(self.path))
        if self.metadata is None:
            object.__setattr__(self, "metadata", {})


@dataclass
class RenderContext:
    """Per-file state threaded through PRE_RENDER, RENDER and POST_RENDER.

    Attributes:
        file_path: Source file (read-only input for plugins).
        rendered_content: Output written by a rendering plugin.
        metadata: Page metadata, read and written by plugins.
        output_path: Destination chosen by a rendering plugin.
        skip_file: Set by a listener to stop processing this file.
        file_url: URL derived by discovery.
        file_metadata: Frontmatter parsed by discovery (read-only view).
        extra: Open mapping for ad-hoc plugin data.
    """

    file_path: Path
    rendered_content: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    output_path: Path | None = None
    skip_file: bool = False
    file_url: str = ""
    file_metadata: Mapping[str, Any] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_file(cls, discovered: DiscoveredFile) -> RenderContext:
        """Build the fresh context the render loop hands to PRE_RENDER."""
        return cls(
            file_path=discovered.path,
            file_url=discovered.url,
            file_metadata=MappingProxyType(dict(discovered.metadata)),
        )
