"""Content discovery for StaticForge.

Discovery runs between PRE_GLOB and POST_GLOB. It walks the source tree, keeps
files whose extension a renderer feature registered, parses their frontmatter and
derives a URL, producing the DiscoveredFile records the render loop consumes.

Key classes:
- ExtensionRegistry: file extensions renderer features can process.
- FileDiscovery: walks the source tree and builds DiscoveredFile records.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import yaml

from .context import DiscoveredFile
from .utils import is_html, is_internal_path, is_markdown, slugify

log = structlog.get_logger(__name__)

FRONTMATTER_RE = re.compile(r"^---\s*\n(.*?)\n---\s*\n", re.DOTALL)
HTML_FRONTMATTER_RE = re.compile(r"^<!--\s*\n---\s*\n(.*?)\n---\s*\n-->\s*\n?", re.DOTALL)

OUTPUT_EXTENSION = ".html"
SOURCE_EXTENSIONS = (".md", ".html")


def extract_frontmatter(text: str, suffix: str = ".md") -> tuple[dict[str, Any], str]:
    """Extract YAML frontmatter from content.

    Markdown files carry frontmatter between ``---`` markers at the top of the
    file; HTML files wrap the same block in a leading ``<!-- ... -->`` comment.

    Args:
        text: Raw file content.
        suffix: File extension, used to pick the frontmatter syntax.

    Returns:
        Tuple of (frontmatter dict, remaining content). Invalid or non-mapping
        YAML yields an empty dict and the content unchanged.
    """
    pattern = HTML_FRONTMATTER_RE if suffix.lower() == ".html" else FRONTMATTER_RE
    match = pattern.match(text)
    if not match:
        return {}, text
    try:
        data = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        return {}, text
    if not isinstance(data, dict):
        return {}, text
    return data, text[match.end() :]


def output_relative_path(rel: Path) -> Path:
    """Map a source-relative path to its output-relative path.

    Known source extensions (``.md``, ``.html``) become ``.html``; anything else
    keeps its name.
    """
    if rel.suffix.lower() in SOURCE_EXTENSIONS:
        return rel.with_suffix(OUTPUT_EXTENSION)
    return rel


def category_relative_path(rel: Path, category: Any) -> Path:
    """Place a top-level output path under its slugified category directory.

    Paths already inside a directory keep their structure, as do pages without
    a category or whose category slugifies to nothing.

    Examples:
        >>> category_relative_path(Path("post.html"), "Release Notes").as_posix()
        'release-notes/post.html'
        >>> category_relative_path(Path("docs/post.html"), "Blog").as_posix()
        'docs/post.html'
    """
    if not category or len(rel.parts) != 1:
        return rel
    slug = slugify(str(category))
    return Path(slug) / rel if slug else rel


class ExtensionRegistry:
    """Registry of file extensions that renderer features can process."""

    def __init__(self) -> None:
        self._extensions: list[str] = []

    @staticmethod
    def _normalize(extension: str) -> str:
        extension = extension.lower()
        return extension if extension.startswith(".") else f".{extension}"

    def register_extension(self, extension: str) -> None:
        """Register an extension such as ``.md`` or ``md``. Idempotent."""
        normalized = self._normalize(extension)
        if normalized not in self._extensions:
            self._extensions.append(normalized)
            log.debug("Registered extension", extension=normalized)

    def is_registered(self, extension: str) -> bool:
        return self._normalize(extension) in self._extensions

    def registered_extensions(self) -> list[str]:
        return list(self._extensions)

    def can_process(self, path: Path) -> bool:
        """Check whether a file's extension has been registered."""
        return bool(path.suffix) and self.is_registered(path.suffix)


class FileDiscovery:
    """Discovers processable content files.

    Attributes:
        source_dir: Root of the content tree; URLs are relative to it.
        extension_registry: Extensions renderer features registered.
        scan_dirs: Directories to walk (defaults to the source directory).
    """

    def __init__(
        self,
        source_dir: Path,
        extension_registry: ExtensionRegistry,
        scan_dirs: Iterable[Path] | None = None,
    ):
        self.source_dir = source_dir
        self.extension_registry = extension_registry
        self.scan_dirs = list(scan_dirs) if scan_dirs is not None else [source_dir]

    def discover(self) -> list[DiscoveredFile]:
        """Walk every scan directory and build DiscoveredFile records.

        Files are returned in sorted path order per scan directory. Internal
        directories (``_``-prefixed) are skipped.

        Returns:
            List of discovered files.
        """
        files: list[DiscoveredFile] = []
        for directory in self.scan_dirs:
            if not directory.is_dir():
                log.warning("Directory not found", directory=str(directory))
                continue
            files.extend(self._scan(directory))
        log.info("Discovered processable files", count=len(files))
        return files

    def _scan(self, directory: Path) -> list[DiscoveredFile]:
        found: list[DiscoveredFile] = []
        for path in sorted(directory.rglob("*")):
            if path.is_dir():
                continue
            rel = path.relative_to(directory)
            if is_internal_path(rel.parent):
                continue
            if not self.extension_registry.can_process(path):
                continue
            found.append(self.describe(path))
        return found

    def describe(self, path: Path) -> DiscoveredFile:
        """Build the DiscoveredFile record for a single source file."""
        metadata = self._read_metadata(path)
        return DiscoveredFile(path=path, url=self.generate_url(path, metadata), metadata=metadata)

    def _read_metadata(self, path: Path) -> dict[str, Any]:
        """Parse frontmatter from a Markdown or HTML file."""
        if not (is_markdown(path) or is_html(path)):
            return {}
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            log.warning("Failed to read file", file=str(path), error=str(exc))
            return {}
        metadata, _body = extract_frontmatter(text, path.suffix)
        return metadata

    def generate_url(self, path: Path, metadata: dict[str, Any]) -> str:
        """Derive the public URL for a source file.

        Top-level files that declare a ``category`` are placed under the
        slugified category; files already inside a directory keep their
        structure.

        Args:
            path: Source file path.
            metadata: Parsed frontmatter.

        Returns:
            URL path with a leading slash, e.g. ``/blog/post.html``.
        """
        try:
            rel = path.relative_to(self.source_dir)
        except ValueError:
            rel = Path(path.name)
        rel = category_relative_path(output_relative_path(rel), metadata.get("category"))
        return "/" + rel.as_posix().lstrip("/")
