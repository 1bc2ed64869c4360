"""Utility functions for StaticForge.

This module contains small helpers used throughout the StaticForge codebase:
string processing, path handling and directory management.

Key functions:
    slugify: Convert text to a URL-safe slug.
    is_markdown: Check if a path is a Markdown file.
    is_html: Check if a path is a plain HTML file.
    ensure_clean_dir: Ensure a directory exists and is empty.
    write_text_file: Write a file, creating parent directories.
    parse_date: Read a frontmatter date value.
    file_date: Page date with modification-time fallback.
"""

from __future__ import annotations

import re
import shutil
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any


def slugify(text: str) -> str:
    """Convert text to a URL-safe slug.

    Args:
        text: Text to convert, e.g. a category name.

    Returns:
        Lowercase slug with runs of non-alphanumerics collapsed to hyphens.

    Examples:
        >>> slugify("Release Notes_2024")
        'release-notes-2024'
    """
    slug = text.lower().replace(" ", "-").replace("_", "-")
    slug = re.sub(r"[^a-z0-9\-]", "", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def is_markdown(path: Path) -> bool:
    """Check if a path is a Markdown file (case-insensitive)."""
    return path.suffix.lower() == ".md"


def is_html(path: Path) -> bool:
    """Check if a path is a plain HTML file (not a Jinja template)."""
    return path.suffix.lower() == ".html"


def is_internal_path(path: Path) -> bool:
    """Check if a path is internal (contains components starting with _).

    Args:
        path: Path to check, usually relative to the source directory.

    Returns:
        True if any path component starts with underscore.
    """
    return any(part.startswith("_") for part in path.parts)


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            # Fallback for stubborn directories
            for item in path.rglob("*"):
                if item.is_file():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)


def write_text_file(path: Path, content: str) -> int:
    """Write text to a file, creating parent directories as needed.

    Args:
        path: Destination file.
        content: Text to write (UTF-8).

    Returns:
        Number of bytes written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    data = content.encode("utf-8")
    path.write_bytes(data)
    return len(data)


def strip_tags(html: str) -> str:
    """Remove HTML tags from a string, keeping the text."""
    return re.sub(r"<[^>]+>", " ", html)


def parse_date(value: Any) -> date | None:
    """Read a frontmatter date: a date, a datetime or an ISO ``YYYY-MM-DD`` string.

    Returns:
        The date, or None when the value is missing or unparseable.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


def file_date(value: Any, path: Path) -> date:
    """Date for a page: ``value`` if it parses, else the file's mtime, else today (UTC)."""
    parsed = parse_date(value)
    if parsed is None and path.exists():
        parsed = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc).date()
    return parsed or datetime.now(timezone.utc).date()
