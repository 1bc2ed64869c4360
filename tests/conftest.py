"""Shared pytest fixtures and helpers for StaticForge tests."""

from __future__ import annotations

import logging
from collections.abc import Generator
from pathlib import Path

import pytest
import structlog

from staticforge.config import DEFAULT_CONFIG


@pytest.fixture(autouse=True)
def _restore_logging() -> Generator[None]:
    """Restore root logger and structlog state after each test."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    forge = logging.getLogger("staticforge")
    forge_level = forge.level
    yield
    root.handlers = original_handlers
    root.setLevel(original_level)
    forge.setLevel(forge_level)
    structlog.reset_defaults()


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


def make_config(**overrides) -> dict:
    config = {key: value for key, value in DEFAULT_CONFIG.items()}
    config["disabled_features"] = []
    config["reading_time"] = {}
    config.update(overrides)
    return config


@pytest.fixture
def project(tmp_path: Path) -> Path:
    """Small project with two pages, one draft and a base layout."""
    write(
        tmp_path / "content" / "index.md",
        "---\ntitle: Home\ntags: [python, web]\n---\n# Welcome\n\nHello **world**.\n",
    )
    write(
        tmp_path / "content" / "about.html",
        "<!--\n---\ntitle: About\ntags: python\n---\n-->\n<h1>About us</h1>\n",
    )
    write(
        tmp_path / "content" / "draft.md",
        "---\ntitle: Unfinished\ndraft: true\n---\nNot yet.\n",
    )
    write(
        tmp_path / "templates" / "default" / "base.html.jinja",
        "<title>{{ title }} | {{ site_name }}</title><main>{{ content }}</main>",
    )
    write(tmp_path / "staticforge.yaml", "site_name: Test Site\nsite_base_url: https://example.com\n")
    return tmp_path
