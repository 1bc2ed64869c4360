"""Exception types for StaticForge.

Each exception carries the structured context needed to log it and to report it
in a GenerationResult. Only CoreError is fatal to a run; the others are isolated
at the plugin, event or file boundary where they occur.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any


class StaticForgeError(Exception):
    """Base class for all StaticForge errors."""

    def context(self) -> dict[str, Any]:
        """Return structured fields describing the error."""
        return {"message": str(self)}


class ConfigError(StaticForgeError):
    """Invalid configuration file or configuration values."""


class CoreError(StaticForgeError):
    """Failure in the engine's own bookkeeping.

    Attributes:
        component: Core component that failed (e.g. "Orchestrator").
        details: Additional context for debugging.
    """

    def __init__(
        self,
        message: str,
        component: str,
        details: dict[str, Any] | None = None,
    ):
        self.component = component
        self.details = dict(details or {})
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"component": self.component, "message": str(self), **self.details}


class PluginLoadError(StaticForgeError):
    """A single plugin could not be loaded, instantiated or registered.

    Attributes:
        plugin_dir: Directory (or entry point name) the plugin came from.
        message: Human-readable error message.
    """

    def __init__(self, message: str, plugin_dir: Path | str):
        self.plugin_dir = plugin_dir
        self.message = message
        super().__init__(f"{plugin_dir}: {message}")

    def context(self) -> dict[str, Any]:
        return {"plugin": str(self.plugin_dir), "message": self.message}


class FeatureError(StaticForgeError):
    """A listener raised while an event was being dispatched.

    Attributes:
        feature: Name of the plugin (or callable) that owned the listener.
        event: Event being fired when the listener raised.
    """

    def __init__(self, message: str, feature: str, event: str = ""):
        self.feature = feature
        self.event = event
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"feature": self.feature, "phase": self.event, "message": str(self)}


class FileProcessingError(StaticForgeError):
    """Processing of one source file failed at a given stage.

    Attributes:
        file_path: Source file being processed.
        stage: Pipeline stage where the failure happened.
    """

    def __init__(self, message: str, file_path: Path | str, stage: str = ""):
        self.file_path = file_path
        self.stage = stage
        super().__init__(message)

    def context(self) -> dict[str, Any]:
        return {"file": str(self.file_path), "stage": self.stage, "message": str(self)}
