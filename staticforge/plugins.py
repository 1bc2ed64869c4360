"""Plugin ("feature") contract, registration helper and registry.

Discovery: explicitly supplied plugin instances, then every subdirectory of the
configured plugin roots that contains a ``feature.py`` entry point (user
directory before the built-in one), then installed distributions advertising
the ``staticforge.features`` entry-point group.

A broken plugin is logged and skipped; it never prevents the other
plugins from loading. Plugins are instantiated once and live for the whole run.
"""

from __future__ import annotations

import importlib.util
import inspect
import sys
from collections.abc import Iterable, Mapping
from importlib.metadata import entry_points
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import structlog

from .errors import CoreError, PluginLoadError
from .events import DEFAULT_PRIORITY

if TYPE_CHECKING:
    from .events import EventBus
    from .services import Services

log = structlog.get_logger(__name__)

ENTRY_POINT_FILENAME = "feature.py"
ENTRY_POINT_GROUP = "staticforge.features"
BUILTIN_FEATURES_DIR = Path(__file__).parent / "features"

ListenerTable = Mapping[str, Mapping[str, Any]]


@runtime_checkable
class Plugin(Protocol):
    """Capability set every feature must provide.

    Attributes:
        name: Unique name used as the registry key.
    """

    name: str

    def register(self, bus: EventBus, services: Services) -> None:
        """Subscribe listeners and capture services. Called once at boot."""
        ...

    def get_event_listeners(self) -> list[str]:
        """Return the event names this plugin listens to (diagnostics only)."""
        ...


def register_listeners(plugin: Any, bus: EventBus, table: ListenerTable) -> None:
    """Register a plugin's listeners from a declarative table.

    Args:
        plugin: Object owning the listener methods.
        bus: Event bus to register on.
        table: ``{event: {"method": name, "priority": int}}``; priority
            defaults to 100.

    Raises:
        AttributeError: If a named method does not exist on the plugin.
    """
    owner = getattr(plugin, "name", None) or type(plugin).__name__
    for event, listener in table.items():
        callback = getattr(plugin, listener["method"])
        priority = int(listener.get("priority", DEFAULT_PRIORITY))
        bus.register_listener(event, callback, priority, owner=owner)


class PluginRegistry:
    """Discovers, instantiates and boots plugins for one run.

    Attributes:
        bus: Event bus plugins register on.
        services: Services container handed to ``register()``.
        plugin_dirs: Plugin roots scanned in order.
        disabled: Names of plugins that must not be registered.
        errors: Load failures collected during boot.
    """

    def __init__(
        self,
        bus: EventBus,
        services: Services,
        plugin_dirs: Iterable[Path] = (),
        disabled: Iterable[str] = (),
        plugins: Iterable[Plugin] = (),
        entry_point_group: str | None = ENTRY_POINT_GROUP,
    ):
        self.bus = bus
        self.services = services
        self.plugin_dirs = [Path(d) for d in plugin_dirs]
        self.disabled = set(disabled)
        self.entry_point_group = entry_point_group
        self.errors: list[PluginLoadError] = []
        self._initial = list(plugins)
        self._plugins: dict[str, Plugin] = {}
        self._types: dict[str, str] = {}
        self._statuses: dict[str, str] = {}
        self._booting = False
        self._loaded = False

    @property
    def is_loaded(self) -> bool:
        """Whether load_plugins() has completed."""
        return self._loaded

    def load_plugins(self) -> dict[str, Plugin]:
        """Discover and register every plugin. Calling it again is a no-op.

        Returns:
            The loaded plugins by name, in load order.
        """
        if self._loaded:
            return self.get_plugins()

        self._booting = True
        try:
            for plugin in self._initial:
                self._register_guarded(plugin, "Runtime")
            for plugin_dir in self.plugin_dirs:
                kind = "Standard" if _same_dir(plugin_dir, BUILTIN_FEATURES_DIR) else "Custom"
                self._load_directory(plugin_dir, kind)
            if self.entry_point_group:
                self._load_entry_points(self.entry_point_group)
        finally:
            self._booting = False
            self._loaded = True

        if not self._plugins:
            log.warning("No features loaded")
        self.services["features"] = {
            name: {"type": self._types.get(name, "Standard")} for name in self._plugins
        }
        log.info("Loaded features", count=len(self._plugins), names=list(self._plugins))
        return self.get_plugins()

    def register_plugin(self, plugin: Plugin, kind: str = "Runtime") -> bool:
        """Register one plugin instance during boot.

        Returns:
            True if registered, False if disabled or a duplicate.

        Raises:
            CoreError: If called after boot has completed.
            PluginLoadError: If the object is not a valid plugin or its
                ``register()`` raises.
        """
        if self._loaded and not self._booting:
            raise CoreError(
                "Plugin registry is sealed after boot",
                "PluginRegistry",
                {"plugin": getattr(plugin, "name", repr(plugin))},
            )
        if not isinstance(plugin, Plugin):
            raise PluginLoadError(
                f"{type(plugin).__name__} does not implement the plugin interface",
                type(plugin).__name__,
            )

        name = plugin.name
        if name in self.disabled:
            self._statuses[name] = "disabled"
            log.info("Skipping disabled feature", feature=name)
            return False
        if name in self._plugins:
            log.info("Skipping duplicate feature (already loaded)", feature=name)
            return False

        before = self._listener_ids()
        try:
            plugin.register(self.bus, self.services)
        except Exception as exc:
            self._remove_listeners_since(before)
            raise PluginLoadError(f"register() failed: {exc}", name) from exc

        self._plugins[name] = plugin
        self._types[name] = kind
        self._statuses[name] = "enabled"
        log.info("Loaded feature", feature=name, type=kind)
        return True

    def _listener_ids(self) -> set[int]:
        return {
            id(listener)
            for event in self.bus.list()
            for listener in self.bus.get_listeners(event)
        }

    def _remove_listeners_since(self, before: set[int]) -> None:
        """Drop listeners a failed ``register()`` managed to add."""
        added = [
            listener
            for event in self.bus.list()
            for listener in self.bus.get_listeners(event)
            if id(listener) not in before
        ]
        if added:
            self.bus.remove_listeners(added)
            log.debug("Removed listeners of failed feature", count=len(added))

    def get_plugins(self) -> dict[str, Plugin]:
        """Return all successfully loaded plugins, in load order."""
        return dict(self._plugins)

    def get_plugin(self, name: str) -> Plugin | None:
        """Return a plugin by name, or None when it is not loaded."""
        return self._plugins.get(name)

    def is_enabled(self, name: str) -> bool:
        return self._statuses.get(name) == "enabled"

    def statuses(self) -> dict[str, str]:
        return dict(self._statuses)

    def types(self) -> dict[str, str]:
        return dict(self._types)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def _load_directory(self, root: Path, kind: str) -> None:
        """Load every plugin subdirectory of ``root`` that has an entry point."""
        if not root.is_dir():
            log.debug("Features directory not found", directory=str(root))
            return
        log.info("Scanning features directory", directory=str(root))
        for plugin_dir in sorted(p for p in root.iterdir() if p.is_dir()):
            if plugin_dir.name.startswith(("_", ".")):
                continue
            if not (plugin_dir / ENTRY_POINT_FILENAME).is_file():
                continue
            try:
                plugin = self._instantiate_from_dir(plugin_dir)
                self.register_plugin(plugin, kind)
            except PluginLoadError as exc:
                self._record_failure(exc)
            except Exception as exc:
                self._record_failure(PluginLoadError(str(exc), plugin_dir), exc)

    def _instantiate_from_dir(self, plugin_dir: Path) -> Plugin:
        """Import ``feature.py`` from ``plugin_dir`` and instantiate its plugin class.

        Raises:
            PluginLoadError: On import failure, missing class or bad instance.
        """
        entry = plugin_dir / ENTRY_POINT_FILENAME
        module_name = f"staticforge_feature_{plugin_dir.name}"
        spec = importlib.util.spec_from_file_location(module_name, entry)
        if spec is None or spec.loader is None:
            raise PluginLoadError("could not create module spec", plugin_dir)
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as exc:
            sys.modules.pop(module_name, None)
            raise PluginLoadError(f"failed to import {entry.name}: {exc}", plugin_dir) from exc

        for cls in _candidate_classes(module, module_name):
            try:
                instance = cls()
            except Exception as exc:
                raise PluginLoadError(
                    f"failed to instantiate {cls.__name__}: {exc}", plugin_dir
                ) from exc
            if isinstance(instance, Plugin):
                return instance
            log.debug("Class is not a plugin", cls=cls.__name__, directory=str(plugin_dir))
        raise PluginLoadError(f"no plugin class found in {entry.name}", plugin_dir)

    def _load_entry_points(self, group: str) -> None:
        """Load plugins advertised by installed distributions."""
        for entry in entry_points(group=group):
            try:
                target = entry.load()
                plugin = target() if inspect.isclass(target) else target
                self.register_plugin(plugin, "Installed")
            except PluginLoadError as exc:
                self._record_failure(exc)
            except Exception as exc:
                self._record_failure(PluginLoadError(str(exc), entry.name), exc)

    def _register_guarded(self, plugin: Plugin, kind: str) -> None:
        try:
            self.register_plugin(plugin, kind)
        except PluginLoadError as exc:
            self._record_failure(exc)

    def _record_failure(self, error: PluginLoadError, cause: BaseException | None = None) -> None:
        self.errors.append(error)
        log.error(
            "Failed to load feature",
            plugin=str(error.plugin_dir),
            error=error.message,
            exc_info=cause or error.__cause__,
        )


def _candidate_classes(module: Any, module_name: str) -> list[type]:
    """Return plugin class candidates: ``Feature`` first, then local classes."""
    candidates: list[type] = []
    preferred = getattr(module, "Feature", None)
    if inspect.isclass(preferred):
        candidates.append(preferred)
    for _attr_name, obj in inspect.getmembers(module, inspect.isclass):
        if obj.__module__ != module_name or obj in candidates:
            continue
        if not callable(getattr(obj, "register", None)):
            continue
        if not callable(getattr(obj, "get_event_listeners", None)):
            continue
        candidates.append(obj)
    return candidates


def _same_dir(left: Path, right: Path) -> bool:
    try:
        return left.resolve() == right.resolve()
    except OSError:
        return False
