"""Run orchestration for StaticForge.

The Orchestrator owns the run sequence: boot plugins, fire the whole-run
lifecycle events, discover files, drive the render loop and report a
GenerationResult. Each phase is isolated: a failing lifecycle listener or a
failing discovery is recorded and the run moves on to the next phase.

Key class:
- Orchestrator: Builds the services, registry and loop for one project.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import structlog

from .config import load_config, load_data, resolve_dir
from .context import DiscoveredFile, RenderContext
from .discovery import ExtensionRegistry, FileDiscovery
from .errors import CoreError, FeatureError, FileProcessingError
from .events import Event, EventBus
from .log import feature_logger
from .plugins import BUILTIN_FEATURES_DIR, Plugin, PluginRegistry
from .render_loop import RenderLoop
from .result import ErrorTracker, GenerationResult
from .services import Services
from .templates import TemplateRenderer
from .utils import ensure_clean_dir

log = structlog.get_logger(__name__)


class Orchestrator:
    """Drives one project's generation runs.

    Attributes:
        config: Project configuration.
        project_root: Directory relative paths are resolved against.
        services: Container shared with every plugin.
        bus: Event bus for the run.
        registry: Plugin registry (booted lazily, once).
        tracker: Failure tracker, reset at the start of every run.
        render_loop: Per-file loop.
    """

    def __init__(
        self,
        config: Mapping[str, Any],
        project_root: Path,
        services: Services | None = None,
        plugins: Iterable[Plugin] = (),
        discovery: Any = None,
        clean_output: bool = False,
        site_data: Mapping[str, Any] | None = None,
    ):
        self.config = dict(config)
        self.project_root = Path(project_root)
        self.clean_output = clean_output
        self.source_dir = resolve_dir(self.project_root, self.config, "source_dir")
        self.output_dir = resolve_dir(self.project_root, self.config, "output_dir")
        self.template_dir = resolve_dir(self.project_root, self.config, "template_dir")
        self.features_dir = resolve_dir(self.project_root, self.config, "features_dir")

        self.tracker = ErrorTracker()
        self.services = services if services is not None else Services()
        self.bus = EventBus(self.services)
        self.extension_registry = ExtensionRegistry()
        self.registry = PluginRegistry(
            self.bus,
            self.services,
            plugin_dirs=[self.features_dir, BUILTIN_FEATURES_DIR],
            disabled=self.config.get("disabled_features", []),
            plugins=plugins,
        )
        self.discovery = discovery or FileDiscovery(self.source_dir, self.extension_registry)
        self.render_loop = RenderLoop(
            self.bus, self.services, self.source_dir, self.output_dir, self.tracker
        )
        self._seed_services(dict(site_data or {}))

    @classmethod
    def from_project(
        cls,
        project_root: Path,
        environ: Mapping[str, str] | None = None,
        **kwargs: Any,
    ) -> Orchestrator:
        """Build an orchestrator from a project's staticforge.yaml and data files.

        Raises:
            ConfigError: If the configuration or a data file is invalid.
        """
        project_root = Path(project_root)
        config = load_config(project_root, environ)
        site_data = load_data(project_root)
        return cls(config, project_root, site_data=site_data, **kwargs)

    def _seed_services(self, site_data: dict[str, Any]) -> None:
        self.services["config"] = self.config
        self.services.setdefault("logger", feature_logger())
        self.services["event_bus"] = self.bus
        self.services["plugin_registry"] = self.registry
        self.services["extension_registry"] = self.extension_registry
        self.services["source_dir"] = self.source_dir
        self.services["output_dir"] = self.output_dir
        self.services["template_dir"] = self.template_dir
        self.services["site_data"] = site_data
        self.services["template_renderer"] = TemplateRenderer(
            self.template_dir,
            str(self.config.get("template", "default")),
            site_data=site_data,
            config=self.config,
        )
        self.services["discovered_files"] = []
        self.services.setdefault("features", {})

    def ensure_plugins_loaded(self) -> None:
        """Boot the plugin registry if it has not been booted yet."""
        if not self.registry.is_loaded:
            self.registry.load_plugins()

    def generate(self) -> GenerationResult:
        """Run a complete generation.

        Returns:
            GenerationResult; ``success`` is False only when an exception
            escaped the run's own bookkeeping. Isolated plugin, event, file and
            discovery failures are listed in ``failures``.
        """
        self.tracker.reset()
        log.info(
            "Starting site generation",
            source_dir=str(self.source_dir),
            output_dir=str(self.output_dir),
        )
        try:
            if self.clean_output:
                self._clean_output_dir()
            self.ensure_plugins_loaded()
            for error in self.registry.errors:
                self.tracker.record_plugin_error(str(error.plugin_dir), error)

            self._fire_phase(Event.CREATE)
            self._fire_phase(Event.PRE_GLOB)
            self.services["discovered_files"] = self._discover()
            self._fire_phase(Event.POST_GLOB)
            self._fire_phase(Event.PRE_LOOP)
            self.render_loop.process_all(self._discovered_files())
            self._fire_phase(Event.POST_LOOP)
            self._fire_phase(Event.DESTROY)
        except Exception as exc:
            log.critical("Site generation failed", error=str(exc), exc_info=exc)
            self.tracker.record_core_error("Orchestrator", exc)

        self.tracker.log_summary()
        return self.tracker.build_result(list(self.registry.get_plugins()))

    def render_file(self, path: Path, extra: Mapping[str, Any] | None = None) -> RenderContext:
        """Render a single source file through the per-file events.

        Args:
            path: Source file to render.
            extra: Initial ``context.extra`` values.

        Returns:
            The final RenderContext.

        Raises:
            FileProcessingError: A stage failed (also recorded in the tracker).
        """
        self.ensure_plugins_loaded()
        path = Path(path)
        describe = getattr(self.discovery, "describe", None)
        discovered = describe(path) if callable(describe) else DiscoveredFile(path=path)
        context = RenderContext.for_file(discovered)
        context.extra.update(extra or {})
        try:
            return self.render_loop.render(context)
        except FileProcessingError as exc:
            self.tracker.record_file_error(path, exc.stage, exc)
            log.error("File processing error", **exc.context())
            raise

    def _fire_phase(self, event: str) -> None:
        """Fire a whole-run event, recording a listener failure instead of raising."""
        log.debug("Firing event", phase=event)
        try:
            self.bus.fire(event, {})
        except FeatureError as exc:
            log.error("Event listener failed", **exc.context(), exc_info=exc.__cause__ or exc)
            self.tracker.record_event_error(exc.feature, event, exc)

    def _discover(self) -> list[DiscoveredFile]:
        try:
            files = list(self.discovery.discover())
        except Exception as exc:
            log.error("File discovery failed", error=str(exc), exc_info=exc)
            self.tracker.record_discovery_error(exc)
            return []
        return files

    def _discovered_files(self) -> list[Any]:
        """Return the file list POST_GLOB listeners left in the services."""
        files = self.services.get("discovered_files")
        if files is None:
            return []
        if isinstance(files, (str, bytes, Mapping)) or not isinstance(files, Iterable):
            error = TypeError(
                f"discovered_files must be a list of files, got {type(files).__name__}"
            )
            log.error("Invalid discovered files", error=str(error))
            self.tracker.record_discovery_error(error)
            return []
        return list(files)

    def _clean_output_dir(self) -> None:
        output = self.output_dir.resolve()
        protected = {self.project_root.resolve(), self.source_dir.resolve()}
        if output in protected or any(output in p.parents for p in protected):
            raise CoreError(
                "Refusing to clean an output directory that contains project sources",
                "Orchestrator",
                {"output_dir": str(self.output_dir)},
            )
        ensure_clean_dir(self.output_dir)
        log.info("Cleaned output directory", output_dir=str(self.output_dir))
