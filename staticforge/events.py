"""Event dispatch for StaticForge.

Plugins subscribe callbacks to named events. Firing an event calls every listener
in ascending priority order (ties keep registration order), threading the
parameters through the chain: a listener that returns a value replaces the
parameters seen by the next listener.

Key classes:
- Event: the fixed lifecycle event names, in firing order.
- Listener: one (callback, priority) registration.
- EventBus: registration, removal and synchronous dispatch.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

import structlog

from .errors import FeatureError
from .services import Services

log = structlog.get_logger(__name__)

DEFAULT_PRIORITY = 100

ListenerCallback = Callable[[Services, Any], Any]


class Event:
    """Lifecycle event names.

    ``PRE_RENDER``, ``RENDER`` and ``POST_RENDER`` fire once per discovered file;
    the others fire exactly once per run. Any other string is a valid ad-hoc
    event name.
    """

    CREATE = "CREATE"
    PRE_GLOB = "PRE_GLOB"
    POST_GLOB = "POST_GLOB"
    PRE_LOOP = "PRE_LOOP"
    PRE_RENDER = "PRE_RENDER"
    RENDER = "RENDER"
    POST_RENDER = "POST_RENDER"
    POST_LOOP = "POST_LOOP"
    DESTROY = "DESTROY"


LIFECYCLE_EVENTS: tuple[str, ...] = (
    Event.CREATE,
    Event.PRE_GLOB,
    Event.POST_GLOB,
    Event.PRE_LOOP,
    Event.PRE_RENDER,
    Event.RENDER,
    Event.POST_RENDER,
    Event.POST_LOOP,
    Event.DESTROY,
)
FILE_EVENTS: tuple[str, ...] = (Event.PRE_RENDER, Event.RENDER, Event.POST_RENDER)
RUN_EVENTS: tuple[str, ...] = tuple(e for e in LIFECYCLE_EVENTS if e not in FILE_EVENTS)


@dataclass(frozen=True)
class Listener:
    """A callback registered against an event.

    Attributes:
        callback: Callable invoked as ``callback(services, parameters)``.
        priority: Lower numbers run first.
        owner: Name of the plugin that registered the listener, for diagnostics.
    """

    callback: ListenerCallback
    priority: int = DEFAULT_PRIORITY
    owner: str | None = None

    @property
    def name(self) -> str:
        """Return the best available name for error reporting."""
        if self.owner:
            return self.owner
        bound_to = getattr(self.callback, "__self__", None)
        plugin_name = getattr(bound_to, "name", None)
        if isinstance(plugin_name, str) and plugin_name:
            return plugin_name
        return getattr(self.callback, "__qualname__", repr(self.callback))


class EventBus:
    """Priority-ordered, parameter-threading event dispatcher.

    Dispatch is synchronous: listeners of one ``fire()`` run strictly one after
    another. The bus does not swallow listener exceptions; a raising listener
    stops the chain and surfaces as a FeatureError, and the caller decides what
    the failure means for the run.

    Attributes:
        services: Container passed to every listener call.
    """

    def __init__(self, services: Services | None = None):
        self.services = services if services is not None else Services()
        self._listeners: dict[str, list[Listener]] = {}
        self._events: list[str] = []
        for name in LIFECYCLE_EVENTS:
            self.register_event(name)

    def register_event(self, event: str) -> None:
        """Declare an event name for introspection. Idempotent."""
        if event not in self._events:
            self._events.append(event)

    def register_listener(
        self,
        event: str,
        callback: ListenerCallback,
        priority: int = DEFAULT_PRIORITY,
        owner: str | None = None,
    ) -> None:
        """Register a listener for an event.

        Duplicate registrations of the same callback are kept and both fire.

        Args:
            event: Event name.
            callback: Callable invoked as ``callback(services, parameters)``.
            priority: Lower numbers run first; ties keep registration order.
            owner: Optional plugin name used when reporting failures.
        """
        self.register_event(event)
        listeners = self._listeners.setdefault(event, [])
        listeners.append(Listener(callback=callback, priority=priority, owner=owner))
        # sorted() is stable, so equal priorities keep registration order
        self._listeners[event] = sorted(listeners, key=lambda item: item.priority)

    def unregister_listener(self, event: str, callback: ListenerCallback) -> None:
        """Remove every registration of ``callback`` for ``event``. No-op if absent."""
        listeners = self._listeners.get(event)
        if not listeners:
            return
        self._listeners[event] = [item for item in listeners if item.callback != callback]

    def remove_listeners(self, listeners: Iterable[Listener]) -> None:
        """Remove specific registrations, matched by identity."""
        doomed = {id(item) for item in listeners}
        if not doomed:
            return
        for event, registered in self._listeners.items():
            self._listeners[event] = [item for item in registered if id(item) not in doomed]

    def fire(self, event: str, parameters: Any = None) -> Any:
        """Fire an event through its listener chain.

        Args:
            event: Event name.
            parameters: Value handed to the first listener.

        Returns:
            The parameters after the last listener. When nothing listens, the
            input object itself is returned unchanged.

        Raises:
            FeatureError: A listener raised; remaining listeners were skipped.
        """
        listeners = self._listeners.get(event)
        if not listeners:
            return parameters

        current = parameters
        for listener in list(listeners):
            try:
                result = listener.callback(self.services, current)
            except Exception as exc:
                raise FeatureError(
                    f"{type(exc).__name__}: {exc}",
                    feature=listener.name,
                    event=event,
                ) from exc
            if result is not None:
                current = result

        if isinstance(current, Mapping):
            self._publish_feature_data(current.get("features"))
        return current

    def _publish_feature_data(self, feature_data: Any) -> None:
        """Merge per-feature data returned by a chain into ``services["features"]``."""
        if not isinstance(feature_data, Mapping) or not feature_data:
            return
        features = self.services.get("features")
        if not isinstance(features, MutableMapping):
            features = {}
            self.services["features"] = features
        for name, data in feature_data.items():
            features[name] = data
        log.debug("Published feature data", features=sorted(feature_data))

    def list(self) -> list[str]:
        """Return declared event names, lifecycle events first."""
        return list(self._events)

    def get_listeners(self, event: str) -> list[Listener]:
        """Return the listeners for an event in dispatch order."""
        return list(self._listeners.get(event, []))

    def has_listeners(self, event: str) -> bool:
        return bool(self._listeners.get(event))
