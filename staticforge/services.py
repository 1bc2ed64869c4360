"""Shared services container handed to every plugin.

The engine treats the container as pass-through: it seeds a few well-known keys
(config, logger, event_bus, ...) and never interprets what plugins store in it.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, MutableMapping
from typing import Any


class Services(MutableMapping[str, Any]):
    """Key/value store passed into ``register()`` and every listener call."""

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._values: dict[str, Any] = dict(initial or {})

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._values[key] = value

    def __delitem__(self, key: str) -> None:
        del self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def require(self, key: str) -> Any:
        """Return a service that must be present.

        Raises:
            KeyError: If the service was never registered.
        """
        try:
            return self._values[key]
        except KeyError:
            raise KeyError(f"Required service not registered: {key!r}") from None

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"Services({sorted(self._values)})"
