"""In-memory configuration source that reports every change."""

from __future__ import annotations

import logging
import threading
from typing import Any

from layerconf.source import ConfigSource, Event, EventHandler, EventType, KeyNotExistError

logger = logging.getLogger(__name__)


class MemorySource(ConfigSource):
    """Key/values set at runtime.

    Writes block until :meth:`watch` has registered a handler, so that no
    change is made before it can be reported.
    """

    name = "MemorySource"
    priority = 1

    def __init__(self) -> None:
        self._configs: dict[str, Any] = {}
        self._lock = threading.Lock()
        self._handler: EventHandler | None = None
        self.ready = threading.Event()
        self.dimensions: list[dict[str, str]] = []

    def get_configurations(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._configs)

    def get_configuration_by_key(self, key: str) -> Any:
        with self._lock:
            try:
                return self._configs[key]
            except KeyError:
                raise KeyNotExistError(key) from None

    def watch(self, handler: EventHandler) -> None:
        self._handler = handler
        logger.info("mem source callback prepared")
        self.ready.set()

    def cleanup(self) -> None:
        with self._lock:
            self._configs = {}

    def add_dimension_info(self, labels: dict[str, str]) -> None:
        """Record the labels; they do not change what memory holds."""
        with self._lock:
            self.dimensions.append(dict(labels))

    def set(self, key: str, value: Any) -> None:
        self.ready.wait()
        with self._lock:
            kind = EventType.UPDATE if key in self._configs else EventType.CREATE
            self._configs[key] = value
        self._notify(Event(self.name, key, kind, value))

    def delete(self, key: str) -> None:
        self.ready.wait()
        with self._lock:
            if key not in self._configs:
                return
            value = self._configs[key]
        # The stored value is kept; only the delete event is reported.
        self._notify(Event(self.name, key, EventType.DELETE, value))

    def _notify(self, event: Event) -> None:
        if self._handler is not None:
            self._handler.on_event(event)
            self._handler.on_module_event([event])