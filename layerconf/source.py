"""Core abstractions shared by every configuration source."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, ClassVar


class EventType(str, enum.Enum):
    """Kind of change a configuration event describes."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass
class Event:
    """A change of one configuration key reported by a source."""

    event_source: str
    key: str
    event_type: EventType
    value: Any = None
    has_updated: bool = False


class KeyNotExistError(LookupError):
    """Raised when a source holds no value for the requested key."""

    def __init__(self, key: str = "") -> None:
        self.key = key
        message = "key does not exist"
        super().__init__(f"{message}: {key}" if key else message)


class IgnoreChangeError(Exception):
    """Raised when a change event is deliberately ignored."""

    def __init__(self, message: str = "ignore key changed") -> None:
        super().__init__(message)


class EventHandler(ABC):
    """Receives configuration change events from sources."""

    @abstractmethod
    def on_event(self, event: Event) -> None:
        """Handle a single change event."""

    @abstractmethod
    def on_module_event(self, events: list[Event]) -> None:
        """Handle a batch of change events."""


class ConfigSource(ABC):
    """A provider of key/value configuration: files, memory, environment, remote stores.

    ``name`` identifies the source; ``priority`` orders sources, a lower value
    winning over a higher one. Instances may override ``priority``.
    """

    name: ClassVar[str] = ""
    priority: int = 0

    @abstractmethod
    def get_configurations(self) -> dict[str, Any]:
        """Return a copy of every key and value the source holds."""

    @abstractmethod
    def get_configuration_by_key(self, key: str) -> Any:
        """Return the value of ``key``; raise KeyNotExistError when absent."""

    @abstractmethod
    def watch(self, handler: EventHandler) -> None:
        """Start delivering change events to ``handler``."""

    @abstractmethod
    def cleanup(self) -> None:
        """Drop all held configuration and release resources."""

    @abstractmethod
    def add_dimension_info(self, labels: dict[str, str]) -> None:
        """Add a label combination whose configuration should be pulled."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Set a key, where the source supports writing."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Delete a key, where the source supports writing."""