"""Merge configuration from many sources by priority and dispatch change events."""

from __future__ import annotations

import logging
import re
import threading
from typing import Any, Iterable, Protocol, TextIO

import yaml

from layerconf.source import (
    ConfigSource,
    Event,
    EventHandler,
    EventType,
    IgnoreChangeError,
    KeyNotExistError,
)
from layerconf.unmarshal import unmarshal as _unmarshal

logger = logging.getLogger(__name__)

_FMT_INVALID_KEY = "invalid key format for {} key"


class _Listener(Protocol):
    def on_event(self, event: Event) -> None: ...


class _ModuleListener(Protocol):
    def on_module_event(self, events: list[Event]) -> None: ...


class _Dispatcher:
    """Routes events to listeners registered by key pattern or key prefix."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: dict[str, list[_Listener]] = {}
        self._module_listeners: dict[str, list[_ModuleListener]] = {}

    @staticmethod
    def _add(table: dict[str, list[Any]], listener: Any, keys: Iterable[str]) -> None:
        if listener is None:
            raise ValueError("nil listener supplied")
        for key in keys:
            registered = table.setdefault(key, [])
            if not any(item is listener for item in registered):
                registered.append(listener)

    @staticmethod
    def _remove(table: dict[str, list[Any]], listener: Any, keys: Iterable[str]) -> None:
        if listener is None:
            raise ValueError("nil listener supplied")
        for key in keys:
            registered = table.get(key)
            if registered is None:
                continue
            remaining = [item for item in registered if item is not listener]
            if remaining:
                table[key] = remaining
            else:
                del table[key]

    def register_listener(self, listener: _Listener, keys: Iterable[str]) -> None:
        with self._lock:
            self._add(self._listeners, listener, keys)

    def unregister_listener(self, listener: _Listener, keys: Iterable[str]) -> None:
        with self._lock:
            self._remove(self._listeners, listener, keys)

    def register_module_listener(self, listener: _ModuleListener, prefixes: Iterable[str]) -> None:
        with self._lock:
            self._add(self._module_listeners, listener, prefixes)

    def unregister_module_listener(
        self, listener: _ModuleListener, prefixes: Iterable[str]
    ) -> None:
        with self._lock:
            self._remove(self._module_listeners, listener, prefixes)

    def dispatch_event(self, event: Event) -> None:
        with self._lock:
            table = {key: list(items) for key, items in self._listeners.items()}
        for pattern, listeners in table.items():
            if re.search(pattern, event.key) is None:
                continue
            for listener in listeners:
                listener.on_event(event)

    def dispatch_module_event(self, events: list[Event]) -> None:
        with self._lock:
            table = {key: list(items) for key, items in self._module_listeners.items()}
        for prefix, listeners in table.items():
            matching = [event for event in events if event.key.startswith(prefix)]
            if not matching:
                continue
            for listener in listeners:
                listener.on_module_event(list(matching))


class Manager(EventHandler):
    """Holds every configuration source and resolves each key to the best one.

    A lower source priority wins. The manager is the event handler of every
    source it holds and forwards accepted changes to registered listeners.
    """

    def __init__(self) -> None:
        self._sources: dict[str, ConfigSource] = {}
        self._sources_lock = threading.RLock()
        self._config_map: dict[str, str] = {}
        self._map_lock = threading.RLock()
        self._dispatcher = _Dispatcher()

    @property
    def sources(self) -> dict[str, ConfigSource]:
        """A copy of the sources held, by name."""
        with self._sources_lock:
            return dict(self._sources)

    def _source(self, name: str) -> ConfigSource | None:
        with self._sources_lock:
            return self._sources.get(name)

    def cleanup(self) -> None:
        """Clean up every source."""
        for source in self.sources.values():
            source.cleanup()

    def set(self, key: str, value: Any) -> None:
        """Set ``key`` on every source that supports writing."""
        for source in self.sources.values():
            source.set(key, value)

    def delete(self, key: str) -> None:
        """Delete ``key`` on every source that supports writing."""
        for source in self.sources.values():
            source.delete(key)

    def unmarshal(self, obj: Any) -> Any:
        """Fill a dataclass instance or dict from the merged configuration."""
        return _unmarshal(self, obj)

    def marshal(self, stream: TextIO | None) -> None:
        """Write the configuration of every non-empty source as YAML, by source name."""
        if stream is None:
            logger.error("invalid writer")
            raise ValueError("writer is invalid")
        all_config: dict[str, dict[str, Any]] = {}
        for name, source in self.sources.items():
            try:
                config = source.get_configurations()
            except Exception as exc:  # a failing source is skipped, as is an empty one
                logger.error("get source %s error %s", name, exc)
                continue
            if config:
                all_config[name] = config
        yaml.safe_dump(all_config, stream, sort_keys=True, default_flow_style=False)

    def add_source(self, source: ConfigSource | None) -> None:
        """Add a source, load its configuration and start watching it."""
        if source is None or not source.name:
            logger.error("nil or invalid source supplied")
            raise ValueError("nil or invalid source supplied")
        name = source.name
        with self._sources_lock:
            if name in self._sources:
                logger.error("duplicate source supplied")
                raise ValueError("duplicate source supplied")
            self._sources[name] = source
        try:
            self._pull_source_configs(name)
        except Exception as exc:
            message = f"fail to load configuration of {name} source: {exc}"
            logger.error(message)
            raise RuntimeError(message) from exc
        logger.info("invoke dynamic handler: %s", name)
        threading.Thread(
            target=self._watch, args=(source,), name=f"watch-{name}", daemon=True
        ).start()

    def _watch(self, source: ConfigSource) -> None:
        try:
            source.watch(self)
        except Exception:
            logger.exception("watching source %s failed", source.name)

    def _pull_source_configs(self, name: str) -> None:
        source = self._source(name)
        if source is None:
            logger.error("invalid source or source not added")
            raise LookupError("invalid source or source not added")
        config = source.get_configurations()
        if not config:
            logger.warning("empty config from %s", name)
            return
        self._update_configuration_map(source, config)

    def configs(self) -> dict[str, Any]:
        """Every key with the value of the source that currently provides it."""
        with self._map_lock:
            snapshot = dict(self._config_map)
        result: dict[str, Any] = {}
        for key, source_name in snapshot.items():
            value = self._config_value_by_source(key, source_name)
            if value is not None:
                result[key] = value
        return result

    def configs_with_source_names(self) -> dict[str, Any]:
        """Every key mapped to ``{"value": value, "source": source_name}``."""
        with self._map_lock:
            snapshot = dict(self._config_map)
        result: dict[str, Any] = {}
        for key, source_name in snapshot.items():
            value = self._config_value_by_source(key, source_name)
            if value is not None:
                result[key] = {"value": value, "source": source_name}
        return result

    def add_dimension_info(self, labels: dict[str, str]) -> dict[str, str]:
        """Add a label combination to every source; returns an empty mapping."""
        for source in self.sources.values():
            try:
                source.add_dimension_info(labels)
            except Exception as exc:
                message = f"add dimension info for source {source.name} failed"
                logger.error("failed to do add dimension info %s", message)
                raise RuntimeError(message) from exc
        return {}

    def refresh(self, source_name: str) -> None:
        """Reload the configuration of one source."""
        try:
            self._pull_source_configs(source_name)
        except Exception as exc:
            logger.error("fail to load configuration of %s source: %s", source_name, exc)
            raise RuntimeError(
                f"fail to load configuration of {source_name} source"
            ) from exc

    def _config_value_by_source(self, key: str, source_name: str) -> Any:
        source = self._source(source_name)
        if source is None:
            return None
        try:
            return source.get_configuration_by_key(key)
        except Exception:
            # The key may have gone before the read; fall back to the next best source.
            fallback = self._find_next_best_source(key, source_name)
            if fallback is None:
                return None
            try:
                return fallback.get_configuration_by_key(key)
            except Exception:
                return None

    def is_key_exist(self, key: str) -> bool:
        """Whether any source provides ``key``."""
        with self._map_lock:
            return key in self._config_map

    def get_config(self, key: str) -> Any:
        """The value of ``key`` from its best source, or None."""
        with self._map_lock:
            source_name = self._config_map.get(key)
        if source_name is None:
            return None
        return self._config_value_by_source(key, source_name)

    def _update_configuration_map(self, source: ConfigSource, configs: dict[str, Any]) -> None:
        with self._map_lock:
            for key in configs:
                current_name = self._config_map.get(key)
                current = self._source(current_name) if current_name is not None else None
                if current is None or current.priority > source.priority:
                    self._config_map[key] = source.name

    def _update_event(self, event: Event | None) -> None:
        if event is None or not event.event_source or not event.key:
            raise ValueError("nil or invalid event supplied")
        if event.has_updated:
            logger.debug("config update event %s has been updated", event)
            return
        logger.info("config update event received")
        with self._map_lock:
            current = self._config_map.get(event.key)
            if event.event_type in (EventType.CREATE, EventType.UPDATE):
                if current is None:
                    self._config_map[event.key] = event.event_source
                    event.event_type = EventType.CREATE
                elif current == event.event_source:
                    event.event_type = EventType.UPDATE
                else:
                    preferred = self._get_high_priority_source(current, event.event_source)
                    if preferred is not None and preferred.name == current:
                        logger.info(
                            "the event source %s's priority is less then %s's, ignore",
                            event.event_source,
                            current,
                        )
                        raise IgnoreChangeError()
                    self._config_map[event.key] = event.event_source
                    event.event_type = EventType.UPDATE
            elif event.event_type is EventType.DELETE:
                if current is None or current != event.event_source:
                    logger.info(
                        "the event source %s (expect %s) is not maintained, ignore",
                        event.event_source,
                        current,
                    )
                    raise IgnoreChangeError()
                fallback = self._find_next_best_source(event.key, current)
                if fallback is None:
                    del self._config_map[event.key]
                else:
                    self._config_map[event.key] = fallback.name
        event.has_updated = True

    def _update_module_event(self, events: list[Event] | None) -> None:
        if not events:
            raise ValueError("nil or invalid events supplied")
        valid: list[Event] = []
        for index, event in enumerate(events):
            try:
                self._update_event(event)
            except KeyNotExistError:
                continue
            except (IgnoreChangeError, ValueError) as exc:
                logger.error("%dth event %s got error: %s", index, event, exc)
                continue
            valid.append(event)
        if not valid:
            logger.info("all events are invalid")
            return
        self._dispatcher.dispatch_module_event(valid)

    def on_event(self, event: Event) -> None:
        """Apply a change event and forward it to matching listeners."""
        try:
            self._update_event(event)
        except IgnoreChangeError:
            return
        except ValueError as exc:
            logger.error("failed in updating event with error: %s", exc)
            return
        self._dispatcher.dispatch_event(event)

    def on_module_event(self, events: list[Event]) -> None:
        """Apply a batch of change events and forward them to module listeners."""
        try:
            self._update_module_event(events)
        except ValueError as exc:
            logger.error("failed in updating events with error: %s", exc)

    def _find_next_best_source(self, key: str, source_name: str) -> ConfigSource | None:
        best: ConfigSource | None = None
        for source in self.sources.values():
            if source.name == source_name:
                continue
            try:
                value = source.get_configuration_by_key(key)
            except Exception:
                continue
            if value is None:
                continue
            if best is None or source.priority < best.priority:
                best = source
        return best

    def _get_high_priority_source(self, name_a: str, name_b: str) -> ConfigSource | None:
        with self._sources_lock:
            source_a = self._sources.get(name_a)
            source_b = self._sources.get(name_b)
        if source_a is None:
            return source_b
        if source_b is None:
            return source_a
        return source_a if source_a.priority < source_b.priority else source_b

    @staticmethod
    def _check_patterns(keys: tuple[str, ...]) -> None:
        for key in keys:
            try:
                re.compile(key)
            except re.error as exc:
                logger.error(
                    "invalid key format for %s key. key registration ignored: %s", key, exc
                )
                raise ValueError(_FMT_INVALID_KEY.format(key)) from exc

    @staticmethod
    def _check_prefixes(prefixes: tuple[str, ...]) -> None:
        for prefix in prefixes:
            if not prefix:
                logger.error(_FMT_INVALID_KEY.format(prefix))
                raise ValueError(_FMT_INVALID_KEY.format(prefix))

    def register_listener(self, listener: _Listener, *args: str) -> None:
        """Deliver events whose key matches any of the regular expressions ``args``."""
        self._check_patterns(args)
        self._dispatcher.register_listener(listener, args)

    def unregister_listener(self, listener: _Listener, *args: str) -> None:
        """Stop delivering events for the regular expressions ``args``."""
        self._check_patterns(args)
        self._dispatcher.unregister_listener(listener, args)

    def register_module_listener(self, listener: _ModuleListener, *args: str) -> None:
        """Deliver batches of events whose keys start with any of the prefixes ``args``."""
        self._check_prefixes(args)
        self._dispatcher.register_module_listener(listener, args)

    def unregister_module_listener(self, listener: _ModuleListener, *args: str) -> None:
        """Stop delivering batches for the prefixes ``args``."""
        self._check_prefixes(args)
        self._dispatcher.unregister_module_listener(listener, args)