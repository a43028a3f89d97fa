"""Configuration source backed by YAML files and directories on disk."""

from __future__ import annotations

import enum
import logging
import os
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from layerconf.file_handler import FileHandler, convert_to_java_props
from layerconf.source import ConfigSource, Event, EventHandler, EventType, KeyNotExistError

logger = logging.getLogger(__name__)

DEFAULT_FILE_PRIORITY = 0
_IGNORED_SUFFIXES = (".swx", ".swp", "~")


class FileSourceType(str, enum.Enum):
    """What a path given to a file source points at."""

    REGULAR_FILE = "RegularFile"
    DIRECTORY = "Directory"
    INVALID = "InvalidType"


def _file_type(path: str) -> FileSourceType:
    try:
        if os.path.isdir(path):
            return FileSourceType.DIRECTORY
        if os.path.isfile(path):
            return FileSourceType.REGULAR_FILE
    except OSError:
        pass
    return FileSourceType.INVALID


@dataclass
class ConfigInfo:
    """A configuration value and the file that provides it."""

    file_path: str
    value: Any


class _WatchHandler(FileSystemEventHandler):
    def __init__(self, source: FileSource) -> None:
        super().__init__()
        self._source = source

    def on_any_event(self, event: FileSystemEvent) -> None:
        try:
            self._source._on_fs_event(event)
        except Exception:
            logger.exception("handling file event %s failed", event)


class FileSource(ConfigSource):
    """Key/values read from files and directories, reloaded when files change.

    Each file has its own priority; a lower number wins when two files
    provide the same key, and on equal priority the first value is kept.
    """

    name = "FileSource"
    priority = 4

    def __init__(self) -> None:
        self._configurations: dict[str, ConfigInfo] = {}
        self._files: list[tuple[str, int]] = []
        self._handlers: dict[str, FileHandler | None] = {}
        self._lock = threading.RLock()
        self._callback: EventHandler | None = None
        self._observer: Any = None
        self._watched: set[str] = set()
        self._scheduled: set[str] = set()

    @property
    def configurations(self) -> dict[str, ConfigInfo]:
        """A copy of every key with its value and providing file."""
        with self._lock:
            return {key: replace(info) for key, info in self._configurations.items()}

    def add_file(
        self, path: str, priority: int = DEFAULT_FILE_PRIORITY, handler: FileHandler | None = None
    ) -> None:
        """Load a file, or every file of a directory, and manage its keys."""
        path = os.path.abspath(path)
        if not os.path.exists(path):
            raise FileNotFoundError(f"[{path}] file not exist")
        if self._is_file_src_exist(path):
            return
        self._handlers[path] = handler
        kind = _file_type(path)
        if kind is FileSourceType.DIRECTORY:
            try:
                self._handle_directory(path, priority, handler)
            except OSError as exc:
                logger.error("Failed to handle directory [%s] %s", path, exc)
                raise
        elif kind is FileSourceType.REGULAR_FILE:
            try:
                self._handle_file(path, priority, handler)
            except (OSError, ValueError) as exc:
                logger.error("Failed to handle file [%s] [%s]", path, exc)
                raise
        else:
            logger.error("File type of [%s] not supported", path)
            raise ValueError(f"file type of [{path}] not supported")
        if self._observer is not None:
            self._add_watch(path)

    def _is_file_src_exist(self, path: str) -> bool:
        with self._lock:
            return any(file_path == path for file_path, _ in self._files)

    def _handle_directory(self, directory: str, priority: int, handler: FileHandler | None) -> None:
        try:
            entries = sorted(os.listdir(directory))
        except OSError as exc:
            raise OSError("failed to read Directory contents") from exc
        for entry in entries:
            file_path = os.path.join(directory, entry)
            try:
                self._handle_file(file_path, priority, handler)
            except (OSError, ValueError) as exc:
                logger.error("error processing %s file source handler with error : %s", file_path, exc)

    def _handle_file(self, path: str, priority: int, handler: FileHandler | None) -> None:
        content = Path(path).read_bytes()
        convert = handler or convert_to_java_props
        try:
            config = convert(path, content)
        except Exception as exc:
            raise ValueError(f"failed to pull configurations from [{path}] file, {exc}") from exc
        self._handle_priority(path, priority)
        self._deliver(self._compare_update(config, path))

    def _handle_priority(self, path: str, priority: int) -> None:
        with self._lock:
            if (path, priority) not in self._files:
                self._files.append((path, priority))

    def _priority_of(self, path: str) -> int | None:
        found = None
        for file_path, priority in self._files:
            if file_path == path:
                found = priority
        return found

    def _deliver(self, events: list[Event]) -> None:
        callback = self._callback
        if callback is None or not events:
            return
        for event in events:
            callback.on_event(event)
        callback.on_module_event(list(events))

    def _compare_update(self, configs: dict[str, Any], path: str) -> list[Event]:
        events: list[Event] = []
        kept: dict[str, ConfigInfo] = {}
        with self._lock:
            path_priority = self._priority_of(path)
            if path_priority is None:
                return []
            for key, info in self._configurations.items():
                if info.file_path == path:
                    if key not in configs:
                        events.append(Event(self.name, key, EventType.DELETE, info.value))
                        continue
                    new_value = configs[key]
                    kept[key] = info
                    if info.value == new_value:
                        continue
                    info.value = new_value
                    events.append(Event(self.name, key, EventType.UPDATE, new_value))
                    continue
                kept[key] = info
                if key not in configs:
                    continue
                owner_priority = self._priority_of(info.file_path)
                if owner_priority == path_priority:
                    logger.info("Two files have same priority. keeping %s value", info.file_path)
                elif owner_priority is None or path_priority < owner_priority:
                    info.value = configs[key]
                    events.append(Event(self.name, key, EventType.UPDATE, configs[key]))
            for key, value in configs.items():
                if key not in kept:
                    events.append(Event(self.name, key, EventType.CREATE, value))
                    kept[key] = ConfigInfo(path, value)
            self._configurations = kept
        return events

    def get_configurations(self) -> dict[str, Any]:
        with self._lock:
            return {key: info.value for key, info in self._configurations.items()}

    def get_configuration_by_key(self, key: str) -> Any:
        with self._lock:
            info = self._configurations.get(key)
        if info is None:
            raise KeyNotExistError(key)
        return info.value

    def watch(self, handler: EventHandler) -> None:
        """Watch every loaded file and report changes to ``handler``."""
        if handler is None:
            raise ValueError("call back can not be nil")
        self._stop_observer()
        observer = Observer()
        observer.daemon = True
        with self._lock:
            self._callback = handler
            self._observer = observer
            self._watched = set()
            self._scheduled = set()
            paths = [file_path for file_path, _ in self._files]
        logger.info("create new watcher")
        observer.start()
        for path in paths:
            self._add_watch(path)

    def _add_watch(self, path: str) -> None:
        observer = self._observer
        if observer is None:
            return
        real = os.path.realpath(path)
        directory = real if os.path.isdir(real) else os.path.dirname(real)
        with self._lock:
            self._watched.add(real)
            if directory in self._scheduled:
                return
            self._scheduled.add(directory)
        try:
            observer.schedule(_WatchHandler(self), directory, recursive=False)
        except OSError as exc:
            logger.error("add watcher file: %s fail: %s", path, exc)
            with self._lock:
                self._scheduled.discard(directory)

    def _is_watched(self, path: str) -> bool:
        real = os.path.realpath(path)
        with self._lock:
            return real in self._watched or os.path.dirname(real) in self._watched

    def _stored_path(self, path: str) -> str:
        real = os.path.realpath(path)
        with self._lock:
            candidates = [file_path for file_path, _ in self._files] + list(self._handlers)
        for candidate in candidates:
            if os.path.realpath(candidate) == real:
                return candidate
        return os.path.abspath(path)

    def _on_fs_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        kind = event.event_type
        if kind == "moved":
            dest = os.fsdecode(event.dest_path)
            logger.debug("file renamed")
            if not dest.endswith(_IGNORED_SUFFIXES) and self._is_watched(dest):
                self._reload(dest)
            return
        path = os.fsdecode(event.src_path)
        if path.endswith(_IGNORED_SUFFIXES) or not self._is_watched(path):
            return
        logger.debug("file event %s, operation is %s. reload it.", path, kind)
        if kind == "deleted":
            logger.warning("the file change mode: %s, continue", event)
            return
        if kind == "created":
            logger.debug("file created")
            time.sleep(0.001)
        elif kind != "modified":
            return
        self._reload(path)

    def _reload(self, path: str) -> None:
        stored = self._stored_path(path)
        handler = self._handlers.get(stored) or convert_to_java_props
        try:
            content = Path(stored).read_bytes()
        except OSError as exc:
            logger.error("read file error %s", exc)
            return
        try:
            new_config = handler(stored, content)
        except Exception as exc:
            logger.error("convert error %s", exc)
            return
        events = self._compare_update(new_config, stored)
        logger.debug("generated events %s", events)
        self._deliver(events)

    def _stop_observer(self) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer is not threading.current_thread():
            observer.join(timeout=5)

    def cleanup(self) -> None:
        """Stop watching and drop every file and key."""
        self._stop_observer()
        with self._lock:
            self._files = []
            self._configurations = {}
            self._watched = set()
            self._scheduled = set()

    def add_dimension_info(self, labels: dict[str, str]) -> None:
        """Dimensions do not apply to files."""
        return None

    def set(self, key: str, value: Any) -> None:
        """The file source is read-only; the call is ignored."""
        return None

    def delete(self, key: str) -> None:
        """The file source is read-only; the call is ignored."""
        return None