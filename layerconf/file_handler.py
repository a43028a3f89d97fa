"""File handlers turning file contents into configuration key/values."""

from __future__ import annotations

import logging
import os
from typing import Any, Callable

import yaml

from layerconf.expand import expand_value_env

logger = logging.getLogger(__name__)

FileHandler = Callable[[str, bytes], dict[str, Any]]
"""Converts a file path and its content into configuration key/values."""


def convert_to_java_props(file_path: str, content: bytes | str) -> dict[str, Any]:
    """Flatten YAML into dotted keys, expanding environment references in strings."""
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ValueError(f"yaml unmarshal [{content!r}] failed, {exc}") from exc
    if document is None:
        return {}
    if not isinstance(document, dict):
        raise ValueError(f"yaml unmarshal [{content!r}] failed, document is not a mapping")
    return _retrieve_items("", document)


def _retrieve_items(prefix: str, items: dict[Any, Any]) -> dict[str, Any]:
    if prefix:
        prefix += "."
    result: dict[str, Any] = {}
    for key, value in items.items():
        if not isinstance(key, str):
            logger.error("yaml tag is not string: %r", key)
            continue
        if isinstance(value, dict):
            result.update(_retrieve_items(prefix + key, value))
        elif isinstance(value, list):
            result[prefix + key] = _retrieve_items_in_list(value)
        elif isinstance(value, str):
            result[prefix + key] = expand_value_env(value)
        else:
            result[prefix + key] = value
    return result


def _retrieve_items_in_list(values: list[Any]) -> list[Any]:
    def convert(item: Any) -> Any:
        if isinstance(item, dict):
            return _retrieve_items("", item)
        if isinstance(item, str):
            return expand_value_env(item)
        return item

    return [convert(item) for item in values]


def use_file_name_as_key_content_as_value(file_path: str, content: bytes) -> dict[str, Any]:
    """Use the file's base name as the single key and its raw content as the value."""
    return {os.path.basename(file_path): content}