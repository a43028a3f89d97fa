"""Configuration source backed by process environment variables."""

from __future__ import annotations

import logging
import os
from typing import Any

from layerconf.source import ConfigSource, EventHandler, KeyNotExistError

logger = logging.getLogger(__name__)


class EnvSource(ConfigSource):
    """Environment variables, reachable both as ``A_B`` and as ``A.B``."""

    name = "EnvironmentSource"
    priority = 3

    def __init__(self) -> None:
        logger.info("enable env source")
        self._configs: dict[str, Any] = {}
        self.dimensions: list[dict[str, str]] = []
        self._pull_configurations()

    def _pull_configurations(self) -> None:
        configs: dict[str, Any] = {}
        for key, value in os.environ.items():
            configs[key] = value
            configs[key.replace("_", ".")] = value
        self._configs = configs

    def get_configurations(self) -> dict[str, Any]:
        return dict(self._configs)

    def get_configuration_by_key(self, key: str) -> Any:
        try:
            return self._configs[key]
        except KeyError:
            raise KeyNotExistError(key) from None

    def watch(self, handler: EventHandler) -> None:
        """Environment changes are not observed."""
        return None

    def cleanup(self) -> None:
        self._configs = {}

    def add_dimension_info(self, labels: dict[str, str]) -> None:
        """Record the labels; they do not change what the environment holds."""
        self.dimensions.append(dict(labels))

    def set(self, key: str, value: Any) -> None:
        """The environment source is read-only; the call is ignored."""
        return None

    def delete(self, key: str) -> None:
        """The environment source is read-only; the call is ignored."""
        return None