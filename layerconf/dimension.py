"""Dimension strings and instance records of a configuration center."""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from layerconf.remote import AppEmptyError, ServiceTooLongError

MAX_VALUE = 256
_DIMENSION = re.compile(r'[^$%&+(/)\[\]" ]*')


@dataclass
class Instance:
    """A configuration center instance."""

    status: str = ""
    service_name: str = ""
    is_https: bool = False
    entry_points: list[str] = field(default_factory=list)


@dataclass
class Members:
    """The instances making up a configuration center."""

    instances: list[Instance] = field(default_factory=list)


def generate_dimension(service_name: str, version: str, app_name: str) -> str:
    """Build ``service@app#version``; the version part is left out when empty."""
    if not app_name:
        raise AppEmptyError()
    service_name = f"{service_name}@{app_name}"
    if version:
        service_name = f"{service_name}#{version}"
    if len(service_name.encode("utf-8")) > MAX_VALUE:
        raise ServiceTooLongError()
    if _DIMENSION.fullmatch(service_name) is None:
        raise ValueError(
            "invalid value for dimension info, does not satisfy the regular "
            f"expression for dimInfo:{service_name}"
        )
    return service_name