"""Options, labels and errors shared by remote configuration clients."""

from __future__ import annotations

import enum
import ssl
from dataclasses import dataclass, field

LABEL_SERVICE = "service"
LABEL_VERSION = "version"
LABEL_ENVIRONMENT = "environment"
LABEL_APP = "app"

DEFAULT_INTERVAL = 30.0
"""Default refresh interval, in seconds."""


class RefreshMode(enum.IntEnum):
    """How a remote source learns about changes."""

    WATCH = 0
    INTERVAL = 1


class RemoteError(ValueError):
    """Base class for remote client configuration errors."""

    default_message = "remote configuration error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidEndpointError(RemoteError):
    default_message = "invalid endpoint"


class LabelsNilError(RemoteError):
    default_message = "labels can not be nil"


class AppEmptyError(RemoteError):
    default_message = "app can not be empty"


class ServiceTooLongError(RemoteError):
    default_message = "exceeded max value for service name"


@dataclass
class Options:
    """Settings for a remote configuration client."""

    server_uri: str = ""
    endpoint: str = ""
    tls_config: ssl.SSLContext | None = None
    tenant_name: str = ""
    enable_ssl: bool = False
    api_version: str = ""
    auto_discovery: bool = False
    refresh_port: str = ""
    watch_timeout: int = 0
    verify_peer: bool = False
    project_id: str = ""
    labels: dict[str, str] = field(default_factory=dict)