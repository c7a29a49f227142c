"""Canonical errors raised across the connector contract."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    NOT_CONNECTED = "not_connected"
    INVALID_ARGUMENT = "invalid_argument"
    PROJECT_NOT_FOUND = "project_not_found"
    VIEW_NOT_FOUND = "view_not_found"
    BUILD_NOT_FOUND = "build_not_found"
    VENDOR_UNAVAILABLE = "vendor_unavailable"
    CAPABILITY_NOT_SUPPORTED = "capability_not_supported"


class ConnectorError(Exception):
    """Base exception for connector failures.

    ``key`` holds the identifier (project id, view name, build id) the
    caller asked for, when there is one.
    """

    kind: ErrorKind

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key


class NotConnectedError(ConnectorError):
    """Raised when a capability is used before connect() or after close()."""

    kind = ErrorKind.NOT_CONNECTED


class InvalidArgumentError(ConnectorError, ValueError):
    """Raised when a required argument is missing or blank."""

    kind = ErrorKind.INVALID_ARGUMENT


class ProjectNotFoundError(ConnectorError):
    kind = ErrorKind.PROJECT_NOT_FOUND


class ViewNotFoundError(ConnectorError):
    kind = ErrorKind.VIEW_NOT_FOUND


class BuildNotFoundError(ConnectorError):
    """Raised when a build id cannot be resolved, or is not the running build."""

    kind = ErrorKind.BUILD_NOT_FOUND


class VendorUnavailableError(ConnectorError):
    """Raised for network failures or malformed responses from the server."""

    kind = ErrorKind.VENDOR_UNAVAILABLE


class CapabilityNotSupportedError(ConnectorError):
    kind = ErrorKind.CAPABILITY_NOT_SUPPORTED
