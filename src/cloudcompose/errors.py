"""Error types for cloudcompose.

Configuration errors abort before anything is sent to the platform. Platform
errors are built from HTTP status codes and connection failures. The
reconciler wraps platform errors in ReconcileError so the failing resource
kind and name travel with the message.
"""

from dataclasses import dataclass, field
from typing import Any

# Error codes
CONFIGURATION_ERROR = 2
PLATFORM_ERROR = 10
AUTH_ERROR = 11
NOT_FOUND_ERROR = 12
CONFLICT_ERROR = 13
TIMEOUT_ERROR = 14
CONNECTION_ERROR = 15
RECONCILE_ERROR = 20
LIFECYCLE_ERROR = 21
BUILD_ERROR = 30


@dataclass
class CloudComposeError(Exception):
    """Base error class for cloudcompose."""

    code: int
    message: str
    retryable: bool = False
    data: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dict."""
        error: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data:
            error["data"] = self.data
        return error


# -----------------------------------------------------------------------------
# Configuration errors
# -----------------------------------------------------------------------------


@dataclass
class ConfigurationError(CloudComposeError):
    """The project description cannot be deployed as written."""

    code: int = CONFIGURATION_ERROR
    message: str = "Invalid project configuration"


@dataclass
class ProjectFileError(ConfigurationError):
    """The compose file is missing or cannot be parsed."""

    message: str = "No compose file found"


@dataclass
class ServiceNotFoundError(ConfigurationError):
    """A requested service alias does not exist in the project."""

    service: str = ""

    def __post_init__(self) -> None:
        if self.service:
            self.message = f"service '{self.service}' not found"
            self.data.setdefault("service", self.service)


@dataclass
class MultipleNetworksError(ConfigurationError):
    """A service is attached to more than one network."""

    service: str = ""

    def __post_init__(self) -> None:
        if self.service:
            self.message = (
                f"service '{self.service}' has more than one network attached "
                "which is not supported"
            )
            self.data.setdefault("service", self.service)


@dataclass
class UnsupportedProtocolError(ConfigurationError):
    """A published port uses a protocol other than tls or tcp."""

    protocol: str = ""

    def __post_init__(self) -> None:
        if self.protocol:
            self.message = f"protocol '{self.protocol}' is not supported"
            self.data.setdefault("protocol", self.protocol)


@dataclass
class InvalidPortError(ConfigurationError):
    """A published port is not a number."""

    message: str = "invalid published port"


@dataclass
class InvalidVolumeSizeError(ConfigurationError):
    """A volume size option cannot be parsed."""

    message: str = "invalid volume size"


# -----------------------------------------------------------------------------
# Platform errors
# -----------------------------------------------------------------------------


@dataclass
class PlatformError(CloudComposeError):
    """Error returned by, or while talking to, the remote platform."""

    code: int = PLATFORM_ERROR
    message: str = "Platform error"
    status_code: int | None = None


@dataclass
class AuthenticationError(PlatformError):
    """Authentication failed (HTTP 401/403)."""

    code: int = AUTH_ERROR
    message: str = "Authentication failed"


@dataclass
class NotFoundError(PlatformError):
    """Resource not found (HTTP 404)."""

    code: int = NOT_FOUND_ERROR
    message: str = "Resource not found"


@dataclass
class ConflictError(PlatformError):
    """A resource with the same name already exists (HTTP 409)."""

    code: int = CONFLICT_ERROR
    message: str = "Resource already exists"


@dataclass
class PlatformTimeoutError(PlatformError):
    """Request timeout (HTTP 408/504 or client timeout)."""

    code: int = TIMEOUT_ERROR
    message: str = "Request timeout"
    retryable: bool = True


@dataclass
class PlatformConnectionError(PlatformError):
    """The platform API could not be reached."""

    code: int = CONNECTION_ERROR
    message: str = "Cannot reach platform API"
    retryable: bool = True


# -----------------------------------------------------------------------------
# Operation errors
# -----------------------------------------------------------------------------


@dataclass
class ReconcileError(CloudComposeError):
    """A remote call failed while reconciling a resource."""

    code: int = RECONCILE_ERROR
    message: str = "Reconciliation failed"
    kind: str = ""
    name: str = ""

    def __post_init__(self) -> None:
        self.data.setdefault("kind", self.kind)
        self.data.setdefault("name", self.name)


@dataclass
class LifecycleError(CloudComposeError):
    """A start/stop/remove bulk call failed."""

    code: int = LIFECYCLE_ERROR
    message: str = "Lifecycle operation failed"


@dataclass
class NotBuildableError(CloudComposeError):
    """The build context cannot be turned into an image.

    Not fatal: the reconciler falls back to the configured image candidates.
    """

    code: int = BUILD_ERROR
    message: str = "context is not buildable"


@dataclass
class BuildError(CloudComposeError):
    """The build collaborator failed."""

    code: int = BUILD_ERROR
    message: str = "build failed"


def reconcile_error(kind: str, name: str, action: str, cause: Exception) -> ReconcileError:
    """Wrap a failure with the resource kind and name it happened on.

    Args:
        kind: Resource kind (instance, service group, volume, image)
        name: Remote resource name
        action: What was being done (getting, creating, ...)
        cause: Original exception

    Returns:
        ReconcileError carrying the cause's retryable flag
    """
    return ReconcileError(
        message=f"{action} {kind} '{name}': {cause}",
        kind=kind,
        name=name,
        retryable=getattr(cause, "retryable", False),
    )


def map_http_error(status_code: int, message: str) -> PlatformError:
    """Map HTTP status code to PlatformError.

    Args:
        status_code: HTTP status code
        message: Error message from response

    Returns:
        Appropriate PlatformError subclass
    """
    data = {"original_message": message, "http_status": status_code}
    if status_code in (401, 403):
        return AuthenticationError(
            message=f"Authentication failed: {message}" if message else "Authentication failed",
            status_code=status_code,
            data=data,
        )
    elif status_code == 404:
        return NotFoundError(
            message=message or "Resource not found",
            status_code=status_code,
            data=data,
        )
    elif status_code == 409:
        return ConflictError(
            message=message or "Resource already exists",
            status_code=status_code,
            data=data,
        )
    elif status_code in (408, 504):
        return PlatformTimeoutError(
            message=f"Request timeout: {message}" if message else "Request timeout",
            status_code=status_code,
            data=data,
        )
    elif status_code >= 500:
        return PlatformError(
            message=f"Server error: {message}" if message else "Server error",
            status_code=status_code,
            data=data,
            retryable=status_code in (502, 503),  # Gateway errors may be retryable
        )
    else:
        return PlatformError(
            message=f"HTTP error {status_code}: {message}",
            status_code=status_code,
            data=data,
        )


def map_connection_error(error_message: str, url: str, is_timeout: bool = False) -> PlatformError:
    """Map connection error to PlatformError.

    Args:
        error_message: Error message from exception
        url: URL that was being accessed
        is_timeout: Whether this was a timeout error

    Returns:
        Appropriate PlatformError
    """
    if is_timeout:
        return PlatformTimeoutError(
            message=f"Request timeout connecting to {url}",
            data={"url": url, "original_error": error_message},
        )

    from urllib.parse import urlparse

    parsed = urlparse(url)
    host_port = f"{parsed.hostname}:{parsed.port}" if parsed.port else parsed.hostname

    return PlatformConnectionError(
        message=f"Cannot reach platform API at {host_port}",
        data={"url": url, "original_error": error_message},
    )
