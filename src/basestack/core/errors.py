"""
Structured error types for basestack.

Every failure basestack can report is a subclass of ``BasestackError``. Each
error carries a category, structured context (service, stage, network, ...)
and an optional chained cause so the CLI can report the first failing stage
and the identifier of the failing service without string parsing.

Manifesto:
    - **Typed hierarchy:** token, planning, provisioning and runtime errors
      are distinct families that callers can catch as a group
    - **Fail before touching the runtime:** token and planning errors are
      configuration errors and are never retried
    - **Rich context:** errors carry metadata for logging and reporting
    - **Error chaining:** the original exception is kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                       BasestackError                             │
        │               (category, context, cause)                         │
        ├─────────────────────────────────────────────────────────────────┤
        │  TokenError          ConfigError           PlanError             │
        │  (AUTH)              (CONFIG)              (ORCHESTRATION)       │
        │    InvalidClaims       MissingTemplateValue  UnknownDependency   │
        │    EmptySecret                               CyclicDependency    │
        │    MalformedToken                            DuplicateService    │
        │                                                                  │
        │  ProvisionError      RuntimeGatewayError   AssetDownloadError    │
        │  (ORCHESTRATION)     (RUNTIME)             VolumeLayoutError     │
        │                                            (STORAGE)             │
        │    ServiceStartFailure  RuntimeUnavailable                       │
        │    NetworkCreateFailure RuntimeCommandError                      │
        │                           ContainerNotFound                      │
        │                           NetworkNotFound                        │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> err = ServiceStartFailure("rest", cause=RuntimeError("exit 125"))
    >>> err.service
    'rest'
    >>> err.to_dict()["context"]["service"]
    'rest'

Tags:
    error-handling, exception-hierarchy, error-context, basestack
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    CONFIG = "CONFIG"  # Missing config, unresolved template values
    AUTH = "AUTH"  # Token minting and verification
    ORCHESTRATION = "ORCHESTRATION"  # Planning and bring-up failures
    RUNTIME = "RUNTIME"  # Container runtime gateway
    STORAGE = "STORAGE"  # Installation directory, downloaded assets
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Only non-None fields are emitted by ``to_dict()``; anything without a
    dedicated field goes into ``metadata``.
    """

    service: str | None = None
    stage: str | None = None
    network: str | None = None
    run_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        for key in ("service", "stage", "network", "run_id"):
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class BasestackError(Exception):
    """Base exception for all basestack errors.

    Subclasses set ``default_category`` so call sites rarely need to pass a
    category explicitly.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> BasestackError:
        """Add context to this error (fluent API)."""
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# TOKEN ERRORS
# =============================================================================


class TokenError(BasestackError):
    """Base class for token minting/decoding errors."""

    default_category = ErrorCategory.AUTH


class InvalidClaims(TokenError):
    """Raised when required claims are absent from a claim set."""

    def __init__(self, missing: list[str]):
        self.missing = missing
        super().__init__(f"Token claims missing required keys: {', '.join(missing)}")


class EmptySecret(TokenError):
    """Raised when a token is signed or verified with a zero-length secret."""

    def __init__(self) -> None:
        super().__init__("Signing secret must not be empty")


class MalformedToken(TokenError):
    """Raised when a compact token string cannot be split into its segments."""


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(BasestackError):
    """Missing or invalid configuration."""

    default_category = ErrorCategory.CONFIG


class MissingTemplateValue(ConfigError):
    """Raised when an env template references a value nobody supplied."""

    def __init__(self, service: str, key: str):
        self.service = service
        self.key = key
        super().__init__(
            f"Service '{service}' references unknown template value: {{{key}}}",
            context=ErrorContext(service=service),
        )


# =============================================================================
# PLANNING ERRORS
# =============================================================================


class PlanError(BasestackError):
    """Base class for stack planning errors (structural, never retried)."""

    default_category = ErrorCategory.ORCHESTRATION


class UnknownDependency(PlanError):
    """Raised when a service depends on an identifier that is not in the stack."""

    def __init__(self, service: str, missing: list[str]):
        self.service = service
        self.missing = missing
        super().__init__(
            f"Service '{service}' depends on unknown services: {', '.join(missing)}",
            context=ErrorContext(service=service),
        )


class CyclicDependency(PlanError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]):
        self.cycle = cycle
        super().__init__(f"Cycle detected in service dependencies: {' -> '.join(cycle)}")


class DuplicateService(PlanError):
    """Raised when two specs share one identifier."""

    def __init__(self, service: str):
        self.service = service
        super().__init__(
            f"Duplicate service identifier: {service}",
            context=ErrorContext(service=service),
        )


# =============================================================================
# PROVISIONING ERRORS
# =============================================================================


class ProvisionError(BasestackError):
    """Base class for bring-up failures."""

    default_category = ErrorCategory.ORCHESTRATION


class ServiceStartFailure(ProvisionError):
    """Raised when the runtime fails to create/start a service container."""

    def __init__(self, service: str, *, cause: Exception | None = None):
        self.service = service
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Failed to start service '{service}'{detail}",
            context=ErrorContext(service=service, stage="service"),
            cause=cause,
        )


class NetworkCreateFailure(ProvisionError):
    """Raised when the shared network cannot be inspected or created."""

    def __init__(self, network: str, *, cause: Exception | None = None):
        self.network = network
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Failed to create network '{network}'{detail}",
            context=ErrorContext(network=network, stage="network"),
            cause=cause,
        )


# =============================================================================
# RUNTIME GATEWAY ERRORS
# =============================================================================


class RuntimeGatewayError(BasestackError):
    """Base class for container runtime errors."""

    default_category = ErrorCategory.RUNTIME


class RuntimeUnavailable(RuntimeGatewayError):
    """Raised when the container runtime is not installed or not reachable."""


class RuntimeCommandError(RuntimeGatewayError):
    """Raised when a runtime command exits non-zero."""

    def __init__(self, message: str, *, returncode: int | None = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message)


class ContainerNotFound(RuntimeCommandError):
    """Raised when a named container does not exist."""


class NetworkNotFound(RuntimeCommandError):
    """Raised when a named network does not exist."""


# =============================================================================
# ASSET ERRORS
# =============================================================================


class AssetDownloadError(BasestackError):
    """Raised when a configuration template cannot be fetched."""

    default_category = ErrorCategory.STORAGE

    def __init__(self, url: str, *, cause: Exception | None = None):
        self.url = url
        super().__init__(f"Failed to download {url}", cause=cause)


class VolumeLayoutError(BasestackError):
    """Raised when the installation directory cannot be laid out or written."""

    default_category = ErrorCategory.STORAGE

    def __init__(self, path: str, *, cause: Exception | None = None):
        self.path = path
        detail = f": {cause}" if cause is not None else ""
        super().__init__(
            f"Cannot prepare volumes under {path}{detail}",
            context=ErrorContext(stage="volumes"),
            cause=cause,
        )


__all__ = [
    "AssetDownloadError",
    "BasestackError",
    "ConfigError",
    "ContainerNotFound",
    "CyclicDependency",
    "DuplicateService",
    "EmptySecret",
    "ErrorCategory",
    "ErrorContext",
    "InvalidClaims",
    "MalformedToken",
    "MissingTemplateValue",
    "NetworkCreateFailure",
    "NetworkNotFound",
    "PlanError",
    "ProvisionError",
    "RuntimeCommandError",
    "RuntimeGatewayError",
    "RuntimeUnavailable",
    "ServiceStartFailure",
    "TokenError",
    "UnknownDependency",
    "VolumeLayoutError",
]
