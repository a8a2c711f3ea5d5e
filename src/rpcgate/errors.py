"""
Exception hierarchy for rpcgate.

All rpcgate exceptions inherit from RpcGateError, allowing callers to catch
all rpcgate-specific exceptions with a single except clause.

Exception Categories:
    - AuthorizationError: The call was rejected (permission denied or
      unauthenticated). This is a normal outcome, not a defect.
    - RulesConfigError: The rule specification could not be loaded or parsed.
      Raised at construction time and always fatal.

Error codes follow the gRPC status numbering so that callers branching on
``code`` keep working across transports.
"""

from dataclasses import dataclass, field
from typing import Any


# =============================================================================
# Error Codes (gRPC status numbering)
# =============================================================================

ERROR_INVALID_ARGUMENT = 3
ERROR_NOT_FOUND = 5
ERROR_PERMISSION_DENIED = 7
ERROR_UNAUTHENTICATED = 16

DETAILS_PERMISSION_DENIED = "Permission Denied"
DETAILS_UNAUTHENTICATED = "Unauthenticated"


# =============================================================================
# Base Exception
# =============================================================================


@dataclass
class RpcGateError(Exception):
    """
    Base exception for all rpcgate errors.

    Attributes:
        message: Human-readable error description
        code: Numeric error code for programmatic handling
        suggestion: Optional hint for how to resolve the error
        context: Optional dict with additional debugging info
    """

    message: str = ""
    code: int = 0
    suggestion: str | None = None
    context: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        """Format error for display."""
        parts = [f"[E{self.code}] {self.message}"]
        if self.suggestion:
            parts.append(f"\nSuggestion: {self.suggestion}")
        return "".join(parts)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code}, "
            f"context={self.context!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "suggestion": self.suggestion,
            "context": self.context,
        }


# =============================================================================
# Authorization Errors
# =============================================================================


@dataclass
class AuthorizationError(RpcGateError):
    """
    Raised by the middleware when a call is rejected.

    ``code`` and ``details`` are the structured payload RPC callers branch on.

    Attributes:
        details: Short status text sent back to the caller
        service: Full name of the service that was called
        method: Name of the method that was called
    """

    details: str = ""
    service: str = ""
    method: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"{self.details}: {self.service}/{self.method}"
        self.context.update({
            "service": self.service,
            "method": self.method,
        })

    def to_dict(self) -> dict[str, Any]:
        """Structured form, ``{code, details}`` plus call identity."""
        data = super().to_dict()
        data["details"] = self.details
        return data


@dataclass
class PermissionDeniedError(AuthorizationError):
    """Raised when the caller is authenticated but no rule allows the call."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_PERMISSION_DENIED
        if not self.details:
            self.details = DETAILS_PERMISSION_DENIED
        super().__post_init__()


@dataclass
class UnauthenticatedError(AuthorizationError):
    """Raised when the caller is not authenticated and no rule allows the call."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_UNAUTHENTICATED
        if not self.details:
            self.details = DETAILS_UNAUTHENTICATED
        if not self.suggestion:
            self.suggestion = "Send an authentication token with the call"
        super().__post_init__()


# =============================================================================
# Configuration Errors
# =============================================================================


@dataclass
class RulesConfigError(RpcGateError):
    """
    Base class for rule specification errors.

    These errors occur while constructing an authorizer and are never
    recovered from: an authorizer without rules must not be usable.

    Attributes:
        path: Path of the rules file (if the rules came from a file)
    """

    path: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if self.code == 0:
            self.code = ERROR_INVALID_ARGUMENT
        self.context["path"] = self.path


@dataclass
class RulesFileNotFoundError(RulesConfigError):
    """Raised when the rules file does not exist."""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            self.message = f"Rules file not found: {self.path}"
        if self.code == 0:
            self.code = ERROR_NOT_FOUND
        if not self.suggestion:
            self.suggestion = "Create the file or pass rules= / rules_file= explicitly"
        super().__post_init__()


@dataclass
class RulesFormatError(RulesConfigError):
    """Raised when the rules cannot be parsed into a service mapping."""

    reason: str = ""

    def __post_init__(self) -> None:
        """Set defaults after dataclass init."""
        if not self.message:
            where = f" in {self.path}" if self.path else ""
            self.message = f"Invalid rules{where}: {self.reason}"
        super().__post_init__()
        self.context["reason"] = self.reason
