"""
Schema definitions for rpcgate.

This module defines the Pydantic models shared by the authorizer, the gRPC
adapter and the CLI:
- CallProperties/CallContext: identity of one call and the caller's token
- Outcome/AuthorizationDecision: the result of authorizing one call

It also holds the rules file loaders. Rules files are either YAML (plain
role names and markers) or Python modules exposing a ``RULES`` mapping
(which may also carry predicate callables).

Design Decisions:
    - Models are immutable (frozen=True)
    - CallContext accepts extra fields so hosts can attach their own data
    - The authorizer only relies on ``properties.service_full_name``,
      ``properties.method_name`` and ``token``, so any object with that
      shape works as a context
"""

import importlib.util
import sys
from collections.abc import Mapping
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from rpcgate.errors import (
    ERROR_PERMISSION_DENIED,
    ERROR_UNAUTHENTICATED,
    AuthorizationError,
    PermissionDeniedError,
    RulesFileNotFoundError,
    RulesFormatError,
    UnauthenticatedError,
)

DEFAULT_RULES_FILE = "access-rules.yaml"
RULES_MODULE_ATTRIBUTES = ("RULES", "rules")


# =============================================================================
# Enums
# =============================================================================


class Outcome(str, Enum):
    """The three possible results of authorizing a call."""

    ALLOWED = "allowed"
    PERMISSION_DENIED = "permission_denied"
    UNAUTHENTICATED = "unauthenticated"

    @property
    def code(self) -> int:
        """RPC status code for this outcome (0 when allowed)."""
        if self is Outcome.PERMISSION_DENIED:
            return ERROR_PERMISSION_DENIED
        if self is Outcome.UNAUTHENTICATED:
            return ERROR_UNAUTHENTICATED
        return 0


# =============================================================================
# Call Models
# =============================================================================


class CallProperties(BaseModel):
    """
    Identity of the method being called.

    Attributes:
        service_full_name: Fully qualified service name (e.g., "myapp.Greeter")
        method_name: Method name (e.g., "sayHello")
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    service_full_name: str = Field(..., description="Fully qualified service name")
    method_name: str = Field(..., description="Method name")

    @classmethod
    def from_full_method(cls, full_method: str) -> "CallProperties":
        """
        Parse a gRPC full method path.

        Examples:
            "/myapp.Greeter/sayHello" -> ("myapp.Greeter", "sayHello")
            "sayHello" -> ("", "sayHello")
        """
        service, _, method = full_method.lstrip("/").rpartition("/")
        return cls(service_full_name=service, method_name=method)


class CallContext(BaseModel):
    """
    The per-call object handed to the authorizer.

    Attributes:
        properties: Service/method identity of the call
        token: Authentication token (None when the caller sent none)
        metadata: Request metadata (headers) as received
    """

    model_config = ConfigDict(frozen=True, extra="allow", arbitrary_types_allowed=True)

    properties: CallProperties
    token: Any = Field(default=None, description="Authentication token")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Request metadata")

    @classmethod
    def for_call(
        cls,
        service_full_name: str,
        method_name: str,
        token: Any = None,
        **extra: Any,
    ) -> "CallContext":
        """Build a context from plain service/method names."""
        return cls(
            properties=CallProperties(
                service_full_name=service_full_name,
                method_name=method_name,
            ),
            token=token,
            **extra,
        )


class AuthorizationDecision(BaseModel):
    """
    Result of running the authorization protocol for one call.

    Attributes:
        outcome: Allowed, permission denied, or unauthenticated
        service: Service the call targeted
        method: Method the call targeted
        authenticated: Result of the authentication check
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    outcome: Outcome
    service: str = ""
    method: str = ""
    authenticated: bool = False

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOWED

    @property
    def code(self) -> int:
        return self.outcome.code

    def to_error(self) -> AuthorizationError | None:
        """The error the middleware raises for this decision, if any."""
        if self.outcome is Outcome.PERMISSION_DENIED:
            return PermissionDeniedError(service=self.service, method=self.method)
        if self.outcome is Outcome.UNAUTHENTICATED:
            return UnauthenticatedError(service=self.service, method=self.method)
        return None


# =============================================================================
# Rules Loading Helpers
# =============================================================================


def _ensure_mapping(data: Any, path: str) -> Mapping[str, Any]:
    if not isinstance(data, Mapping):
        raise RulesFormatError(
            path=path,
            reason=f"expected a mapping of services, got {type(data).__name__}",
        )
    return data


def _load_rules_module(path: Path) -> Mapping[str, Any]:
    """Execute a Python rules file and return its RULES mapping."""
    module_name = f"rpcgate_rules_{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise RulesFormatError(path=str(path), reason="cannot import rules module")

    module = importlib.util.module_from_spec(spec)
    # dataclasses and pickle resolve the module through sys.modules
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        sys.modules.pop(module_name, None)
        raise RulesFormatError(path=str(path), reason=f"{type(e).__name__}: {e}") from e

    for attribute in RULES_MODULE_ATTRIBUTES:
        if hasattr(module, attribute):
            return _ensure_mapping(getattr(module, attribute), str(path))

    raise RulesFormatError(
        path=str(path),
        reason=f"module defines none of {', '.join(RULES_MODULE_ATTRIBUTES)}",
    )


def load_rules(path: Path | str) -> Mapping[str, Any]:
    """
    Load raw rules from a YAML file or a Python module.

    Relative paths are resolved against the current working directory.

    Args:
        path: Path to the rules file (.yaml/.yml/.json or .py)

    Returns:
        The raw rules mapping (not yet normalized)

    Raises:
        RulesFileNotFoundError: If the file doesn't exist
        RulesFormatError: If the file can't be parsed into a mapping
    """
    path = Path(path)
    if not path.is_absolute():
        path = Path.cwd() / path

    if not path.is_file():
        raise RulesFileNotFoundError(path=str(path))

    if path.suffix == ".py":
        return _load_rules_module(path)

    try:
        with path.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise RulesFormatError(path=str(path), reason=str(e)) from e

    return _ensure_mapping(data, str(path))


def load_rules_from_string(content: str) -> Mapping[str, Any]:
    """Load raw rules from a YAML string."""
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise RulesFormatError(reason=str(e)) from e
    return _ensure_mapping(data, "")
