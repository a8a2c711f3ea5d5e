"""
rpcgate - Declarative authorization gate for RPC service calls.

rpcgate decides, before a handler runs, whether the caller may proceed.
It provides:
- A rule table keyed by service and method name, built once at startup
- Role, authenticated, anonymous and custom predicate rules
- A three-step authorization protocol wrapped as middleware
- A grpc.aio server interceptor

Example usage:
    middleware = create_middleware(
        rules={"default": "$authenticated", "myapp.Greeter": {"sayHello": "admin"}},
        get_permissions=lookup_roles,
    )
    result = await middleware(context, call_next)
"""

__version__ = "0.1.0"
__author__ = "rpcgate Contributors"

from rpcgate.authorizer import Authorizer, create_middleware
from rpcgate.errors import (
    AuthorizationError,
    PermissionDeniedError,
    RpcGateError,
    RulesConfigError,
    RulesFileNotFoundError,
    RulesFormatError,
    UnauthenticatedError,
)
from rpcgate.rules import RuleTable, build_rule_table
from rpcgate.schema import AuthorizationDecision, CallContext, CallProperties, Outcome

__all__ = [
    "__version__",
    "__author__",
    "AuthorizationDecision",
    "AuthorizationError",
    "Authorizer",
    "CallContext",
    "CallProperties",
    "Outcome",
    "PermissionDeniedError",
    "RpcGateError",
    "RuleTable",
    "RulesConfigError",
    "RulesFileNotFoundError",
    "RulesFormatError",
    "UnauthenticatedError",
    "build_rule_table",
    "create_middleware",
]
