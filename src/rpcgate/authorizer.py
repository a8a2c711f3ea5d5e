"""
Authorizer for rpcgate.

The Authorizer decides, before a handler runs, whether the caller may
proceed. Every call goes through the same three steps:

    1. Resolve the caller's roles: get_permissions(context)
    2. Concurrently evaluate is_allowed(context, roles) and
       is_authenticated(context)
    3. Pick the outcome:
         allowed                       -> ALLOWED (call next handler)
         not allowed, authenticated    -> PERMISSION_DENIED (code 7)
         not allowed, unauthenticated  -> UNAUTHENTICATED (code 16)

Collaborators may be plain functions or coroutine functions. The rule
table is built once in the constructor and only read afterwards.

Error handling:
    - Errors raised by predicate rules are logged and count as "no match"
    - Errors raised by get_permissions, is_authenticated or is_allowed
      propagate to the caller of the middleware
"""

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable, Mapping
from pathlib import Path
from typing import Any

from rpcgate.log import LOGGER_NAME, get_logger
from rpcgate.rules import RuleKind, RuleList, RuleTable, build_rule_table
from rpcgate.rules.types import Rule
from rpcgate.schema import (
    DEFAULT_RULES_FILE,
    AuthorizationDecision,
    Outcome,
    load_rules,
)

PermissionsGetter = Callable[[Any], Iterable[Any] | None | Awaitable[Iterable[Any] | None]]
AuthenticationCheck = Callable[[Any], bool | Awaitable[bool]]
AllowedCheck = Callable[[Any, frozenset[Any]], bool | Awaitable[bool]]
Middleware = Callable[[Any, Callable[[], Any]], Awaitable[Any]]


async def _resolve(value: Any) -> Any:
    """Await ``value`` if it is awaitable, otherwise return it."""
    if inspect.isawaitable(value):
        return await value
    return value


def has_token(token: Any) -> bool:
    """
    Whether a token value counts as present.

    None and empty strings/bytes are absent. Any other value, including an
    empty dict, is a token.
    """
    if token is None or token is False:
        return False
    if isinstance(token, (str, bytes)):
        return len(token) > 0
    return True


def call_identity(context: Any) -> tuple[str, str]:
    """Return (service_full_name, method_name) for a call context."""
    properties = context.properties
    if isinstance(properties, Mapping):
        return properties["service_full_name"], properties["method_name"]
    return properties.service_full_name, properties.method_name


class Authorizer:
    """
    Rule-table based authorization for RPC calls.

    Usage:
        authorizer = Authorizer(
            rules={"default": "$authenticated", "myapp.Greeter": {"sayHello": "admin"}},
            get_permissions=lookup_roles,
        )
        decision = await authorizer.authorize(context)
        result = await authorizer.middleware(context, call_next)

    Attributes:
        rules: The immutable RuleTable built at construction
    """

    def __init__(
        self,
        rules: Mapping[str, Any] | None = None,
        *,
        rules_file: Path | str = DEFAULT_RULES_FILE,
        get_permissions: PermissionsGetter | None = None,
        is_authenticated: AuthenticationCheck | None = None,
        is_allowed: AllowedCheck | None = None,
        logger: Any = None,
    ) -> None:
        """
        Initialize the authorizer.

        Args:
            rules: Raw rules mapping; when omitted, rules_file is loaded
            rules_file: Rules file to load when rules is None
            get_permissions: Returns the caller's roles (default: no roles)
            is_authenticated: Returns whether the caller is authenticated
                (default: the context carries a token)
            is_allowed: Replaces the rule table check entirely
            logger: structlog logger for predicate errors and decisions

        Raises:
            RulesFileNotFoundError: If rules_file is needed and missing
            RulesFormatError: If the rules cannot be parsed
        """
        self._logger = logger if logger is not None else get_logger(LOGGER_NAME)
        self._get_permissions = get_permissions or self._no_permissions
        self._is_authenticated = is_authenticated or self._has_token
        self._is_allowed = is_allowed or self._allowed_by_rules

        raw_rules = rules if rules is not None else load_rules(rules_file)
        self.rules: RuleTable = build_rule_table(raw_rules)

    # =========================================================================
    # Default collaborators
    # =========================================================================

    @staticmethod
    def _no_permissions(context: Any) -> frozenset[Any]:
        return frozenset()

    @staticmethod
    def _has_token(context: Any) -> bool:
        return has_token(getattr(context, "token", None))

    async def _allowed_by_rules(self, context: Any, roles: frozenset[Any]) -> bool:
        service_name, method_name = call_identity(context)
        return await self.check_rules(service_name, method_name, roles, context)

    # =========================================================================
    # Collaborator entry points
    # =========================================================================

    async def get_permissions(self, context: Any) -> frozenset[Any]:
        """
        Resolve the caller's role set.

        A single role returned as a string (or bytes) is one role, not a
        sequence of characters. None means no roles.
        """
        roles = await _resolve(self._get_permissions(context))
        if roles is None:
            return frozenset()
        if isinstance(roles, (str, bytes)):
            return frozenset({roles})
        return frozenset(roles)

    async def is_authenticated(self, context: Any) -> bool:
        return bool(await _resolve(self._is_authenticated(context)))

    async def is_allowed(self, context: Any, roles: frozenset[Any]) -> bool:
        return bool(await _resolve(self._is_allowed(context, roles)))

    # =========================================================================
    # Rule evaluation
    # =========================================================================

    def find_rules(self, service_name: str, method_name: str) -> RuleList:
        """Rules that apply to a service/method (default or empty if none)."""
        return self.rules.resolve(service_name, method_name)

    async def check_rules(
        self,
        service_name: str,
        method_name: str,
        roles: frozenset[Any],
        context: Any,
    ) -> bool:
        """
        Evaluate the rule table for one call.

        Rules are tried in order; the first match allows the call and no
        later rule is evaluated.
        """
        for rule in self.find_rules(service_name, method_name):
            if await self.rule_matches(rule, roles, context):
                return True
        return False

    async def rule_matches(self, rule: Rule, roles: frozenset[Any], context: Any) -> bool:
        """Check whether a single rule matches the caller."""
        if rule.kind is RuleKind.ANONYMOUS:
            return True
        if rule.kind is RuleKind.AUTHENTICATED:
            return await self.is_authenticated(context)
        if rule.kind is RuleKind.PREDICATE:
            return await self._predicate_matches(rule, context)
        return rule.matches_roles(roles)

    async def _predicate_matches(self, rule: Rule, context: Any) -> bool:
        try:
            return bool(await _resolve(rule.func(context, getattr(context, "token", None))))
        except Exception as e:
            service_name, method_name = call_identity(context)
            self._logger.error(
                "predicate_error",
                service=service_name,
                method=method_name,
                predicate=rule.name,
                error=f"{type(e).__name__}: {e}",
            )
            return False

    # =========================================================================
    # Authorization protocol
    # =========================================================================

    async def authorize(self, context: Any) -> AuthorizationDecision:
        """
        Run the full authorization protocol for one call.

        Args:
            context: Call context (properties.service_full_name,
                properties.method_name, token)

        Returns:
            AuthorizationDecision with the selected Outcome
        """
        roles = await self.get_permissions(context)
        allowed, authenticated = await asyncio.gather(
            self.is_allowed(context, roles),
            self.is_authenticated(context),
        )

        if allowed:
            outcome = Outcome.ALLOWED
        elif authenticated:
            outcome = Outcome.PERMISSION_DENIED
        else:
            outcome = Outcome.UNAUTHENTICATED

        service_name, method_name = call_identity(context)
        self._logger.debug(
            "authorization_decision",
            service=service_name,
            method=method_name,
            outcome=outcome.value,
        )
        return AuthorizationDecision(
            outcome=outcome,
            service=service_name,
            method=method_name,
            authenticated=authenticated,
        )

    async def middleware(self, context: Any, call_next: Callable[[], Any]) -> Any:
        """
        Authorize the call, then run the next handler.

        Args:
            context: Call context
            call_next: Zero-argument callable invoking the next handler

        Returns:
            Whatever call_next() returns (awaited if needed)

        Raises:
            PermissionDeniedError: Authenticated but not allowed (code 7)
            UnauthenticatedError: Not authenticated and not allowed (code 16)
        """
        decision = await self.authorize(context)
        error = decision.to_error()
        if error is not None:
            raise error
        return await _resolve(call_next())

    def get_middleware(self) -> Middleware:
        return self.middleware


def create_middleware(
    rules: Mapping[str, Any] | None = None,
    **options: Any,
) -> Middleware:
    """
    Build an Authorizer and return its middleware.

    Accepts the same arguments as Authorizer.
    """
    return Authorizer(rules, **options).get_middleware()
