"""
Rule types for rpcgate.

A rule is one access predicate. Raw rules written by users (strings,
callables) are parsed exactly once, when the rule table is built, into one
of four kinds:

    $anonymous      -> AnonymousRule      always matches
    $authenticated  -> AuthenticatedRule  matches authenticated callers
    any callable    -> PredicateRule      matches when func(context, token) is truthy
    anything else   -> RoleRule           matches when the value is one of the caller's roles
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar

ANONYMOUS_MARKER = "$anonymous"
AUTHENTICATED_MARKER = "$authenticated"


class RuleKind(str, Enum):
    """Discriminator for the rule variants."""

    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    ROLE = "role"
    PREDICATE = "predicate"


@dataclass(frozen=True)
class AnonymousRule:
    """Matches every caller."""

    kind: ClassVar[RuleKind] = RuleKind.ANONYMOUS

    def describe(self) -> str:
        return ANONYMOUS_MARKER


@dataclass(frozen=True)
class AuthenticatedRule:
    """Matches callers the authorizer considers authenticated."""

    kind: ClassVar[RuleKind] = RuleKind.AUTHENTICATED

    def describe(self) -> str:
        return AUTHENTICATED_MARKER


@dataclass(frozen=True)
class RoleRule:
    """
    Matches callers holding ``role``.

    Roles are normally strings. Other values are kept as-is so that a rule
    set is never rejected; they simply never match a string role.
    """

    role: Any
    kind: ClassVar[RuleKind] = RuleKind.ROLE

    def matches_roles(self, roles: frozenset[Any]) -> bool:
        # unhashable roles, including tuples holding lists, never match
        try:
            return self.role in roles
        except TypeError:
            return False

    def describe(self) -> str:
        return str(self.role)


@dataclass(frozen=True)
class PredicateRule:
    """
    Matches when ``func(context, token)`` returns a truthy value.

    The callable may return an awaitable; the authorizer awaits it.
    """

    func: Callable[..., Any]
    kind: ClassVar[RuleKind] = RuleKind.PREDICATE

    @property
    def name(self) -> str:
        return getattr(self.func, "__qualname__", None) or repr(self.func)

    def describe(self) -> str:
        return f"<predicate {self.name}>"


Rule = AnonymousRule | AuthenticatedRule | RoleRule | PredicateRule

RULE_TYPES = (AnonymousRule, AuthenticatedRule, RoleRule, PredicateRule)

ANONYMOUS = AnonymousRule()
AUTHENTICATED = AuthenticatedRule()


def parse_rule(raw: Any) -> Rule:
    """
    Parse a single raw rule value.

    Already-parsed rules are returned unchanged, which keeps normalization
    idempotent.

    Args:
        raw: A marker string, role name, callable, or Rule

    Returns:
        The parsed Rule
    """
    if isinstance(raw, RULE_TYPES):
        return raw
    if isinstance(raw, str):
        if raw == ANONYMOUS_MARKER:
            return ANONYMOUS
        if raw == AUTHENTICATED_MARKER:
            return AUTHENTICATED
        return RoleRule(raw)
    if callable(raw):
        return PredicateRule(raw)
    return RoleRule(raw)
