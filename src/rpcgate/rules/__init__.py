"""
Rules module for rpcgate.

This module turns user-authored access rules into the immutable lookup
table consulted on every call.

Key concepts:
    - Rule: one access predicate ($anonymous, $authenticated, role, callable)
    - RuleList: ordered rules for one method; matches if any rule matches
    - RuleTable: service -> method -> RuleList, plus a flat global default
"""

from rpcgate.rules.table import (
    DEFAULT_KEY,
    EMPTY_RULES,
    MethodRules,
    RuleList,
    RuleTable,
    ServiceEntry,
    build_rule_table,
    normalize_rules,
    normalize_service,
)
from rpcgate.rules.types import (
    ANONYMOUS,
    ANONYMOUS_MARKER,
    AUTHENTICATED,
    AUTHENTICATED_MARKER,
    AnonymousRule,
    AuthenticatedRule,
    PredicateRule,
    RoleRule,
    Rule,
    RuleKind,
    parse_rule,
)

__all__ = [
    "ANONYMOUS",
    "ANONYMOUS_MARKER",
    "AUTHENTICATED",
    "AUTHENTICATED_MARKER",
    "DEFAULT_KEY",
    "EMPTY_RULES",
    "AnonymousRule",
    "AuthenticatedRule",
    "MethodRules",
    "PredicateRule",
    "RoleRule",
    "Rule",
    "RuleKind",
    "RuleList",
    "RuleTable",
    "ServiceEntry",
    "build_rule_table",
    "normalize_rules",
    "normalize_service",
    "parse_rule",
]
