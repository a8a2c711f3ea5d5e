"""
Rule table for rpcgate.

The rule table is the lookup structure consulted on every call. It is built
once from the raw, user-authored rules and never mutated afterwards, so it
can be shared by any number of concurrent calls without locking.

Raw rules shape:

    {
        "default": "$authenticated",
        "myapp.Greeter": {
            "sayHello": "admin",
            "sayHelloPublic": "$anonymous",
            "sayHelloMultiple": ["admin", "realm:admin", some_callable],
        },
    }

Every value is normalized to a RuleList (a tuple of Rules):
    - a single rule becomes a one-element list
    - a list is kept in order
    - a mapping is normalized method by method

Lookup order for (service, method):
    1. The method's list, when the service entry is a method mapping that
       contains the method (an empty list is an explicit deny)
    2. The flat ``default`` list, shared by every service
    3. An empty list (deny)
"""

from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Any

from rpcgate.errors import RulesFormatError
from rpcgate.rules.types import RULE_TYPES, Rule, parse_rule

DEFAULT_KEY = "default"

RuleList = tuple[Rule, ...]
MethodRules = Mapping[str, RuleList]
ServiceEntry = RuleList | MethodRules

EMPTY_RULES: RuleList = ()


def normalize_rules(value: Any) -> RuleList:
    """
    Normalize a rule or a list of rules into a RuleList.

    Normalizing an already-normalized RuleList returns an equal RuleList.
    """
    if isinstance(value, (list, tuple)):
        return tuple(parse_rule(item) for item in value)
    return (parse_rule(value),)


def _is_scalar_rule(value: Any) -> bool:
    return isinstance(value, str) or isinstance(value, RULE_TYPES) or callable(value)


def normalize_service(value: Any) -> ServiceEntry:
    """
    Normalize the raw value stored under one service name.

    Scalars and lists give a flat RuleList (this is how ``default`` is
    represented), mappings give MethodRules.
    """
    if _is_scalar_rule(value) or isinstance(value, (list, tuple)):
        return normalize_rules(value)
    if isinstance(value, Mapping):
        return MappingProxyType({
            str(method_name): normalize_rules(method_rules)
            for method_name, method_rules in value.items()
        })
    # Neither a rule nor a method mapping: keep it as a rule that never
    # matches a string role.
    return normalize_rules(value)


class RuleTable(Mapping[str, ServiceEntry]):
    """
    Immutable mapping of service name to ServiceEntry.

    Usage:
        table = build_rule_table({"default": "$authenticated"})
        rules = table.resolve("myapp.Greeter", "sayHello")
    """

    def __init__(self, entries: Mapping[str, ServiceEntry]) -> None:
        self._entries: Mapping[str, ServiceEntry] = MappingProxyType(dict(entries))
        default = self._entries.get(DEFAULT_KEY)
        # A method mapping stored under "default" is not a rule list.
        self._default: RuleList | None = default if isinstance(default, tuple) else None

    def __getitem__(self, service_name: str) -> ServiceEntry:
        return self._entries[service_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"RuleTable({dict(self._entries)!r})"

    @property
    def default(self) -> RuleList | None:
        """The flat fallback list, or None when no usable default exists."""
        return self._default

    def resolve(self, service_name: str, method_name: str) -> RuleList:
        """
        Find the rules that apply to one call.

        Args:
            service_name: Full service name (e.g., "myapp.Greeter")
            method_name: Method name (e.g., "sayHello")

        Returns:
            The RuleList to evaluate; empty means deny
        """
        entry = self._entries.get(service_name)
        if isinstance(entry, Mapping) and method_name in entry:
            return entry[method_name]
        if self._default is not None:
            return self._default
        return EMPTY_RULES


def build_rule_table(raw_rules: Mapping[str, Any]) -> RuleTable:
    """
    Build the lookup table from a raw rule specification.

    Rule values are not validated: a value that can never match is kept and
    simply never allows anything.

    Args:
        raw_rules: Mapping of service name to rule, list of rules, or
            mapping of method name to rule/list

    Returns:
        The immutable RuleTable

    Raises:
        RulesFormatError: If raw_rules is not a mapping
    """
    if isinstance(raw_rules, RuleTable):
        return raw_rules
    if not isinstance(raw_rules, Mapping):
        raise RulesFormatError(
            reason=f"expected a mapping of services, got {type(raw_rules).__name__}",
        )

    return RuleTable({
        str(service_name): normalize_service(value)
        for service_name, value in raw_rules.items()
    })
