"""
Pytest configuration and fixtures for rpcgate tests.

This module provides shared fixtures used across unit and integration tests.
"""

import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator
from unittest.mock import MagicMock

import pytest
import structlog

from rpcgate.schema import CallContext


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any structlog configuration a test (or the CLI) applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def custom_validation() -> MagicMock:
    """A predicate rule that denies unless configured otherwise."""
    return MagicMock(name="custom_validation", return_value=False)


@pytest.fixture
def sample_rules(custom_validation: MagicMock) -> dict[str, Any]:
    """Return the rule set most tests run against."""
    return {
        "default": "$authenticated",
        "myapp.Greeter": {
            "sayHello": "special",
            "sayHelloOther": "other-app:special",
            "sayHelloRealm": "realm:admin",
            "sayHelloCustom": custom_validation,
            "sayHelloPublic": "$anonymous",
            "sayHelloMultiple": ["special", "realm:admin", custom_validation],
        },
    }


@pytest.fixture
def sample_rules_yaml() -> str:
    """Return the YAML form of the sample rules (without predicates)."""
    return """
default: $authenticated
myapp.Greeter:
  sayHello: special
  sayHelloOther: "other-app:special"
  sayHelloRealm: "realm:admin"
  sayHelloPublic: $anonymous
  sayHelloMultiple:
    - special
    - "realm:admin"
"""


@pytest.fixture
def make_context() -> Callable[..., CallContext]:
    """Factory for call contexts."""

    def _make(
        service: str = "myapp.Greeter",
        method: str = "sayHello",
        token: Any = None,
    ) -> CallContext:
        return CallContext.for_call(service, method, token=token)

    return _make
