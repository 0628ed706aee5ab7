"""Shared pytest fixtures for calltree tests."""

from collections.abc import Callable
from typing import Any

import pytest

from calltree import TreeBuilder


@pytest.fixture
def builder() -> TreeBuilder:
    """Return a builder with default configuration and an empty registry."""
    return TreeBuilder()


@pytest.fixture
def make_app() -> Callable[..., dict[str, Any]]:
    """Return a factory for app root nodes."""

    def _make_app(*children: dict[str, Any], name: str = "test-app") -> dict[str, Any]:
        return {"name": name, "type": "app", "children": list(children)}

    return _make_app
