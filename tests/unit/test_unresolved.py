"""
Unit tests for unresolved references.
"""

import logging

import pytest

from calltree import TreeBuilder, async_ref, ref

UNRESOLVED = "dependency to {} could not be resolved so the tree may be incomplete"


class TestUnresolvedSeverity:
    """Tests for the unresolvedSeverity option."""

    @pytest.mark.asyncio
    async def test_warning_by_default(self, builder, make_app):
        """Test unknown functions become warning nodes."""
        tree = await builder.build(make_app(ref("missingFunc")))

        node = tree["children"][0]
        assert node["type"] == "warning"
        assert "missingFunc" in node["name"]
        assert "could not be resolved" in node["name"]

    @pytest.mark.asyncio
    async def test_error_when_configured(self, make_app):
        """Test the error severity."""
        builder = TreeBuilder({"unresolvedSeverity": "error"})

        tree = await builder.build(make_app(ref("missingFunc")))

        node = tree["children"][0]
        assert node["type"] == "error"
        assert node["name"] == UNRESOLVED.format("missingFunc")
        assert node["_unresolvedRef"] == "missingFunc"

    @pytest.mark.asyncio
    async def test_warning_when_explicit(self, make_app):
        """Test the warning severity can be set explicitly."""
        builder = TreeBuilder({"unresolvedSeverity": "warning"})

        tree = await builder.build(make_app(ref("missingFunc")))

        assert tree["children"][0]["type"] == "warning"

    @pytest.mark.asyncio
    async def test_unresolved_async_target(self, make_app):
        """Test the timer wrapper keeps an unresolved child."""
        builder = TreeBuilder({"unresolvedSeverity": "error"})

        tree = await builder.build(make_app(async_ref("missingAsyncFunc")))

        timer = tree["children"][0]
        assert timer["type"] == "timer"
        assert timer["children"][0]["type"] == "error"
        assert timer["children"][0]["_unresolvedRef"] == "missingAsyncFunc"

    @pytest.mark.asyncio
    async def test_unresolved_nested_reference(self, make_app):
        """Test a missing child inside a defined function."""
        builder = TreeBuilder({"unresolvedSeverity": "error"})
        builder.define_functions({"parentFunc": {"children": [ref("missingChild")]}})

        tree = await builder.build(make_app(ref("parentFunc")))

        parent = tree["children"][0]
        assert parent["name"] == "parentFunc"
        assert parent["type"] == "function"
        assert parent["children"][0]["type"] == "error"
        assert parent["children"][0]["_unresolvedRef"] == "missingChild"

    @pytest.mark.asyncio
    async def test_reference_spelling_kept(self, builder, make_app):
        """Test the node names the reference as written."""
        tree = await builder.build(make_app(ref("UnknownFunction")))

        assert tree["children"][0]["_unresolvedRef"] == "UnknownFunction"

    @pytest.mark.asyncio
    async def test_warning_logged(self, builder, make_app, caplog):
        """Test unresolved references are logged at warning level."""
        with caplog.at_level(logging.WARNING, logger="calltree"):
            await builder.build(make_app(ref("missingFunc")))

        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any("missingFunc" in r.getMessage() for r in warnings)

    @pytest.mark.asyncio
    async def test_injected_logger_used(self, make_app, caplog):
        """Test diagnostics go to the logger given at construction."""
        builder = TreeBuilder(logger=logging.getLogger("orders.calltree"))

        with caplog.at_level(logging.WARNING, logger="orders.calltree"):
            await builder.build(make_app(ref("missingFunc")))

        assert any(r.name == "orders.calltree" for r in caplog.records)
