"""
Unit tests for TreeBuilder.build: function resolution, cycles and app structure.
"""

import asyncio

import pytest

from calltree import BuildInProgressError, NodeSpecError, TreeBuilder, async_ref, ref
from calltree.core.ir import parse_node


class TestBuild:
    """Tests for basic tree resolution."""

    @pytest.mark.asyncio
    async def test_app_without_refs(self, builder, make_app):
        """Test an app with no children resolves to itself."""
        tree = await builder.build(make_app())

        assert tree == {"name": "test-app", "type": "app", "children": []}

    @pytest.mark.asyncio
    async def test_resolves_function_reference(self, builder, make_app):
        """Test a sync reference becomes a function node."""
        builder.define_functions({"myFunc": {}})

        tree = await builder.build(make_app(ref("myFunc")))

        assert len(tree["children"]) == 1
        assert tree["children"][0] == {"name": "myFunc", "type": "function"}

    @pytest.mark.asyncio
    async def test_resolves_nested_references(self, builder, make_app):
        """Test references inside function children are resolved."""
        builder.define_functions({"child": {}, "parent": {"children": [ref("child")]}})

        tree = await builder.build(make_app(ref("parent")))

        parent = tree["children"][0]
        assert parent["name"] == "parent"
        assert [c["name"] for c in parent["children"]] == ["child"]

    @pytest.mark.asyncio
    async def test_child_order_preserved(self, builder, make_app):
        """Test resolved children keep definition order."""
        builder.define_functions(
            {
                "a": {},
                "b": {},
                "c": {},
                "parent": {"children": [ref("c"), ref("a"), ref("b")]},
            }
        )

        tree = await builder.build(make_app(ref("parent")))

        assert [c["name"] for c in tree["children"][0]["children"]] == ["c", "a", "b"]

    @pytest.mark.asyncio
    async def test_undefined_function_becomes_warning(self, builder, make_app):
        """Test an unknown reference yields a warning node."""
        tree = await builder.build(make_app(ref("undefinedFunc")))

        assert tree["children"][0] == {
            "name": "dependency to undefinedFunc could not be resolved so the tree may be incomplete",
            "type": "warning",
            "_unresolvedRef": "undefinedFunc",
        }

    @pytest.mark.asyncio
    async def test_passthrough_props_on_function(self, builder, make_app):
        """Test unknown definition keys appear on the function node."""
        builder.define_functions({"myFunc": {"owner": "team-a", "children": []}})

        tree = await builder.build(make_app(ref("myFunc")))

        assert tree["children"][0]["owner"] == "team-a"

    @pytest.mark.asyncio
    async def test_root_extra_props_kept(self, builder):
        """Test unknown keys on structural nodes pass through."""
        tree = await builder.build({"name": "a", "type": "app", "env": "prod", "children": []})
        assert tree["env"] == "prod"

    @pytest.mark.asyncio
    async def test_accepts_parsed_root(self, builder):
        """Test build() accepts an already-parsed root node."""
        root = parse_node({"name": "a", "type": "app", "children": [ref("missing")]})
        tree = await builder.build(root)

        assert tree["children"][0]["_unresolvedRef"] == "missing"

    @pytest.mark.asyncio
    async def test_invalid_root_raises(self, builder):
        """Test a root that cannot be ingested raises NodeSpecError."""
        with pytest.raises(NodeSpecError):
            await builder.build("not-a-tree")

    @pytest.mark.asyncio
    async def test_invalid_root_does_not_lock_builder(self, builder, make_app):
        """Test a failed build leaves the builder usable."""
        with pytest.raises(NodeSpecError):
            await builder.build({"name": "a", "children": ["bad"]})

        tree = await builder.build(make_app())
        assert tree["name"] == "test-app"


class TestCycles:
    """Tests for cycle detection."""

    @pytest.mark.asyncio
    async def test_mutual_recursion(self, builder, make_app):
        """Test A -> B -> A ends in a stopper for A."""
        builder.define_functions(
            {
                "funcA": {"children": [ref("funcB")]},
                "funcB": {"children": [ref("funcA")]},
            }
        )

        tree = await builder.build(make_app(ref("funcA")))

        func_b = tree["children"][0]["children"][0]
        assert func_b["name"] == "funcB"
        stopper = func_b["children"][0]
        assert stopper == {
            "name": "loop detected stopping (funcA)",
            "type": "dupe-stopper",
            "_cycleAt": "funcA",
            "_path": ["funcA", "funcB", "funcA"],
        }

    @pytest.mark.asyncio
    async def test_self_reference(self, builder, make_app):
        """Test a function referencing itself gets one stopper child."""
        builder.define_functions({"selfRef": {"children": [ref("selfRef")]}})

        tree = await builder.build(make_app(ref("selfRef")))

        self_ref = tree["children"][0]
        assert self_ref["name"] == "selfRef"
        assert len(self_ref["children"]) == 1
        assert self_ref["children"][0]["type"] == "dupe-stopper"
        assert self_ref["children"][0]["_cycleAt"] == "selfRef"

    @pytest.mark.asyncio
    async def test_stoppers_not_reused_across_root_paths(self, builder, make_app):
        """Test a subtree cached under one path is not reused under another."""
        builder.define_functions(
            {
                "A": {"children": [ref("B")]},
                "B": {"children": [ref("C")]},
                "C": {"children": [ref("B")]},
                "D": {"children": [ref("C")]},
            }
        )

        tree = await builder.build(make_app(ref("D")))

        c_node = tree["children"][0]["children"][0]
        assert c_node["name"] == "C"
        assert c_node["children"][0]["name"] == "B"
        stopper = c_node["children"][0]["children"][0]
        assert stopper["type"] == "dupe-stopper"
        assert stopper["_cycleAt"] == "C"
        assert stopper["_path"] == ["D", "C", "B", "C"]

    @pytest.mark.asyncio
    async def test_deep_indirect_cycle_path(self, builder, make_app):
        """Test the stopper of a long cycle records the full path."""
        builder.define_functions(
            {
                "A": {"children": [ref("B")]},
                "B": {"children": [ref("C")]},
                "C": {"children": [ref("D")]},
                "D": {"children": [ref("E")]},
                "E": {"children": [ref("A")]},
            }
        )

        tree = await builder.build(make_app(ref("A")))

        node = tree["children"][0]
        for expected in ["A", "B", "C", "D", "E"]:
            assert node["name"] == expected
            node = node["children"][0]
        assert node["type"] == "dupe-stopper"
        assert node["_path"] == ["A", "B", "C", "D", "E", "A"]

    @pytest.mark.asyncio
    async def test_context_sensitive_stoppers(self, builder, make_app):
        """Test a shared function places stoppers according to its ancestors."""
        builder.define_functions(
            {
                "A": {"children": [ref("shared")]},
                "B": {"children": [ref("shared")]},
                "shared": {"children": [ref("A"), ref("B")]},
            }
        )

        tree = await builder.build(make_app(ref("A"), ref("B")))

        shared_from_a = tree["children"][0]["children"][0]
        assert shared_from_a["name"] == "shared"
        assert shared_from_a["children"][0]["type"] == "dupe-stopper"
        assert shared_from_a["children"][0]["_cycleAt"] == "A"
        assert shared_from_a["children"][1]["name"] == "B"
        assert shared_from_a["children"][1]["type"] == "function"

        shared_from_b = tree["children"][1]["children"][0]
        assert shared_from_b["children"][0]["name"] == "A"
        assert shared_from_b["children"][0]["type"] == "function"
        assert shared_from_b["children"][1]["type"] == "dupe-stopper"
        assert shared_from_b["children"][1]["_cycleAt"] == "B"

    @pytest.mark.asyncio
    async def test_inline_function_loop(self, builder, make_app):
        """Test an inline function node takes part in cycle tracking."""
        builder.define_functions({"myfunc": {}})

        tree = await builder.build(
            make_app({"name": "MyFunc", "type": "function", "children": [ref("myfunc")]})
        )

        inline = tree["children"][0]
        assert inline["type"] == "function"
        assert inline["children"][0]["type"] == "dupe-stopper"
        assert inline["children"][0]["_path"] == ["MyFunc", "myfunc"]

    @pytest.mark.asyncio
    async def test_cycle_through_async_ref(self, builder, make_app):
        """Test cycles are detected through async wrappers."""
        builder.define_functions(
            {
                "producer": {"children": [async_ref("consumer", "WORK.Q")]},
                "consumer": {"children": [ref("producer")]},
            }
        )

        tree = await builder.build(make_app(ref("producer")))

        timer = tree["children"][0]["children"][0]
        assert timer["name"] == "WORK.Q"
        consumer = timer["children"][0]
        assert consumer["name"] == "consumer"
        assert consumer["children"][0]["_cycleAt"] == "producer"


class TestAppStructure:
    """Tests for structural nodes in the app tree."""

    @pytest.mark.asyncio
    async def test_ui_services_preserved(self, builder, make_app):
        """Test ui-services groups and methods keep their shape."""
        tree = await builder.build(
            make_app(
                {
                    "name": "ServiceGroup",
                    "type": "ui-services",
                    "children": [{"name": "method1", "type": "ui-service-method"}],
                }
            )
        )

        group = tree["children"][0]
        assert group["type"] == "ui-services"
        assert group["children"][0] == {"name": "method1", "type": "ui-service-method"}

    @pytest.mark.asyncio
    async def test_refs_inside_ui_service_methods(self, builder, make_app):
        """Test references under ui-service-methods are resolved."""
        builder.define_functions({"helperFunc": {}})

        tree = await builder.build(
            make_app(
                {
                    "name": "ServiceGroup",
                    "type": "ui-services",
                    "children": [
                        {
                            "name": "method1",
                            "type": "ui-service-method",
                            "children": [ref("helperFunc")],
                        }
                    ],
                }
            )
        )

        method = tree["children"][0]["children"][0]
        assert method["children"][0] == {"name": "helperFunc", "type": "function"}

    @pytest.mark.asyncio
    async def test_inline_queue_in_app(self, builder, make_app):
        """Test an inline queue node resolves its children."""
        builder.define_functions({"worker": {}})

        tree = await builder.build(
            make_app({"name": "JOBS.Q", "type": "queue", "children": [ref("worker")]})
        )

        queue = tree["children"][0]
        assert queue["name"] == "JOBS.Q"
        assert queue["type"] == "queue"
        assert queue["children"][0]["name"] == "worker"

    @pytest.mark.asyncio
    async def test_inline_queue_in_function(self, builder, make_app):
        """Test inline queue nodes inside function definitions are resolved."""
        builder.define_functions(
            {
                "worker": {},
                "dispatcher": {
                    "children": [{"name": "JOBS.Q", "type": "queue", "children": [ref("worker")]}]
                },
            }
        )

        tree = await builder.build(make_app(ref("dispatcher")))

        queue = tree["children"][0]["children"][0]
        assert queue["type"] == "queue"
        assert queue["children"][0] == {"name": "worker", "type": "function"}

    @pytest.mark.asyncio
    async def test_structural_child_in_function_passes_through(self, builder, make_app):
        """Test non-reference, non-queue children of functions are copied as-is."""
        builder.define_functions(
            {"writer": {"children": [{"name": "orders", "type": "table", "schema": "sales"}]}}
        )

        tree = await builder.build(make_app(ref("writer")))

        assert tree["children"][0]["children"][0] == {
            "name": "orders",
            "type": "table",
            "schema": "sales",
        }


class TestMultipleBuilds:
    """Tests for repeated builds on one builder."""

    @pytest.mark.asyncio
    async def test_sequential_builds_are_independent(self, builder, make_app):
        """Test the cache is cleared between builds."""
        builder.define_functions({"func1": {}})

        tree1 = await builder.build(make_app(ref("func1"), name="app1"))
        tree2 = await builder.build(make_app(ref("func1"), name="app2"))

        assert tree1["name"] == "app1"
        assert tree2["name"] == "app2"
        assert tree1["children"][0]["name"] == "func1"
        assert tree2["children"][0]["name"] == "func1"
        assert tree1["children"][0] is not tree2["children"][0]

    @pytest.mark.asyncio
    async def test_redefinition_visible_in_next_build(self, builder, make_app):
        """Test a build sees the registry as it is when build() starts."""
        builder.define_functions({"func1": {"owner": "old"}})
        await builder.build(make_app(ref("func1")))

        builder.define_functions({"func1": {"owner": "new"}})
        tree = await builder.build(make_app(ref("func1")))

        assert tree["children"][0]["owner"] == "new"

    @pytest.mark.asyncio
    async def test_concurrent_build_rejected(self, make_app):
        """Test a second build on a busy builder raises."""
        builder = TreeBuilder()
        builder.define_functions({"slow": {"children": [async_ref("leaf")]}, "leaf": {}})

        async def slow_resolver(function_name, queue_name):
            await asyncio.sleep(0.01)
            return None

        builder.set_async_resolver(slow_resolver)

        results = await asyncio.gather(
            builder.build(make_app(ref("slow"))),
            builder.build(make_app(ref("slow"))),
            return_exceptions=True,
        )

        assert isinstance(results[0], dict)
        assert isinstance(results[1], BuildInProgressError)
