"""
Tree builder: resolves a function registry and an app tree into a display tree.

Resolution runs in two passes:

1. Every registered function is resolved into a subtree and cached. The cache
   is keyed by the function *and* the set of functions already on the path
   above it, because the same function needs different cycle stoppers
   depending on which ancestors are active.
2. The app tree is walked and every reference is replaced by the cached
   subtree for its context (resolving on demand if the context is new), with
   ui-services filtering applied on the way.

Children are resolved concurrently with ``asyncio.gather``. Concurrent
requests for the same cache key join one in-flight task, so each
(function, context) pair is resolved once and yields one node object.

Example:
    builder = TreeBuilder({"unresolvedSeverity": "error"})
    builder.define_functions({
        "loadOrder": {"children": [ref("readDb")]},
        "readDb": {"app": "orders-db"},
    })
    tree = await builder.build({"name": "orders", "type": "app", "children": [ref("loadOrder")]})
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from .config import BuilderConfig
from .errors import BuildInProgressError
from .ir import (
    AsyncRef,
    InlineQueueNode,
    NodeKind,
    NodeSpec,
    NodeType,
    StructuralNode,
    TopicPublishRef,
    parse_node,
    references,
)
from .metadata import annotate_logs, append_line, function_metadata_lines, resolver_error_line
from .registry import FunctionDefinition, FunctionRegistry, normalize_name
from .resolvers import (
    ASYNC_RESOLVER,
    TOPIC_PUBLISH_RESOLVER,
    AsyncResolver,
    TopicPublishResolver,
    invoke_resolver,
)

OutputNode = dict[str, Any]
Visited = frozenset[str]
NamePath = tuple[str, ...]

UNKNOWN_TOPIC = "unknown topic"


def cache_key(normalized_name: str, visited: Visited) -> str:
    """Cache key for a function resolved beneath the ancestors in ``visited``."""
    return f"{normalized_name}::{','.join(sorted(visited))}"


class TreeBuilder:
    """
    Two-pass resolver from function definitions and an app tree to a display tree.

    A builder holds one registry and may build many trees, one at a time.
    Cached subtrees never survive from one ``build()`` to the next.
    """

    ref = staticmethod(references.ref)
    async_ref = staticmethod(references.async_ref)
    topic_publish_ref = staticmethod(references.topic_publish_ref)

    def __init__(
        self,
        config: BuilderConfig | Mapping[str, Any] | None = None,
        *,
        logger: logging.Logger | logging.LoggerAdapter[Any] | None = None,
    ):
        """
        Initialize a builder.

        Args:
            config: BuilderConfig, or a mapping of its fields (snake_case or camelCase)
            logger: Logger for engine diagnostics (defaults to this module's logger)

        Raises:
            ConfigError: If ``config`` is a mapping with invalid values
        """
        self.config = BuilderConfig.coerce(config)
        self.function_defs = FunctionRegistry()
        self.resolved_functions: dict[str, OutputNode] = {}
        self.async_resolver: AsyncResolver | None = None
        self.topic_publish_resolver: TopicPublishResolver | None = None
        self._in_flight: dict[str, asyncio.Task[OutputNode]] = {}
        self._log = logger or logging.getLogger(__name__)
        self._building = False
        self._log.debug("TreeBuilder constructed: %s", self.config)

    # -----------------------------------------------------------------------
    # Registration
    # -----------------------------------------------------------------------

    def set_async_resolver(self, resolver: AsyncResolver | None) -> TreeBuilder:
        self.async_resolver = resolver
        return self

    def set_topic_publish_resolver(self, resolver: TopicPublishResolver | None) -> TreeBuilder:
        self.topic_publish_resolver = resolver
        return self

    def define_function(
        self,
        name: str,
        children: list[Any] | None = None,
        extra_props: Mapping[str, Any] | None = None,
    ) -> TreeBuilder:
        """Define (or redefine) one function. See ``FunctionRegistry.define``."""
        self.function_defs.define(name, children, extra_props)
        return self

    def define_functions(self, definitions: Mapping[str, Mapping[str, Any] | None]) -> TreeBuilder:
        """Define several functions from a ``{name: definition}`` mapping."""
        self.function_defs.define_many(definitions)
        self._log.debug("Registry holds %d functions", len(self.function_defs))
        return self

    # -----------------------------------------------------------------------
    # Build
    # -----------------------------------------------------------------------

    async def build(self, root: Mapping[str, Any] | NodeSpec) -> OutputNode | None:
        """
        Resolve ``root`` against the registry.

        Args:
            root: App tree, usually ``{"name": ..., "type": "app", "children": [...]}``

        Returns:
            The resolved tree, or None if the root itself was filtered out

        Raises:
            BuildInProgressError: If another build on this builder has not finished
            NodeSpecError: If ``root`` cannot be ingested
        """
        if self._building:
            raise BuildInProgressError(
                "TreeBuilder.build() is already running on this builder; "
                "await it first or use a separate builder"
            )
        self._building = True
        try:
            root_spec = parse_node(root)
            self.resolved_functions.clear()
            self._in_flight.clear()

            self._log.info("Building tree for %s", getattr(root_spec, "name", None))
            await self._pre_resolve_all_functions()
            self._log.debug("Pre-resolved %d function contexts", len(self.resolved_functions))

            tree = await self._build_node(root_spec, frozenset(), ())
        finally:
            self._cancel_in_flight()
            self._building = False

        self._log.info(
            "Built tree for %s (%d function contexts resolved)",
            getattr(root_spec, "name", None),
            len(self.resolved_functions),
        )
        return tree

    # -----------------------------------------------------------------------
    # Pass 1: function resolution
    # -----------------------------------------------------------------------

    async def _pre_resolve_all_functions(self) -> None:
        root_context: Visited = frozenset()
        for key in list(self.function_defs):
            if cache_key(key, root_context) not in self.resolved_functions:
                await self._resolve_function(key, root_context, ())

    def _cancel_in_flight(self) -> None:
        """Cancel resolutions still running when a build ends, e.g. after a failed branch."""
        for task in self._in_flight.values():
            task.cancel()
        self._in_flight.clear()

    async def _resolve_function(self, name: str, visited: Visited, path: NamePath) -> OutputNode:
        """
        Resolve ``name`` beneath the ancestors in ``visited``.

        Returns a dupe-stopper if ``name`` is already an ancestor, the cached
        node for this context if there is one, or the result of the in-flight
        resolution for this context if one is running.
        """
        normalized = normalize_name(name)
        # Ancestors are checked before the cache; a cached subtree never replaces a stopper
        if normalized in visited:
            return self._cycle_stopper(self.function_defs.display_name(name), path)

        key = cache_key(normalized, visited)
        cached = self.resolved_functions.get(key)
        if cached is not None:
            self._log.debug("Cache hit for %s", key)
            return cached

        pending = self._in_flight.get(key)
        if pending is not None:
            self._log.debug("Joining in-flight resolution of %s", key)
            return await pending

        definition = self.function_defs.get(name)
        if definition is None:
            node = self._unresolved_node(name)
            self.resolved_functions[key] = node
            return node

        # Reserve the key before any child is awaited
        task = asyncio.ensure_future(
            self._materialize_function(
                definition, key, visited | {normalized}, (*path, definition.display_name)
            )
        )
        self._in_flight[key] = task
        return await task

    async def _materialize_function(
        self, definition: FunctionDefinition, key: str, visited: Visited, path: NamePath
    ) -> OutputNode:
        try:
            node: OutputNode = {
                "name": definition.display_name,
                "type": NodeType.FUNCTION.value,
                **definition.passthrough_props(),
            }
            lines = function_metadata_lines(definition)
            if lines is not None:
                node["metadata_lines"] = lines

            if definition.children:
                node["children"] = list(
                    await asyncio.gather(
                        *(self._resolve_child(child, visited, path) for child in definition.children)
                    )
                )

            annotate_logs(node, self.config, {"app": definition.app} if definition.app else None)
            return self.resolved_functions.setdefault(key, node)
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    async def _resolve_child(self, child: NodeSpec, visited: Visited, path: NamePath) -> OutputNode:
        match child.kind:
            case NodeKind.SYNC_REF:
                return await self._resolve_function(child.ref, visited, path)
            case NodeKind.ASYNC_REF:
                return await self._resolve_async_ref(child, visited, path)
            case NodeKind.TOPIC_PUBLISH_REF:
                return await self._resolve_topic_publish_ref(child)
            case NodeKind.INLINE_QUEUE:
                return await self._resolve_inline_queue(child, visited, path)
            case _:
                return child.to_dict()

    async def _resolve_inline_queue(
        self, child: InlineQueueNode, visited: Visited, path: NamePath
    ) -> OutputNode:
        node = child.fields()
        node["children"] = list(
            await asyncio.gather(
                *(self._resolve_child(grandchild, visited, path) for grandchild in child.children or [])
            )
        )
        return annotate_logs(node, self.config)

    # -----------------------------------------------------------------------
    # Queue-like references (both passes)
    # -----------------------------------------------------------------------

    async def _resolve_async_ref(self, child: AsyncRef, visited: Visited, path: NamePath) -> OutputNode:
        definition = self.function_defs.get(child.ref)
        display_name = definition.display_name if definition else child.ref
        default_queue = child.queue_name or (definition.queue_name if definition else None)

        outcome = await invoke_resolver(
            ASYNC_RESOLVER, self.async_resolver, display_name, default_queue, self._log
        )
        queue_name = outcome.queue_name or default_queue or f"{display_name}_queue"

        node: OutputNode = {
            "name": queue_name,
            "type": NodeType.TIMER.value,
            **child.extra_props,
            **outcome.props,
        }
        if outcome.failed:
            append_line(node, resolver_error_line(outcome.error))
        node["children"] = [await self._resolve_function(child.ref, visited, path)]
        return annotate_logs(node, self.config)

    async def _resolve_topic_publish_ref(self, child: TopicPublishRef) -> OutputNode:
        topic_name = child.topic_name or UNKNOWN_TOPIC

        outcome = await invoke_resolver(
            TOPIC_PUBLISH_RESOLVER, self.topic_publish_resolver, topic_name, child.queue_name, self._log
        )
        fallback = f"{child.topic_name}_queue" if child.topic_name else UNKNOWN_TOPIC
        queue_name = outcome.queue_name or child.queue_name or fallback

        node: OutputNode = {
            "name": queue_name,
            "type": NodeType.TOPIC.value,
            **child.extra_props,
            **outcome.props,
        }
        if outcome.failed:
            append_line(node, resolver_error_line(outcome.error))
        return annotate_logs(node, self.config)

    # -----------------------------------------------------------------------
    # Pass 2: app tree materialization
    # -----------------------------------------------------------------------

    async def _build_node(
        self, node: NodeSpec, visited: Visited, path: NamePath
    ) -> OutputNode | None:
        match node.kind:
            case NodeKind.SYNC_REF:
                return await self._resolve_function(node.ref, visited, path)
            case NodeKind.ASYNC_REF:
                return await self._resolve_async_ref(node, visited, path)
            case NodeKind.TOPIC_PUBLISH_REF:
                return await self._resolve_topic_publish_ref(node)
            case _:
                return await self._build_container(node, visited, path)

    async def _build_container(
        self, node: StructuralNode | InlineQueueNode, visited: Visited, path: NamePath
    ) -> OutputNode | None:
        result = node.fields()
        node_type = result.get("type")
        is_ui_services = node_type == NodeType.UI_SERVICES

        if node.children is None:
            if is_ui_services and self.config.filter_empty_ui_services:
                return None
            return annotate_logs(result, self.config)

        # Only function nodes take part in cycle tracking
        name = result.get("name")
        if node_type == NodeType.FUNCTION and name:
            normalized = normalize_name(name)
            if normalized in visited:
                return self._cycle_stopper(name, path)
            visited = visited | {normalized}
            path = (*path, name)

        built = await asyncio.gather(*(self._build_node(child, visited, path) for child in node.children))
        children = [child for child in built if child is not None]

        if is_ui_services:
            if self.config.filter_empty_ui_service_methods:
                children = [
                    child
                    for child in children
                    if child.get("type") != NodeType.UI_SERVICE_METHOD or child.get("children")
                ]
            if self.config.filter_empty_ui_services and not children:
                return None

        result["children"] = children
        return annotate_logs(result, self.config)

    # -----------------------------------------------------------------------
    # Diagnostic nodes
    # -----------------------------------------------------------------------

    def _cycle_stopper(self, display_name: str, path: NamePath) -> OutputNode:
        return {
            "name": f"loop detected stopping ({display_name})",
            "type": NodeType.DUPE_STOPPER.value,
            "_cycleAt": display_name,
            "_path": [*path, display_name],
        }

    def _unresolved_node(self, name: str) -> OutputNode:
        self._log.warning(
            "Function %s is not defined; emitting %s node",
            name,
            self.config.unresolved_severity.value,
        )
        node: OutputNode = {
            "name": f"dependency to {name} could not be resolved so the tree may be incomplete",
            "type": self.config.unresolved_severity.value,
            "_unresolvedRef": name,
        }
        return annotate_logs(node, self.config)


__all__ = ["TreeBuilder", "OutputNode", "UNKNOWN_TOPIC", "cache_key"]
