"""
Metadata line synthesis.

Builds the ``metadata_lines`` entries the engine adds on top of what the input
already carries: the ``app`` line on function nodes, the clickable "Logs" line
for configured node types, and the line recording a failed resolver.

Nodes passed to ``annotate_logs`` must be freshly built, never a cached
subtree: the node itself is updated, but existing line lists are replaced
rather than mutated.
"""

from __future__ import annotations

from typing import Any

from .config import BuilderConfig
from .errors import ResolverError
from .ir import MetadataLine, NodeType, copy_metadata_lines
from .registry import FunctionDefinition

LOGS_TEXT = "Logs"


def app_line(app: str) -> dict[str, Any]:
    return MetadataLine(text=app, clickable=False).to_dict()


def logs_line(name: str | None, node_type: str, extra: dict[str, Any] | None = None) -> dict[str, Any]:
    data = {"name": name, "type": node_type, **(extra or {})}
    return MetadataLine(text=LOGS_TEXT, clickable=True, data=data).to_dict()


def resolver_error_line(error: ResolverError) -> dict[str, Any]:
    return MetadataLine(text=error.message, clickable=False).to_dict()


def function_metadata_lines(definition: FunctionDefinition) -> list[dict[str, Any]] | None:
    """Lines for a resolved function: the app line first, then the definition's own."""
    if definition.metadata_lines is None and not definition.app:
        return None
    lines = copy_metadata_lines(definition.metadata_lines)
    if definition.app:
        lines.insert(0, app_line(definition.app))
    return lines


def append_line(node: dict[str, Any], line: dict[str, Any]) -> None:
    node["metadata_lines"] = [*(node.get("metadata_lines") or []), line]


def annotate_logs(
    node: dict[str, Any], config: BuilderConfig, extra: dict[str, Any] | None = None
) -> dict[str, Any]:
    """
    Prepend a Logs line if the node's type is configured for it.

    Dupe-stoppers are never annotated.
    """
    node_type = node.get("type")
    if node_type == NodeType.DUPE_STOPPER or not config.logs_enabled_for(node_type):
        return node
    line = logs_line(node.get("name"), node_type, extra)
    node["metadata_lines"] = [line, *(node.get("metadata_lines") or [])]
    return node


__all__ = [
    "LOGS_TEXT",
    "app_line",
    "logs_line",
    "resolver_error_line",
    "function_metadata_lines",
    "append_line",
    "annotate_logs",
]
