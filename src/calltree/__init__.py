"""
calltree - resolve workflow application descriptions into call trees.

Turns a pool of named functions (with sync, async-queue, and topic-publish
references between them) plus an application tree into a fully materialized,
cycle-safe tree for display.
"""

from __future__ import annotations

from ._version import get_version
from .core import ir
from .core.config import BuilderConfig, UnresolvedSeverity
from .core.errors import (
    BuildInProgressError,
    CalltreeError,
    ConfigError,
    NodeSpecError,
    ResolverError,
)
from .core.ir import NodeType, async_ref, ref, topic_publish_ref
from .core.tree_builder import TreeBuilder

__version__ = get_version()

__all__ = [
    "__version__",
    "ir",
    "TreeBuilder",
    "BuilderConfig",
    "UnresolvedSeverity",
    "NodeType",
    "ref",
    "async_ref",
    "topic_publish_ref",
    "CalltreeError",
    "ConfigError",
    "NodeSpecError",
    "ResolverError",
    "BuildInProgressError",
]
