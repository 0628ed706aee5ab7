"""
Core resolution engine for calltree.

Modules:
- ir: input node specs and the node type vocabulary
- registry: case-insensitive function definitions
- resolvers: external async / topic-publish resolver protocol
- metadata: synthesized metadata lines
- tree_builder: the two-pass TreeBuilder
- config: BuilderConfig
- errors: exception hierarchy
"""

from .config import BuilderConfig, UnresolvedSeverity
from .errors import BuildInProgressError, CalltreeError, ConfigError, NodeSpecError, ResolverError
from .registry import FunctionDefinition, FunctionRegistry, normalize_name
from .resolvers import AsyncResolver, ResolverOutcome, TopicPublishResolver, invoke_resolver
from .tree_builder import OutputNode, TreeBuilder

__all__ = [
    # Engine
    "TreeBuilder",
    "OutputNode",
    # Registry
    "FunctionDefinition",
    "FunctionRegistry",
    "normalize_name",
    # Resolver protocol
    "AsyncResolver",
    "TopicPublishResolver",
    "ResolverOutcome",
    "invoke_resolver",
    # Configuration
    "BuilderConfig",
    "UnresolvedSeverity",
    # Errors
    "CalltreeError",
    "ConfigError",
    "NodeSpecError",
    "ResolverError",
    "BuildInProgressError",
]
