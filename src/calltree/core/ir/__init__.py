"""
calltree Internal Representation (IR).

Typed models for the input grammar (references and structural nodes), the
metadata line format, and the node type vocabulary shared with the output tree.
"""

from .nodes import (
    QUEUE_LIKE_TYPES,
    AsyncRef,
    InlineQueueNode,
    MetadataLine,
    NodeKind,
    NodeSpec,
    NodeType,
    RawMetadataLines,
    StructuralNode,
    SyncRef,
    TopicPublishRef,
    classify,
    copy_metadata_lines,
    parse_node,
)
from .references import async_ref, ref, topic_publish_ref

__all__ = [
    # Node vocabulary
    "NodeType",
    "QUEUE_LIKE_TYPES",
    "MetadataLine",
    "RawMetadataLines",
    "copy_metadata_lines",
    # Input specs
    "NodeKind",
    "NodeSpec",
    "SyncRef",
    "AsyncRef",
    "TopicPublishRef",
    "InlineQueueNode",
    "StructuralNode",
    "classify",
    "parse_node",
    # Helpers
    "ref",
    "async_ref",
    "topic_publish_ref",
]
