"""
Node types for the calltree IR.

Input nodes (function children and the root application tree) arrive as plain
mappings. ``parse_node`` decides once, at ingestion, which variant a mapping
is and returns the matching spec model:

- SyncRef: ``{"ref": name}``, substituted by the function's subtree
- AsyncRef: ``{"ref": name, "async": true, "queueName"?: ...}``, wrapped in a timer node
- TopicPublishRef: ``{"topicPublish": true, "topicName"?: ..., "queueName"?: ...}``, a topic leaf
- InlineQueueNode: a pre-typed ``queue``/``timer``/``topic`` node with its own children
- StructuralNode: anything else (``app``, ``ui-services``, ``ui-service-method``, ...)

Unknown keys on any variant are kept and passed through to the output node.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum, StrEnum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import NodeSpecError

# ============================================================================
# Output node types
# ============================================================================


class NodeType(StrEnum):
    """Values of the ``type`` field on nodes."""

    APP = "app"
    FUNCTION = "function"
    UI_SERVICES = "ui-services"
    UI_SERVICE_METHOD = "ui-service-method"
    TIMER = "timer"
    TOPIC = "topic"
    QUEUE = "queue"
    DUPE_STOPPER = "dupe-stopper"
    WARNING = "warning"
    ERROR = "error"


QUEUE_LIKE_TYPES = frozenset({NodeType.QUEUE, NodeType.TIMER, NodeType.TOPIC})


class MetadataLine(BaseModel):
    """
    A display line synthesized by the engine.

    Lines supplied in input stay plain mappings and are copied verbatim;
    they never pass through this model.

    Attributes:
        text: Line text
        clickable: Whether the renderer should make the line interactive
        data: Opaque payload handed back to the renderer on click
    """

    text: str
    clickable: bool | None = None
    data: dict[str, Any] | None = None

    model_config = ConfigDict(frozen=True)

    def to_dict(self) -> dict[str, Any]:
        """Return the line as it appears in output, without unset keys."""
        return self.model_dump(exclude_unset=True)


# Input metadata lines: mappings with at least "text", otherwise opaque
RawMetadataLines = list[dict[str, Any]]


def copy_metadata_lines(lines: RawMetadataLines | None) -> RawMetadataLines:
    """Shallow-copy input lines so output lists never alias the input."""
    return [dict(line) for line in lines or []]


# ============================================================================
# Input node specs
# ============================================================================


class NodeKind(str, Enum):
    """Ingestion-time classification of an input node."""

    SYNC_REF = "sync_ref"
    ASYNC_REF = "async_ref"
    TOPIC_PUBLISH_REF = "topic_publish_ref"
    INLINE_QUEUE = "inline_queue"
    STRUCTURAL = "structural"


class _NodeSpec(BaseModel):
    kind: ClassVar[NodeKind]

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    @property
    def extra_props(self) -> dict[str, Any]:
        """Keys not known to the model, in input order."""
        return dict(self.model_extra or {})

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the input mapping shape."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class SyncRef(_NodeSpec):
    """Direct reference to a function by name."""

    kind: ClassVar[NodeKind] = NodeKind.SYNC_REF

    ref: str


class AsyncRef(_NodeSpec):
    """Queue-mediated reference to a function."""

    kind: ClassVar[NodeKind] = NodeKind.ASYNC_REF

    ref: str
    is_async: bool = Field(default=True, alias="async")
    queue_name: str | None = Field(default=None, alias="queueName")


class TopicPublishRef(_NodeSpec):
    """Publish to a topic. Terminal: never carries function children."""

    kind: ClassVar[NodeKind] = NodeKind.TOPIC_PUBLISH_REF

    topic_publish: bool = Field(default=True, alias="topicPublish")
    topic_name: str | None = Field(default=None, alias="topicName")
    queue_name: str | None = Field(default=None, alias="queueName")
    ref: str | None = None
    is_async: bool = Field(default=False, alias="async")


class _ContainerSpec(_NodeSpec):
    children: list[NodeSpec] | None = None

    @field_validator("children", mode="before")
    @classmethod
    def _parse_children(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (str, bytes)) or not hasattr(value, "__iter__"):
            raise ValueError("children must be a list of nodes")
        return [parse_node(child) for child in value]

    def fields(self) -> dict[str, Any]:
        """Own fields and pass-through props, without children."""
        return self.model_dump(by_alias=True, exclude_unset=True, exclude={"children"})


class InlineQueueNode(_ContainerSpec):
    """A ``queue``/``timer``/``topic`` node written inline rather than referenced."""

    kind: ClassVar[NodeKind] = NodeKind.INLINE_QUEUE

    type: str


class StructuralNode(_ContainerSpec):
    """A non-reference node: app root, ui-services group, ui-service-method, ..."""

    kind: ClassVar[NodeKind] = NodeKind.STRUCTURAL

    name: str | None = None
    type: str | None = None
    metadata_lines: RawMetadataLines | None = None


NodeSpec = SyncRef | AsyncRef | TopicPublishRef | InlineQueueNode | StructuralNode

_SPEC_TYPES = (SyncRef, AsyncRef, TopicPublishRef, InlineQueueNode, StructuralNode)


def classify(raw: Mapping[str, Any]) -> type[_NodeSpec]:
    """Pick the spec class for a raw mapping by the fields it carries."""
    ref = raw.get("ref")
    if ref and raw.get("async"):
        return AsyncRef
    if raw.get("topicPublish"):
        return TopicPublishRef
    if ref:
        return SyncRef
    if raw.get("type") in QUEUE_LIKE_TYPES:
        return InlineQueueNode
    return StructuralNode


def parse_node(raw: Any) -> NodeSpec:
    """
    Convert a raw input mapping into its spec model.

    Already-parsed specs are returned unchanged.

    Raises:
        NodeSpecError: If ``raw`` is not a mapping or has invalid known fields
    """
    if isinstance(raw, _SPEC_TYPES):
        return raw
    if not isinstance(raw, Mapping):
        raise NodeSpecError(f"Expected a mapping for a tree node, got {type(raw).__name__}", raw)

    spec_cls = classify(raw)
    try:
        return spec_cls.model_validate(dict(raw))  # type: ignore[return-value]
    except ValidationError as e:
        raise NodeSpecError(f"Invalid {spec_cls.kind.value} node: {e}", raw) from e


InlineQueueNode.model_rebuild()
StructuralNode.model_rebuild()


__all__ = [
    "NodeType",
    "QUEUE_LIKE_TYPES",
    "MetadataLine",
    "RawMetadataLines",
    "copy_metadata_lines",
    "NodeKind",
    "NodeSpec",
    "SyncRef",
    "AsyncRef",
    "TopicPublishRef",
    "InlineQueueNode",
    "StructuralNode",
    "classify",
    "parse_node",
]
