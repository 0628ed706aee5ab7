"""
Function registry.

Holds the named, reusable function definitions that app trees and other
functions reference. Lookups are case-insensitive: definitions are keyed by
the lowercased name, and the original spelling is kept as ``display_name``
for output and for resolver calls.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import NodeSpecError
from .ir import NodeSpec, RawMetadataLines, parse_node

logger = logging.getLogger(__name__)

# Fields consumed by the engine rather than passed through to output nodes
_ENGINE_FIELDS = frozenset({"children", "app", "queue_name", "display_name", "metadata_lines"})


def normalize_name(name: str) -> str:
    """Registry key for a function name."""
    return name.lower()


class FunctionDefinition(BaseModel):
    """
    A registered function.

    Attributes:
        display_name: Original-case name used in output and resolver calls
        children: References and inline nodes, in order
        app: Owning application, rendered as a leading metadata line
        queue_name: Default queue for async references to this function
        metadata_lines: Display lines, preserved after any synthesized lines

    Any other keys are kept and passed through to the resolved node.
    """

    display_name: str = Field(alias="displayName")
    children: list[NodeSpec] = Field(default_factory=list)
    app: str | None = None
    queue_name: str | None = Field(default=None, alias="queueName")
    metadata_lines: RawMetadataLines | None = None

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    @field_validator("children", mode="before")
    @classmethod
    def _parse_children(cls, value: Any) -> Any:
        if value is None:
            return []
        return [parse_node(child) for child in value]

    def passthrough_props(self) -> dict[str, Any]:
        """Display properties copied verbatim onto the resolved function node."""
        return self.model_dump(by_alias=True, exclude_unset=True, exclude=set(_ENGINE_FIELDS))


class FunctionRegistry:
    """Case-insensitive mapping of function name to definition."""

    def __init__(self) -> None:
        self._definitions: dict[str, FunctionDefinition] = {}

    def define(
        self,
        name: str,
        children: list[Any] | None = None,
        extra_props: Mapping[str, Any] | None = None,
    ) -> FunctionDefinition:
        """
        Insert or replace a definition.

        Args:
            name: Function name; its spelling becomes the display name unless
                ``extra_props`` supplies ``displayName``
            children: Child references and inline nodes
            extra_props: Other definition fields and display properties

        Returns:
            The stored definition

        Raises:
            NodeSpecError: If the definition or one of its children is malformed
        """
        props = dict(extra_props or {})
        props.pop("children", None)
        if not props.get("displayName") and not props.get("display_name"):
            props["displayName"] = name
        props["children"] = children

        try:
            definition = FunctionDefinition.model_validate(props)
        except ValidationError as e:
            raise NodeSpecError(f"Invalid definition for function '{name}': {e}", props) from e

        key = normalize_name(name)
        if key in self._definitions:
            logger.debug("Redefining function %s", name)
        self._definitions[key] = definition
        return definition

    def define_many(self, definitions: Mapping[str, Mapping[str, Any] | None]) -> None:
        """Insert or replace several definitions; later entries win on name collision."""
        for name, definition in definitions.items():
            if definition is not None and not isinstance(definition, Mapping):
                raise NodeSpecError(
                    f"Definition for function '{name}' must be a mapping, "
                    f"got {type(definition).__name__}",
                    definition,
                )
            props = dict(definition or {})
            children = props.pop("children", None)
            self.define(name, children, props)

    def get(self, name: str) -> FunctionDefinition | None:
        return self._definitions.get(normalize_name(name))

    def display_name(self, name: str) -> str:
        """Stored display name for ``name``, or ``name`` itself if undefined."""
        definition = self.get(name)
        return definition.display_name if definition else name

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and normalize_name(name) in self._definitions

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def items(self) -> Iterator[tuple[str, FunctionDefinition]]:
        return iter(self._definitions.items())


__all__ = ["FunctionDefinition", "FunctionRegistry", "normalize_name"]
