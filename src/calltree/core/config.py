"""
Builder configuration.

Configuration is fixed when a ``TreeBuilder`` is constructed. It can be given
directly, as a mapping using either snake_case or the camelCase keys used by
JSON configuration, or read from ``CALLTREE_*`` environment variables.

Usage:
    from calltree.core.config import BuilderConfig

    config = BuilderConfig(unresolved_severity="error", log_node_types=["function"])
    config = BuilderConfig.model_validate({"filterEmptyUiServices": True})
    config = BuilderConfig.from_env()
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

logger = logging.getLogger(__name__)


class UnresolvedSeverity(StrEnum):
    """Node type given to references that cannot be resolved."""

    WARNING = "warning"
    ERROR = "error"


# Environment variable names
UNRESOLVED_SEVERITY_VAR = "CALLTREE_UNRESOLVED_SEVERITY"
FILTER_EMPTY_UI_SERVICE_METHODS_VAR = "CALLTREE_FILTER_EMPTY_UI_SERVICE_METHODS"
FILTER_EMPTY_UI_SERVICES_VAR = "CALLTREE_FILTER_EMPTY_UI_SERVICES"
LOG_NODE_TYPES_VAR = "CALLTREE_LOG_NODE_TYPES"

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})


class BuilderConfig(BaseModel):
    """
    Configuration for a TreeBuilder.

    Attributes:
        unresolved_severity: Type of the diagnostic node produced for a missing function
        filter_empty_ui_service_methods: Drop ui-service-method nodes without children
        filter_empty_ui_services: Drop ui-services nodes left without children
        log_node_types: Node types that receive a leading clickable "Logs" metadata line
    """

    unresolved_severity: UnresolvedSeverity = Field(
        default=UnresolvedSeverity.WARNING, alias="unresolvedSeverity"
    )
    filter_empty_ui_service_methods: bool = Field(
        default=False, alias="filterEmptyUiServiceMethods"
    )
    filter_empty_ui_services: bool = Field(default=False, alias="filterEmptyUiServices")
    log_node_types: tuple[str, ...] = Field(default=(), alias="logNodeTypes")

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @field_validator("unresolved_severity", mode="before")
    @classmethod
    def _default_empty_severity(cls, value: Any) -> Any:
        # A falsy severity means "use the default", matching JSON configs that send "" or null
        return value or UnresolvedSeverity.WARNING

    @field_validator("log_node_types", mode="before")
    @classmethod
    def _coerce_log_node_types(cls, value: Any) -> Any:
        if value is None:
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value

    def logs_enabled_for(self, node_type: str | None) -> bool:
        """Return True if nodes of ``node_type`` get a Logs metadata line."""
        return node_type is not None and node_type in self.log_node_types

    @classmethod
    def coerce(cls, value: BuilderConfig | Mapping[str, Any] | None) -> BuilderConfig:
        """
        Build a config from whatever a caller handed to ``TreeBuilder``.

        Raises:
            ConfigError: If the mapping holds invalid values
        """
        if value is None:
            return cls()
        if isinstance(value, BuilderConfig):
            return value
        try:
            return cls.model_validate(dict(value))
        except ValidationError as e:
            raise ConfigError(f"Invalid builder configuration: {e}") from e

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BuilderConfig:
        """
        Read configuration from ``CALLTREE_*`` environment variables.

        Unset variables keep their defaults.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Raises:
            ConfigError: If a variable holds an unusable value
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        severity = env.get(UNRESOLVED_SEVERITY_VAR, "").strip().lower()
        if severity:
            values["unresolved_severity"] = severity

        for var, field_name in (
            (FILTER_EMPTY_UI_SERVICE_METHODS_VAR, "filter_empty_ui_service_methods"),
            (FILTER_EMPTY_UI_SERVICES_VAR, "filter_empty_ui_services"),
        ):
            raw = env.get(var)
            if raw is not None and raw.strip():
                values[field_name] = _parse_bool(var, raw)

        log_types = env.get(LOG_NODE_TYPES_VAR)
        if log_types is not None:
            values["log_node_types"] = log_types

        logger.debug("Builder configuration from environment: %s", values)
        return cls.coerce(values)


def _parse_bool(var: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(
        f"Invalid boolean for {var}: '{raw}'. Use one of: "
        f"{', '.join(sorted(_TRUE_VALUES | _FALSE_VALUES))}"
    )


__all__ = [
    "BuilderConfig",
    "UnresolvedSeverity",
    "UNRESOLVED_SEVERITY_VAR",
    "FILTER_EMPTY_UI_SERVICE_METHODS_VAR",
    "FILTER_EMPTY_UI_SERVICES_VAR",
    "LOG_NODE_TYPES_VAR",
]
