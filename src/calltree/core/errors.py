"""
Error types for calltree configuration, ingestion, and resolution.

Unresolved references, cycles, and resolver failures are not errors: they are
represented as diagnostic nodes in the resolved tree. The exceptions here cover
misconfiguration, unusable input, and misuse of a builder.
"""

from __future__ import annotations


class CalltreeError(Exception):
    """Base exception for all calltree errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ConfigError(CalltreeError):
    """
    Raised when builder configuration is invalid.

    Examples:
    - Unknown unresolved severity
    - Unparseable boolean in an environment variable
    """

    pass


class NodeSpecError(CalltreeError):
    """
    Raised when an input node cannot be ingested.

    Examples:
    - A child entry that is not a mapping
    - A reference whose ``ref`` is not a string
    """

    def __init__(self, message: str, node: object | None = None):
        self.node = node
        super().__init__(message)


class ResolverError(CalltreeError):
    """
    Raised when an external async or topic-publish resolver fails.

    Never escapes ``TreeBuilder.build()``: the engine converts it into a
    metadata line on the node being resolved.
    """

    def __init__(self, resolver_name: str, cause: BaseException):
        self.resolver_name = resolver_name
        self.cause = cause
        super().__init__(f"{resolver_name} errored out: {cause}")


class BuildInProgressError(CalltreeError):
    """Raised when ``build()`` is re-entered on a builder that is still building."""

    pass
