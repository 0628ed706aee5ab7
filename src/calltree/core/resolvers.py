"""
External resolver protocol.

Two optional callbacks let the caller enrich queue-like nodes while a tree is
built:

- async resolver: ``(function_name, effective_queue_name) -> props | None``,
  called for every async reference
- topic-publish resolver: ``(topic_name, inline_queue_name) -> props | None``,
  called for every topic-publish reference

Either may be a plain function or a coroutine function. A returned
``queueName`` overrides the node name; all other returned keys are merged
onto the node. A resolver that raises (or returns something other than a
mapping) fails only the node it was called for.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from .errors import ResolverError

logger = logging.getLogger(__name__)

ResolverResult = Mapping[str, Any] | None

# Names used in logs and in the metadata line attached on failure
ASYNC_RESOLVER = "asyncResolver"
TOPIC_PUBLISH_RESOLVER = "topicPublishResolver"


class AsyncResolver(Protocol):
    def __call__(
        self, function_name: str, queue_name: str | None, /
    ) -> ResolverResult | Awaitable[ResolverResult]: ...


class TopicPublishResolver(Protocol):
    def __call__(
        self, topic_name: str, queue_name: str | None, /
    ) -> ResolverResult | Awaitable[ResolverResult]: ...


@dataclass
class ResolverOutcome:
    """
    What a resolver call contributed to a node.

    Attributes:
        queue_name: Queue name returned by the resolver, if any
        props: Remaining returned properties, merged onto the node
        error: Set when the resolver failed; ``queue_name`` and ``props`` are then empty
    """

    queue_name: str | None = None
    props: dict[str, Any] = field(default_factory=dict)
    error: ResolverError | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


async def invoke_resolver(
    resolver_name: str,
    resolver: AsyncResolver | TopicPublishResolver | None,
    subject: str,
    queue_name: str | None,
    log: logging.Logger | logging.LoggerAdapter[Any] | None = None,
) -> ResolverOutcome:
    """
    Call an external resolver, isolating its failures.

    Args:
        resolver_name: Name used in log output and the failure message
        resolver: The callback, or None if not configured
        subject: Function display name or topic name
        queue_name: Queue name known before resolution
        log: Logger to report to (defaults to this module's logger)

    Returns:
        ResolverOutcome; never raises for resolver failures
    """
    log = log or logger
    if resolver is None:
        log.debug("%s was not set", resolver_name)
        return ResolverOutcome()

    try:
        result = resolver(subject, queue_name)
        if inspect.isawaitable(result):
            result = await result
        if result is not None and not isinstance(result, Mapping):
            raise TypeError(f"expected a mapping or None, got {type(result).__name__}")
    except Exception as e:
        error = ResolverError(resolver_name, e)
        log.error(
            "%s failed for %s (queue %s): %s", resolver_name, subject, queue_name, e, exc_info=e
        )
        return ResolverOutcome(error=error)

    props = dict(result or {})
    resolved_queue = props.pop("queueName", None)
    return ResolverOutcome(queue_name=resolved_queue, props=props)


__all__ = [
    "ASYNC_RESOLVER",
    "TOPIC_PUBLISH_RESOLVER",
    "AsyncResolver",
    "TopicPublishResolver",
    "ResolverOutcome",
    "ResolverResult",
    "invoke_resolver",
]
