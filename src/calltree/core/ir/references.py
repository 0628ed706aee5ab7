"""Helpers for writing reference nodes in Python-defined function pools and app trees."""

from __future__ import annotations

from typing import Any


def ref(name: str) -> dict[str, Any]:
    """Synchronous reference to function ``name``."""
    return {"ref": name}


def async_ref(name: str, queue_name: str | None = None, **props: Any) -> dict[str, Any]:
    """
    Queue-mediated reference to function ``name``.

    Args:
        name: Referenced function
        queue_name: Queue the call goes through; defaults to the function's own queueName
        **props: Extra display properties for the timer node
    """
    node: dict[str, Any] = {"ref": name, "async": True}
    if queue_name is not None:
        node["queueName"] = queue_name
    node.update(props)
    return node


def topic_publish_ref(
    topic_name: str | None, queue_name: str | None = None, **props: Any
) -> dict[str, Any]:
    """
    Publish to ``topic_name``.

    Args:
        topic_name: Topic published to
        queue_name: Queue backing the topic, if known
        **props: Extra display properties for the topic node
    """
    node: dict[str, Any] = {"topicName": topic_name, "topicPublish": True, "async": False}
    if queue_name is not None:
        node["queueName"] = queue_name
    node.update(props)
    return node


__all__ = ["ref", "async_ref", "topic_publish_ref"]
