"""MQTT topic helpers for the crash backend.

This module is the SINGLE SOURCE OF TRUTH for MQTT topic structures.
Avoid hardcoding topic strings elsewhere.
"""

from __future__ import annotations

import re
from enum import Enum

_UNSAFE_SEGMENT_RE = re.compile(r"[^A-Za-z0-9_.-]+")


class Topic(str, Enum):
    EVENTS = "events"


def _split_segments(path: str) -> tuple[str, ...]:
    if not path:
        return ()
    return tuple(segment for segment in path.split("/") if segment)


def topic_path(prefix: str, topic: Topic | str, *segments: str) -> str:
    """Join prefix, topic and optional sub-segments into a topic path."""
    parts = list(_split_segments(prefix))
    topic_segment = topic.value if isinstance(topic, Topic) else str(topic)
    topic_segment = topic_segment.strip("/")
    if not topic_segment:
        raise ValueError("topic segment cannot be empty")
    parts.append(topic_segment)
    for segment in segments:
        cleaned = segment.strip("/")
        if cleaned:
            parts.append(cleaned)
    return "/".join(parts)


def context_segment(context: str | None) -> str:
    """Reduce a report context to a single wildcard-free topic segment."""
    cleaned = _UNSAFE_SEGMENT_RE.sub("_", context or "").strip("_")
    return cleaned or "uncategorised"


def crash_topic(prefix: str, context: str | None) -> str:
    """e.g. crash/events/STM32WB55_Intrusion_Sensor"""
    return topic_path(prefix, Topic.EVENTS, context_segment(context))


__all__ = ["Topic", "context_segment", "crash_topic", "topic_path"]
