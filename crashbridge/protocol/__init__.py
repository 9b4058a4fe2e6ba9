"""Data structures and topic helpers for the crash bridge."""

from .topics import Topic, crash_topic, topic_path
from . import structures, topics

__all__ = [
    "Topic",
    "crash_topic",
    "topic_path",
    "structures",
    "topics",
]
