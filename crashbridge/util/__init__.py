"""General-purpose utilities for the crash bridge."""

from __future__ import annotations


__all__ = [
    "join_url",
]


def join_url(base: str, relative: str) -> str:
    """Join *base* and *relative* with exactly one slash between them.

    Trailing slashes on the base and leading slashes on the relative path are
    collapsed, so ``join_url("https://a/b//", "/c.bin")`` is
    ``"https://a/b/c.bin"``.
    """
    head = base.rstrip("/")
    tail = relative.lstrip("/")
    if not tail:
        return head
    if not head:
        return tail
    return f"{head}/{tail}"
