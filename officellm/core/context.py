"""Context-window construction for provider calls."""

from __future__ import annotations

from typing import Sequence

from .messages import Turn


def build_context_window(turns: Sequence[Turn], window: int) -> list[Turn]:
    """Return the view of ``turns`` actually sent to the provider.

    Turn 0 (the system instruction) is always kept. When the sequence is
    longer than ``window`` only the most recent ``window - 1`` turns follow
    it. A cut that lands inside a batch of tool turns moves back to the
    assistant turn that issued the batch, so the view can exceed ``window``
    by the size of that batch and every tool turn sent still answers a
    request that is sent too. The input is never modified.
    """
    if window < 2:
        raise ValueError(f"context window must be at least 2 turns, got {window}")
    if len(turns) <= window:
        return list(turns)

    start = len(turns) - (window - 1)
    while start > 1 and turns[start].role == "tool":
        start -= 1
    return [turns[0], *turns[start:]]
