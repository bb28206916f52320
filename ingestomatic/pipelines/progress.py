"""Per-item transfer progress with a single averaged figure.

The store maps an item id to a fraction in ``[0, 1]`` or to ``None`` when
the transport cannot tell how long the payload is. Non-computable entries
are kept (so a UI can show an indeterminate bar) but excluded from
:meth:`ProgressStore.aggregate`, which therefore never leaves ``[0, 1]``.

The store is not thread-safe; :class:`~ingestomatic.pipelines.queue.LoadQueue`
only mutates it from the event-loop thread.
"""

from __future__ import annotations

from typing import Dict, Optional


class ProgressStore:
    """Mapping of item id to completion fraction."""

    def __init__(self) -> None:
        self._entries: Dict[str, Optional[float]] = {}

    def record(self, item_id: str, fraction: Optional[float]) -> None:
        """Upsert the progress of *item_id*; ``None`` means not computable."""
        if fraction is not None:
            fraction = min(1.0, max(0.0, float(fraction)))
        self._entries[item_id] = fraction

    def aggregate(self) -> float:
        """Mean of all computable fractions, or ``0.0`` when there are none."""
        values = [v for v in self._entries.values() if v is not None]
        if not values:
            return 0.0
        return sum(values) / len(values)

    def snapshot(self) -> Dict[str, Optional[float]]:
        return dict(self._entries)

    def discard(self, item_id: str) -> None:
        self._entries.pop(item_id, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._entries


__all__ = ["ProgressStore"]
