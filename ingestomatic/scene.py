"""
Scene registrar contract and an in-memory implementation.

The assembler never touches a renderer directly. It talks to a
:class:`SceneRegistrar`, which attaches parsed datasets, label overlays and
measurement records to whatever scene the application maintains and hands
back a stable identifier for every registered dataset.

:class:`InMemoryScene` keeps everything in plain lists; the CLI uses it to
report what a real viewer would have received, and the test-suite uses it to
assert on attachment order.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple

from ingestomatic.models import AttachmentMeta, SessionSnapshot

log = logging.getLogger(__name__)


class SceneRegistrar(Protocol):
    """Attach parsed results to the visual scene."""

    def register(self, result: Any, meta: AttachmentMeta) -> Optional[str]:
        """Add *result* to the scene; return its id or ``None`` if nothing was added."""
        ...

    def attach_overlay(
        self, primary_id: str, overlay_id: str, initial_state: Dict[str, Any]
    ) -> None:
        ...

    def attach_annotation(self, primary_id: str, component_name: str, data: Dict[str, Any]) -> None:
        ...

    def restore_full_state(self, snapshot: SessionSnapshot) -> None:
        """Replace the whole working state with *snapshot*."""
        ...


@dataclass
class SceneSource:
    id: str
    result: Any
    meta: AttachmentMeta


@dataclass
class InMemoryScene:
    """A :class:`SceneRegistrar` that records every call."""

    sources: List[SceneSource] = field(default_factory=list)
    overlays: List[Tuple[str, str, Dict[str, Any]]] = field(default_factory=list)
    annotations: List[Tuple[str, str, Dict[str, Any]]] = field(default_factory=list)
    restored: Optional[SessionSnapshot] = None
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)

    def register(self, result: Any, meta: AttachmentMeta) -> Optional[str]:
        if result is None:
            return None
        source_id = f"source-{next(self._ids)}"
        self.sources.append(SceneSource(id=source_id, result=result, meta=meta))
        log.debug("Registered %s (%s)", source_id, meta.role.value)
        return source_id

    def attach_overlay(
        self, primary_id: str, overlay_id: str, initial_state: Dict[str, Any]
    ) -> None:
        self._require(primary_id)
        self._require(overlay_id)
        self.overlays.append((primary_id, overlay_id, dict(initial_state)))

    def attach_annotation(self, primary_id: str, component_name: str, data: Dict[str, Any]) -> None:
        self._require(primary_id)
        self.annotations.append((primary_id, component_name, dict(data)))

    def restore_full_state(self, snapshot: SessionSnapshot) -> None:
        self.sources.clear()
        self.overlays.clear()
        self.annotations.clear()
        self.restored = snapshot

    # ------------------------------------------------------------------ #
    def get(self, source_id: str) -> SceneSource:
        for src in self.sources:
            if src.id == source_id:
                return src
        raise KeyError(source_id)

    def _require(self, source_id: str) -> None:
        self.get(source_id)


__all__ = ["SceneRegistrar", "InMemoryScene", "SceneSource"]
