"""
Attach ready load items to the scene in a fixed order.

Completion order of the load queue is arbitrary; :class:`Assembler`
re-imposes the order the scene needs:

1. A ready **session snapshot** is restored first and alone. Once the restore
   succeeds nothing else is processed in the pass, because the snapshot
   replaces the whole working state.
2. Otherwise items are split by :class:`~ingestomatic.models.AttachmentRole`
   into primary datasets, label overlays and annotation sets.
3. Primaries are registered in queue order. The id of the last one that
   registered becomes ``current_primary``. It is remembered by the
   assembler, so a later pass that brings only an overlay still finds the
   primary loaded earlier in the session.
4. Each label overlay is registered, attached to ``current_primary`` and
   given the configured initial overlay state.
5. Each annotation record is attached to ``current_primary``.
6. Without a primary, overlays and annotations are left in place, listed as
   orphaned and tagged with an :class:`~ingestomatic.utils.errors.AttachmentError`
   warning.

A registrar failure is recorded on the item and in ``failed``. Items that
reached the scene before the failure are still reported as consumed so the
queue never hands them over twice.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel

from ingestomatic.config.schema import IngestConfig
from ingestomatic.models import (
    AttachmentMeta,
    AttachmentRole,
    ErrorKind,
    ItemKind,
    ItemState,
    LoadItem,
    SessionSnapshot,
)
from ingestomatic.scene import SceneRegistrar
from ingestomatic.utils.errors import AttachmentError

log = logging.getLogger(__name__)


class AssemblyResult(BaseModel):
    """Outcome of one :meth:`Assembler.assemble` pass.

    Attributes
    ----------
    restored_snapshot
        Id of the snapshot item whose state was restored, if any.
    primary_ids
        Item id → scene id for every registered primary dataset.
    current_primary
        Scene id overlays and annotations were attached to; carried over
        from earlier passes of the same assembler.
    overlays
        Item id → scene id for every attached label overlay.
    annotations
        Number of measurement records attached.
    orphaned
        Overlay/annotation item ids skipped for lack of a primary.
    failed
        Item ids the registrar rejected or could not attach.
    consumed
        Item ids fully handled in this pass; the queue drops them.
    """

    restored_snapshot: Optional[str] = None
    primary_ids: Dict[str, str] = {}
    current_primary: Optional[str] = None
    overlays: Dict[str, str] = {}
    annotations: int = 0
    orphaned: List[str] = []
    failed: List[str] = []
    consumed: List[str] = []


class Assembler:
    """Route ready items to a :class:`~ingestomatic.scene.SceneRegistrar`."""

    def __init__(self, registrar: SceneRegistrar, *, config: Optional[IngestConfig] = None) -> None:
        self.registrar = registrar
        self.config = config or IngestConfig()
        # Scene id of the most recently registered primary, across passes.
        self.current_primary: Optional[str] = None

    # ------------------------------------------------------------------ #
    # helpers
    # ------------------------------------------------------------------ #
    def role_of(self, item: LoadItem) -> AttachmentRole:
        role = item.attachment.role
        if role is AttachmentRole.UNTAGGED and self.config.is_annotation_name(item.name):
            return AttachmentRole.ANNOTATION
        return role

    @staticmethod
    def _meta_for(item: LoadItem) -> AttachmentMeta:
        if item.remote is None:
            return item.attachment
        tags = {**item.attachment.tags, "url": item.remote.url}
        return AttachmentMeta(role=item.attachment.role, tags=tags)

    def _register(self, item: LoadItem, result: AssemblyResult) -> Optional[str]:
        try:
            return self.registrar.register(item.parsed, self._meta_for(item))
        except Exception as exc:
            log.exception("Scene registrar rejected %s", item.name)
            item.warnings.append(f"Registration failed: {exc}")
            result.failed.append(item.id)
            return None

    @staticmethod
    def _attach_failed(item: LoadItem, result: AssemblyResult, exc: Exception) -> None:
        log.error("Could not attach %s: %s", item.name, exc)
        item.warnings.append(f"Attachment failed: {exc}")
        result.failed.append(item.id)
        # Already in the scene; consuming it keeps a later pass from adding it again.
        result.consumed.append(item.id)

    @staticmethod
    def _orphan(item: LoadItem, result: AssemblyResult) -> None:
        exc = AttachmentError(f"{item.name}: no primary dataset to attach to")
        log.warning("%s", exc)
        item.warnings.append(str(exc))
        result.orphaned.append(item.id)

    def _restore(self, item: LoadItem, result: AssemblyResult) -> bool:
        snapshot = item.parsed
        try:
            if not isinstance(snapshot, SessionSnapshot):
                raise TypeError(f"expected a session snapshot, got {type(snapshot).__name__}")
            self.registrar.restore_full_state(snapshot)
        except Exception as exc:
            log.exception("Could not restore session from %s", item.name)
            item.state = ItemState.ERROR
            item.error = f"Failed to restore session: {exc}"
            item.error_kind = ErrorKind.PARSE
            result.failed.append(item.id)
            return False
        result.restored_snapshot = item.id
        result.consumed.append(item.id)
        self.current_primary = result.current_primary = None
        log.info("Restored session state from %s", item.name)
        return True

    # ------------------------------------------------------------------ #
    # public API
    # ------------------------------------------------------------------ #
    def assemble(self, items: Sequence[LoadItem]) -> AssemblyResult:
        """Attach every ``ready`` item of *items* to the scene.

        Args:
            items: Queue contents in batch order; non-ready items are ignored.

        Returns:
            What was registered, attached, orphaned and consumed.
        """
        result = AssemblyResult(current_primary=self.current_primary)
        ready = [i for i in items if i.state is ItemState.READY]

        snapshot = next(
            (i for i in ready if i.content_kind is ItemKind.SESSION_SNAPSHOT), None
        )
        if snapshot is not None and self._restore(snapshot, result):
            return result

        primaries: List[LoadItem] = []
        overlays: List[LoadItem] = []
        annotations: List[LoadItem] = []
        for item in ready:
            if item.content_kind is ItemKind.SESSION_SNAPSHOT:
                continue
            role = self.role_of(item)
            if role is AttachmentRole.LABEL_OVERLAY:
                overlays.append(item)
            elif role is AttachmentRole.ANNOTATION:
                annotations.append(item)
            else:
                primaries.append(item)

        for item in primaries:
            scene_id = self._register(item, result)
            if scene_id is None:
                continue
            result.primary_ids[item.id] = scene_id
            result.current_primary = scene_id
            result.consumed.append(item.id)
        self.current_primary = current = result.current_primary

        for item in overlays:
            if current is None:
                self._orphan(item, result)
                continue
            overlay_id = self._register(item, result)
            if overlay_id is None:
                continue
            try:
                self.registrar.attach_overlay(
                    current, overlay_id, dict(self.config.overlay_state)
                )
            except Exception as exc:
                self._attach_failed(item, result, exc)
                continue
            result.overlays[item.id] = overlay_id
            result.consumed.append(item.id)

        for item in annotations:
            if current is None:
                self._orphan(item, result)
                continue
            records: Any = getattr(item.parsed, "records", None)
            if records is None:
                exc = AttachmentError(f"{item.name}: not a measurement set")
                log.warning("%s", exc)
                item.warnings.append(str(exc))
                result.failed.append(item.id)
                continue
            try:
                for record in records:
                    self.registrar.attach_annotation(
                        current, record.component_name, record.data
                    )
                    result.annotations += 1
            except Exception as exc:
                self._attach_failed(item, result, exc)
                continue
            result.consumed.append(item.id)

        log.info(
            "Assembled %d primary, %d overlay(s), %d annotation(s); %d orphaned",
            len(result.primary_ids),
            len(result.overlays),
            result.annotations,
            len(result.orphaned),
        )
        return result


__all__ = ["Assembler", "AssemblyResult"]
