"""
Partition a raw submission batch into :class:`~ingestomatic.models.LoadItem`
objects.

Rules, applied in encounter order:

* **Containers** are expanded first (:func:`~ingestomatic.pipelines.archive.expand_archive`)
  and their members classified as if submitted directly. A container that
  fails to expand becomes a single ``error`` item; the rest of the batch is
  unaffected.
* **Series** files (``dcm`` by default) are grouped into one ``series`` item
  placed where the first such file appeared and named after it.
* **Remote** references become ``remote`` items waiting for download.
* ``raw`` files become ``rawVolume`` items, the session extension yields
  ``sessionSnapshot`` items, and everything else is ``regular``.
"""

from __future__ import annotations

import logging
from typing import Collection, Iterable, List, Optional, Sequence, Union

from ingestomatic.config.schema import IngestConfig
from ingestomatic.models import (
    FileSource,
    ItemKind,
    ItemState,
    LoadItem,
    NamedFile,
    RemoteRef,
    RemoteSource,
)
from ingestomatic.pipelines.archive import expand_archive
from ingestomatic.utils.errors import ExpansionError
from ingestomatic.utils.naming import get_extension, unique_name

log = logging.getLogger(__name__)

Source = Union[FileSource, RemoteSource]


def kind_for_name(name: str, config: IngestConfig) -> ItemKind:
    """Return the content kind implied by the extension of *name*."""
    ext = get_extension(name)
    if ext == config.raw_extension:
        return ItemKind.RAW_VOLUME
    if ext == config.session_extension:
        return ItemKind.SESSION_SNAPSHOT
    if config.is_series(ext):
        return ItemKind.SERIES
    return ItemKind.REGULAR


def expand_sources(
    sources: Iterable[Source],
    config: IngestConfig,
    supported: Collection[str],
) -> List[Union[Source, LoadItem]]:
    """Replace every container in *sources* by its members, keeping order.

    A container that cannot be expanded is replaced by one ``error``
    :class:`LoadItem` in its position.
    """
    flat: List[Union[Source, LoadItem]] = []
    for src in sources:
        if isinstance(src, FileSource) and config.is_container(src.name):
            try:
                flat.extend(
                    expand_archive(
                        src.name,
                        src.data,
                        supported,
                        containers=config.container_extensions,
                        max_depth=config.max_archive_depth,
                    )
                )
            except ExpansionError as exc:
                log.warning("%s", exc)
                flat.append(
                    LoadItem(
                        id=src.name,
                        name=src.name,
                        kind=ItemKind.REGULAR,
                        state=ItemState.ERROR,
                        files=(NamedFile(name=src.name, data=src.data),),
                        attachment=src.attachment,
                        error=str(exc),
                        error_kind=exc.kind,
                    )
                )
            continue
        flat.append(src)
    return flat


def classify(
    sources: Sequence[Source],
    config: IngestConfig,
    *,
    supported: Optional[Collection[str]] = None,
    taken_ids: Iterable[str] = (),
) -> List[LoadItem]:
    """Turn *sources* into load items.

    Args:
        sources: Local files and remote references in submission order.
        config: Active configuration (extension roles, archive depth).
        supported: Extensions kept when expanding containers. Defaults to the
            pipeline's own extensions only.
        taken_ids: Item ids already present in the queue; new ids are made
            unique against them.

    Returns:
        New items in batch order. An empty *sources* yields an empty list.
    """
    if supported is None:
        supported = config.pipeline_extensions()

    flat = expand_sources(sources, config, supported)
    items: List[LoadItem] = []
    used = set(taken_ids)

    def _new_id(name: str) -> str:
        item_id = unique_name(name, used)
        used.add(item_id)
        return item_id

    series: Optional[LoadItem] = None
    for src in flat:
        if isinstance(src, LoadItem):
            src.id = _new_id(src.name)
            items.append(src)
            continue
        if isinstance(src, RemoteSource):
            items.append(
                LoadItem(
                    id=_new_id(src.name),
                    name=src.name,
                    kind=ItemKind.REMOTE,
                    content_kind=kind_for_name(src.name, config),
                    state=ItemState.NEEDS_DOWNLOAD,
                    remote=RemoteRef(
                        url=src.url,
                        headers=dict(src.headers),
                        auth_required=src.auth_required,
                    ),
                    attachment=src.attachment,
                    extra_info=src.extra_info,
                )
            )
            continue

        kind = kind_for_name(src.name, config)
        named = NamedFile(name=src.name, data=src.data)
        if kind is ItemKind.SERIES:
            if series is None:
                series = LoadItem(
                    id=_new_id(src.name),
                    name=src.name,
                    kind=ItemKind.SERIES,
                    files=(named,),
                    attachment=src.attachment,
                )
                items.append(series)
            else:
                series.files = series.files + (named,)
            continue

        items.append(
            LoadItem(
                id=_new_id(src.name),
                name=src.name,
                kind=kind,
                files=(named,),
                attachment=src.attachment,
                extra_info=src.extra_info,
            )
        )

    log.debug(
        "Classified %d source(s) into %d item(s)", len(sources), len(items)
    )
    return items


__all__ = ["classify", "expand_sources", "kind_for_name", "Source"]
