"""
The load queue: per-item state machine and batch driver.

Every :class:`~ingestomatic.models.LoadItem` moves through::

    needsDownload --(download ok)-----------> loading
    needsDownload --(download fails)--------> error
    loading       --(raw volume, no info)---> needsInfo
    needsInfo     --(info supplied)---------> loading
    loading       --(raw size mismatch)-----> error
    loading       --(parse ok, 1 result)----> ready
    loading       --(parse fails / != 1)----> error

Dispatch inside ``loading`` follows a fixed precedence: a pending download
first, then raw volumes (which need info before anything else), then
series, then the duplicate-snapshot guard, then the generic reader.

Failure isolation
-----------------
Whatever goes wrong while advancing one item is caught at that item's
boundary and recorded as its ``error`` state. Batch calls such as
:meth:`LoadQueue.submit` advance all items concurrently and return once each
one has settled (``ready``, ``error`` or ``needsInfo``); they never raise
because of an item failure.

Concurrency
-----------
All state lives on the event-loop thread. Blocking work (classification with
archive expansion, downloads, parsing, raw decoding) runs in worker threads
via :func:`asyncio.to_thread`; download progress is marshalled back with
``call_soon_threadsafe``. Each item is only ever written by its own task, so
no locking is needed. Cancelling a task cannot stop a worker thread, so a
download also gets a :class:`threading.Event` that :meth:`LoadQueue.remove`
sets and the transport checks between chunks.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import Counter
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ingestomatic.config.schema import IngestConfig
from ingestomatic.models import (
    ErrorKind,
    FileSource,
    ItemKind,
    ItemState,
    LoadItem,
    NamedFile,
    RawVolumeInfo,
    RemoteSource,
)
from ingestomatic.pipelines.assemble import Assembler, AssemblyResult
from ingestomatic.pipelines.classify import Source, classify
from ingestomatic.pipelines.download import Downloader, TransferProgress
from ingestomatic.pipelines.progress import ProgressStore
from ingestomatic.pipelines.raw import decode_raw_volume
from ingestomatic.readers import DefaultFormatReader, FormatReader
from ingestomatic.utils.errors import (
    ClassificationError,
    DownloadError,
    IngestError,
    ParseError,
)
from ingestomatic.utils.naming import unique_name

log = logging.getLogger(__name__)


class LoadQueue:
    """Owns the load items of a session and drives them to a settled state.

    Args:
        reader: Format reader used for every non-raw item. Defaults to
            :class:`~ingestomatic.readers.DefaultFormatReader`.
        config: Extension roles, archive limits and download settings.
        downloader: Transport for remote items.
        progress: Store receiving download progress; created when omitted.
    """

    def __init__(
        self,
        reader: Optional[FormatReader] = None,
        *,
        config: Optional[IngestConfig] = None,
        downloader: Optional[Downloader] = None,
        progress: Optional[ProgressStore] = None,
    ) -> None:
        self.config = config or IngestConfig()
        self.reader = reader or DefaultFormatReader(self.config)
        self.downloader = downloader or Downloader(self.config.download)
        self.progress = progress or ProgressStore()
        self.loading = False
        self._items: List[LoadItem] = []
        # Keyed by id(item): item ids can be reassigned, objects cannot.
        self._tasks: Dict[int, asyncio.Task] = {}
        self._cancel_flags: Dict[int, threading.Event] = {}

    # ------------------------------------------------------------------ #
    # queries
    # ------------------------------------------------------------------ #
    @property
    def items(self) -> List[LoadItem]:
        return list(self._items)

    def get(self, item_id: str) -> LoadItem:
        for item in self._items:
            if item.id == item_id:
                return item
        raise KeyError(item_id)

    def _holds(self, item: LoadItem) -> bool:
        return any(other is item for other in self._items)

    def _position(self, item: LoadItem) -> int:
        for i, other in enumerate(self._items):
            if other is item:
                return i
        raise KeyError(item.id)

    @property
    def any_errors(self) -> bool:
        return any(i.state is ItemState.ERROR for i in self._items)

    def ready_items(self) -> List[LoadItem]:
        return [i for i in self._items if i.state is ItemState.READY]

    def state_counts(self) -> Dict[ItemState, int]:
        return dict(Counter(i.state for i in self._items))

    def supported_extensions(self) -> set[str]:
        """Extensions kept when expanding archives."""
        return {*self.reader.supported_extensions(), *self.config.pipeline_extensions()}

    # ------------------------------------------------------------------ #
    # submission
    # ------------------------------------------------------------------ #
    async def submit(self, sources: Iterable[Source]) -> List[LoadItem]:
        """Classify *sources*, queue the resulting items and advance them.

        Returns:
            The newly created items, each settled for this pass.
        """
        batch = list(sources)
        items = await asyncio.to_thread(
            classify, batch, self.config, supported=self.supported_extensions()
        )
        # Another submit may have queued items while classification ran, so
        # ids are only settled here, on the loop thread.
        used = {i.id for i in self._items}
        for item in items:
            item.id = unique_name(item.name, used)
            used.add(item.id)
        self._items.extend(items)
        log.info("Queued %d item(s) from %d source(s)", len(items), len(batch))
        await self._advance_many(items)
        return items

    async def submit_files(self, files: Iterable[FileSource]) -> List[LoadItem]:
        return await self.submit(files)

    async def submit_remote(self, remotes: Iterable[RemoteSource]) -> List[LoadItem]:
        return await self.submit(remotes)

    async def read_all(self) -> None:
        """Advance every item that has not reached ``ready`` or ``error``."""
        await self._advance_many(
            [i for i in self._items if i.state not in (ItemState.READY, ItemState.ERROR)]
        )

    async def advance(self, item_id: str) -> LoadItem:
        item = self.get(item_id)
        await self._advance_many([item])
        return item

    async def supply_raw_info(
        self,
        item_id: str,
        info: Union[RawVolumeInfo, Dict[str, Any], None],
    ) -> LoadItem:
        """Attach raw-volume metadata to *item_id* and re-run it.

        ``None`` clears the metadata and parks the item in ``needsInfo``. An
        item that failed to decode may be given corrected metadata; that
        starts a new pass for it. When a pass is already running for the
        item, it is allowed to finish and *info* then replaces whatever that
        pass decoded.

        Raises:
            KeyError: If *item_id* is not queued.
            ValueError: If the item is not a raw volume or is already loaded.
        """
        item = self.get(item_id)
        if item.content_kind is not ItemKind.RAW_VOLUME:
            raise ValueError(f"{item.name} is not a raw volume")

        running = self._tasks.get(id(item))
        superseding = running is not None and not running.done()
        if superseding:
            await asyncio.wait([running])
            if not self._holds(item):
                raise KeyError(item_id)

        if item.state is ItemState.READY and not superseding:
            raise ValueError(f"{item.name} is already loaded")
        if item.state is ItemState.ERROR and item.error_kind is not ErrorKind.DECODE:
            raise ValueError(f"{item.name} failed for another reason: {item.error}")

        if info is None:
            item.extra_info = None
            if item.state is not ItemState.NEEDS_DOWNLOAD:
                self._needs_info(item)
            return item

        if not isinstance(info, RawVolumeInfo):
            info = RawVolumeInfo.model_validate(info)
        item.extra_info = info
        if item.state in (ItemState.NEEDS_INFO, ItemState.ERROR, ItemState.READY):
            item.state = ItemState.LOADING
            item.parsed = None
            item.error = None
            item.error_kind = None
        await self._advance_many([item])
        return item

    async def retry_download(self, item_id: str, url: Optional[str] = None) -> LoadItem:
        """Re-submit a failed remote item, optionally pointing it at *url*."""
        item = self.get(item_id)
        if item.remote is None or item.error_kind is not ErrorKind.DOWNLOAD:
            raise ValueError(f"{item.name} is not a failed download")
        if url:
            item.remote = item.remote.model_copy(update={"url": url})
        item.state = ItemState.NEEDS_DOWNLOAD
        item.error = None
        item.error_kind = None
        self.progress.discard(item.id)
        await self._advance_many([item])
        return item

    def remove(self, item_id: str) -> LoadItem:
        """Drop *item_id* from the queue, cancelling any work in flight."""
        item = self.get(item_id)
        self._items = [i for i in self._items if i is not item]
        flag = self._cancel_flags.pop(id(item), None)
        if flag is not None:
            flag.set()
        task = self._tasks.pop(id(item), None)
        if task is not None and not task.done():
            task.cancel()
        self.progress.discard(item_id)
        return item

    def reset(self) -> None:
        for flag in self._cancel_flags.values():
            flag.set()
        self._cancel_flags.clear()
        for task in self._tasks.values():
            if not task.done():
                task.cancel()
        self._tasks.clear()
        self._items.clear()
        self.progress.clear()

    # ------------------------------------------------------------------ #
    # assembly
    # ------------------------------------------------------------------ #
    async def load(self, assembler: Assembler) -> AssemblyResult:
        """Hand the ready items to *assembler* and drop what it consumed."""
        self.loading = True
        self.progress.clear()
        try:
            result = assembler.assemble(self.items)
        finally:
            self.loading = False
        consumed = set(result.consumed)
        self._items = [i for i in self._items if i.id not in consumed]
        return result

    # ------------------------------------------------------------------ #
    # batch driver
    # ------------------------------------------------------------------ #
    async def _advance_many(self, items: Sequence[LoadItem]) -> None:
        tasks = [self._spawn(item) for item in items]
        if tasks:
            # A removed item's task ends cancelled; siblings must still finish.
            await asyncio.gather(*tasks, return_exceptions=True)

    def _spawn(self, item: LoadItem) -> asyncio.Task:
        key = id(item)
        running = self._tasks.get(key)
        if running is not None and not running.done():
            step = self._advance_after(running, item)
        else:
            step = self._advance(item)
        task = asyncio.create_task(step, name=f"load:{item.id}")
        self._tasks[key] = task

        def _forget(t: asyncio.Task) -> None:
            if self._tasks.get(key) is t:
                del self._tasks[key]

        task.add_done_callback(_forget)
        return task

    async def _advance_after(self, previous: asyncio.Task, item: LoadItem) -> None:
        # asyncio.wait does not raise if *previous* was cancelled.
        await asyncio.wait([previous])
        if self._holds(item):
            await self._advance(item)

    async def _advance(self, item: LoadItem) -> None:
        if item.state in (ItemState.READY, ItemState.ERROR):
            return
        try:
            await self._step(item)
        except IngestError as exc:
            self._fail(item, exc.kind, str(exc))
        except Exception as exc:
            log.exception("Unexpected failure while loading %s", item.name)
            self._fail(item, ErrorKind.PARSE, str(exc) or "File load failure")

    # ------------------------------------------------------------------ #
    # state machine
    # ------------------------------------------------------------------ #
    async def _step(self, item: LoadItem) -> None:
        if item.state is ItemState.NEEDS_DOWNLOAD:
            data = await self._download(item)
            self._set_remote_file(item, data)

        kind = item.content_kind
        if kind is ItemKind.RAW_VOLUME:
            if item.extra_info is None:
                self._needs_info(item)
                return
            item.state = ItemState.LOADING
            volume = await asyncio.to_thread(
                decode_raw_volume, item.files[0].data, item.extra_info, name=item.name
            )
            self._set_ready(item, volume)
            return

        if kind is ItemKind.SESSION_SNAPSHOT:
            earlier = self._earlier_snapshot(item)
            if earlier is not None:
                raise ClassificationError(
                    f"Cannot load multiple session snapshots: {item.name} follows {earlier.name}"
                )

        results = await asyncio.to_thread(self.reader.parse, item.files)
        if len(results) != 1:
            what = "series" if kind is ItemKind.SERIES else "file"
            raise ParseError(
                f"{item.name}: expected one dataset from the {what}, got {len(results)}"
            )
        self._set_ready(item, results[0])

    def _earlier_snapshot(self, item: LoadItem) -> Optional[LoadItem]:
        pos = self._position(item)
        for other in self._items[:pos]:
            if other.content_kind is ItemKind.SESSION_SNAPSHOT:
                return other
        return None

    async def _download(self, item: LoadItem) -> bytes:
        if item.remote is None:
            raise DownloadError(f"{item.name} has no remote reference")
        loop = asyncio.get_running_loop()
        cancel = threading.Event()
        self._cancel_flags[id(item)] = cancel

        def _on_progress(p: TransferProgress) -> None:
            loop.call_soon_threadsafe(self._record_progress, item, p.fraction)

        self.progress.record(item.id, 0.0)
        try:
            data = await self.downloader.download(item.remote, _on_progress, cancel=cancel)
        except DownloadError:
            raise
        except Exception as exc:
            raise DownloadError(f"Failed to download {item.remote.url}: {exc}") from exc
        finally:
            if self._cancel_flags.get(id(item)) is cancel:
                del self._cancel_flags[id(item)]
        self.progress.record(item.id, 1.0)
        return data

    def _record_progress(self, item: LoadItem, fraction: Optional[float]) -> None:
        # Reports still in flight from a removed item's worker thread are dropped.
        if self._holds(item):
            self.progress.record(item.id, fraction)

    # ------------------------------------------------------------------ #
    # transitions
    # ------------------------------------------------------------------ #
    def _set_remote_file(self, item: LoadItem, data: bytes) -> None:
        if item.files:
            raise RuntimeError(f"{item.name} already holds downloaded data")
        item.files = (NamedFile(name=item.name, data=data),)
        item.state = ItemState.LOADING
        log.debug("%s: download complete, %d byte(s)", item.id, len(data))

    @staticmethod
    def _needs_info(item: LoadItem) -> None:
        item.state = ItemState.NEEDS_INFO
        item.extra_info = None
        item.parsed = None
        item.error = None
        item.error_kind = None
        log.info("%s: waiting for raw volume dimensions", item.id)

    @staticmethod
    def _set_ready(item: LoadItem, result: Any) -> None:
        item.parsed = result
        item.state = ItemState.READY
        item.error = None
        item.error_kind = None
        log.info("%s: ready", item.id)

    @staticmethod
    def _fail(item: LoadItem, kind: ErrorKind, message: str) -> None:
        item.state = ItemState.ERROR
        item.error = message
        item.error_kind = kind
        log.warning("%s: %s", item.id, message)


__all__ = ["LoadQueue"]
