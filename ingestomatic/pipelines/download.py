"""
HTTP retrieval of remote load items.

:class:`Downloader` streams a URL into memory with :mod:`requests`, reporting
``{loaded, total, computable}`` after every chunk. Network I/O is blocking,
so :meth:`Downloader.download` runs it in a worker thread; progress callbacks
are therefore invoked from that thread and must marshal onto the event loop
themselves (see :class:`~ingestomatic.pipelines.queue.LoadQueue`).

Authentication
--------------
Exactly one header is injected, and only for references flagged
``auth_required``. The value is ``"<auth_scheme> <token>"`` (bare token when
the scheme is empty); the token comes from *token_provider* when given,
otherwise from :attr:`DownloadSettings.token`.

There is no retry loop. Any transport failure or non-2xx status surfaces as
:class:`~ingestomatic.utils.errors.DownloadError`.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Callable, Dict, Optional

import requests
from pydantic import BaseModel

from ingestomatic.config.schema import DownloadSettings
from ingestomatic.models import RemoteRef
from ingestomatic.utils.errors import DownloadError

log = logging.getLogger(__name__)


class TransferProgress(BaseModel, frozen=True):
    """One progress report from the transport."""

    loaded: int
    total: Optional[int] = None
    computable: bool = False

    @property
    def fraction(self) -> Optional[float]:
        """``loaded / total`` or ``None`` when the length is unknown."""
        if not self.computable or not self.total:
            return None
        return self.loaded / self.total


ProgressCallback = Callable[[TransferProgress], None]


def _content_length(resp: requests.Response) -> Optional[int]:
    """Return the decoded payload length when the server states it."""
    # Content-Length counts encoded bytes while iter_content yields decoded
    # ones, so the two only agree for identity-encoded bodies.
    encoding = resp.headers.get("Content-Encoding", "identity").lower()
    if encoding not in ("", "identity"):
        return None
    raw = resp.headers.get("Content-Length")
    if raw is None:
        return None
    try:
        length = int(raw)
    except ValueError:
        return None
    return length if length > 0 else None


class Downloader:
    """Fetch :class:`~ingestomatic.models.RemoteRef` targets into bytes."""

    def __init__(
        self,
        settings: Optional[DownloadSettings] = None,
        *,
        session: Optional[requests.Session] = None,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
    ) -> None:
        self.settings = settings or DownloadSettings()
        self._session = session or requests.Session()
        self._token_provider = token_provider

    # ------------------------------------------------------------------ #
    def _token(self) -> Optional[str]:
        if self._token_provider is not None:
            return self._token_provider()
        return self.settings.token

    def build_headers(self, remote: RemoteRef) -> Dict[str, str]:
        """Return request headers, adding the auth header when required.

        Raises:
            DownloadError: If authentication is required but no token exists.
        """
        headers = dict(remote.headers)
        if not remote.auth_required:
            return headers
        token = self._token()
        if not token:
            raise DownloadError(
                f"{remote.url} requires authentication but no token is configured"
            )
        scheme = self.settings.auth_scheme.strip()
        headers[self.settings.auth_header] = f"{scheme} {token}" if scheme else token
        return headers

    def fetch(
        self,
        remote: RemoteRef,
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """Blocking download of *remote*; see :meth:`download`."""
        headers = self.build_headers(remote)
        timeout = remote.timeout or self.settings.timeout
        buf = bytearray()
        log.info("Downloading %s", remote.url)
        try:
            with self._session.get(
                remote.url, headers=headers, stream=True, timeout=timeout
            ) as resp:
                resp.raise_for_status()
                total = _content_length(resp)
                for chunk in resp.iter_content(chunk_size=self.settings.chunk_size):
                    if cancel is not None and cancel.is_set():
                        log.info("Download of %s cancelled after %d byte(s)", remote.url, len(buf))
                        raise DownloadError(f"Download of {remote.url} was cancelled")
                    if not chunk:
                        continue
                    buf.extend(chunk)
                    if progress is not None:
                        progress(
                            TransferProgress(
                                loaded=len(buf), total=total, computable=total is not None
                            )
                        )
        except requests.RequestException as exc:
            raise DownloadError(f"Failed to download {remote.url}: {exc}") from exc

        log.debug("Downloaded %d byte(s) from %s", len(buf), remote.url)
        return bytes(buf)

    async def download(
        self,
        remote: RemoteRef,
        progress: Optional[ProgressCallback] = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """Fetch *remote* without blocking the event loop.

        Args:
            remote: URL, extra headers, auth flag and optional timeout.
            progress: Called from the worker thread after every chunk.
            cancel: Once set, the worker thread stops before the next chunk.

        Returns:
            The complete response body.

        Raises:
            DownloadError: On any transport failure or HTTP error status.
        """
        return await asyncio.to_thread(self.fetch, remote, progress, cancel)

    def close(self) -> None:
        self._session.close()


__all__ = ["Downloader", "TransferProgress", "ProgressCallback"]
