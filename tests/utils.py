"""Test helpers for ingestomatic modules."""

from __future__ import annotations

import asyncio
import io
import tarfile
import threading
import zipfile
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pydicom
import requests
from pydicom.dataset import Dataset, FileMetaDataset
from pydicom.uid import CTImageStorage, ExplicitVRLittleEndian, generate_uid

from ingestomatic.models import NamedFile, SessionSnapshot
from ingestomatic.utils.errors import DownloadError, ParseError


def make_zip(members: Iterable[Tuple[str, bytes]], *, compression: int = zipfile.ZIP_STORED) -> bytes:
    """Return the bytes of a ZIP archive holding *members*."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=compression) as zf:
        for name, data in members:
            zf.writestr(name, data)
    return buf.getvalue()


def make_damaged_zip(name: str, data: bytes) -> bytes:
    """Deflated ZIP whose central directory is intact but whose payload is not.

    The compressed bytes are overwritten with ``0xFF``, which zlib rejects as
    an invalid block type once the member is read.
    """
    raw = bytearray(make_zip([(name, data)], compression=zipfile.ZIP_DEFLATED))
    with zipfile.ZipFile(io.BytesIO(bytes(raw))) as zf:
        info = zf.getinfo(name)
    # Local header: 30 fixed bytes, then the file name; writestr adds no extra field.
    start = info.header_offset + 30 + len(name.encode())
    raw[start : start + info.compress_size] = b"\xff" * info.compress_size
    return bytes(raw)


def make_tar(members: Iterable[Tuple[str, bytes]], *, gz: bool = False) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz" if gz else "w") as tf:
        for name, data in members:
            info = tarfile.TarInfo(name)
            info.size = len(data)
            tf.addfile(info, io.BytesIO(data))
    return buf.getvalue()


class FakeReader:
    """Format reader returning one dict per call.

    * a file whose name contains ``bad`` raises :class:`ParseError`;
    * a file whose name contains ``multi`` yields two results;
    * ``.snapshot`` files yield a :class:`SessionSnapshot`.
    """

    def __init__(self) -> None:
        self.calls: List[List[str]] = []

    def supported_extensions(self):
        return {"txt", "json", "nii", "dcm", "snapshot"}

    def parse(self, files: Sequence[NamedFile]) -> List[Any]:
        names = [f.name for f in files]
        self.calls.append(names)
        if any("bad" in n for n in names):
            raise ParseError(f"{names[0]}: cannot parse")
        if all(n.endswith(".snapshot") for n in names):
            return [SessionSnapshot(state={"from": names[0]})]
        if any("multi" in n for n in names):
            return [{"names": names}, {"names": names}]
        return [{"names": names}]


# ---------------------------------------------------------------------------
# requests stand-ins
# ---------------------------------------------------------------------------
class FakeResponse:
    def __init__(
        self,
        body: bytes = b"",
        *,
        status: int = 200,
        headers: Optional[Dict[str, str]] = None,
        chunks: int = 4,
    ) -> None:
        self.body = body
        self.status_code = status
        self.headers = headers if headers is not None else {"Content-Length": str(len(body))}
        self._chunks = chunks

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")

    def iter_content(self, chunk_size: int = 1):
        step = max(1, len(self.body) // self._chunks or 1)
        for i in range(0, len(self.body), step):
            yield self.body[i : i + step]

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        return None


class FakeSession:
    """Minimal ``requests.Session`` replacement keyed by URL."""

    def __init__(self, responses: Dict[str, Any]) -> None:
        self.responses = responses
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    def get(self, url, headers=None, stream=False, timeout=None):
        self.requests.append({"url": url, "headers": dict(headers or {}), "timeout": timeout})
        resp = self.responses.get(url)
        if resp is None:
            raise requests.ConnectionError(f"cannot reach {url}")
        if isinstance(resp, Exception):
            raise resp
        return resp

    def close(self) -> None:
        self.closed = True


class BlockingDownloader:
    """Async downloader that waits until released; used for cancellation."""

    def __init__(self) -> None:
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.cancelled = False

    async def download(self, remote, progress=None, *, cancel=None) -> bytes:
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return b"payload"

    def close(self) -> None:
        pass


class FailingDownloader:
    async def download(self, remote, progress=None, *, cancel=None) -> bytes:
        raise DownloadError(f"Failed to download {remote.url}: 404 Client Error")

    def close(self) -> None:
        pass


class GatedResponse(FakeResponse):
    """Streams half the body, then blocks until :attr:`gate` is set."""

    def __init__(self, body: bytes) -> None:
        super().__init__(body)
        self.gate = threading.Event()
        self.first_chunk_sent = threading.Event()

    def iter_content(self, chunk_size: int = 1):
        half = len(self.body) // 2
        yield self.body[:half]
        self.first_chunk_sent.set()
        self.gate.wait(5)
        yield self.body[half:]


def make_dicom_slice(z: float, value: int, *, rows: int = 2, cols: int = 3) -> bytes:
    """One CT slice at height *z* whose stored pixels all equal *value*.

    The slice carries ``RescaleSlope = 2`` and ``RescaleIntercept = -10`` and
    a ``PixelSpacing`` of 0.5 mm between rows and 0.75 mm between columns.
    """
    meta = FileMetaDataset()
    meta.MediaStorageSOPClassUID = CTImageStorage
    meta.MediaStorageSOPInstanceUID = generate_uid()
    meta.TransferSyntaxUID = ExplicitVRLittleEndian

    ds = Dataset()
    ds.file_meta = meta
    ds.SOPClassUID = CTImageStorage
    ds.SOPInstanceUID = meta.MediaStorageSOPInstanceUID
    ds.Modality = "CT"
    ds.SeriesDescription = "axial"
    ds.Rows = rows
    ds.Columns = cols
    ds.SamplesPerPixel = 1
    ds.PhotometricInterpretation = "MONOCHROME2"
    ds.BitsAllocated = 16
    ds.BitsStored = 16
    ds.HighBit = 15
    ds.PixelRepresentation = 0
    ds.PixelSpacing = [0.5, 0.75]
    ds.ImagePositionPatient = [0.0, 0.0, z]
    ds.RescaleSlope = 2
    ds.RescaleIntercept = -10
    ds.PixelData = np.full((rows, cols), value, dtype="<u2").tobytes()

    buf = io.BytesIO()
    pydicom.dcmwrite(buf, ds, enforce_file_format=True)
    return buf.getvalue()
