"""
Format readers: turn named byte buffers into structured results.

:class:`FormatReader` is the contract the load queue depends on. Any object
with ``supported_extensions()`` and ``parse(files)`` satisfies it, so
applications can plug in their own decoders.

:class:`DefaultFormatReader` covers the formats needed out of the box by
delegating to established libraries:

==================  =====================================================
Extension           Result
==================  =====================================================
``nii``, ``nii.gz``  :class:`ImageVolume` via *nibabel*
``npy``             :class:`ImageVolume` via *numpy*
``dcm`` series      one :class:`ImageVolume` via *pydicom* (sorted slices)
``json``            :class:`MeasurementSet` (list of ``componentName`` /
                    ``data`` records)
session extension   :class:`SessionSnapshot` (JSON, or ZIP holding
                    ``state.json`` plus bundled datasets)
==================  =====================================================
"""

from __future__ import annotations

import gzip
import io
import json
import logging
import zipfile
from typing import Any, Callable, Collection, Dict, List, Optional, Protocol, Sequence

import nibabel as nib
import numpy as np
import pydicom
from pydicom.filebase import DicomBytesIO
from pydantic import ValidationError

from ingestomatic.config.schema import IngestConfig
from ingestomatic.models import (
    ImageVolume,
    MeasurementRecord,
    MeasurementSet,
    NamedFile,
    SessionSnapshot,
)
from ingestomatic.utils.errors import ParseError

log = logging.getLogger(__name__)


class FormatReader(Protocol):
    """Parse known byte layouts into structured datasets."""

    def supported_extensions(self) -> Collection[str]:
        """Lower-case extensions (no dot) this reader can parse."""
        ...

    def parse(self, files: Sequence[NamedFile]) -> List[Any]:
        """Return one structured result per dataset found in *files*.

        Raises:
            ParseError: If the bytes cannot be interpreted.
        """
        ...


# ---------------------------------------------------------------------------
# individual decoders
# ---------------------------------------------------------------------------


def _to_zyx(array: np.ndarray, name: str) -> np.ndarray:
    """Reorder an ``(x, y[, z])`` array to ``(z, y, x)``."""
    if array.ndim == 2:
        return array.T[np.newaxis, ...]
    if array.ndim == 3:
        return array.T
    raise ParseError(f"{name}: expected a 2D or 3D image, got {array.ndim} dimensions")


def read_nifti(f: NamedFile) -> ImageVolume:
    data = f.data
    if f.name.lower().endswith(".gz"):
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError) as exc:
            raise ParseError(f"{f.name}: invalid gzip stream ({exc})") from exc
    img = nib.Nifti1Image.from_bytes(data)
    array = _to_zyx(np.asanyarray(img.dataobj), f.name)
    zooms = tuple(float(z) for z in img.header.get_zooms()[:3])
    zooms = zooms + (1.0,) * (3 - len(zooms))
    origin = tuple(float(v) for v in img.affine[:3, 3])
    return ImageVolume(
        name=f.name,
        array=array,
        spacing=zooms,
        origin=origin,
        metadata={"affine": img.affine.tolist()},
    )


def read_npy(f: NamedFile) -> ImageVolume:
    array = np.load(io.BytesIO(f.data), allow_pickle=False)
    return ImageVolume(name=f.name, array=_to_zyx(array, f.name))


def read_measurements(f: NamedFile) -> MeasurementSet:
    try:
        payload = json.loads(f.data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ParseError(f"{f.name}: invalid JSON ({exc})") from exc
    if isinstance(payload, dict) and "measurements" in payload:
        payload = payload["measurements"]
    if not isinstance(payload, list):
        raise ParseError(f"{f.name}: expected a list of measurement records")
    try:
        records = [MeasurementRecord.model_validate(r) for r in payload]
    except ValidationError as exc:
        raise ParseError(f"{f.name}: malformed measurement record\n{exc}") from exc
    return MeasurementSet(records=records)


def read_snapshot(f: NamedFile) -> SessionSnapshot:
    """Read a saved session: bare JSON or a ZIP bundle with ``state.json``."""
    if zipfile.is_zipfile(io.BytesIO(f.data)):
        with zipfile.ZipFile(io.BytesIO(f.data)) as zf:
            names = [n for n in zf.namelist() if not n.endswith("/")]
            if "state.json" not in names:
                raise ParseError(f"{f.name}: bundle has no state.json")
            raw_state = zf.read("state.json")
            datasets = {n: zf.read(n) for n in names if n != "state.json"}
    else:
        raw_state, datasets = f.data, {}

    try:
        state = json.loads(raw_state.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ParseError(f"{f.name}: invalid session state ({exc})") from exc
    if not isinstance(state, dict):
        raise ParseError(f"{f.name}: session state must be a JSON object")
    return SessionSnapshot(state=state, datasets=datasets)


def _slice_position(ds: pydicom.Dataset) -> float:
    ipp = getattr(ds, "ImagePositionPatient", None)
    if ipp is not None and len(ipp) == 3:
        return float(ipp[2])
    return float(getattr(ds, "InstanceNumber", 0) or 0)


def read_dicom_series(files: Sequence[NamedFile]) -> ImageVolume:
    """Stack the slices in *files* into one volume ordered along z."""
    slices = []
    for f in files:
        try:
            slices.append(pydicom.dcmread(DicomBytesIO(f.data), force=True))
        except Exception as exc:
            raise ParseError(f"{f.name}: not a readable DICOM file ({exc})") from exc
    slices = [ds for ds in slices if hasattr(ds, "PixelData")]
    if not slices:
        raise ParseError(f"{files[0].name}: series contains no image slices")

    slices.sort(key=_slice_position)
    planes = []
    for ds in slices:
        arr = ds.pixel_array.astype(np.float32)
        slope = float(getattr(ds, "RescaleSlope", 1.0) or 1.0)
        intercept = float(getattr(ds, "RescaleIntercept", 0.0) or 0.0)
        planes.append(arr * slope + intercept)
    if len({p.shape for p in planes}) != 1:
        raise ParseError(f"{files[0].name}: slices of the series differ in size")

    first = slices[0]
    row, col = (float(v) for v in getattr(first, "PixelSpacing", [1.0, 1.0]))
    if len(slices) > 1:
        dz = abs(_slice_position(slices[1]) - _slice_position(first)) or 1.0
    else:
        dz = float(getattr(first, "SliceThickness", 1.0) or 1.0)
    ipp = getattr(first, "ImagePositionPatient", None)
    origin = tuple(float(v) for v in ipp) if ipp is not None and len(ipp) == 3 else (0.0, 0.0, 0.0)

    return ImageVolume(
        name=files[0].name,
        array=np.stack(planes),
        spacing=(col, row, dz),
        origin=origin,
        metadata={
            "modality": str(getattr(first, "Modality", "") or ""),
            "series_description": str(getattr(first, "SeriesDescription", "") or ""),
            "slices": len(slices),
        },
    )


def _guarded(name: str, fn: Callable[..., Any], *args: Any) -> Any:
    """Call *fn*, re-raising third-party decoder failures as ParseError."""
    try:
        return fn(*args)
    except ParseError:
        raise
    except Exception as exc:
        raise ParseError(f"{name}: {exc}") from exc


# ---------------------------------------------------------------------------
# the default reader
# ---------------------------------------------------------------------------


class DefaultFormatReader:
    """Reader backed by nibabel, numpy and pydicom."""

    def __init__(self, config: Optional[IngestConfig] = None) -> None:
        self.config = config or IngestConfig()
        self._handlers: Dict[str, Callable[[NamedFile], Any]] = {
            "nii": read_nifti,
            "gz": self._read_gz,
            "npy": read_npy,
            "json": read_measurements,
            self.config.session_extension: read_snapshot,
        }

    def supported_extensions(self) -> Collection[str]:
        return {*self._handlers, *self.config.series_extensions}

    def _read_gz(self, f: NamedFile) -> Any:
        if f.name.lower().endswith(".nii.gz"):
            return read_nifti(f)
        raise ParseError(f"{f.name}: only .nii.gz is supported among gzip files")

    def parse(self, files: Sequence[NamedFile]) -> List[Any]:
        """Return the datasets in *files*.

        A batch made only of series files is read as one stacked volume;
        otherwise each file yields one result.
        """
        if not files:
            raise ParseError("Nothing to parse")

        if all(self.config.is_series(f.extension) for f in files):
            return [_guarded(files[0].name, read_dicom_series, files)]

        results: List[Any] = []
        for f in files:
            handler = self._handlers.get(f.extension)
            if handler is None:
                raise ParseError(f"{f.name}: no reader for .{f.extension or '<none>'} files")
            results.append(_guarded(f.name, handler, f))
        log.debug("Parsed %d file(s) into %d result(s)", len(files), len(results))
        return results


__all__ = [
    "FormatReader",
    "DefaultFormatReader",
    "read_nifti",
    "read_npy",
    "read_measurements",
    "read_snapshot",
    "read_dicom_series",
]
