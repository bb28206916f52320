"""
Domain-level data models shared by the pipeline, reader and CLI layers.

The module provides:

* **Enumerations** describing the closed vocabularies of the pipeline
  (`ItemKind`, `ItemState`, `ErrorKind`, `ElementType`, `AttachmentRole`).
* **Submission descriptors** (`FileSource`, `RemoteSource`) that callers hand
  to :class:`~ingestomatic.pipelines.queue.LoadQueue`.
* **`LoadItem`** – the mutable per-item record driven through the loading
  state machine.
* **Structured results** (`ImageVolume`, `MeasurementSet`, `SessionSnapshot`)
  produced by readers and the raw-volume decoder.

Only pydantic and numpy are imported so the module stays cheap to load.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ingestomatic.utils.naming import get_extension

# --------------------------------------------------------------------------- #
# 1 – closed vocabularies
# --------------------------------------------------------------------------- #


class ItemKind(str, Enum):
    """Logical category assigned to a load item at classification time."""

    REGULAR = "regular"
    SERIES = "series"
    REMOTE = "remote"
    RAW_VOLUME = "rawVolume"
    SESSION_SNAPSHOT = "sessionSnapshot"


class ItemState(str, Enum):
    """Lifecycle state of a :class:`LoadItem`."""

    NEEDS_DOWNLOAD = "needsDownload"
    NEEDS_INFO = "needsInfo"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"

    @property
    def settled(self) -> bool:
        """``True`` when a batch pass has nothing more to do for the item.

        ``needsInfo`` counts as settled: the item waits for the caller to
        supply raw-volume metadata and is resumed by a later call.
        """
        return self in (ItemState.READY, ItemState.ERROR, ItemState.NEEDS_INFO)


class ErrorKind(str, Enum):
    EXPANSION = "expansion"
    CLASSIFICATION = "classification"
    DOWNLOAD = "download"
    DECODE = "decode"
    PARSE = "parse"
    ATTACHMENT = "attachment"


class ElementType(str, Enum):
    """Fixed-width numeric element kinds accepted by the raw-volume decoder."""

    INT8 = "int8"
    UINT8 = "uint8"
    INT16 = "int16"
    UINT16 = "uint16"
    INT32 = "int32"
    UINT32 = "uint32"
    FLOAT32 = "float32"
    FLOAT64 = "float64"

    @property
    def itemsize(self) -> int:
        return np.dtype(self.value).itemsize


class AttachmentRole(str, Enum):
    """How the assembler routes a ready item into the scene."""

    PRIMARY = "primary"
    LABEL_OVERLAY = "labelOverlay"
    ANNOTATION = "annotation"
    UNTAGGED = "untagged"


# --------------------------------------------------------------------------- #
# 2 – value objects
# --------------------------------------------------------------------------- #


class AttachmentMeta(BaseModel, frozen=True):
    """Routing role plus free-form key/value pairs forwarded to the registrar.

    Attributes
    ----------
    role
        Decided once at classification time; drives the assembler.
    tags
        Opaque pairs (display name, colour map, …) handed to the scene
        registrar untouched. They never influence control flow.
    """

    role: AttachmentRole = AttachmentRole.UNTAGGED
    tags: Dict[str, Any] = {}


class RawVolumeInfo(BaseModel, frozen=True):
    """Shape metadata needed to interpret a headerless ``.raw`` buffer.

    Attributes
    ----------
    dimensions
        Number of samples along x, y and z.
    spacing
        Physical sample spacing along x, y and z.
    element_type
        Scalar type of every sample (alias ``elementType``).
    byte_order
        Endianness of multi-byte samples.
    """

    model_config = ConfigDict(populate_by_name=True)

    dimensions: Tuple[int, int, int]
    spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    element_type: ElementType = Field(..., alias="elementType")
    byte_order: Literal["little", "big"] = "little"

    @field_validator("dimensions")
    @classmethod
    def _positive_dimensions(cls, v: Tuple[int, int, int]) -> Tuple[int, int, int]:
        if any(d <= 0 for d in v):
            raise ValueError("dimensions must all be positive")
        return v

    @field_validator("spacing")
    @classmethod
    def _positive_spacing(cls, v: Tuple[float, float, float]) -> Tuple[float, float, float]:
        if any(s <= 0 for s in v):
            raise ValueError("spacing must all be positive")
        return v

    @property
    def sample_count(self) -> int:
        x, y, z = self.dimensions
        return x * y * z

    @property
    def expected_nbytes(self) -> int:
        return self.sample_count * self.element_type.itemsize

    @property
    def dtype(self) -> np.dtype:
        prefix = "<" if self.byte_order == "little" else ">"
        return np.dtype(self.element_type.value).newbyteorder(prefix)


class RemoteRef(BaseModel, frozen=True):
    """Where and how to fetch a remote item."""

    url: str
    headers: Dict[str, str] = {}
    auth_required: bool = False
    timeout: Optional[float] = None


class NamedFile(BaseModel, frozen=True):
    """An in-memory file: a base name plus its raw bytes."""

    name: str
    data: bytes

    @property
    def extension(self) -> str:
        return get_extension(self.name)


class FileSource(NamedFile, frozen=True):
    """A local file submitted for loading, with optional routing and raw info."""

    attachment: AttachmentMeta = AttachmentMeta()
    extra_info: Optional[RawVolumeInfo] = None


class RemoteSource(BaseModel, frozen=True):
    """A remote reference submitted for loading."""

    name: str
    url: str
    headers: Dict[str, str] = {}
    auth_required: bool = False
    attachment: AttachmentMeta = AttachmentMeta()
    extra_info: Optional[RawVolumeInfo] = None


# --------------------------------------------------------------------------- #
# 3 – the load item
# --------------------------------------------------------------------------- #


class LoadItem(BaseModel):
    """Mutable record for one logical unit moving through the load pipeline.

    Fields are only ever mutated by :class:`~ingestomatic.pipelines.queue.LoadQueue`
    (state transitions) and :class:`~ingestomatic.pipelines.assemble.Assembler`
    (warnings).
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str
    name: str
    kind: ItemKind
    # Kind that decides parsing. Equal to ``kind`` except for remote items,
    # which resolve by the extension of their name.
    content_kind: Optional[ItemKind] = None
    state: ItemState = ItemState.LOADING
    files: Tuple[NamedFile, ...] = ()
    parsed: Any = None
    extra_info: Optional[RawVolumeInfo] = None
    remote: Optional[RemoteRef] = None
    attachment: AttachmentMeta = AttachmentMeta()
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    warnings: List[str] = []

    @property
    def extension(self) -> str:
        return get_extension(self.name)

    @model_validator(mode="after")
    def _default_content_kind(self) -> "LoadItem":
        if self.content_kind is None:
            self.content_kind = self.kind
        return self


# --------------------------------------------------------------------------- #
# 4 – structured results
# --------------------------------------------------------------------------- #


@dataclass(eq=False)
class ImageVolume:
    """A scalar volume with physical spacing.

    ``array`` is indexed ``(z, y, x)`` so x varies fastest in memory.
    """

    name: str
    array: np.ndarray
    spacing: Tuple[float, float, float] = (1.0, 1.0, 1.0)
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def dimensions(self) -> Tuple[int, int, int]:
        z, y, x = self.array.shape[:3]
        return (x, y, z)


class MeasurementRecord(BaseModel, frozen=True):
    """One measurement widget definition (ruler, angle, …)."""

    model_config = ConfigDict(populate_by_name=True)

    component_name: str = Field(..., alias="componentName")
    data: Dict[str, Any] = {}


class MeasurementSet(BaseModel, frozen=True):
    records: List[MeasurementRecord] = []


class SessionSnapshot(BaseModel, frozen=True):
    """Saved application state plus any datasets bundled alongside it."""

    state: Dict[str, Any]
    datasets: Dict[str, bytes] = {}
