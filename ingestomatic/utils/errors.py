"""Exceptions raised by the ingestion pipeline.

Every pipeline error carries an :class:`~ingestomatic.models.ErrorKind` so the
state machine can record *why* an item failed without inspecting messages.
"""

from __future__ import annotations

from ingestomatic.models import ErrorKind


class IngestError(RuntimeError):
    """Base class for failures scoped to a single load item."""

    kind: ErrorKind = ErrorKind.PARSE


class ExpansionError(IngestError):
    """Raised for a corrupt or over-deep archive."""

    kind = ErrorKind.EXPANSION


class ClassificationError(IngestError):
    """Raised when a batch contains more than one session snapshot."""

    kind = ErrorKind.CLASSIFICATION


class DownloadError(IngestError):
    """Raised on transport failure while fetching a remote item."""

    kind = ErrorKind.DOWNLOAD


class DecodeError(IngestError):
    """Raised when a raw buffer does not match its declared shape and type."""

    kind = ErrorKind.DECODE


class ParseError(IngestError):
    """Raised when a format reader fails or yields other than one result."""

    kind = ErrorKind.PARSE


class AttachmentError(IngestError):
    """Raised when an overlay or annotation has no primary dataset to attach to."""

    kind = ErrorKind.ATTACHMENT
