"""
Pydantic models that mirror the YAML configuration consumed by *ingestomatic*.

The rest of the package works with a validated :class:`IngestConfig` instead
of ad-hoc dictionaries. Extensions are stored lower-case and without the
leading dot so they compare directly against
:func:`ingestomatic.utils.naming.get_extension`.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ingestomatic.utils.naming import container_suffix


def _norm_ext(value: str) -> str:
    return value.strip().lstrip(".").lower()


class DownloadSettings(BaseModel):
    """Transport options for :class:`~ingestomatic.pipelines.download.Downloader`.

    Attributes:
        timeout:     Seconds before a connect/read stalls out.
        chunk_size:  Bytes read per streamed chunk; one progress call each.
        auth_header: Header injected for items flagged ``auth_required``.
        auth_scheme: Prefix placed before the token (empty for a bare token).
        token:       Credential used for the injected header.
    """

    timeout: float = Field(60.0, gt=0)
    chunk_size: int = Field(65536, gt=0)
    auth_header: str = "Authorization"
    auth_scheme: str = "Bearer"
    token: Optional[str] = None


class IngestConfig(BaseModel):
    """Root configuration object."""

    container_extensions: List[str] = ["zip", "tar", "tgz", "tar.gz"]
    series_extensions: List[str] = ["dcm"]
    raw_extension: str = "raw"
    session_extension: str = "snapshot"
    annotation_suffix: str = ".measurements.json"
    max_archive_depth: int = Field(8, ge=1)
    download: DownloadSettings = DownloadSettings()
    overlay_state: Dict[str, Any] = {"selected_label": 1, "last_color_index": 1}

    @field_validator("container_extensions", "series_extensions")
    @classmethod
    def _normalise_list(cls, v: List[str]) -> List[str]:
        return [_norm_ext(e) for e in v if _norm_ext(e)]

    @field_validator("raw_extension", "session_extension")
    @classmethod
    def _normalise_one(cls, v: str) -> str:
        ext = _norm_ext(v)
        if not ext:
            raise ValueError("extension must not be empty")
        return ext

    @model_validator(mode="after")
    def _no_overlap(self):
        """A reserved extension may only play one role."""
        roles = [
            *self.container_extensions,
            *self.series_extensions,
            self.raw_extension,
            self.session_extension,
        ]
        dupes = sorted({e for e in roles if roles.count(e) > 1})
        if dupes:
            raise ValueError("extension(s) assigned to several roles: " + ", ".join(dupes))
        return self

    # ------------------------------------------------------------------ #
    def is_container(self, name: str) -> bool:
        """True when the file *name* ends in a container suffix (``tar.gz`` included)."""
        return container_suffix(name, self.container_extensions) is not None

    def is_series(self, ext: str) -> bool:
        return ext in self.series_extensions

    def is_annotation_name(self, name: str) -> bool:
        return bool(self.annotation_suffix) and name.lower().endswith(
            self.annotation_suffix.lower()
        )

    def pipeline_extensions(self) -> set[str]:
        """Extensions the pipeline handles itself, independent of any reader."""
        return {
            *self.container_extensions,
            *self.series_extensions,
            self.raw_extension,
            self.session_extension,
        }
