"""
Configuration package façade.

* :func:`load_config` – locate, read and validate the ingest YAML.
* :class:`IngestConfig` / :class:`DownloadSettings` – the validated models.
"""

from .loader import load_config  # noqa: F401
from .schema import DownloadSettings, IngestConfig  # noqa: F401

__all__: list[str] = ["load_config", "IngestConfig", "DownloadSettings"]
