"""
YAML configuration loader.

Search precedence (first match wins)
1. An explicit path argument (``--config`` on the CLI).
2. ``<root>/config/ingest.yaml`` – project-local override.
3. The packaged default shipped inside the wheel.

Two environment variables are applied last so that credentials and network
timeouts never need to live in a file:

* ``INGESTOMATIC_TOKEN``   – overrides ``download.token``.
* ``INGESTOMATIC_TIMEOUT`` – overrides ``download.timeout`` (ignored when not
  a number).
"""

from __future__ import annotations

import logging
import os
from importlib.resources import as_file, files
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from .schema import IngestConfig

log = logging.getLogger(__name__)

try:
    _DEFAULT_CONFIG = files("ingestomatic.resources") / "default_ingest.yaml"
except ModuleNotFoundError:
    _DEFAULT_CONFIG = Path(__file__).resolve().parent.parent / "resources" / "default_ingest.yaml"


def _project_local(root: Optional[Path]) -> Optional[Path]:
    if root is None:
        return None
    return root / "config" / "ingest.yaml"


def _first_existing(*candidates: Optional[Path]) -> Optional[Path]:
    for p in candidates:
        if p is not None and p.exists():
            return p
    return None


def _load_yaml(path: Path) -> dict:
    """Read a YAML mapping; an empty document yields an empty dict."""
    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise RuntimeError(f"{path} must contain a YAML mapping, got {type(data).__name__}")
    return data


def _apply_env(raw: dict) -> dict:
    download = dict(raw.get("download") or {})
    token = os.getenv("INGESTOMATIC_TOKEN")
    if token:
        download["token"] = token
    timeout = os.getenv("INGESTOMATIC_TIMEOUT")
    if timeout:
        try:
            download["timeout"] = float(timeout)
        except ValueError:
            log.warning("Ignoring non-numeric INGESTOMATIC_TIMEOUT=%r", timeout)
    if download:
        raw["download"] = download
    return raw


def load_config(
    *,
    config_path: Optional[str | Path] = None,
    root: Optional[str | Path] = None,
) -> IngestConfig:
    """Return a validated :class:`IngestConfig`.

    Args:
        config_path: Explicit YAML path. ``None`` triggers the search sequence
            described in the module doc-string.
        root: Project directory that may hold ``config/ingest.yaml``.

    Returns:
        The merged and validated configuration.

    Raises:
        RuntimeError: When the YAML fails validation.
    """
    explicit = Path(config_path).expanduser().resolve() if config_path else None
    root = Path(root).expanduser().resolve() if root else None

    if explicit is not None and not explicit.exists():
        raise RuntimeError(f"Config file not found: {explicit}")

    resolved = _first_existing(explicit, _project_local(root))
    if resolved is None:
        with as_file(_DEFAULT_CONFIG) as p:
            raw = _load_yaml(p)
        log.debug("Using packaged default configuration")
    else:
        raw = _load_yaml(resolved)
        log.debug("Using configuration from %s", resolved)

    try:
        return IngestConfig(**_apply_env(raw))
    except ValidationError as exc:
        raise RuntimeError(f"Invalid ingest configuration:\n{exc}") from exc
