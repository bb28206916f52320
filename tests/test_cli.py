"""End-to-end runs of ``ingestomatic-cli`` through Click's test runner."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import numpy as np
import pytest
import structlog
from click.testing import CliRunner

from ingestomatic.cli import main

from .utils import make_zip


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    structlog.reset_defaults()


def _npy(path: Path, shape=(4, 4)) -> Path:
    buf = io.BytesIO()
    np.save(buf, np.zeros(shape, dtype=np.float32))
    path.write_bytes(buf.getvalue())
    return path


def _invoke(*args: str):
    return CliRunner().invoke(main, list(args))


def test_version():
    result = _invoke("--version")
    assert result.exit_code == 0


def test_load_single_file(tmp_path: Path):
    img = _npy(tmp_path / "ct.npy")

    result = _invoke("load", str(img))

    assert result.exit_code == 0, result.output
    assert "ct.npy" in result.output
    assert "primaries:   1" in result.output
    assert "Load complete" in result.output


def test_json_log_is_written(tmp_path: Path):
    _invoke("-v", "load", str(_npy(tmp_path / "ct.npy")))

    assert (tmp_path / "logs" / "ingestomatic.log").exists()


def test_errors_set_exit_status(tmp_path: Path):
    good = _npy(tmp_path / "ct.npy")
    bad = tmp_path / "report.docx"
    bad.write_bytes(b"PK")

    result = _invoke("load", str(good), str(bad))

    assert result.exit_code == 1
    assert "no reader for .docx" in result.output


def test_raw_volume_waits_without_info(tmp_path: Path):
    raw = tmp_path / "vol.raw"
    raw.write_bytes(bytes(8))

    result = _invoke("load", str(raw))

    assert result.exit_code == 0
    assert "waiting for --raw-info: vol.raw" in result.output


def test_raw_volume_with_info(tmp_path: Path):
    raw = tmp_path / "vol.raw"
    raw.write_bytes(bytes(16))

    result = _invoke("load", str(raw), "--raw-info", "vol.raw=2,2,2:1,1,2.5:uint16")

    assert result.exit_code == 0, result.output
    assert "primaries:   1" in result.output


def test_malformed_raw_info(tmp_path: Path):
    raw = tmp_path / "vol.raw"
    raw.write_bytes(bytes(8))

    result = _invoke("load", str(raw), "--raw-info", "vol.raw=2,2:uint8")

    assert result.exit_code == 2
    assert "--raw-info" in result.output


def test_overlay_is_attached(tmp_path: Path):
    ct = _npy(tmp_path / "ct.npy")
    seg = _npy(tmp_path / "seg.npy")

    result = _invoke("load", str(ct), str(seg), "--overlay", "seg.npy")

    assert result.exit_code == 0, result.output
    assert "overlays:    1" in result.output


def test_nothing_to_load():
    result = _invoke("load")

    assert result.exit_code == 2
    assert "Nothing to load" in result.output


def test_expand_lists_supported_entries(tmp_path: Path):
    archive = tmp_path / "study.zip"
    archive.write_bytes(make_zip([("a/scan.nii", b"nii"), ("readme.docx", b"doc")]))

    result = _invoke("expand", str(archive))

    assert result.exit_code == 0, result.output
    assert "scan.nii" in result.output
    assert "readme.docx" not in result.output
    assert "1 supported file(s)" in result.output


def test_expand_corrupt_archive(tmp_path: Path):
    archive = tmp_path / "broken.zip"
    archive.write_bytes(b"nope")

    result = _invoke("expand", str(archive))

    assert result.exit_code == 1
    assert "Cannot open archive" in result.output


def test_invalid_config_is_reported(tmp_path: Path):
    cfg = tmp_path / "ingest.yaml"
    cfg.write_text("max_archive_depth: 0\n")

    result = _invoke("--config", str(cfg), "load", str(_npy(tmp_path / "ct.npy")))

    assert result.exit_code == 1
    assert "Invalid ingest configuration" in result.output
