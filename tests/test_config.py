"""Smoke tests for the config loader."""

from pathlib import Path

import pytest

from ingestomatic import load_config


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text)
    return path


def test_default_yaml_loads():
    """Loading the built-in default YAML should succeed."""
    cfg = load_config()

    assert cfg.container_extensions == ["zip", "tar", "tgz", "tar.gz"]
    assert cfg.series_extensions == ["dcm"]
    assert cfg.overlay_state == {"selected_label": 1, "last_color_index": 1}
    assert cfg.download.token is None


def test_project_local_override(tmp_path: Path):
    _write(tmp_path / "config" / "ingest.yaml", "max_archive_depth: 3\nseries_extensions: [.DCM, ima]\n")

    cfg = load_config(root=tmp_path)

    assert cfg.max_archive_depth == 3
    assert cfg.series_extensions == ["dcm", "ima"]


def test_explicit_path_wins(tmp_path: Path):
    _write(tmp_path / "config" / "ingest.yaml", "max_archive_depth: 3\n")
    explicit = _write(tmp_path / "other.yaml", "max_archive_depth: 5\n")

    assert load_config(config_path=explicit, root=tmp_path).max_archive_depth == 5


def test_missing_explicit_path(tmp_path: Path):
    with pytest.raises(RuntimeError, match="not found"):
        load_config(config_path=tmp_path / "nope.yaml")


@pytest.mark.parametrize(
    "body",
    [
        "max_archive_depth: 0\n",
        "series_extensions: [zip]\n",
        "download:\n  timeout: -1\n",
    ],
)
def test_invalid_yaml_raises(tmp_path: Path, body: str):
    path = _write(tmp_path / "bad.yaml", body)

    with pytest.raises(RuntimeError, match="Invalid ingest configuration"):
        load_config(config_path=path)


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("INGESTOMATIC_TOKEN", "from-env")
    monkeypatch.setenv("INGESTOMATIC_TIMEOUT", "7.5")

    cfg = load_config()

    assert cfg.download.token == "from-env"
    assert cfg.download.timeout == 7.5


def test_non_numeric_timeout_is_ignored(monkeypatch):
    monkeypatch.setenv("INGESTOMATIC_TIMEOUT", "soon")

    assert load_config().download.timeout == 60.0
