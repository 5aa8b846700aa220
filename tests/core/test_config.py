"""Tests for LoadwatchConfig persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from loadwatch.core.config import (
    DEFAULT_CLEANUP_DELAY_S,
    DEFAULT_POLL_INTERVAL_S,
    SCHEMA_VERSION,
    LoadwatchConfig,
    LoadwatchConfigData,
)


def test_missing_file_gives_defaults(tmp_path: Path) -> None:
    cfg = LoadwatchConfig.load(config_path=tmp_path / "cfg.json")
    assert cfg.data == LoadwatchConfigData()
    assert not (tmp_path / "cfg.json").exists()


def test_create_if_missing_writes_defaults(tmp_path: Path) -> None:
    path = tmp_path / "sub" / "cfg.json"
    LoadwatchConfig.load(config_path=path, create_if_missing=True)
    assert json.loads(path.read_text())["cleanup_delay_s"] == DEFAULT_CLEANUP_DELAY_S


def test_save_and_reload_roundtrip(tmp_path: Path) -> None:
    path = tmp_path / "cfg.json"
    cfg = LoadwatchConfig.load(config_path=path)
    cfg.set_cleanup_delay(2.5)
    cfg.set_trace(True)
    cfg.save()

    loaded = LoadwatchConfig.load(config_path=path)
    assert loaded.data.cleanup_delay_s == 2.5
    assert loaded.data.trace is True


def test_invalid_values_fall_back_to_defaults(tmp_path: Path) -> None:
    path = tmp_path / "cfg.json"
    path.write_text(
        json.dumps(
            {
                "schema_version": SCHEMA_VERSION,
                "cleanup_delay_s": -3,
                "trace": "yes",
                "log_level": "chatty",
                "poll_interval_s": 0,
                "unknown_key": 1,
            }
        )
    )
    data = LoadwatchConfig.load(config_path=path).data
    assert data.cleanup_delay_s == DEFAULT_CLEANUP_DELAY_S
    assert data.trace is True
    assert data.log_level == "INFO"
    assert data.poll_interval_s == DEFAULT_POLL_INTERVAL_S


def test_schema_mismatch_resets(tmp_path: Path) -> None:
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"schema_version": 999, "cleanup_delay_s": 9.0}))
    assert LoadwatchConfig.load(config_path=path).data.cleanup_delay_s == DEFAULT_CLEANUP_DELAY_S

    kept = LoadwatchConfig.load(config_path=path, reset_on_version_mismatch=False)
    assert kept.data.cleanup_delay_s == 9.0
    assert kept.data.schema_version == SCHEMA_VERSION


@pytest.mark.parametrize("content", ["not json", "[1, 2]"])
def test_unreadable_file_gives_defaults(tmp_path: Path, content: str) -> None:
    path = tmp_path / "cfg.json"
    path.write_text(content)
    assert LoadwatchConfig.load(config_path=path).data == LoadwatchConfigData()


def test_set_cleanup_delay_rejects_negative(tmp_path: Path) -> None:
    cfg = LoadwatchConfig(path=tmp_path / "cfg.json")
    with pytest.raises(ValueError):
        cfg.set_cleanup_delay(-1)


def test_apply_logging_uses_configured_level(tmp_path: Path, monkeypatch) -> None:
    calls = []
    monkeypatch.setattr(
        "loadwatch.core.config.setup_logging", lambda **kwargs: calls.append(kwargs)
    )
    cfg = LoadwatchConfig(path=tmp_path / "cfg.json", data=LoadwatchConfigData(log_level="DEBUG"))
    cfg.apply_logging(log_dir=tmp_path)
    assert calls == [{"level": "DEBUG", "log_dir": tmp_path}]
