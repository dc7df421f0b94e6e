"""Tests for configuration loading."""

import logging
from pathlib import Path

import pytest

from engine.config import build_progress_store, load_config, setup_logging
from engine.progress import InMemoryProgressStore, SqliteProgressStore
from engine.session import ProgressiveStoryLoader
from story.provider import InMemoryStoryProvider


def _write_settings(config_dir: Path, body: str) -> None:
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "settings.yaml").write_text(body, encoding="utf-8")


def test_load_config_reads_yaml(tmp_path: Path, monkeypatch):
    monkeypatch.delenv("STORY_ENGINE_PROGRESS_DB", raising=False)
    monkeypatch.delenv("STORY_ENGINE_LOG_LEVEL", raising=False)
    _write_settings(tmp_path, "engine:\n  progress_store: memory\n  max_lookahead_beats: 5\n")

    cfg = load_config(tmp_path)
    assert cfg["engine"]["progress_store"] == "memory"
    assert cfg["engine"]["max_lookahead_beats"] == 5
    assert cfg["logging"] == {}


def test_env_overrides_store_and_level(tmp_path: Path, monkeypatch):
    _write_settings(tmp_path, "engine:\n  progress_store: memory\nlogging:\n  level: INFO\n")
    monkeypatch.setenv("STORY_ENGINE_PROGRESS_DB", str(tmp_path / "p.db"))
    monkeypatch.setenv("STORY_ENGINE_LOG_LEVEL", "debug")

    cfg = load_config(tmp_path)
    assert cfg["engine"]["progress_store"] == "sqlite"
    assert cfg["logging"]["level"] == "DEBUG"
    store = build_progress_store(cfg)
    assert isinstance(store, SqliteProgressStore)


def test_missing_settings_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nowhere")


def test_bundled_settings_load():
    cfg = load_config()
    assert cfg["engine"]["enable_spoiler_prevention"] is True


def test_build_progress_store_defaults_to_memory():
    assert isinstance(build_progress_store({}), InMemoryProgressStore)
    with pytest.raises(ValueError):
        build_progress_store({"engine": {"progress_store": "redis"}})


def test_loader_reports_configured_options():
    cfg = {"engine": {"enable_spoiler_prevention": False, "max_lookahead_beats": 7}}
    loader = ProgressiveStoryLoader(InMemoryStoryProvider(), InMemoryProgressStore(), config=cfg)
    stats = loader.get_stats()
    assert stats["spoiler_prevention_enabled"] is False
    assert stats["max_lookahead_beats"] == 7


def test_setup_logging_quiets_aiosqlite(tmp_path: Path):
    setup_logging(verbose=True, log_file=str(tmp_path / "engine.log"))
    assert logging.getLogger("aiosqlite").level == logging.WARNING
