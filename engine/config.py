"""Configuration loading from settings.yaml and .env.

Typical wiring::

    cfg = load_config()
    setup_logging(log_file=cfg["logging"]["log_file"], level=cfg["logging"]["level"])
    async with build_progress_store(cfg) as store:
        loader = ProgressiveStoryLoader(provider, store, config=cfg)
        view = await loader.initialize_story("lost-manor", "player-1")
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

import yaml
from dotenv import load_dotenv

from .progress import InMemoryProgressStore, SqliteProgressStore

_ROOT = Path(__file__).resolve().parent.parent


def load_config(
    config_dir: str | Path | None = None,
) -> dict:
    """Load settings.yaml and .env, return merged config dict."""
    if config_dir is None:
        config_dir = _ROOT / "config"
    config_dir = Path(config_dir)

    # Load .env (silently skip if missing)
    env_path = config_dir / ".env"
    load_dotenv(env_path)

    settings_path = config_dir / "settings.yaml"
    if not settings_path.exists():
        raise FileNotFoundError(f"Config not found: {settings_path}")

    with open(settings_path, encoding="utf-8") as f:
        cfg = yaml.safe_load(f) or {}

    engine = cfg.setdefault("engine", {})
    logging_cfg = cfg.setdefault("logging", {})

    db_override = os.getenv("STORY_ENGINE_PROGRESS_DB", "")
    if db_override:
        engine["progress_store"] = "sqlite"
        engine["progress_db"] = db_override

    level_override = os.getenv("STORY_ENGINE_LOG_LEVEL", "")
    if level_override:
        logging_cfg["level"] = level_override.upper()

    return cfg


def setup_logging(verbose: bool = False, log_file: str | None = None, level: str | None = None) -> None:
    if verbose:
        resolved = logging.DEBUG
    else:
        resolved = getattr(logging, (level or "INFO").upper(), logging.INFO)
    fmt = "%(asctime)s — %(name)s — %(levelname)s — %(message)s"

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(level=resolved, format=fmt, handlers=handlers)

    # Quiet down noisy libraries
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def build_progress_store(cfg: dict) -> InMemoryProgressStore | SqliteProgressStore:
    """Return the (unopened) progress store the settings ask for."""
    engine = cfg.get("engine", {})
    kind = engine.get("progress_store", "memory")
    if kind == "sqlite":
        db_path = Path(engine.get("progress_db", "data/progress.db"))
        if not db_path.is_absolute():
            db_path = _ROOT / db_path
        return SqliteProgressStore(db_path)
    if kind != "memory":
        raise ValueError(f"Unknown progress_store: {kind}")
    return InMemoryProgressStore()
