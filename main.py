from __future__ import annotations

import logging
import random
import sys

import uvicorn
from fastapi import FastAPI

from ers.app import create_app
from ers.lifecycle import ShutdownTrigger
from ers.metrics import ServerMetrics
from ers.settings import Settings, settings
from ers.store import build_store

log = logging.getLogger("ers")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def log_level_name(raw: str) -> str:
    """Canonical level name; aliases like WARN/FATAL map to WARNING/CRITICAL."""
    level = logging.getLevelName(raw.strip().upper())
    if not isinstance(level, int):
        return "INFO"
    if level <= logging.NOTSET:
        return "DEBUG"
    return logging.getLevelName(level)


def configure_logging(cfg: Settings = settings) -> None:
    logging.basicConfig(level=log_level_name(cfg.log_level), format=LOG_FORMAT, stream=sys.stderr)


def build_app(cfg: Settings = settings) -> FastAPI:
    """App factory: ``uvicorn --factory main:build_app``."""
    metrics = ServerMetrics()
    store = build_store(cfg)
    return create_app(
        store,
        shutdown=ShutdownTrigger(exit_code=cfg.exit_code),
        rng=random.Random(),
        metrics=metrics,
        default_rate=cfg.default_rate,
        percent_as_fraction=cfg.percent_as_fraction,
        access_log_enabled=cfg.access_log,
    )


def run(cfg: Settings = settings) -> int:
    configure_logging(cfg)
    try:
        app = build_app(cfg)
    except ValueError as e:
        # Bad store backend or metrics registration failure.
        log.critical("Failed to start: %s", e)
        return cfg.exit_code

    log.info("Starting up on http://localhost:%d", cfg.port)
    uvicorn.run(app, host=cfg.host, port=cfg.port, access_log=False, log_level=log_level_name(cfg.log_level).lower())
    return 0


if __name__ == "__main__":
    raise SystemExit(run())
