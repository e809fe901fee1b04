from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def default_rate_path() -> str:
    return os.path.join(tempfile.gettempdir(), "rate.txt")


@dataclass(frozen=True)
class Settings:
    # Server
    host: str = os.getenv("ERS_HOST", "0.0.0.0")
    port: int = _env_int("PORT", 8080)

    # Rate store
    store_backend: str = os.getenv("ERS_STORE", "file")  # file|memory
    rate_path: str = os.getenv("ERS_RATE_PATH") or default_rate_path()
    default_rate: float = _env_float("ERS_DEFAULT_RATE", 0.001)

    # /errors/{percent} stores the raw percent unless this is set, in which
    # case the value is divided by 100 first.
    percent_as_fraction: bool = _env_bool("ERS_PERCENT_AS_FRACTION", False)

    # Logging
    log_level: str = os.getenv("ERS_LOG_LEVEL", "INFO")
    access_log: bool = _env_bool("ERS_ACCESS_LOG", True)

    # Status used by /quitquitquit and fatal startup errors.
    exit_code: int = 1


settings = Settings()
