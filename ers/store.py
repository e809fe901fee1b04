from __future__ import annotations

import logging
from typing import Callable, Optional

from .settings import Settings

log = logging.getLogger(__name__)

Observer = Callable[[float], None]


class RateStoreError(Exception):
    pass


class RateReadError(RateStoreError):
    pass


class RateWriteError(RateStoreError):
    pass


class RateParseError(RateStoreError):
    pass


def parse_rate(text: str) -> float:
    """Parse stored rate text.

    Accepts plain decimals and exponent form ("0.001", "1E-03").
    """
    try:
        return float(text.strip())
    except ValueError:
        raise RateParseError(f"Stored rate is not a number: {text!r}") from None


class RateStore:
    """Single error-rate value with get/set.

    Every successful get and set is reported to ``observer`` (normally the
    configured-error-ratio gauge). Subclasses implement ``_load``/``_save``.
    Nothing is validated here; range checks belong to the caller.
    """

    def __init__(self, observer: Optional[Observer] = None) -> None:
        self.observer = observer

    def get(self) -> float:
        rate = self._load()
        self._observe(rate)
        return rate

    def set(self, rate: float) -> None:
        rate = float(rate)
        self._save(rate)
        self._observe(rate)

    def _observe(self, rate: float) -> None:
        if self.observer is not None:
            self.observer(rate)

    def _load(self) -> float:
        raise NotImplementedError

    def _save(self, rate: float) -> None:
        raise NotImplementedError


class FileRateStore(RateStore):
    """Rate persisted as decimal text in one file.

    No locking and no atomic rename: the last writer wins and a reader racing
    a writer may see a torn value, which comes back as RateParseError.
    """

    def __init__(self, path: str, observer: Optional[Observer] = None) -> None:
        super().__init__(observer)
        self.path = path

    def _load(self) -> float:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError as e:
            raise RateReadError(f"Cannot read rate file {self.path}: {e}") from e
        return parse_rate(text)

    def _save(self, rate: float) -> None:
        try:
            with open(self.path, "w", encoding="utf-8") as f:
                f.write(repr(rate))
        except OSError as e:
            raise RateWriteError(f"Cannot write rate file {self.path}: {e}") from e
        log.debug("Wrote rate %r to %s", rate, self.path)

    def __repr__(self) -> str:
        return f"FileRateStore({self.path!r})"


class MemoryRateStore(RateStore):
    """In-process store with the same contract as FileRateStore."""

    def __init__(self, initial: Optional[float] = None, observer: Optional[Observer] = None) -> None:
        super().__init__(observer)
        self._value = initial

    def _load(self) -> float:
        if self._value is None:
            raise RateReadError("No rate has been set")
        return self._value

    def _save(self, rate: float) -> None:
        self._value = rate

    def __repr__(self) -> str:
        return "MemoryRateStore()"


def build_store(cfg: Settings, observer: Optional[Observer] = None) -> RateStore:
    backend = cfg.store_backend.strip().lower()
    if backend == "file":
        return FileRateStore(cfg.rate_path, observer=observer)
    if backend == "memory":
        return MemoryRateStore(observer=observer)
    raise ValueError(f"Unknown store backend: {cfg.store_backend!r} (expected 'file' or 'memory').")
