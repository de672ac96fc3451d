# SPDX-FileCopyrightText: 2025 Theori Inc.
# SPDX-License-Identifier: AGPL-3.0-or-later

"""
Concurrency-safe holder of the active probe configuration.

Readers take a shared lock only long enough to copy out a reference to the
current immutable ``Config``; a reload validates the new document with no lock
held and then swaps it in under the exclusive lock. Readers therefore always
see either the previous or the new configuration in full.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from .errors import ConfigError
from .models.module import Config, Module, load_config

logger = logging.getLogger(__name__)

ReloadHook = Callable[[bool, "ConfigError | None"], None]


class _RWLock:
    """Writer-preferring reader/writer lock."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._waiting_writers:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._waiting_writers += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._waiting_writers -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class ReloadStatus:
    success: bool
    last_success_timestamp: float
    failures_total: int
    generation: int

    def to_dict(self) -> dict[str, float | int | bool]:
        return {
            "success": self.success,
            "last_success_timestamp": self.last_success_timestamp,
            "failures_total": self.failures_total,
            "generation": self.generation,
        }


class SafeConfig:
    """Holds the current ``Config`` and the reload/probe-failure diagnostics."""

    def __init__(self, config: Config | None = None):
        self._lock = _RWLock()
        self._config = config if config is not None else Config()
        self._generation = 1 if config is not None else 0
        self._reload_success = config is not None
        self._last_success = time.time() if config is not None else 0.0
        self._reload_failures = 0
        self._counter_lock = threading.Lock()
        self._module_failures = {name: 0 for name in self._config.modules}

    @property
    def loaded(self) -> bool:
        return self.generation > 0

    @property
    def generation(self) -> int:
        with self._lock.read():
            return self._generation

    @property
    def config(self) -> Config:
        return self.get()

    def get(self) -> Config:
        """Snapshot of the active configuration; never mutated after publication."""
        with self._lock.read():
            return self._config

    def module(self, name: str) -> Module | None:
        return self.get().modules.get(name)

    def replace(self, config: Config) -> None:
        """Publish an already validated configuration."""
        failures = {name: 0 for name in config.modules}
        with self._lock.write(), self._counter_lock:
            self._config = config
            self._generation += 1
            self._reload_success = True
            self._last_success = time.time()
            self._module_failures = failures

    def reload(self, path: str | Path, notify: ReloadHook | None = None) -> None:
        """
        Load, validate and publish the document at ``path``.

        On failure the previous configuration stays active and the ``ConfigError``
        is raised after ``notify`` (if given) saw it.
        """
        try:
            config = load_config(path)
        except ConfigError as exc:
            with self._lock.write():
                self._reload_success = False
                self._reload_failures += 1
            logger.error("Error reloading config from %s: %s", path, exc)
            if notify is not None:
                notify(False, exc)
            raise
        self.replace(config)
        logger.info("Loaded config file %s with %d module(s)", path, len(config.modules))
        if notify is not None:
            notify(True, None)

    def record_failure(self, module_name: str) -> None:
        """Count a failed probe; modules dropped by a reload in the meantime are ignored."""
        with self._counter_lock:
            if module_name in self._module_failures:
                self._module_failures[module_name] += 1

    def failures(self) -> dict[str, int]:
        with self._counter_lock:
            return dict(self._module_failures)

    def status(self) -> ReloadStatus:
        with self._lock.read():
            return ReloadStatus(
                success=self._reload_success,
                last_success_timestamp=self._last_success,
                failures_total=self._reload_failures,
                generation=self._generation,
            )


__all__ = ["ReloadHook", "ReloadStatus", "SafeConfig"]
