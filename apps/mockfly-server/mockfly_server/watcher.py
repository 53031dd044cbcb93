"""Polling watcher that reloads the server when configuration files change."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Iterable

import structlog

LOGGER = structlog.get_logger("mockfly")

WATCHED_PATTERNS = ("*.json", "*.yaml", "*.yml")


class ConfigWatcher:
    """Polls file mtimes in a daemon thread and calls ``on_change`` after a debounce.

    Watches the configuration file itself plus every JSON/YAML file below the
    mock data directories, so edits to inlined response files also reload.
    """

    def __init__(
        self,
        config_path: Path,
        on_change: Callable[[set[Path]], object],
        *,
        data_dirs: Iterable[Path] = (),
        poll_interval: float = 1.0,
        debounce: float = 0.3,
    ) -> None:
        self.config_path = config_path
        self.data_dirs = [Path(directory) for directory in data_dirs]
        self.poll_interval = poll_interval
        self.debounce = debounce
        self._on_change = on_change
        self._mtimes: dict[Path, float] = {}
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def watched_files(self) -> set[Path]:
        files = {self.config_path} if self.config_path.exists() else set()
        for directory in self.data_dirs:
            if not directory.is_dir():
                continue
            for pattern in WATCHED_PATTERNS:
                files.update(path for path in directory.rglob(pattern) if path.is_file())
        return files

    def snapshot(self) -> None:
        self._mtimes = {}
        for path in self.watched_files():
            try:
                self._mtimes[path] = path.stat().st_mtime
            except OSError as exc:
                LOGGER.warning("watch_stat_failed", file=str(path), error=str(exc))

    def detect_changes(self) -> set[Path]:
        """Return files added, modified or deleted since the last scan."""

        changed: set[Path] = set()
        current = self.watched_files()
        for path in current:
            try:
                mtime = path.stat().st_mtime
            except OSError as exc:
                LOGGER.warning("watch_stat_failed", file=str(path), error=str(exc))
                continue
            previous = self._mtimes.get(path)
            if previous is None or mtime != previous:
                changed.add(path)
                self._mtimes[path] = mtime
        for path in set(self._mtimes) - current:
            changed.add(path)
            del self._mtimes[path]
        return changed

    def check(self) -> bool:
        """Run one poll cycle; returns True when ``on_change`` was invoked."""

        changed = self.detect_changes()
        if not changed:
            return False
        if self.debounce and self._stop.wait(self.debounce):
            return False
        changed |= self.detect_changes()
        LOGGER.info("config_change_detected", files=sorted(path.name for path in changed))
        try:
            self._on_change(changed)
        except Exception:
            LOGGER.exception("config_change_handler_failed")
        return True

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            LOGGER.warning("watcher_already_running", config=str(self.config_path))
            return
        self._stop.clear()
        self.snapshot()
        self._thread = threading.Thread(target=self._run, name="mockfly-config-watcher", daemon=True)
        self._thread.start()
        LOGGER.info("watcher_started", config=str(self.config_path), files=len(self._mtimes))

    def stop(self) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=self.poll_interval + self.debounce + 1)
            self._thread = None
        LOGGER.info("watcher_stopped", config=str(self.config_path))

    def _run(self) -> None:
        while not self._stop.wait(self.poll_interval):
            self.check()
