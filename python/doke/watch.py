"""Definition watch -- rebuild and swap the registry when sources change."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Callable

from .config import DokeConfig, build_registry, config_sources, load_config
from .errors import DokeError
from .grammar.registry import RegistryHandle, TypeRegistry

logger = logging.getLogger(__name__)

# build(config_path) -> (config, registry)
Builder = Callable[[Path], "tuple[DokeConfig, TypeRegistry]"]


def _default_build(config_path: Path) -> tuple[DokeConfig, TypeRegistry]:
    config = load_config(config_path)
    return config, build_registry(config)


class DefinitionWatcher:
    """Polls a project config and its definition files for changes.

    When the modification time of any watched file changes, or a file
    appears or disappears, a new registry is built off to the side and
    swapped into the handle together with its config. A failed rebuild
    keeps the previous registry installed.
    """

    def __init__(
        self,
        config_path: str | Path,
        handle: RegistryHandle,
        build: Builder | None = None,
    ) -> None:
        self.config_path = Path(config_path)
        self.handle = handle
        self._build = build or _default_build
        self._snapshot: dict[Path, float | None] = {}
        self._callbacks: list[Callable[[TypeRegistry], None]] = []
        self._poll_thread: threading.Thread | None = None
        self._running = False
        self._lock = threading.Lock()
        self.last_error: DokeError | None = None
        self.reloads = 0

    def on_reload(self, callback: Callable[[TypeRegistry], None]) -> None:
        """Register a callback fired with each newly installed registry."""
        with self._lock:
            self._callbacks.append(callback)

    def start(self, poll_interval: float = 1.0) -> None:
        """Start polling for changes in a background thread."""
        if self._running:
            return
        if not self._snapshot:
            self._snapshot = self._scan()
        self._running = True
        self._poll_thread = threading.Thread(
            target=self._poll_loop, args=(poll_interval,), daemon=True
        )
        self._poll_thread.start()

    def stop(self) -> None:
        """Stop the polling thread."""
        self._running = False
        if self._poll_thread is not None:
            self._poll_thread.join(timeout=5.0)
            self._poll_thread = None

    def poll_once(self) -> bool:
        """Check for changes once; reload when something changed.

        Returns True when a new registry was installed.
        """
        current = self._scan()
        if not self._snapshot:
            # first poll only records the baseline
            self._snapshot = current
            return False
        if current == self._snapshot:
            return False
        changed = sorted(str(p) for p in set(current) | set(self._snapshot)
                         if current.get(p) != self._snapshot.get(p))
        logger.info("Definition change detected: %s", ", ".join(changed))
        self._snapshot = current
        return self.reload()

    def reload(self) -> bool:
        """Rebuild from the config file and swap the result in."""
        try:
            config, registry = self._build(self.config_path)
        except DokeError as e:
            self.last_error = e
            logger.error("Reload of %s failed, keeping previous registry: %s", self.config_path, e)
            return False

        self.handle.swap(registry, config)
        self.last_error = None
        self.reloads += 1
        # sources may have moved with the config
        self._snapshot = self._scan()

        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(registry)
            except Exception:
                logger.exception("Reload callback %r failed", callback)
        return True

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _poll_loop(self, interval: float) -> None:
        while self._running:
            try:
                self.poll_once()
            except Exception:
                logger.exception("Definition poll failed")
            time.sleep(interval)

    def _watched_paths(self) -> list[Path]:
        paths = [self.config_path]
        try:
            config = load_config(self.config_path)
        except DokeError:
            return paths
        paths.extend(p for p, _ in config_sources(config))
        return paths

    def _scan(self) -> dict[Path, float | None]:
        snapshot: dict[Path, float | None] = {}
        for path in self._watched_paths():
            try:
                snapshot[path] = path.stat().st_mtime
            except OSError:
                snapshot[path] = None
        return snapshot
