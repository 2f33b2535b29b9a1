"""Tests for the DefinitionWatcher."""

import os
import tempfile
import time
from pathlib import Path
from unittest.mock import MagicMock

from doke.config import load_config
from doke.errors import GrammarError
from doke.grammar.registry import RegistryHandle
from doke.watch import DefinitionWatcher


CONFIG = "root: Item\ndefinitions:\n  - defs/*.yaml\n"


def _touch_later(path: Path, seconds: float = 10.0) -> None:
    stat = path.stat()
    os.utime(path, (stat.st_atime + seconds, stat.st_mtime + seconds))


def _project(root: Path) -> Path:
    (root / "defs").mkdir()
    (root / "defs" / "common.yaml").write_text("Name:\n  - \"Name: {value}\"\n")
    config_path = root / "doke.yaml"
    config_path.write_text(CONFIG)
    return config_path


class TestWatchPolling:
    def test_first_poll_records_baseline(self):
        """The first poll only snapshots modification times."""
        with tempfile.TemporaryDirectory() as tmpdir:
            build = MagicMock()
            watcher = DefinitionWatcher(_project(Path(tmpdir)), RegistryHandle(), build=build)
            assert watcher.poll_once() is False
            assert watcher.poll_once() is False
            build.assert_not_called()

    def test_definition_change_triggers_reload(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config_path = _project(root)
            registry, config = MagicMock(), MagicMock()
            build = MagicMock(return_value=(config, registry))
            handle = RegistryHandle()
            watcher = DefinitionWatcher(config_path, handle, build=build)
            watcher.poll_once()

            _touch_later(root / "defs" / "common.yaml")
            assert watcher.poll_once() is True

            build.assert_called_once_with(config_path)
            assert handle.snapshot() == (registry, config)
            assert watcher.reloads == 1
            assert watcher.last_error is None

    def test_new_definition_file_triggers_reload(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            build = MagicMock(return_value=(MagicMock(), MagicMock()))
            watcher = DefinitionWatcher(_project(root), RegistryHandle(), build=build)
            watcher.poll_once()

            (root / "defs" / "more.yaml").write_text("Tag:\n  - \"{name}\"\n")
            assert watcher.poll_once() is True
            assert build.call_count == 1

    def test_config_change_triggers_reload(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config_path = _project(root)
            build = MagicMock(return_value=(MagicMock(), MagicMock()))
            watcher = DefinitionWatcher(config_path, RegistryHandle(), build=build)
            watcher.poll_once()

            _touch_later(config_path)
            assert watcher.poll_once() is True

    def test_failed_rebuild_keeps_previous_registry(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            old = MagicMock()
            handle = RegistryHandle(old, "old-config")
            build = MagicMock(side_effect=GrammarError("Invalid YAML", "defs/common.yaml"))
            watcher = DefinitionWatcher(_project(root), handle, build=build)
            watcher.poll_once()

            _touch_later(root / "defs" / "common.yaml")
            assert watcher.poll_once() is False
            assert handle.snapshot() == (old, "old-config")
            assert isinstance(watcher.last_error, GrammarError)
            assert watcher.reloads == 0

    def test_reload_callbacks_fire(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            registry = MagicMock()
            build = MagicMock(return_value=(MagicMock(), registry))
            watcher = DefinitionWatcher(_project(Path(tmpdir)), RegistryHandle(), build=build)

            seen = []
            watcher.on_reload(seen.append)
            watcher.on_reload(MagicMock(side_effect=RuntimeError("boom")))
            assert watcher.reload() is True
            assert seen == [registry]


class TestWatchDefaultBuild:
    def test_default_build_loads_real_registry(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config_path = _project(root)
            handle = RegistryHandle()
            watcher = DefinitionWatcher(config_path, handle)
            assert watcher.reload() is True

            registry, config = handle.snapshot()
            assert "Name" in registry
            assert config.root == "Item"
            assert config == load_config(config_path)


class TestWatchThread:
    def test_start_stop(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            build = MagicMock(return_value=(MagicMock(), MagicMock()))
            watcher = DefinitionWatcher(_project(root), RegistryHandle(), build=build)

            watcher.start(poll_interval=0.01)
            assert watcher._running
            watcher.start(poll_interval=0.01)  # second start is a no-op

            _touch_later(root / "defs" / "common.yaml")
            deadline = time.time() + 2.0
            while watcher.reloads == 0 and time.time() < deadline:
                time.sleep(0.01)
            watcher.stop()

            assert watcher.reloads == 1
            assert not watcher._running
            assert watcher._poll_thread is None
