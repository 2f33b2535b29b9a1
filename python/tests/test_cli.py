"""Tests for the doke command line."""

import json
import tempfile
from pathlib import Path

import pytest

from doke.cli import main


CONFIG = """
root: Item
children:
  - name: Name
  - modifiers?: [Modifier]
definitions:
  - common.yaml
parsers:
  - for: Modifier
    parser: modifiers/*.yaml
"""

COMMON = """
Name:
  - "Name: {value}"
"""

MODIFIERS = """
Modifier:
  - "Makes you jump incontrollably": JumpIncontrollablyModifier
Heal:
  - "Restores {amount:int} health"
"""


def _project(root: Path) -> Path:
    (root / "modifiers").mkdir()
    (root / "common.yaml").write_text(COMMON)
    (root / "modifiers" / "basic.yaml").write_text(MODIFIERS)
    (root / "sword.md").write_text("---\nname: Sword\n---\nName: {name}\n- Restores 3 health\n---\n")
    (root / "boots.md").write_text("Name: Boots\n- Makes you jump incontrollably\n")
    (root / "broken.md").write_text("Name: Broken\n- Restores lots health\n")
    config_path = root / "doke.yaml"
    config_path.write_text(CONFIG)
    return config_path


def test_single_file_prints_value(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        main([str(_project(root)), str(root / "sword.md")])
    out = json.loads(capsys.readouterr().out)
    assert out["type"] == "Item"
    assert out["fields"]["name"] == {"type": "Name", "fields": {"value": "Sword"}}
    assert out["fields"]["modifiers"] == [
        {"type": "Heal", "fields": {"amount": 3}, "abstract_type": "Modifier"},
    ]


def test_many_files_keyed_by_path(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        config_path = _project(root)
        main([str(config_path), str(root / "sword.md"), str(root / "boots.md"), "--jobs", "2", "--indent", "0"])
        out = json.loads(capsys.readouterr().out)
        assert list(out) == [str(root / "sword.md"), str(root / "boots.md")]
        boots = out[str(root / "boots.md")]
        assert boots["fields"]["modifiers"][0]["type"] == "JumpIncontrollablyModifier"


def test_failure_exits_nonzero(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        config_path = _project(root)
        with pytest.raises(SystemExit) as exc:
            main([str(config_path), str(root / "boots.md"), str(root / "broken.md")])
    assert exc.value.code == 1
    captured = capsys.readouterr()
    assert "broken.md" in captured.err
    assert "lots" in captured.err
    assert "JumpIncontrollablyModifier" in captured.out


def test_missing_config_exits(capsys):
    with pytest.raises(SystemExit) as exc:
        main(["/nonexistent/doke.yaml", "item.md"])
    assert exc.value.code == 1
    assert "config not found" in capsys.readouterr().err


def test_bad_config_exits(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        config_path = Path(tmpdir) / "doke.yaml"
        config_path.write_text("children: []\n")
        with pytest.raises(SystemExit) as exc:
            main([str(config_path), "item.md"])
    assert exc.value.code == 1
    assert "Error loading" in capsys.readouterr().err


def test_debug_prints_trace(capsys):
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        main([str(_project(root)), str(root / "boots.md"), "--debug"])
    err = capsys.readouterr().err
    assert "Makes you jump incontrollably" in err
    assert "matched" in err
