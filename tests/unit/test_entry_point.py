"""Fresh module loading and entry point resolution."""

import sys
from pathlib import Path

import pytest

from autofixer.repair.loop import ArtifactLoader, Found, NotFound, resolve_entry_point


def write_module(directory: Path, source: str, name: str = "target.py") -> Path:
    path = directory / name
    path.write_text(source, encoding="utf-8")
    return path


@pytest.mark.unit
def test_reload_sees_current_disk_contents(tmp_path: Path):
    loader = ArtifactLoader()
    path = write_module(tmp_path, "VALUE = 1\n")

    first = loader.reload(path)
    path.write_text("VALUE = 2\n", encoding="utf-8")
    second = loader.reload(path)

    assert first.VALUE == 1
    assert second.VALUE == 2
    assert first.__name__ != second.__name__


@pytest.mark.unit
def test_reload_supports_dataclasses(tmp_path: Path):
    source = (
        "from dataclasses import dataclass\n"
        "\n"
        "@dataclass\n"
        "class Point:\n"
        "    x: int\n"
        "\n"
        "def run():\n"
        "    return Point(3).x\n"
    )
    module = ArtifactLoader().reload(write_module(tmp_path, source))

    assert module.run() == 3


@pytest.mark.unit
def test_failed_reload_is_not_left_registered(tmp_path: Path):
    loader = ArtifactLoader(prefix="reload_probe")
    path = write_module(tmp_path, "raise RuntimeError('at import')\n")
    before = {name for name in sys.modules if name.startswith("reload_probe")}

    with pytest.raises(RuntimeError):
        loader.reload(path)

    after = {name for name in sys.modules if name.startswith("reload_probe")}
    assert after == before


@pytest.mark.unit
def test_syntax_error_surfaces_from_reload(tmp_path: Path):
    with pytest.raises(SyntaxError):
        ArtifactLoader().reload(write_module(tmp_path, "def broken(:\n    pass\n"))


@pytest.mark.unit
def test_configured_name_wins(tmp_path: Path):
    module = ArtifactLoader().reload(
        write_module(tmp_path, "def main():\n    return 1\n\ndef check():\n    return 2\n")
    )

    resolved = resolve_entry_point(module, "check")

    assert isinstance(resolved, Found)
    assert resolved.name == "check"


@pytest.mark.unit
def test_main_is_the_conventional_fallback(tmp_path: Path):
    module = ArtifactLoader().reload(
        write_module(tmp_path, "def helper():\n    return 0\n\ndef main():\n    return 1\n")
    )

    resolved = resolve_entry_point(module, "run")

    assert resolved.name == "main"


@pytest.mark.unit
def test_first_own_public_callable_skips_imports_and_private_names(tmp_path: Path):
    source = (
        "from os.path import join\n"
        "LIMIT = 3\n"
        "def _private():\n"
        "    return 0\n"
        "def compute():\n"
        "    return LIMIT\n"
        "def later():\n"
        "    return 1\n"
    )
    module = ArtifactLoader().reload(write_module(tmp_path, source))

    resolved = resolve_entry_point(module)

    assert resolved.name == "compute"
    assert resolved.func() == 3


@pytest.mark.unit
def test_dunder_all_order_is_respected(tmp_path: Path):
    source = (
        "__all__ = ['CONSTANT', 'second', 'first']\n"
        "CONSTANT = 1\n"
        "def first():\n"
        "    return 'first'\n"
        "def second():\n"
        "    return 'second'\n"
    )
    module = ArtifactLoader().reload(write_module(tmp_path, source))

    assert resolve_entry_point(module).name == "second"


@pytest.mark.unit
def test_module_without_callables_is_not_found(tmp_path: Path):
    module = ArtifactLoader().reload(write_module(tmp_path, "import os\nVALUE = 1\n"))

    resolved = resolve_entry_point(module, "run")

    assert isinstance(resolved, NotFound)
    assert resolved.tried[:2] == ("run", "main")
