"""Edit application: strategies, range clamping, backups and per-edit failures."""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from autofixer.repair.edits import EditApplier, backup_name, replace_line_range
from autofixer.repair.models import Edit

FIVE_LINES = "one\ntwo\nthree\nfour\nfive"


@pytest.mark.unit
def test_replace_range_splices_lines():
    assert replace_line_range(FIVE_LINES, 2, 3, "X\nY") == "one\nX\nY\nfour\nfive"


@pytest.mark.unit
def test_replace_whole_range_equals_replace_file():
    assert replace_line_range(FIVE_LINES, 1, 5, "new\ncontent") == "new\ncontent"


@pytest.mark.unit
@pytest.mark.parametrize(
    "start,end,expected",
    [
        (-3, 1, "X\ntwo\nthree\nfour\nfive"),
        (0, 0, "X\ntwo\nthree\nfour\nfive"),
        (4, 99, "one\ntwo\nthree\nX"),
        (9, 12, "one\ntwo\nthree\nfour\nX"),
        (4, 2, "one\ntwo\nthree\nX\nfive"),
    ],
)
def test_replace_range_clamps_bounds(start, end, expected):
    assert replace_line_range(FIVE_LINES, start, end, "X") == expected


@pytest.mark.unit
def test_backup_name_replaces_colons_and_dots():
    stamp = datetime(2024, 5, 1, 12, 30, 45, 123000, tzinfo=timezone.utc)

    name = backup_name(Path("/x/a.js"), stamp)

    assert name == "a.js.2024-05-01T12-30-45-123000+00-00.bak"


@pytest.mark.unit
def test_replace_range_edit_on_disk(project, applier):
    target = project / "a.js"
    target.write_text(FIVE_LINES, encoding="utf-8")

    [result] = applier.apply(
        [Edit(path="a.js", strategy="replace_range", start_line=2, end_line=3, new_text="X\nY")]
    )

    assert result.ok
    assert result.strategy == "replace_range"
    assert target.read_text(encoding="utf-8").split("\n") == ["one", "X", "Y", "four", "five"]


@pytest.mark.unit
def test_existing_file_is_backed_up_before_change(project, applier):
    target = project / "mod.py"
    target.write_text("old", encoding="utf-8")

    [result] = applier.apply([Edit(path="mod.py", strategy="replace_file", new_content="new")])

    assert target.read_text(encoding="utf-8") == "new"
    backups = list(applier.backup_dir.glob("mod.py.*.bak"))
    assert len(backups) == 1
    assert backups[0].read_text(encoding="utf-8") == "old"
    assert result.backup == str(backups[0])


@pytest.mark.unit
def test_new_file_creates_parent_directories(project, applier):
    [result] = applier.apply(
        [Edit(path="pkg/sub/new.py", strategy="replace_file", new_content="x = 1\n")]
    )

    assert result.ok
    assert result.backup is None
    assert (project / "pkg" / "sub" / "new.py").read_text(encoding="utf-8") == "x = 1\n"


@pytest.mark.unit
def test_absolute_paths_are_used_as_is(tmp_path, applier):
    outside = tmp_path / "elsewhere.py"

    [result] = applier.apply([Edit(path=str(outside), strategy="replace_file", new_content="y")])

    assert result.path == str(outside)
    assert outside.read_text(encoding="utf-8") == "y"


@pytest.mark.unit
def test_bad_edits_fail_individually_and_batch_continues(project, applier):
    (project / "a.py").write_text("a", encoding="utf-8")

    results = applier.apply(
        [
            Edit(path="a.py", strategy="rewrite_everything", new_content="z"),
            Edit(path="a.py", strategy="replace_range", start_line="1", end_line=2, new_text="q"),
            Edit(path="a.py", strategy="replace_file", new_content=None),
            Edit(path="a.py", strategy="replace_range", start_line=True, end_line=1, new_text="q"),
            Edit(path=None, strategy="replace_file", new_content="z"),
            Edit(path="b.py", strategy="replace_file", new_content="b"),
        ]
    )

    assert [r.ok for r in results] == [False, False, False, False, False, True]
    assert results[0].reason == "unknown strategy: rewrite_everything"
    assert results[1].reason == "missing fields for replace_range"
    assert results[2].reason == "missing new_content"
    assert results[4].reason == "missing path"
    assert (project / "a.py").read_text(encoding="utf-8") == "a"
    assert (project / "b.py").read_text(encoding="utf-8") == "b"


@pytest.mark.unit
def test_backup_failure_is_recorded_not_raised(project, tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file in the way", encoding="utf-8")
    applier = EditApplier(project, blocker / "backups")
    (project / "a.py").write_text("a", encoding="utf-8")

    [result] = applier.apply([Edit(path="a.py", strategy="replace_file", new_content="b")])

    assert result.ok
    assert result.backup is None
    assert (project / "a.py").read_text(encoding="utf-8") == "b"
    assert len(applier.warnings) == 1
    assert "Backup of" in applier.warnings[0]


@pytest.mark.unit
def test_path_with_nul_byte_fails_without_aborting_batch(project, applier):
    results = applier.apply(
        [
            Edit(path="bad\x00name.py", strategy="replace_file", new_content="x"),
            Edit(path="good.py", strategy="replace_file", new_content="y"),
        ]
    )

    assert [r.ok for r in results] == [False, True]
    assert "null byte" in results[0].reason
    assert (project / "good.py").read_text(encoding="utf-8") == "y"
