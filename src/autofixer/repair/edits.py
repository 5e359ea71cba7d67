"""Apply proposed edits to files, backing up each file before it is changed."""

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from ..indexer.chunker import split_lines
from .models import REPLACE_FILE, REPLACE_RANGE, Edit, EditResult

logger = logging.getLogger(__name__)


def backup_name(path: Path, now: Optional[datetime] = None) -> str:
    """Backup file name: ``<basename>.<ISO timestamp, ':' and '.' as '-'>.bak``."""
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat().replace(":", "-").replace(".", "-")
    return f"{path.name}.{stamp}.bak"


def replace_line_range(text: str, start_line: int, end_line: int, new_text: str) -> str:
    """Replace the inclusive 1-based line range of text with the lines of new_text.

    Bounds are clamped to ``[1, line count]`` and the end never precedes the start.
    """
    lines = split_lines(text)
    count = len(lines)
    start = max(1, min(start_line, count))
    end = max(start, min(end_line, count))
    return "\n".join(lines[: start - 1] + split_lines(new_text) + lines[end:])


def _is_line_number(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class EditApplier:
    """Applies edit batches relative to a project root."""

    def __init__(self, root_path: Path, backup_dir: Path):
        """Initialize the applier.

        Args:
            root_path: Base for relative edit paths
            backup_dir: Scratch directory that receives backups
        """
        self.root_path = Path(root_path)
        self.backup_dir = Path(backup_dir)
        self.warnings: List[str] = []

    def resolve(self, path: str) -> Path:
        candidate = Path(path)
        return candidate if candidate.is_absolute() else self.root_path / candidate

    def backup(self, path: Path) -> Optional[Path]:
        """Copy a file into the backup directory.

        Failures are recorded as warnings and never raised.

        Returns:
            Backup path, or None if the copy failed
        """
        target = self.backup_dir / backup_name(path)
        try:
            self.backup_dir.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, target)
            logger.debug(f"Backed up {path} to {target}")
            return target
        except OSError as e:
            message = f"Backup of {path} failed: {e}"
            self.warnings.append(message)
            logger.warning(message)
            return None

    def apply_one(self, edit: Edit) -> EditResult:
        """Apply one edit, returning a failure result instead of raising."""
        if not isinstance(edit.path, str) or not edit.path:
            return EditResult(path=str(edit.path), ok=False, reason="missing path")

        target = self.resolve(edit.path)
        try:
            backup: Optional[Path] = None
            if target.exists():
                backup = self.backup(target)
            else:
                target.parent.mkdir(parents=True, exist_ok=True)

            if edit.strategy == REPLACE_RANGE:
                if (
                    not isinstance(edit.new_text, str)
                    or not _is_line_number(edit.start_line)
                    or not _is_line_number(edit.end_line)
                ):
                    return EditResult(
                        path=str(target), ok=False, reason="missing fields for replace_range"
                    )
                current = target.read_text(encoding="utf-8") if target.exists() else ""
                target.write_text(
                    replace_line_range(current, edit.start_line, edit.end_line, edit.new_text),
                    encoding="utf-8",
                )
            elif edit.strategy == REPLACE_FILE:
                if not isinstance(edit.new_content, str):
                    return EditResult(path=str(target), ok=False, reason="missing new_content")
                target.write_text(edit.new_content, encoding="utf-8")
            else:
                return EditResult(
                    path=str(target), ok=False, reason=f"unknown strategy: {edit.strategy}"
                )

        except (OSError, UnicodeError, ValueError) as e:
            # ValueError: paths with embedded NUL bytes
            return EditResult(path=str(target), ok=False, reason=str(e))

        logger.info(f"Applied {edit.strategy} to {target}")
        return EditResult(
            path=str(target),
            ok=True,
            strategy=edit.strategy,
            backup=str(backup) if backup else None,
        )

    def apply(self, edits: Iterable[Edit]) -> List[EditResult]:
        """Apply a batch of edits; one bad edit never aborts the rest.

        Returns:
            One result per edit, in order
        """
        results = []
        for edit in edits:
            result = self.apply_one(edit)
            if not result.ok:
                logger.warning(f"Edit for {result.path} not applied: {result.reason}")
            results.append(result)
        return results
