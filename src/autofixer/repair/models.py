"""Data models for fix proposals, edit results and repair sessions."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

REPLACE_FILE = "replace_file"
REPLACE_RANGE = "replace_range"


@dataclass
class Edit:
    """One proposed edit.

    Field values are kept as received so the applier can reject bad shapes
    per edit.
    """

    path: Any
    strategy: Any
    new_content: Any = None
    start_line: Any = None
    end_line: Any = None
    new_text: Any = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edit":
        return cls(
            path=data.get("path"),
            strategy=data.get("strategy"),
            new_content=data.get("new_content"),
            start_line=data.get("startLine"),
            end_line=data.get("endLine"),
            new_text=data.get("new_text"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"path": self.path, "strategy": self.strategy}
        if self.strategy == REPLACE_RANGE:
            data.update(startLine=self.start_line, endLine=self.end_line, new_text=self.new_text)
        else:
            data["new_content"] = self.new_content
        return data


@dataclass
class EditResult:
    """Outcome of applying one edit."""

    path: str
    ok: bool
    strategy: Optional[str] = None
    reason: Optional[str] = None
    backup: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"path": self.path, "ok": self.ok}
        if self.ok:
            data["strategy"] = self.strategy
        else:
            data["reason"] = self.reason
        if self.backup:
            data["backup"] = self.backup
        return data


@dataclass
class FixProposal:
    """Structured edit list returned by the fix-proposal service."""

    edits: List[Edit] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"edits": [edit.to_dict() for edit in self.edits]}


@dataclass
class FixOutcome:
    """A proposal together with the results of applying it."""

    proposal: FixProposal
    results: List[EditResult] = field(default_factory=list)

    @property
    def applied(self) -> int:
        """Number of edits applied successfully."""
        return sum(1 for result in self.results if result.ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal": self.proposal.to_dict(),
            "results": [result.to_dict() for result in self.results],
        }


@dataclass
class TryResult:
    """Outcome of running a callable once, with a fix attempt on failure."""

    ok: bool
    out: Any = None
    error: Optional[str] = None
    fix: Optional[FixOutcome] = None


@dataclass
class RoundRecord:
    """What happened in one repair round."""

    round: int
    phase: str  # "load", "entry_point" or "runtime"
    error: str
    fix: Optional[FixOutcome] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round": self.round,
            "phase": self.phase,
            "error": self.error,
            "fixed": bool(self.fix and self.fix.applied),
            "fix": self.fix.to_dict() if self.fix else None,
        }


@dataclass
class RepairResult:
    """Terminal outcome of a repair session."""

    ok: bool
    rounds: int
    out: Any = None
    error: Optional[str] = None
    history: List[RoundRecord] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "ok": self.ok,
            "rounds": self.rounds,
            "history": [record.to_dict() for record in self.history],
            "warnings": list(self.warnings),
        }
        if self.ok:
            data["out"] = repr(self.out)
        else:
            data["error"] = self.error
        return data
