"""
DocScrub Results Module

Result records produced by the optimizer: one StageResult per stage, one
CommitDecision per package, one FileResult per processed file.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class StageStatus(Enum):
    """Whether a stage mutated the package."""
    OK = "ok"
    SKIPPED = "skipped"


class Outcome(Enum):
    """Per-file outcome reported to the caller."""
    WRITTEN = "written"
    NO_IMPROVEMENT = "no_improvement"
    FAILED = "failed"


@dataclass
class StageResult:
    """
    Outcome of one optimizer stage.

    OK means the stage changed the package. SKIPPED carries the reason it did
    not: nothing matched, a required part is absent, or a part was unreadable.
    """
    stage: str
    status: StageStatus = StageStatus.SKIPPED
    reason: str = ""
    removed: list[str] = field(default_factory=list)
    replaced: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    bytes_saved: int = 0

    @classmethod
    def ok(cls, stage: str, **kwargs) -> "StageResult":
        return cls(stage=stage, status=StageStatus.OK, **kwargs)

    @classmethod
    def skipped(cls, stage: str, reason: str, **kwargs) -> "StageResult":
        return cls(stage=stage, status=StageStatus.SKIPPED, reason=reason, **kwargs)

    @property
    def changed(self) -> bool:
        return self.status is StageStatus.OK


@dataclass
class CommitDecision:
    """Whole-package size comparison made after serialization."""
    original_size: int
    candidate_size: int
    written: bool = False

    @property
    def is_smaller(self) -> bool:
        return self.candidate_size < self.original_size

    @property
    def savings(self) -> int:
        return self.original_size - self.candidate_size

    @property
    def savings_ratio(self) -> float:
        if self.original_size <= 0:
            return 0.0
        return self.savings / self.original_size


@dataclass
class FileResult:
    """Everything the caller needs to report on one file."""
    input_path: Path
    output_path: Optional[Path] = None
    outcome: Outcome = Outcome.FAILED
    decision: Optional[CommitDecision] = None
    stages: list[StageResult] = field(default_factory=list)
    error: str = ""

    @property
    def success(self) -> bool:
        return self.outcome is not Outcome.FAILED
