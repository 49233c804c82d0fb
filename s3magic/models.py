from __future__ import annotations
"""Data models for listing pages and deletion results."""
from dataclasses import dataclass, field
from typing import Optional

MAX_BATCH_SIZE = 1000
TOLERATED_ERROR_CODES = frozenset({"NoSuchKey"})


@dataclass
class ObjectPage:
    """Represents a single page of a bucket listing."""

    number: int
    keys: list[str] = field(default_factory=list)
    continuation_token: Optional[str] = None


@dataclass(frozen=True)
class DeleteFailure:
    key: str
    code: str
    message: str


@dataclass
class DeleteOutcome:
    """Per-key result of one batch."""

    deleted: list[str] = field(default_factory=list)
    failures: list[DeleteFailure] = field(default_factory=list)

    @property
    def succeeded(self) -> int:
        return len(self.deleted)

    @property
    def failed(self) -> int:
        return len(self.failures)


@dataclass
class RunSummary:
    """Aggregate tally for one run of the deletion pipeline.

    Only the authoritative pass is merged into ``succeeded``/``failed``;
    the preceding pass, when there is one, is tallied separately.
    """

    bucket: str
    succeeded: int = 0
    failed: int = 0
    failures: list[DeleteFailure] = field(default_factory=list)
    batches: int = 0
    listed: int = 0
    pages: int = 0
    first_pass_succeeded: int = 0
    first_pass_failed: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def accounted(self) -> int:
        return self.succeeded + self.failed

    def merge(self, outcome: DeleteOutcome) -> None:
        self.batches += 1
        self.succeeded += outcome.succeeded
        for failure in outcome.failures:
            if failure.code in TOLERATED_ERROR_CODES:
                self.succeeded += 1
                continue
            self.failed += 1
            self.failures.append(failure)

    def merge_first_pass(self, outcome: DeleteOutcome) -> None:
        self.first_pass_succeeded += outcome.succeeded
        self.first_pass_failed += outcome.failed
