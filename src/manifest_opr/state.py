"""Run state for manifest orchestration.

Tracks per-entry status (unchecked, fresh, stale, done, failed, skipped) and
the manifest-level outcome that decides whether the file is rewritten.
"""

import time
from dataclasses import dataclass, field
from typing import Optional

from entry import EXEC_SUCCESS, NOOP, ReifyResult

UNCHECKED = 'unchecked'
FRESH = 'fresh'
STALE = 'stale'
DONE = 'done'
FAILED = 'failed'
SKIPPED = 'skipped'


@dataclass
class EntryState:
    """Per-entry execution state.

    Attributes:
        index: 1-based position in the manifest
        name: Entry display name
        status: Current status
        prior_digest: Digest recorded in the manifest before the run
        new_digest: Digest produced by a successful run
        error: Failure message if failed
    """
    index: int
    name: str
    status: str = UNCHECKED
    prior_digest: Optional[str] = None
    new_digest: Optional[str] = None
    error: Optional[str] = None
    started_at: Optional[float] = None
    completed_at: Optional[float] = None

    def start(self) -> None:
        self.started_at = time.time()

    def apply(self, result: ReifyResult) -> None:
        """Move to the status implied by a reify or dry-run result."""
        self.completed_at = time.time()
        if result.status == NOOP:
            self.status = FRESH
        elif result.status == EXEC_SUCCESS:
            self.status = DONE
            self.new_digest = result.digest
        else:
            self.status = STALE if result.is_dry_fail else FAILED
            self.error = result.message

    def skip(self) -> None:
        self.status = SKIPPED

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def changed(self) -> bool:
        """True if a new digest differs from the recorded one."""
        return self.new_digest is not None and self.new_digest != self.prior_digest

    @property
    def duration(self) -> float:
        """Seconds between start() and apply(), 0.0 if not timed."""
        if self.started_at is None or self.completed_at is None:
            return 0.0
        return self.completed_at - self.started_at


@dataclass
class RunOutcome:
    """Result of running one manifest.

    Attributes:
        success: No entry failed (dry-run staleness counts as failure)
        changed: At least one entry recorded a different digest, or under
                 dry-run, would run
        text: Replacement manifest text, entries in original order
        entries: Per-entry states
    """
    success: bool
    changed: bool
    text: str
    entries: list[EntryState] = field(default_factory=list)

    @property
    def skipped(self) -> list[EntryState]:
        return [e for e in self.entries if e.status == SKIPPED]
