"""TAP-style progress reporting.

Each manifest produces a plan line followed by one result line per entry:

    # /work/.resha.yaml
    1..3
    ok 1 - docs # noop
    not ok 2 - build # non-zero exit code (2)
    ok 3 - <unnamed> # SKIP (fail fast)

Command output appears as '#' diagnostics so the stream stays parseable by
standard TAP consumers.
"""

import sys
from dataclasses import dataclass, field
from typing import Optional, TextIO

SKIP_FAIL_FAST = 'SKIP (fail fast)'


@dataclass
class TapReporter:
    """Writes TAP lines and counts results."""
    stream: TextIO = field(default_factory=lambda: sys.stdout)
    passed: int = 0
    failed: int = 0
    skipped: int = 0

    def _write(self, line: str) -> None:
        self.stream.write(line + '\n')
        self.stream.flush()

    def plan(self, count: int, source: Optional[str] = None) -> None:
        """Announce a manifest and its entry count."""
        if source:
            self.diagnostic(source)
        self._write(f"1..{count}")

    def result(self, index: int, name: str, ok: bool, comment: Optional[str] = None) -> None:
        """Report one entry (index is 1-based)."""
        line = f"{'ok' if ok else 'not ok'} {index} - {name}"
        if comment:
            line += f" # {comment}"
        self._write(line)
        if ok:
            self.passed += 1
        else:
            self.failed += 1

    def skip(self, index: int, name: str, reason: str = SKIP_FAIL_FAST) -> None:
        """Report an entry that was not evaluated."""
        self._write(f"ok {index} - {name} # {reason}")
        self.skipped += 1

    def diagnostic(self, text: str) -> None:
        self._write(f"# {text}" if text else '#')

    def bail_out(self, reason: str) -> None:
        self._write(f"Bail out! {reason}")

    def summary(self) -> None:
        self.diagnostic(f"passed {self.passed}, failed {self.failed}, skipped {self.skipped}")
