"""Manifest executor.

Runs every entry of a manifest in file order and produces the replacement
manifest text. Two independent policies apply:

- fail_fast: after the first failed entry, later entries are skipped; they
  are neither hashed nor executed and keep their recorded digest.
- dry_run: entries are only classified as fresh or stale; nothing runs and
  no digest changes.

All path resolution happens against the manifest's directory, so the
process working directory is never touched.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from entry import NOOP, Entry, ReifyResult
from manifest import Manifest
from manifest_opr.state import DONE, FAILED, STALE, EntryState, RunOutcome
from reporting.tap import TapReporter

logger = logging.getLogger(__name__)


class OutputBuffer:
    """Line sink that either forwards lines at once or holds them."""

    def __init__(self, reporter: TapReporter, live: bool):
        self.reporter = reporter
        self.live = live
        self.lines: list[str] = []

    def __call__(self, line: str) -> None:
        if self.live:
            self.reporter.diagnostic(line)
        else:
            self.lines.append(line)

    def flush(self) -> None:
        for line in self.lines:
            self.reporter.diagnostic(line)
        self.lines.clear()


@dataclass
class ManifestExecutor:
    """Evaluates manifest entries sequentially.

    Attributes:
        manifest: The manifest to run
        dry_run: Classify entries without executing them
        fail_fast: Skip the remaining entries after the first failure
        verbose: Stream command output as it is produced (otherwise it is
                 only shown for failed entries)
        reporter: Destination for progress lines
    """
    manifest: Manifest
    dry_run: bool = False
    fail_fast: bool = False
    verbose: bool = False
    reporter: TapReporter = field(default_factory=TapReporter)

    def run(self) -> RunOutcome:
        """Run all entries and build the replacement manifest text."""
        entries = self.manifest.entries
        self.reporter.plan(len(entries), self.manifest.name)
        logger.info(f"Running {len(entries)} entries from {self.manifest.name}"
                    f"{' (dry run)' if self.dry_run else ''}")

        states: list[EntryState] = []
        failed = False

        for index, entry in enumerate(entries, start=1):
            state = EntryState(index=index, name=entry.display_name, prior_digest=entry.digest)
            states.append(state)

            if self.fail_fast and failed:
                state.skip()
                self.reporter.skip(index, state.name)
                continue

            state.start()
            result = self._run_entry(entry, index)
            state.apply(result)
            self._log_state(state)

            if state.failed:
                failed = True

        new_digests: list[Optional[str]] = [s.new_digest for s in states]
        text = self.manifest.serialize(new_digests)

        if self.dry_run:
            changed = any(s.status == STALE for s in states)
        else:
            changed = any(s.changed for s in states)

        return RunOutcome(success=not failed, changed=changed, text=text, entries=states)

    def _run_entry(self, entry: Entry, index: int) -> ReifyResult:
        """Evaluate one entry and report it."""
        name = entry.display_name

        if self.dry_run:
            result = entry.dry_run()
            comment = 'dry run' if result.success else result.message
            self.reporter.result(index, name, result.success, comment)
            return result

        output = OutputBuffer(self.reporter, live=self.verbose)
        result = entry.reify(output)

        if result.success:
            self.reporter.result(index, name, True, 'noop' if result.status == NOOP else None)
        else:
            output.flush()
            self.reporter.result(index, name, False, result.message)

        return result

    def _log_state(self, state: EntryState) -> None:
        label = f"Entry {state.index} ({state.name})"
        if state.status == DONE:
            logger.info(f"{label} done in {state.duration:.1f}s")
        elif state.status == STALE:
            logger.info(f"{label} would run")
        elif state.status == FAILED:
            logger.error(f"{label} failed after {state.duration:.1f}s: {state.error}")
