"""Manifest entries and the reify/dry-run state machine.

An entry is one command plus the files it reads and writes and the digest
recorded after its last successful run. Reifying an entry compares the
recorded digest with a fresh one and only runs the command when they differ:

    unchecked -> fresh (noop)
              -> stale -> executed -> done (new digest) | failed

Entries never change during a run. The new digest only exists in the
ReifyResult and is handed back to serialize().
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Protocol, runtime_checkable

import yaml

from common import LineSink, OutputStreamError, run_script
from config import ManifestError
from digest import MissingRequiredFilesError, compute_digest, missing_paths

logger = logging.getLogger(__name__)

UNNAMED = '<unnamed>'

# Characters a YAML stream can't hold raw, plus the ones it reads as line breaks
_UNSAFE_CHARS = re.compile(
    '[^\x09\x0A\x0D\x20-\x7E\xA0-\u2027\u202A-\uD7FF\uE000-\uFFFD\U00010000-\U0010FFFF]'
)
_LINE_BREAKS = re.compile('[\r\n\x85\u2028\u2029]')

# ReifyResult.status values
EXEC_SUCCESS = 'exec_success'
NOOP = 'noop'
FAIL = 'fail'

# ReifyFail.kind values
MISSING_REQUIRED_FILES = 'missing_required_files'
EXEC_FAIL = 'exec_fail'
DRY_FAIL = 'dry_fail'
OUTPUT_STREAM_FAIL = 'output_stream_fail'


@runtime_checkable
class FromDocument(Protocol):
    """Types that can be built from a parsed document node."""

    @classmethod
    def from_document(cls, node: Any, base_dir: Path) -> Any:
        """Build an instance from a parsed node."""


@dataclass(frozen=True)
class ReifyFail:
    """Why an entry did not reach a fresh state.

    Attributes:
        kind: One of MISSING_REQUIRED_FILES, EXEC_FAIL, DRY_FAIL, OUTPUT_STREAM_FAIL
        exit_code: Command exit code (EXEC_FAIL, OUTPUT_STREAM_FAIL)
        missing: Required files that don't exist (MISSING_REQUIRED_FILES)
    """
    kind: str
    exit_code: Optional[int] = None
    missing: tuple[str, ...] = ()

    @classmethod
    def missing_required_files(cls, missing: list[str]) -> 'ReifyFail':
        return cls(kind=MISSING_REQUIRED_FILES, missing=tuple(missing))

    @classmethod
    def exec_fail(cls, code: int) -> 'ReifyFail':
        return cls(kind=EXEC_FAIL, exit_code=code)

    @classmethod
    def dry_fail(cls) -> 'ReifyFail':
        return cls(kind=DRY_FAIL)

    @classmethod
    def output_stream_fail(cls, code: int) -> 'ReifyFail':
        return cls(kind=OUTPUT_STREAM_FAIL, exit_code=code)

    @property
    def message(self) -> str:
        if self.kind == MISSING_REQUIRED_FILES:
            return f"missing required files: {', '.join(self.missing)}"
        if self.kind == EXEC_FAIL:
            return f"non-zero exit code ({self.exit_code})"
        if self.kind == DRY_FAIL:
            return 'dry run, things have changed'
        return f"output stream failed (exit code {self.exit_code})"

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class ReifyResult:
    """Outcome of reify() or dry_run()."""
    status: str
    digest: Optional[str] = None
    failure: Optional[ReifyFail] = None

    @classmethod
    def exec_success(cls, digest: str) -> 'ReifyResult':
        return cls(status=EXEC_SUCCESS, digest=digest)

    @classmethod
    def noop(cls) -> 'ReifyResult':
        return cls(status=NOOP)

    @classmethod
    def fail(cls, failure: ReifyFail) -> 'ReifyResult':
        return cls(status=FAIL, failure=failure)

    @property
    def success(self) -> bool:
        return self.status != FAIL

    @property
    def message(self) -> str:
        """Failure text for reports, empty on success."""
        return self.failure.message if self.failure is not None else ''

    @property
    def is_dry_fail(self) -> bool:
        return self.failure is not None and self.failure.kind == DRY_FAIL


def _str_list(value: Any) -> list[str]:
    """Coerce a document value to a list of strings.

    A string becomes a one-item list, a list keeps its string items,
    anything else is empty.
    """
    if isinstance(value, str):
        return [value]
    if isinstance(value, list):
        return [v for v in value if isinstance(v, str)]
    return []


def _optional_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def _normalize_cmd(cmd: str) -> str:
    """Collapse trailing newlines to one, the form a literal block reads back as."""
    return cmd.rstrip('\n') + '\n'


def _quote(value: str) -> str:
    """Double-quoted YAML scalar with every character YAML would alter escaped."""
    return _UNSAFE_CHARS.sub(
        lambda m: f"\\u{ord(m.group()):04x}",
        json.dumps(value, ensure_ascii=False),
    )


def _scalar(value: str) -> str:
    """Render value as a YAML scalar that reads back unchanged."""
    if value and not _UNSAFE_CHARS.search(value) and not _LINE_BREAKS.search(value):
        try:
            if yaml.safe_load(value) == value:
                return value
        except yaml.YAMLError:
            pass
    return _quote(value)


def _needs_indent_indicator(lines: list[str]) -> bool:
    """True when YAML can't detect a literal block's indentation on its own.

    Detection looks at the leading blank lines and the first content line,
    so both must start exactly at the block's indentation.
    """
    for line in lines:
        if line.strip():
            return line.startswith(' ')
        if line:
            return True
    return False


@dataclass(frozen=True)
class Entry:
    """One manifest record.

    Attributes:
        cmd: Shell command text (part of the digest)
        name: Optional label used in reports
        files: Outputs; may not exist yet
        required_files: Inputs; must exist before anything runs
        digest: Digest recorded by the last successful run
        base_dir: Directory relative paths and the command are resolved in
    """
    cmd: str
    name: Optional[str] = None
    files: list[str] = field(default_factory=list)
    required_files: list[str] = field(default_factory=list)
    digest: Optional[str] = None
    base_dir: Path = field(default_factory=Path.cwd)

    @property
    def display_name(self) -> str:
        return self.name if self.name else UNNAMED

    @classmethod
    def from_document(cls, node: Any, base_dir: Path) -> 'Entry':
        """Create Entry from a parsed manifest item.

        Raises:
            ManifestError: If node isn't a mapping or has no usable 'cmd'
        """
        if not isinstance(node, dict):
            raise ManifestError("Manifest file is malformed, entry is not a map")

        cmd = node.get('cmd')
        if not isinstance(cmd, str):
            raise ManifestError("Manifest file is malformed, missing 'cmd' key")
        if not cmd.strip():
            raise ManifestError("Manifest file is malformed, empty 'cmd'")

        digest = node.get('digest')
        if digest is None:
            digest = node.get('sha')

        return cls(
            cmd=_normalize_cmd(cmd),
            name=_optional_str(node.get('name')),
            files=_str_list(node.get('files')),
            required_files=_str_list(node.get('required_files')),
            digest=_optional_str(digest),
            base_dir=base_dir,
        )

    def compute_digest(self) -> str:
        """Digest of the entry's current files and command."""
        return compute_digest(self.cmd, self.files, self.required_files, self.base_dir)

    def missing_required_files(self) -> list[str]:
        return missing_paths(self.required_files, self.base_dir)

    def is_stale(self) -> bool:
        """True if the entry has no recorded digest or it no longer matches."""
        if self.digest is None:
            return True
        return self.compute_digest() != self.digest

    def reify(self, sink: LineSink) -> ReifyResult:
        """Bring the entry up to date, running its command if stale.

        Command output is streamed to sink line by line.
        """
        missing = self.missing_required_files()
        if missing:
            return ReifyResult.fail(ReifyFail.missing_required_files(missing))

        try:
            if not self.is_stale():
                return ReifyResult.noop()

            logger.debug(f"Entry '{self.display_name}' is stale, executing")
            try:
                code = run_script(self.cmd, self.files, self.required_files, sink, cwd=self.base_dir)
            except OutputStreamError as e:
                return ReifyResult.fail(ReifyFail.output_stream_fail(e.returncode))

            if code != 0:
                return ReifyResult.fail(ReifyFail.exec_fail(code))

            return ReifyResult.exec_success(self.compute_digest())
        except MissingRequiredFilesError as e:
            return ReifyResult.fail(ReifyFail.missing_required_files(e.missing))

    def dry_run(self) -> ReifyResult:
        """Classify the entry without executing anything."""
        missing = self.missing_required_files()
        if missing:
            return ReifyResult.fail(ReifyFail.missing_required_files(missing))

        try:
            if self.is_stale():
                return ReifyResult.fail(ReifyFail.dry_fail())
        except MissingRequiredFilesError as e:
            return ReifyResult.fail(ReifyFail.missing_required_files(e.missing))
        return ReifyResult.noop()

    def serialize(self, new_digest: Optional[str] = None) -> str:
        """Render the entry as a manifest list item.

        Args:
            new_digest: Digest to record instead of the current one

        Returns:
            Block text ending in a newline
        """
        lines = ['-']

        if self.name is not None:
            lines.append(f"  name: {_scalar(self.name)}")

        lines.extend(self._serialize_cmd())

        if self.required_files:
            lines.append('  required_files:')
            lines.extend(f"  - {_scalar(f)}" for f in self.required_files)

        if self.files:
            lines.append('  files:')
            lines.extend(f"  - {_scalar(f)}" for f in self.files)

        digest = new_digest or self.digest
        if digest:
            lines.append(f"  digest: {_scalar(digest)}")

        return '\n'.join(lines) + '\n'

    def _serialize_cmd(self) -> list[str]:
        """Lines for the cmd key.

        A literal block, unless the text holds characters a literal block
        can't carry, which get a double-quoted scalar instead.
        """
        if _UNSAFE_CHARS.search(self.cmd) or _LINE_BREAKS.search(self.cmd.replace('\n', '')):
            return [f"  cmd: {_quote(self.cmd)}"]

        body = self.cmd[:-1] if self.cmd.endswith('\n') else self.cmd
        cmd_lines = body.split('\n')
        header = '  cmd: |2' if _needs_indent_indicator(cmd_lines) else '  cmd: |'
        return [header] + [f"    {line}" if line else '' for line in cmd_lines]
