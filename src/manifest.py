"""Manifest loading and serialization.

A manifest is a YAML sequence of entries living beside the files it governs:

    - name: docs
      cmd: |
        make html
      required_files:
      - docs/index.rst
      files:
      - build/html/index.html
      digest: 3a7bd3e2...

Relative paths inside entries are resolved against the manifest's directory.
Serialization writes entries back in the same order with their (possibly new)
digests. Once a manifest has been written, loading and serializing it again
reproduces it byte for byte.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import yaml

from config import ManifestError, resolve_manifest_path
from entry import Entry

logger = logging.getLogger(__name__)

# Turns document text into plain Python data (lists, dicts, strings)
DocumentParser = Callable[[str], Any]


def parse_yaml(text: str) -> Any:
    """Parse manifest text with PyYAML's safe loader."""
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestError(f"Can't load YAML from string: {e}")


@dataclass
class Manifest:
    """Ordered entries loaded from one manifest file.

    Attributes:
        entries: Entries in file order
        base_dir: Directory entries resolve paths against
        source_path: Path the manifest was loaded from (None for in-memory)
    """
    entries: list[Entry] = field(default_factory=list)
    base_dir: Path = field(default_factory=Path.cwd)
    source_path: Optional[Path] = None

    @property
    def name(self) -> str:
        return str(self.source_path) if self.source_path else '<memory>'

    def __len__(self) -> int:
        return len(self.entries)

    @classmethod
    def from_document(cls, data: Any, base_dir: Path, source_path: Optional[Path] = None) -> 'Manifest':
        """Create Manifest from a parsed document.

        Raises:
            ManifestError: If the document is not a list of entry maps
        """
        if not isinstance(data, list):
            raise ManifestError("Manifest file is malformed, expected a list of entries")

        entries = []
        for i, node in enumerate(data):
            try:
                entries.append(Entry.from_document(node, base_dir))
            except ManifestError as e:
                raise ManifestError(f"Entry {i + 1}: {e}")

        return cls(entries=entries, base_dir=base_dir, source_path=source_path)

    @classmethod
    def from_text(
        cls,
        text: str,
        base_dir: Path,
        source_path: Optional[Path] = None,
        parser: DocumentParser = parse_yaml,
    ) -> 'Manifest':
        """Create Manifest from document text."""
        return cls.from_document(parser(text), base_dir, source_path)

    def serialize(self, new_digests: Optional[list[Optional[str]]] = None) -> str:
        """Render all entries as manifest text.

        Args:
            new_digests: Per-entry digest overrides, aligned with entries
                         (None items keep the recorded digest)
        """
        if new_digests is None:
            new_digests = [None] * len(self.entries)
        if len(new_digests) != len(self.entries):
            raise ValueError(
                f"Expected {len(self.entries)} digest overrides, got {len(new_digests)}"
            )
        return ''.join(e.serialize(d) for e, d in zip(self.entries, new_digests))


class ManifestLoader:
    """Loads and writes manifest files."""

    def __init__(self, parser: DocumentParser = parse_yaml):
        self.parser = parser

    def load_file(self, path: Path) -> Manifest:
        """Load manifest from a file path.

        Args:
            path: Path to manifest file

        Returns:
            Manifest whose base_dir is the file's directory

        Raises:
            ManifestError: If file not found or invalid
        """
        resolved = resolve_manifest_path(path)
        logger.debug(f"Reading manifest {resolved}")

        try:
            text = resolved.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise ManifestError(f"Couldn't read manifest {resolved}: {e}")

        try:
            return Manifest.from_text(text, resolved.parent, resolved, parser=self.parser)
        except ManifestError as e:
            raise ManifestError(f"{resolved}: {e}")

    def write_file(self, path: Path, text: str) -> None:
        """Replace the manifest's content with text."""
        path.write_text(text, encoding='utf-8')
        logger.info(f"Updated manifest {path}")


def load_manifest(path: str | Path) -> Manifest:
    """Load a manifest file with the default YAML parser."""
    return ManifestLoader().load_file(Path(path))
