"""Content digest for manifest entries.

The digest of an entry is a SHA-256 over the bytes of every tracked file,
in canonical path order, followed by the command text. Reordering files in
the manifest never changes it; editing any file or the command always does.
"""

import hashlib
import logging
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

# Read buffer for hashing; files are streamed, never loaded whole
CHUNK_SIZE = 8192


class DigestError(OSError):
    """A tracked file could not be read while hashing."""


class MissingRequiredFilesError(Exception):
    """One or more required files do not exist."""

    def __init__(self, missing: list[str]):
        self.missing = list(missing)
        super().__init__(f"missing required files: {', '.join(self.missing)}")


def _canonical(path: str, base_dir: Path) -> Path:
    """Resolve path against base_dir, following symlinks. Raises OSError if absent."""
    try:
        return (base_dir / path).resolve(strict=True)
    except RuntimeError as e:
        # Symlink loops raise RuntimeError before Python 3.13
        raise OSError(f"Couldn't resolve {path}: {e}") from e


def missing_paths(paths: Iterable[str], base_dir: Path) -> list[str]:
    """Return the subset of paths that don't resolve, in input order."""
    missing = []
    for p in paths:
        try:
            _canonical(p, base_dir)
        except OSError:
            missing.append(p)
    return missing


def resolve_paths(paths: Iterable[str], base_dir: Path, strict: bool = False) -> list[Path]:
    """Resolve paths to canonical absolute paths.

    Args:
        paths: Paths as written in the manifest
        base_dir: Directory relative paths are resolved against
        strict: Raise MissingRequiredFilesError on unresolved paths
                instead of dropping them

    Returns:
        Resolved paths, in input order
    """
    resolved = []
    missing = []
    for p in paths:
        try:
            resolved.append(_canonical(p, base_dir))
        except OSError:
            missing.append(p)
    if strict and missing:
        raise MissingRequiredFilesError(missing)
    return resolved


def _update_from_file(hasher, path: Path) -> None:
    try:
        with open(path, 'rb') as f:
            while True:
                chunk = f.read(CHUNK_SIZE)
                if not chunk:
                    break
                hasher.update(chunk)
    except OSError as e:
        raise DigestError(f"Couldn't read {path}: {e}") from e


def compute_digest(
    cmd: str,
    files: list[str],
    required_files: list[str],
    base_dir: Path,
) -> str:
    """Compute the hex digest for a command and its files.

    Unresolvable entries in files are skipped (outputs that don't exist yet).
    Unresolvable entries in required_files raise MissingRequiredFilesError.

    Raises:
        MissingRequiredFilesError: If a required file doesn't exist
        DigestError: If a resolved file can't be read
    """
    outputs = resolve_paths(files, base_dir)
    inputs = resolve_paths(required_files, base_dir, strict=True)

    all_files = sorted({str(p) for p in outputs + inputs})

    hasher = hashlib.sha256()
    for path in all_files:
        _update_from_file(hasher, Path(path))
    hasher.update(cmd.encode('utf-8'))

    digest = hasher.hexdigest()
    logger.debug(f"Digest {digest[:12]} over {len(all_files)} file(s)")
    return digest
