"""Run configuration and manifest discovery.

Configuration comes from command-line flags with a few environment overrides:
- RESHA_SHELL: shell used to run entry commands (default: bash)
- RESHA_MATCH: regex matched against file names during discovery

Manifest discovery walks a directory (optionally recursively) and returns
every file whose name matches the regex, in sorted order.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


class ConfigError(Exception):
    """Configuration error."""


class ManifestError(ConfigError):
    """Manifest file is missing or malformed."""


# Default manifest file name when none specified
DEFAULT_MANIFEST_NAME = '.resha.yaml'

# Default discovery pattern (matches .resha.yaml and .resha.yml)
DEFAULT_MATCH = r'^\.resha\.ya?ml$'

DEFAULT_SHELL = 'bash'

# Directories never descended into during discovery
SKIP_DIRS = {'.git'}


@dataclass
class RunConfig:
    """Options for a single resha invocation.

    Attributes:
        paths: Explicit manifest paths (empty = discover)
        match: Regex matched against file names during discovery
        recursive: Descend into subdirectories during discovery
        dry_run: Classify entries without executing or rewriting anything
        fail_fast: Skip remaining entries of a manifest after a failure
        verbose: Stream command output and debug logs
        root: Directory discovery starts from
    """
    paths: list[str] = field(default_factory=list)
    match: str = field(default_factory=lambda: get_default_match())
    recursive: bool = False
    dry_run: bool = False
    fail_fast: bool = False
    verbose: bool = False
    root: Path = field(default_factory=Path.cwd)

    def __post_init__(self):
        if isinstance(self.root, str):
            self.root = Path(self.root)

    def compile_match(self) -> re.Pattern:
        """Compile the discovery regex.

        Raises:
            ConfigError: If the regex is invalid
        """
        try:
            return re.compile(self.match)
        except re.error as e:
            raise ConfigError(f"Couldn't parse match regex '{self.match}': {e}")


def get_shell() -> str:
    """Shell binary for entry commands ($RESHA_SHELL or bash)."""
    return os.environ.get('RESHA_SHELL') or DEFAULT_SHELL


def get_default_match() -> str:
    """Discovery regex ($RESHA_MATCH or DEFAULT_MATCH)."""
    return os.environ.get('RESHA_MATCH') or DEFAULT_MATCH


def discover_manifests(root: Path, pattern: re.Pattern, recursive: bool = False) -> list[Path]:
    """Find manifest files under root whose names match pattern.

    Args:
        root: Directory to search
        pattern: Compiled regex matched (re.search) against each file name
        recursive: Descend into subdirectories (except SKIP_DIRS)

    Returns:
        Sorted list of matching file paths
    """
    if not root.is_dir():
        raise ConfigError(f"Search root is not a directory: {root}")

    found: list[Path] = []
    if recursive:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
            for name in filenames:
                if pattern.search(name):
                    found.append(Path(dirpath) / name)
    else:
        found = [p for p in root.iterdir() if p.is_file() and pattern.search(p.name)]

    return sorted(found)


def resolve_manifest_path(path: str | Path, base: Optional[Path] = None) -> Path:
    """Canonicalize a manifest path.

    Raises:
        ManifestError: If the manifest doesn't exist
    """
    candidate = Path(path)
    if base is not None and not candidate.is_absolute():
        candidate = base / candidate
    try:
        resolved = candidate.resolve(strict=True)
    except (FileNotFoundError, NotADirectoryError):
        raise ManifestError(f"Manifest file doesn't exist - '{path}'")
    except (OSError, RuntimeError) as e:
        # Symlink loops: RuntimeError before Python 3.13, OSError after
        raise ManifestError(f"Couldn't resolve manifest path '{path}': {e}")
    if not resolved.is_file():
        raise ManifestError(f"Manifest path is not a file - '{path}'")
    return resolved
