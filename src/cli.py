#!/usr/bin/env python3
"""CLI entry point for resha.

Runs manifests of content-hashed shell commands:
- resha                      discover .resha.yaml in the current directory
- resha -r --dry-run         check every manifest below the current directory
- resha docs/.resha.yaml -f  run one manifest, stop at the first failure

Progress is written to stdout as TAP; logs go to stderr.
"""

import logging
import subprocess
import sys
from pathlib import Path
from typing import Optional

from manifest_opr.cli import run_main

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)


def get_version() -> str:
    """Get version from git tags (do not use hardcoded VERSION constant)."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
    except OSError:
        return 'dev'
    return result.stdout.strip() if result.returncode == 0 else 'dev'


def main(argv: Optional[list] = None) -> int:
    """CLI entry point."""
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == '--version':
        print(f"resha {get_version()}")
        return 0

    return run_main(argv)


if __name__ == '__main__':
    sys.exit(main())
