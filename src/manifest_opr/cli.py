"""Run driver: resolve manifests, run each one, rewrite changed files.

Usage:
    resha [MANIFEST ...] [--match REGEX] [--recursive] [--dry-run] [--fail-fast] [--verbose]

Without explicit manifests, files whose names match --match are discovered
in the current directory (and below with --recursive).
"""

import argparse
import logging
from pathlib import Path
from typing import Optional

from config import (
    DEFAULT_MANIFEST_NAME,
    ConfigError,
    RunConfig,
    discover_manifests,
    get_default_match,
    resolve_manifest_path,
)
from manifest import ManifestLoader
from manifest_opr.executor import ManifestExecutor
from reporting.tap import TapReporter

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser for the run command."""
    parser = argparse.ArgumentParser(
        prog='resha',
        description='Re-run manifest commands whose files or command changed',
    )
    parser.add_argument(
        'paths',
        nargs='*',
        metavar='MANIFEST',
        help=f'Manifest files to run (default: discover files like {DEFAULT_MANIFEST_NAME} matching --match)',
    )
    parser.add_argument(
        '--match', '-m',
        default=get_default_match(),
        help='Regex for manifest file names during discovery '
             '(override: RESHA_MATCH env var)',
    )
    parser.add_argument(
        '--recursive', '-r',
        action='store_true',
        help='Discover manifests in subdirectories too',
    )
    parser.add_argument(
        '--dry-run', '-n',
        action='store_true',
        help='Report stale entries without running or rewriting anything',
    )
    parser.add_argument(
        '--fail-fast', '-f',
        action='store_true',
        help='Skip the rest of a manifest after its first failed entry',
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Stream command output and enable debug logging',
    )
    return parser


def parse_config(argv: list) -> RunConfig:
    """Parse argv into a RunConfig."""
    args = build_parser().parse_args(argv)
    return RunConfig(
        paths=list(args.paths),
        match=args.match,
        recursive=args.recursive,
        dry_run=args.dry_run,
        fail_fast=args.fail_fast,
        verbose=args.verbose,
    )


def resolve_manifests(config: RunConfig) -> list[Path]:
    """Return canonical manifest paths, explicit or discovered, without duplicates.

    Raises:
        ConfigError: If the match regex is invalid
        ManifestError: If an explicit manifest doesn't exist
    """
    if config.paths:
        candidates = [resolve_manifest_path(p, config.root) for p in config.paths]
    else:
        pattern = config.compile_match()
        found = discover_manifests(config.root, pattern, recursive=config.recursive)
        candidates = [resolve_manifest_path(p) for p in found]

    unique: list[Path] = []
    for path in candidates:
        if path not in unique:
            unique.append(path)
    return unique


def run_manifests(config: RunConfig, reporter: Optional[TapReporter] = None,
                  loader: Optional[ManifestLoader] = None) -> bool:
    """Run every manifest selected by config.

    A failed entry in one manifest doesn't stop the others. A manifest file
    is rewritten only when its outcome changed and this isn't a dry run.

    Returns:
        True if every manifest succeeded

    Raises:
        ConfigError: Manifest-level problems (missing, malformed, bad regex)
        OSError: I/O errors while hashing or writing a manifest
    """
    reporter = reporter or TapReporter()
    loader = loader or ManifestLoader()

    paths = resolve_manifests(config)
    if not paths:
        logger.warning(f"No manifests found matching '{config.match}' in {config.root}")

    success = True
    for path in paths:
        manifest = loader.load_file(path)
        executor = ManifestExecutor(
            manifest=manifest,
            dry_run=config.dry_run,
            fail_fast=config.fail_fast,
            verbose=config.verbose,
            reporter=reporter,
        )
        outcome = executor.run()

        if outcome.changed and not config.dry_run:
            loader.write_file(path, outcome.text)
        elif outcome.changed:
            logger.info(f"{path} has stale entries (dry run, not rewritten)")

        if outcome.skipped:
            logger.warning(f"Skipped {len(outcome.skipped)} entries in {path} after a failure")
        if not outcome.success:
            logger.error(f"Manifest {path} had failures")
        success = success and outcome.success

    reporter.summary()
    return success


def run_main(argv: list) -> int:
    """Handle a resha run. Returns the process exit code."""
    config = parse_config(argv)
    if config.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    reporter = TapReporter()
    try:
        success = run_manifests(config, reporter)
    except (ConfigError, OSError) as e:
        reporter.bail_out(str(e))
        logger.error(f"Error: {e}")
        reporter.summary()
        return 1

    return 0 if success else 1
