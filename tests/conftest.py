"""Shared pytest fixtures for resha tests."""

import io
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from reporting.tap import TapReporter


@pytest.fixture
def reporter():
    """TapReporter writing to an in-memory stream (read via reporter.stream.getvalue())."""
    return TapReporter(stream=io.StringIO())


@pytest.fixture
def write_manifest(tmp_path):
    """Factory writing manifest text to a file under tmp_path.

    Usage: path = write_manifest('- cmd: echo hi\\n', name='.resha.yaml')
    """
    def _write(text: str, name: str = '.resha.yaml', subdir: str = '') -> Path:
        directory = tmp_path / subdir if subdir else tmp_path
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text(text, encoding='utf-8')
        return path
    return _write
