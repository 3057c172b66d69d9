#!/usr/bin/env python3
"""Tests for common.py - shell execution with streamed output.

Tests verify:
1. Exit codes and stop-on-first-failure behavior
2. Line-by-line streaming with stderr merged
3. files/required_files environment variables
4. Output stream failures keep the real exit code
"""

import os
import sys
from pathlib import Path
from unittest.mock import patch, MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
from common import OutputStreamError, build_env, build_script, run_script


class TestBuildScript:
    """Test script and environment construction."""

    def test_prefixes_trace_and_errexit(self):
        assert build_script('make all') == 'set -xe\nmake all'

    def test_env_joins_lists_with_newlines(self):
        env = build_env(['a.txt', 'b.txt'], ['in.txt'])
        assert env['files'] == 'a.txt\nb.txt'
        assert env['required_files'] == 'in.txt'

    def test_env_keeps_parent_environment(self):
        with patch.dict(os.environ, {'RESHA_TEST_MARKER': '1'}):
            env = build_env([], [])
        assert env['RESHA_TEST_MARKER'] == '1'
        assert env['files'] == ''


class TestRunScript:
    """Test run_script()."""

    def test_success_returns_zero(self, tmp_path):
        lines = []
        assert run_script('echo hello', [], [], lines.append, cwd=tmp_path) == 0
        assert 'hello' in lines

    def test_traces_statements(self, tmp_path):
        """set -x trace lines arrive on the same stream."""
        lines = []
        run_script('echo hello', [], [], lines.append, cwd=tmp_path)
        assert '+ echo hello' in lines
        assert lines.index('+ echo hello') < lines.index('hello')

    def test_returns_exit_code(self, tmp_path):
        assert run_script('exit 3', [], [], lambda line: None, cwd=tmp_path) == 3

    def test_stops_at_first_failure(self, tmp_path):
        lines = []
        code = run_script('false\necho after', [], [], lines.append, cwd=tmp_path)
        assert code == 1
        assert 'after' not in lines

    def test_merges_stderr(self, tmp_path):
        lines = []
        run_script('echo to-stderr >&2', [], [], lines.append, cwd=tmp_path)
        assert 'to-stderr' in lines

    def test_lines_have_no_newline(self, tmp_path):
        lines = []
        run_script('printf "one\\ntwo\\n"', [], [], lines.append, cwd=tmp_path)
        assert lines[-2:] == ['one', 'two']

    def test_runs_in_cwd(self, tmp_path):
        (tmp_path / 'marker.txt').write_text('found\n')
        lines = []
        assert run_script('cat marker.txt', [], [], lines.append, cwd=tmp_path) == 0
        assert 'found' in lines

    def test_exposes_file_lists(self, tmp_path):
        lines = []
        run_script('echo "$files"', ['a.txt', 'b.txt'], [], lines.append, cwd=tmp_path)
        assert lines[-2:] == ['a.txt', 'b.txt']

        lines = []
        run_script('echo "$required_files"', [], ['in.txt'], lines.append, cwd=tmp_path)
        assert lines[-1] == 'in.txt'

    def test_shell_override_from_env(self):
        proc = MagicMock()
        proc.stdout.__iter__.return_value = iter([])
        proc.wait.return_value = 0
        with patch.dict(os.environ, {'RESHA_SHELL': 'sh'}):
            with patch('common.subprocess.Popen', return_value=proc) as mock_popen:
                run_script('true', [], [], lambda line: None)
        args = mock_popen.call_args[0][0]
        assert args[0] == 'sh'
        assert args[1] == '-c'

    def test_stream_failure_keeps_exit_code(self):
        """A broken output stream is reported with the child's real exit code."""

        class _BrokenStream:
            def __iter__(self):
                yield 'first\n'
                raise OSError('pipe broke')

            def close(self):
                pass

        proc = MagicMock()
        proc.stdout = _BrokenStream()
        proc.wait.return_value = 7
        lines = []
        with patch('common.subprocess.Popen', return_value=proc):
            with pytest.raises(OutputStreamError) as exc_info:
                run_script('noisy', [], [], lines.append)

        assert exc_info.value.returncode == 7
        assert isinstance(exc_info.value.cause, OSError)
        assert lines == ['first']

    def test_sink_error_reaps_child(self):
        """An exception from the sink kills and waits for the child before propagating."""
        proc = MagicMock()
        proc.stdout.__iter__.return_value = iter(['first\n', 'second\n'])
        proc.wait.return_value = -9

        def _sink(line):
            raise RuntimeError('reporter broke')

        with patch('common.subprocess.Popen', return_value=proc):
            with pytest.raises(RuntimeError, match='reporter broke'):
                run_script('noisy', [], [], _sink)

        proc.kill.assert_called_once()
        proc.stdout.close.assert_called_once()
        proc.wait.assert_called_once()
