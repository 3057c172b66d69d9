"""Shell execution for manifest entries."""

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Optional

from config import get_shell

logger = logging.getLogger(__name__)

# Receives one line of command output at a time (newline stripped)
LineSink = Callable[[str], None]


class OutputStreamError(Exception):
    """Reading the command's output failed before the command finished.

    Attributes:
        returncode: Exit code of the command after the stream broke
        cause: The underlying I/O error
    """

    def __init__(self, returncode: int, cause: Exception):
        self.returncode = returncode
        self.cause = cause
        super().__init__(f"output stream failed (exit code {returncode}): {cause}")


def build_script(cmd: str) -> str:
    """Prefix cmd so the shell traces statements and stops at the first failure."""
    return '\n'.join(['set -xe', cmd])


def build_env(files: list[str], required_files: list[str]) -> dict:
    """Environment for an entry command: parent env plus its file lists."""
    env = os.environ.copy()
    env['files'] = '\n'.join(files)
    env['required_files'] = '\n'.join(required_files)
    return env


def run_script(
    cmd: str,
    files: list[str],
    required_files: list[str],
    sink: LineSink,
    cwd: Optional[Path] = None,
    shell: Optional[str] = None,
) -> int:
    """Run cmd in a shell, streaming combined stdout/stderr to sink.

    Lines are delivered as the command produces them. There is no timeout.

    Returns:
        The command's exit code (negative if killed by a signal)

    Raises:
        OutputStreamError: If reading the output fails mid-stream
        OSError: If the shell can't be started
    """
    shell = shell or get_shell()
    logger.debug(f"Running in {cwd or Path.cwd()}: {cmd.strip()}")

    proc = subprocess.Popen(
        [shell, '-c', build_script(cmd)],
        cwd=cwd,
        env=build_env(files, required_files),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        encoding='utf-8',
        errors='replace',
        bufsize=1,
    )

    stream_error: Optional[OSError] = None
    try:
        for line in proc.stdout:
            sink(line.rstrip('\n'))
    except OSError as e:
        stream_error = e
    except BaseException:
        proc.kill()
        raise
    finally:
        proc.stdout.close()
        returncode = proc.wait()

    if stream_error is not None:
        logger.warning(f"Lost output stream of '{cmd.strip()}': {stream_error}")
        raise OutputStreamError(returncode, stream_error) from stream_error

    logger.debug(f"Exit code {returncode}")
    return returncode
