"""
Thin subprocess wrapper shared by the tool adapters.
"""
import logging
import subprocess
from dataclasses import dataclass
from typing import List, Optional

from ..exceptions import ToolNotFoundError, ToolTimeoutError


@dataclass
class ProcessResult:
    stdout: bytes
    stderr: bytes
    exit_code: int

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode('utf-8', errors='replace')

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode('utf-8', errors='replace')


def run_process(command: str, args: List[str], timeout: Optional[float]) -> ProcessResult:
    """
    Runs `command args...` to completion and captures both streams.

    A non-zero exit code is returned, not raised: both exiftool and jhove
    write warnings to stderr and exit non-zero while still producing usable
    output. On timeout (or if the caller is interrupted) the child is killed
    before the exception propagates.
    """
    cmd = [command, *args]
    logging.debug(f"Running: {' '.join(cmd[:8])}{' ...' if len(cmd) > 8 else ''}")

    try:
        proc = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            timeout=timeout if timeout and timeout > 0 else None,
        )
    except subprocess.TimeoutExpired as e:
        raise ToolTimeoutError(command, e.timeout) from e
    except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
        raise ToolNotFoundError(command) from e

    return ProcessResult(stdout=proc.stdout, stderr=proc.stderr, exit_code=proc.returncode)
