"""
Subprocess execution for the terraform binary.

Every call takes an explicit working directory; the process-wide current
directory is never changed. No retries happen here, failures propagate
to the caller as ExecutionError.
"""

import logging
import subprocess
import tempfile
import threading
from pathlib import Path
from typing import IO, Callable, Optional, Union

from .exceptions import ExecutionError

logger = logging.getLogger("tfbench.core.runner")

PathLike = Union[str, Path]


class CommandRunner:
    """Runs one executable with varying arguments.

    Args:
        executable: Program to run (looked up on PATH)
        timeout: Optional deadline in seconds for each invocation
    """

    def __init__(self, executable: str = "terraform", timeout: Optional[float] = None):
        self.executable = executable
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"CommandRunner(executable={self.executable!r}, timeout={self.timeout!r})"

    def run(
        self,
        *args: str,
        cwd: Optional[PathLike] = None,
        input: Optional[str] = None,
        merge_stderr: bool = True,
    ) -> bytes:
        """Run to completion and return the captured output.

        Args:
            *args: Arguments passed to the executable
            cwd: Working directory for the process
            input: Text written to the process's stdin
            merge_stderr: Capture stderr together with stdout

        Raises:
            ExecutionError: non-zero exit, executable missing or deadline hit
        """
        argv = [self.executable, *args]
        logger.debug(f"Running {' '.join(argv)} (cwd={cwd or '.'})")
        try:
            result = subprocess.run(
                argv,
                cwd=cwd,
                input=input.encode() if input is not None else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(argv, output=_decode(e.output), timeout=True) from e
        except OSError as e:
            raise ExecutionError(argv, output=str(e)) from e

        if result.returncode != 0:
            output = _decode(result.stdout)
            if not merge_stderr and result.stderr:
                output += _decode(result.stderr)
            raise ExecutionError(argv, returncode=result.returncode, output=output)
        return result.stdout

    def run_async(
        self,
        *args: str,
        cwd: Optional[PathLike] = None,
    ) -> tuple[IO[bytes], Callable[..., None]]:
        """Start the process and return its stdout stream and a wait function.

        The caller consumes the stream incrementally, then calls wait(),
        which blocks until exit and raises ExecutionError (carrying the
        captured stderr) if the process failed or hit the deadline.

        A caller that stops reading early calls wait(kill=True) instead:
        the process is killed and reaped, and no error is raised.
        """
        argv = [self.executable, *args]
        logger.debug(f"Starting {' '.join(argv)} (cwd={cwd or '.'})")
        stderr_file = tempfile.TemporaryFile()
        try:
            proc = subprocess.Popen(argv, cwd=cwd, stdout=subprocess.PIPE, stderr=stderr_file)
        except OSError as e:
            stderr_file.close()
            raise ExecutionError(argv, output=str(e)) from e

        timer: Optional[threading.Timer] = None
        timed_out = threading.Event()
        if self.timeout:
            def _expire():
                timed_out.set()
                proc.kill()

            timer = threading.Timer(self.timeout, _expire)
            timer.daemon = True
            timer.start()

        def wait(kill: bool = False) -> None:
            try:
                if kill and proc.poll() is None:
                    logger.debug(f"Killing {argv[0]} (pid {proc.pid})")
                    proc.kill()
                returncode = proc.wait()
                if proc.stdout is not None:
                    proc.stdout.close()
                stderr_file.seek(0)
                output = _decode(stderr_file.read())
            finally:
                if timer is not None:
                    timer.cancel()
                stderr_file.close()
            if kill:
                return
            if timed_out.is_set():
                raise ExecutionError(argv, output=output, timeout=True)
            if returncode != 0:
                raise ExecutionError(argv, returncode=returncode, output=output)

        return proc.stdout, wait


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    if isinstance(data, str):
        return data
    return data.decode(errors="replace")
