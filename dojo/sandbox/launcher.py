"""Spawn an isolated interpreter process for one submission.

The submitted text is delivered over stdin and never placed on the command
line, so there is nothing for a shell to interpret. The child gets:

- ``-I`` isolated mode: PYTHON* variables and the user site dir are ignored
- an environment built from scratch with a restricted PATH
- a private, throwaway working directory that also serves as HOME
- RLIMIT_AS (memory ceiling), RLIMIT_FSIZE and RLIMIT_CORE set before exec
- its own session, so a kill reaches every process it forks that stays in it
"""

import asyncio
import logging
import os
import shutil
import signal
import tempfile
import time
from dataclasses import dataclass, field
from typing import Callable

from dojo.sandbox.limits import ExecutionLimits

try:
    import resource
except ImportError:  # pragma: no cover - non-POSIX hosts
    resource = None  # type: ignore[assignment]

_logger = logging.getLogger("dojo.sandbox.launcher")

RESTRICTED_PATH = "/usr/local/bin:/usr/bin:/bin"
WORKDIR_PREFIX = "dojo-sbx-"


class SpawnFailedError(Exception):
    """The operating system could not create the child process."""


@dataclass
class ExecutionProcess:
    pid: int
    started_at: float
    limits: ExecutionLimits
    process: asyncio.subprocess.Process
    workdir: str
    stdout: asyncio.StreamReader
    stderr: asyncio.StreamReader
    transports: list[asyncio.ReadTransport] = field(default_factory=list)

    def kill(self) -> None:
        """SIGKILL the child's whole process group; already-gone is fine."""
        try:
            os.killpg(self.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            try:
                self.process.kill()
            except ProcessLookupError:
                pass

    def close_pipes(self) -> None:
        """Drop our read ends; a descendant still writing gets EPIPE."""
        for transport in self.transports:
            transport.close()

    def cleanup(self) -> None:
        self.close_pipes()
        shutil.rmtree(self.workdir, ignore_errors=True)


def build_command(limits: ExecutionLimits) -> list[str]:
    return [limits.interpreter, "-I", "-"]


def build_env(home: str | None) -> dict[str, str]:
    return {
        "PATH": RESTRICTED_PATH,
        "HOME": home or "/tmp",
        "PYTHONPATH": "",
        "PYTHONDONTWRITEBYTECODE": "1",
        "PYTHONIOENCODING": "utf-8",
        "LANG": "C.UTF-8",
    }


def _apply_rlimits(limits: ExecutionLimits) -> Callable[[], None] | None:
    if resource is None:
        return None

    memory_bytes = limits.memory_bytes
    file_bytes = limits.max_file_bytes

    def apply() -> None:
        # Runs in the child between fork and exec; failures here must not abort the exec.
        for limit, value in (
            (resource.RLIMIT_AS, memory_bytes),
            (resource.RLIMIT_FSIZE, file_bytes),
            (resource.RLIMIT_CORE, 0),
        ):
            try:
                resource.setrlimit(limit, (value, value))
            except (ValueError, OSError):
                continue

    return apply


async def _open_reader(fd: int) -> tuple[asyncio.StreamReader, asyncio.ReadTransport]:
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    transport, _ = await loop.connect_read_pipe(
        lambda: asyncio.StreamReaderProtocol(reader),
        os.fdopen(fd, "rb", buffering=0),
    )
    return reader, transport


def _close_fds(*fds: int) -> None:
    for fd in fds:
        try:
            os.close(fd)
        except OSError:
            pass


async def launch(limits: ExecutionLimits) -> ExecutionProcess:
    """Start the child with piped stdio and return its handle.

    stdout and stderr are plain OS pipes read through their own transports
    rather than ``asyncio.subprocess.PIPE``. ``Process.wait()`` then resolves
    when the child exits, even if a descendant that left the session still
    holds the write ends open.

    Raises:
        SpawnFailedError: If the OS refuses to create the process or its
            working directory.
    """
    workdir: str | None = None
    pipe_fds: list[int] = []
    try:
        workdir = tempfile.mkdtemp(prefix=WORKDIR_PREFIX)
        out_r, out_w = os.pipe()
        pipe_fds += [out_r, out_w]
        err_r, err_w = os.pipe()
        pipe_fds += [err_r, err_w]
        try:
            process = await asyncio.create_subprocess_exec(
                *build_command(limits),
                stdin=asyncio.subprocess.PIPE,
                stdout=out_w,
                stderr=err_w,
                env=build_env(workdir),
                cwd=workdir,
                preexec_fn=_apply_rlimits(limits),
                start_new_session=True,
            )
        finally:
            # The child holds its own copies of the write ends.
            _close_fds(out_w, err_w)
            pipe_fds = [out_r, err_r]
    except (OSError, ValueError) as e:
        _close_fds(*pipe_fds)
        if workdir is not None:
            shutil.rmtree(workdir, ignore_errors=True)
        _logger.warning("Sandbox spawn failed: interpreter=%s err=%s", limits.interpreter, e)
        raise SpawnFailedError(str(e)) from e

    stdout, stdout_transport = await _open_reader(out_r)
    stderr, stderr_transport = await _open_reader(err_r)

    _logger.debug("Sandbox child started pid=%s workdir=%s", process.pid, workdir)
    return ExecutionProcess(
        pid=process.pid,
        started_at=time.monotonic(),
        limits=limits,
        process=process,
        workdir=workdir,
        stdout=stdout,
        stderr=stderr,
        transports=[stdout_transport, stderr_transport],
    )


def encode_source(code: str) -> bytes:
    return code.encode("utf-8", "surrogatepass")


async def feed_stdin(handle: ExecutionProcess, code: str) -> None:
    """Write the source text to the child and close its stdin.

    Lone surrogates are written as raw bytes, so the interpreter reports
    the source as invalid UTF-8 rather than running an empty program.
    """
    stdin = handle.process.stdin
    if stdin is None:
        return
    try:
        stdin.write(encode_source(code))
        await stdin.drain()
    except (BrokenPipeError, ConnectionResetError):
        # Child exited before reading everything; its exit status tells the story.
        pass
    finally:
        try:
            stdin.close()
        except (BrokenPipeError, ConnectionResetError):
            pass
