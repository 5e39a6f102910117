import asyncio
import logging
from typing import Callable

from dojo.sandbox.models import CapturedOutput

_logger = logging.getLogger("dojo.sandbox.collector")

CHUNK_SIZE = 64 * 1024


class BoundedBuffer:
    """Append-only byte buffer that keeps at most ``cap`` bytes.

    Bytes past the cap are counted and dropped. After ``freeze()`` every
    append is ignored.
    """

    def __init__(self, cap: int) -> None:
        self.cap = cap
        self._data = bytearray()
        self.dropped = 0
        self.frozen = False

    @property
    def truncated(self) -> bool:
        return self.dropped > 0

    def __len__(self) -> int:
        return len(self._data)

    def append(self, chunk: bytes) -> bool:
        """Add ``chunk``; return True if this append crossed the cap."""
        if self.frozen or not chunk:
            return False
        was_truncated = self.truncated
        room = self.cap - len(self._data)
        if room > 0:
            self._data += chunk[:room]
        if len(chunk) > room:
            self.dropped += len(chunk) - max(room, 0)
        return self.truncated and not was_truncated

    def freeze(self) -> bytes:
        self.frozen = True
        return bytes(self._data)


class OutputCollector:
    """Drain a child's stdout and stderr into bounded buffers.

    One reader task per stream keeps reading until EOF even after its buffer
    is full, so the child never stalls on a full pipe.
    """

    def __init__(
        self,
        stdout: asyncio.StreamReader | None,
        stderr: asyncio.StreamReader | None,
        max_bytes: int,
        on_overflow: Callable[[], None] | None = None,
    ) -> None:
        self._streams = {"stdout": stdout, "stderr": stderr}
        self.buffers = {name: BoundedBuffer(max_bytes) for name in self._streams}
        self._on_overflow = on_overflow
        self._overflowed = False
        self._tasks: list[asyncio.Task] = []

    def start(self) -> None:
        for name, stream in self._streams.items():
            if stream is not None:
                self._tasks.append(asyncio.create_task(self._drain(name, stream)))

    async def _drain(self, name: str, stream: asyncio.StreamReader) -> None:
        buffer = self.buffers[name]
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                return
            if buffer.append(chunk):
                _logger.debug("Sandbox %s exceeded %d bytes", name, buffer.cap)
                self._notify_overflow()

    def _notify_overflow(self) -> None:
        if self._overflowed:
            return
        self._overflowed = True
        if self._on_overflow is not None:
            self._on_overflow()

    async def wait_closed(self) -> None:
        """Wait until both streams hit EOF."""
        if self._tasks:
            await asyncio.gather(*self._tasks)

    async def cancel(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def freeze(self) -> CapturedOutput:
        """Stop accumulating and hand back the immutable output."""
        stdout, stderr = self.buffers["stdout"], self.buffers["stderr"]
        return CapturedOutput(
            stdout=stdout.freeze(),
            stderr=stderr.freeze(),
            stdout_truncated=stdout.truncated,
            stderr_truncated=stderr.truncated,
        )
