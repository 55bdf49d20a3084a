"""Output aggregation for child processes.

Each child stream is read chunk by chunk into an OutputChannel. Channels
enforce the max_buffer cap, mirror accepted output to the console unless the
invocation is silent, and notify listeners, which is how the live handle of
an asynchronous execution exposes output while the child still runs.
"""

import asyncio
import codecs
import locale
import sys
import threading
from typing import Callable

from .logging import get_logger
from .result import decode_output
from .types import ENCODING_TEXT, is_bytes_encoding

logger = get_logger(__name__)

READ_CHUNK_SIZE = 64 * 1024

Listener = Callable[[bytes], None]


def _console_codec(encoding: str) -> str:
    if is_bytes_encoding(encoding) or encoding == ENCODING_TEXT:
        return locale.getpreferredencoding(False)
    return encoding


class OutputChannel:
    """Captured output of one child stream.

    Chunks are appended from the event loop thread; readers on any thread
    may inspect the buffer or block until the stream reaches end of file.

    Attributes:
        name: Stream name ("stdout" or "stderr")
        encoding: Encoding setting used by read()
    """

    def __init__(self, name: str, max_buffer: int, encoding: str = ENCODING_TEXT, silent: bool = True) -> None:
        self.name = name
        self.encoding = encoding
        self.max_buffer = max_buffer
        self.silent = silent
        self.overflowed = False
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._eof = threading.Event()
        self._listeners: list[Listener] = []
        self._decoder = codecs.getincrementaldecoder(_console_codec(encoding))(errors="replace")

    @property
    def closed(self) -> bool:
        """Check if the stream reached end of file."""
        return self._eof.is_set()

    def add_listener(self, listener: Listener) -> None:
        """Call listener with every chunk accepted from now on."""
        self._listeners.append(listener)

    def feed(self, chunk: bytes) -> bool:
        """Append a chunk read from the child.

        The chunk that pushes the buffer past max_buffer is still kept;
        everything after it is dropped.

        Returns:
            False if this chunk made the stream overflow, True otherwise
        """
        if self.overflowed or self.closed:
            return True

        with self._lock:
            projected = len(self._buffer) + len(chunk)
            self._buffer += chunk
        self._publish(chunk)

        if projected > self.max_buffer:
            self.overflowed = True
            return False
        return True

    def write_diagnostic(self, message: str) -> None:
        """Append a diagnostic line regardless of the buffer cap."""
        chunk = message.encode(_console_codec(self.encoding), errors="replace")
        with self._lock:
            self._buffer += chunk
        self._publish(chunk)

    def close(self) -> None:
        """Mark the stream as finished."""
        if not self.silent:
            tail = self._decoder.decode(b"", final=True)
            if tail:
                self._mirror(tail)
        self._eof.set()

    def getvalue(self) -> bytes:
        """Return everything captured so far."""
        with self._lock:
            return bytes(self._buffer)

    def read(self, timeout: float | None = None) -> str | bytes:
        """Block until end of file and return the output in its final form.

        Raises:
            TimeoutError: If the stream is still open after timeout seconds
        """
        if not self._eof.wait(timeout):
            raise TimeoutError(f"{self.name} still open after {timeout}s")
        return decode_output(self.getvalue(), self.encoding)

    def _publish(self, chunk: bytes) -> None:
        if not self.silent:
            self._mirror(self._decoder.decode(chunk))
        for listener in self._listeners:
            listener(chunk)

    def _mirror(self, text: str) -> None:
        # Looked up on every write so redirections made after launch apply
        stream = sys.stdout if self.name == "stdout" else sys.stderr
        stream.write(text)
        stream.flush()


class OutputAggregator:
    """Collects both output streams of one invocation.

    Attributes:
        stdout: Channel for the child's standard output
        stderr: Channel for the child's standard error
        overflowed: Name of the stream that exceeded max_buffer, if any
    """

    def __init__(
        self,
        max_buffer: int,
        encoding: str = ENCODING_TEXT,
        silent: bool = False,
        on_overflow: Callable[[], None] | None = None,
    ) -> None:
        self.stdout = OutputChannel("stdout", max_buffer, encoding, silent)
        self.stderr = OutputChannel("stderr", max_buffer, encoding, silent)
        self.overflowed: str | None = None
        self.on_overflow = on_overflow

    async def consume(self, reader: asyncio.StreamReader | None, channel: OutputChannel) -> None:
        """Read a child stream until end of file into a channel."""
        try:
            if reader is None:
                return
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                if self.overflowed is not None:
                    # drain without keeping anything until the child is gone
                    continue
                if not channel.feed(chunk):
                    self._overflow(channel)
        finally:
            channel.close()

    def close(self) -> None:
        """Close both channels."""
        self.stdout.close()
        self.stderr.close()

    def _overflow(self, channel: OutputChannel) -> None:
        self.overflowed = channel.name
        logger.warning("Output exceeded max_buffer, terminating child", stream=channel.name, max_buffer=channel.max_buffer)
        self.stderr.write_diagnostic(f"exec: {channel.name} maxBuffer length exceeded\n")
        if self.on_overflow is not None:
            self.on_overflow()
