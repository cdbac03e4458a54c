"""
Byte sources for the tokenizer.

Standard input that can block indefinitely (a pipe, socket or terminal) is
read through the event loop with ``connect_read_pipe``, so a fatal error can
end the run while the source is still open. Files, and stdin redirected
from one, are read through aiofiles.
"""

import asyncio
import os
import stat
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Optional, TextIO, Union

import aiofiles

from ..utils.logging import get_logger
from ..utils.errors import SourceReadError

logger = get_logger("kcl.source")

STDIN_NAME = "-"


class MemorySource:
    """In-memory byte source handing out at most ``chunk_size`` bytes per read."""

    def __init__(self, data: bytes, chunk_size: Optional[int] = None):
        self._data = memoryview(bytes(data))
        self._pos = 0
        self.chunk_size = chunk_size

    async def read(self, size: int = -1) -> bytes:
        if size is None or size < 0:
            size = len(self._data)
        if self.chunk_size:
            size = min(size, self.chunk_size)
        chunk = self._data[self._pos:self._pos + size]
        self._pos += len(chunk)
        return chunk.tobytes()


class PipeSource:
    """Byte source over a pipe transport; reads return whatever has arrived."""

    def __init__(self, reader: asyncio.StreamReader, transport: asyncio.ReadTransport):
        self._reader = reader
        self._transport = transport

    async def read(self, size: int = -1) -> bytes:
        return await self._reader.read(size)

    async def close(self) -> None:
        self._transport.close()


def is_pollable(fd: int) -> bool:
    """Whether reads on ``fd`` may wait indefinitely and the loop can watch it."""
    mode = os.fstat(fd).st_mode
    return stat.S_ISFIFO(mode) or stat.S_ISSOCK(mode) or os.isatty(fd)


async def open_pipe(fd: int) -> PipeSource:
    """
    Attach a stream reader to a duplicate of ``fd``.

    Closing the source closes only the duplicate.
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader()
    protocol = asyncio.StreamReaderProtocol(reader)
    pipe = os.fdopen(os.dup(fd), "rb", buffering=0)
    try:
        transport, _ = await loop.connect_read_pipe(lambda: protocol, pipe)
    except BaseException:
        pipe.close()
        raise
    return PipeSource(reader, transport)


@asynccontextmanager
async def open_source(
    path: Optional[Union[str, Path]] = None,
    stdin: Optional[Union[BinaryIO, TextIO]] = None
) -> AsyncIterator:
    """
    Open a byte source for reading.

    Args:
        path: File to read, or None / "-" for standard input
        stdin: Stream used as standard input (defaults to ``sys.stdin``)

    Yields:
        A source with an awaitable ``read`` returning b"" at end of stream
    """
    use_stdin = path is None or str(path) == STDIN_NAME
    name = "<stdin>" if use_stdin else str(path)
    stdin_fd: Optional[int] = None

    try:
        if use_stdin:
            fd = (stdin or sys.stdin).fileno()
            if is_pollable(fd):
                handle = await open_pipe(fd)
                stdin_fd = fd
            else:
                handle = await aiofiles.open(fd, "rb", closefd=False)
        else:
            handle = await aiofiles.open(Path(path), "rb")
    except OSError as e:
        raise SourceReadError(f"unable to open input {name}: {e}", cause=e) from e

    logger.debug("source_opened", source=name, pipe=stdin_fd is not None)
    try:
        yield handle
    finally:
        await handle.close()
        if stdin_fd is not None:
            # The duplicate shares the file status flags; hand stdin back blocking
            os.set_blocking(stdin_fd, True)
        logger.debug("source_closed", source=name)


__all__ = ['MemorySource', 'PipeSource', 'open_source', 'STDIN_NAME']
