"""
Stream tokenizer for kcl.

Splits an async byte source into tokens on an exact delimiter with:
- Incremental reads of any chunk size
- Delimiters spanning read boundaries
- A hard cap on buffered, unmatched input
- A final token for the unterminated remainder
"""

from typing import AsyncIterator, Protocol, Dict, Any

from ..utils.logging import get_logger
from ..utils.errors import TokenTooLargeError, SourceReadError

logger = get_logger("kcl.tokenizer")

# Same defaults as a standard line scanner
DEFAULT_MAX_TOKEN_SIZE = 64 * 1024
DEFAULT_READ_SIZE = 4096


class ByteSource(Protocol):
    """Anything with an awaitable ``read`` returning b"" at end of stream."""

    async def read(self, size: int = -1) -> bytes:
        ...


class DelimitedTokenizer:
    """Lazily splits a byte source into delimiter separated tokens."""

    def __init__(
        self,
        source: ByteSource,
        delimiter: bytes,
        max_token_size: int = DEFAULT_MAX_TOKEN_SIZE,
        read_size: int = DEFAULT_READ_SIZE
    ):
        """
        Initialize tokenizer.

        Args:
            source: Byte source to read from
            delimiter: Compiled, non-empty delimiter
            max_token_size: Every token must be strictly smaller than this
            read_size: Bytes requested per read
        """
        if not delimiter:
            raise ValueError("delimiter must not be empty")
        if max_token_size <= 0:
            raise ValueError("max_token_size must be positive")
        if read_size <= 0:
            raise ValueError("read_size must be positive")

        self.source = source
        self.delimiter = bytes(delimiter)
        self.max_token_size = max_token_size
        self.read_size = read_size

        self._started = False
        self._bytes_read = 0
        self._tokens_emitted = 0

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._started:
            raise RuntimeError("a tokenizer can only be iterated once")
        self._started = True
        return self._tokens()

    async def _read(self) -> bytes:
        try:
            chunk = await self.source.read(self.read_size)
        except OSError as e:
            logger.warning("source_read_failed", error=str(e), bytes_read=self._bytes_read)
            raise SourceReadError(f"unable to read input: {e}", cause=e) from e
        self._bytes_read += len(chunk)
        return chunk

    def _check_size(self, size: int) -> None:
        if size >= self.max_token_size:
            logger.warning(
                "token_too_large",
                size=size,
                limit=self.max_token_size,
                tokens_emitted=self._tokens_emitted
            )
            raise TokenTooLargeError(size, self.max_token_size)

    async def _tokens(self) -> AsyncIterator[bytes]:
        delimiter = self.delimiter
        overlap = len(delimiter) - 1

        buffer = bytearray()
        start = 0           # first unconsumed byte
        search_from = 0     # bytes before this cannot begin a match
        after_delimiter = False
        at_eof = False

        while True:
            index = buffer.find(delimiter, search_from)
            if index >= 0:
                self._check_size(index - start)
                token = bytes(buffer[start:index])
                start = search_from = index + len(delimiter)
                after_delimiter = True
                self._tokens_emitted += 1
                yield token
                continue

            pending = len(buffer) - start

            if at_eof:
                # A delimiter is always followed by one more, possibly empty, token
                if pending or after_delimiter:
                    self._check_size(pending)
                    self._tokens_emitted += 1
                    yield bytes(buffer[start:])
                logger.debug(
                    "stream_exhausted",
                    bytes_read=self._bytes_read,
                    tokens=self._tokens_emitted
                )
                return

            # Bytes that can no longer be part of a delimiter belong to the token
            self._check_size(pending - overlap)

            del buffer[:start]
            start = 0
            search_from = max(0, len(buffer) - overlap)

            chunk = await self._read()
            if chunk:
                buffer += chunk
            else:
                at_eof = True

    def get_stats(self) -> Dict[str, Any]:
        """Get tokenizer statistics."""
        return {
            "bytes_read": self._bytes_read,
            "tokens_emitted": self._tokens_emitted,
            "max_token_size": self.max_token_size,
            "delimiter_length": len(self.delimiter),
        }


__all__ = [
    'ByteSource',
    'DelimitedTokenizer',
    'DEFAULT_MAX_TOKEN_SIZE',
    'DEFAULT_READ_SIZE',
]
