"""Bounded-memory line reader for raw feed payloads.

The reader turns bytes, binary file handles, file paths or async chunk streams
into a lazy sequence of :class:`RawLine` values. Large inputs are consumed in
fixed-size chunks so peak memory stays proportional to the chunk size plus the
longest line, regardless of how large the feed is.

Examples
--------
>>> reader = FeedReader(source_id="provider-a")
>>> [line.text for line in reader.lines(b"#EXTM3U\\r\\n#EXTINF:-1,News\\nhttp://x")]
['#EXTM3U', '#EXTINF:-1,News', 'http://x']
"""

from __future__ import annotations

import asyncio
import dataclasses as dc
import os
import typing as typ

from mediacat.config import DEFAULT_CHUNK_SIZE, DEFAULT_CHUNKED_THRESHOLD
from mediacat.logging import get_logger, log_debug, log_warning

from .errors import FeedIOError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

logger = get_logger(__name__)

type BytePayload = (
    bytes | bytearray | memoryview | typ.BinaryIO | str | os.PathLike[str]
)


@dc.dataclass(frozen=True, slots=True)
class RawLine:
    """One decoded line of a feed and its 1-based position."""

    number: int
    text: str


class _LineAssembler:
    """Split a stream of chunks on ``\\n``, holding only the incomplete tail."""

    __slots__ = ("_pending",)

    def __init__(self) -> None:
        self._pending = bytearray()

    def feed(self, chunk: bytes) -> list[bytes]:
        if b"\n" not in chunk:
            self._pending += chunk
            return []
        self._pending += chunk
        *complete, rest = self._pending.split(b"\n")
        self._pending = bytearray(rest)
        return [bytes(part) for part in complete]

    def flush(self) -> bytes | None:
        if not self._pending:
            return None
        tail = bytes(self._pending)
        self._pending.clear()
        return tail


class FeedReader:
    """Produce raw lines from a feed payload.

    Parameters
    ----------
    chunk_size : int, optional
        Bytes requested per read in chunked mode.
    chunked_threshold : int, optional
        In-memory buffers larger than this are sliced into chunks instead of
        being split in one pass.
    source_id : str | None, optional
        Source identifier used in log messages and raised errors.

    Attributes
    ----------
    decode_failures : int
        Lines skipped because they were not valid UTF-8.
    """

    def __init__(
        self,
        *,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunked_threshold: int = DEFAULT_CHUNKED_THRESHOLD,
        source_id: str | None = None,
    ) -> None:
        if chunk_size <= 0:
            msg = f"chunk_size must be positive, got {chunk_size}."
            raise ValueError(msg)
        self._chunk_size = chunk_size
        self._chunked_threshold = chunked_threshold
        self._source_id = source_id
        self.decode_failures = 0

    def lines(self, payload: BytePayload) -> cabc.Iterator[RawLine]:
        """Yield decoded lines from a synchronous payload.

        Parameters
        ----------
        payload : BytePayload
            Raw bytes, a binary file object, or a path to open.

        Yields
        ------
        RawLine
            Each line with trailing ``\\r`` removed; undecodable lines are
            skipped and counted.

        Raises
        ------
        FeedIOError
            If the payload cannot be opened or a read fails.
        """
        if isinstance(payload, bytes | bytearray | memoryview):
            yield from self._decode_all(self._buffer_parts(payload))
        elif isinstance(payload, str | os.PathLike):
            yield from self._lines_from_path(os.fspath(payload))
        else:
            yield from self._decode_all(self._assemble(self._read_chunks(payload)))

    async def alines(
        self,
        chunks: cabc.AsyncIterable[bytes],
        *,
        timeout: float | None = None,
    ) -> cabc.AsyncIterator[RawLine]:
        """Yield decoded lines from an async chunk stream.

        Each awaited chunk is bounded by ``timeout`` seconds; exceeding it
        raises a retryable :class:`FeedIOError`.
        """
        assembler = _LineAssembler()
        number = 0
        iterator = aiter(chunks)
        while True:
            try:
                async with asyncio.timeout(timeout):
                    chunk = await anext(iterator)
            except StopAsyncIteration:
                break
            except TimeoutError as exc:
                msg = f"Timed out after {timeout}s waiting for feed data."
                raise FeedIOError(
                    msg, source_id=self._source_id, retryable=True
                ) from exc
            except OSError as exc:
                msg = f"Failed to read feed stream: {exc}"
                raise FeedIOError(msg, source_id=self._source_id) from exc
            for raw in assembler.feed(chunk):
                number += 1
                line = self._decode(number, raw)
                if line is not None:
                    yield line
        tail = assembler.flush()
        if tail is not None:
            line = self._decode(number + 1, tail)
            if line is not None:
                yield line

    def _buffer_parts(
        self, payload: bytes | bytearray | memoryview
    ) -> cabc.Iterator[bytes]:
        if len(payload) <= self._chunked_threshold:
            data = bytes(payload)
            if not data:
                return
            parts = data.split(b"\n")
            if not parts[-1]:
                parts.pop()
            yield from parts
            return
        log_debug(
            logger,
            "Reading %s byte buffer for %s in %s byte chunks.",
            len(payload),
            self._source_id,
            self._chunk_size,
        )
        view = memoryview(payload)
        yield from self._assemble(
            bytes(view[offset : offset + self._chunk_size])
            for offset in range(0, len(view), self._chunk_size)
        )

    def _lines_from_path(self, path: str) -> cabc.Iterator[RawLine]:
        try:
            handle = open(path, "rb")  # noqa: SIM115, PTH123
        except OSError as exc:
            msg = f"Cannot open feed {path!r}: {exc.strerror or exc}"
            raise FeedIOError(msg, source_id=self._source_id) from exc
        with handle:
            yield from self._decode_all(self._assemble(self._read_chunks(handle)))

    def _read_chunks(self, handle: typ.BinaryIO) -> cabc.Iterator[bytes]:
        while True:
            try:
                chunk = handle.read(self._chunk_size)
            except OSError as exc:
                msg = f"Failed to read feed: {exc}"
                raise FeedIOError(msg, source_id=self._source_id) from exc
            if not chunk:
                return
            yield chunk

    @staticmethod
    def _assemble(chunks: cabc.Iterable[bytes]) -> cabc.Iterator[bytes]:
        assembler = _LineAssembler()
        for chunk in chunks:
            yield from assembler.feed(chunk)
        tail = assembler.flush()
        if tail is not None:
            yield tail

    def _decode_all(self, parts: cabc.Iterable[bytes]) -> cabc.Iterator[RawLine]:
        for number, raw in enumerate(parts, start=1):
            line = self._decode(number, raw)
            if line is not None:
                yield line

    def _decode(self, number: int, raw: bytes) -> RawLine | None:
        raw = raw.removesuffix(b"\r")
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            self.decode_failures += 1
            log_warning(
                logger,
                "Skipping undecodable line %s in feed %s.",
                number,
                self._source_id,
            )
            return None
        if number == 1:
            text = text.removeprefix("\ufeff")
        return RawLine(number=number, text=text)


__all__ = ("BytePayload", "FeedReader", "RawLine")
