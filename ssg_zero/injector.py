"""Streaming byte injection.

StreamInjector inserts a payload right after the first occurrence of a byte
pattern in a stream of chunks, without holding the whole stream in memory.
The file server uses it to add the live reload script after ``</body>``.

Matching uses a Knuth-Morris-Pratt failure table, so the partial-match cursor
survives chunk boundaries and overlapping prefixes (``aab`` in ``aaab``) are
not lost. Only the bytes of a still-possible match are held back, never more
than ``len(after) - 1``.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from .errors import StreamEncodingError

_BINARY_TYPES = (bytes, bytearray, memoryview)


def _failure_table(pattern: bytes) -> list[int]:
    table = [0] * len(pattern)
    k = 0
    for i in range(1, len(pattern)):
        while k > 0 and pattern[i] != pattern[k]:
            k = table[k - 1]
        if pattern[i] == pattern[k]:
            k += 1
        table[i] = k
    return table


class StreamInjector:
    """Insert ``injection`` once, immediately after the first ``after``.

    Feed chunks in order with feed(), then call flush() at end of stream to
    release any bytes held for a partial match.

    Attributes:
        after: Pattern to search for.
        injection: Bytes emitted right after the pattern.
    """

    def __init__(self, after: bytes | str, injection: bytes | str):
        if isinstance(after, str):
            after = after.encode("utf-8")
        if isinstance(injection, str):
            injection = injection.encode("utf-8")
        if not after:
            raise ValueError("StreamInjector needs a non-empty pattern")
        self.after = bytes(after)
        self.injection = bytes(injection)
        self._table = _failure_table(self.after)
        self._cursor = 0
        self._done = False

    @property
    def cursor(self) -> int:
        """Length of the pattern prefix matched so far."""
        return self._cursor

    @property
    def done(self) -> bool:
        return self._done

    def feed(self, chunk: bytes) -> bytes:
        """Transform one chunk and return the bytes ready to be emitted."""
        if not isinstance(chunk, _BINARY_TYPES):
            raise StreamEncodingError(
                "StreamInjector only works on binary chunks, "
                f"not on chunks of type '{type(chunk).__name__}'"
            )
        chunk = bytes(chunk)
        if self._done:
            return chunk

        held = self._cursor
        pattern = self.after
        cursor = held
        for index, byte in enumerate(chunk):
            while cursor > 0 and byte != pattern[cursor]:
                cursor = self._table[cursor - 1]
            if byte == pattern[cursor]:
                cursor += 1
            if cursor == len(pattern):
                self._cursor = 0
                self._done = True
                return b"".join(
                    (pattern[:held], chunk[: index + 1], self.injection, chunk[index + 1 :])
                )

        self._cursor = cursor
        # The last `cursor` bytes of held + chunk equal pattern[:cursor].
        combined_length = held + len(chunk)
        ready = combined_length - cursor
        if ready <= 0:
            return b""
        if ready <= held:
            return pattern[:ready]
        return pattern[:held] + chunk[: ready - held]

    def flush(self) -> bytes:
        """Release bytes held back for an unfinished partial match."""
        if self._done or self._cursor == 0:
            return b""
        held = self.after[: self._cursor]
        self._cursor = 0
        return held

    def transform(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        """Yield transformed output for an iterable of chunks, flushing at the end."""
        for chunk in chunks:
            out = self.feed(chunk)
            if out:
                yield out
        tail = self.flush()
        if tail:
            yield tail
