"""
Readers drained by Follower.read().

The active reader is one of two shapes sharing the same methods:

  PlainReader    read-ahead buffer over the current file handle
  SplicedReader  bytes left over from a previous handle, then a PlainReader

fill() forces at most one read-ahead and reports how many bytes can be read
without further I/O; read(n) must only be asked for that many.
"""
from __future__ import annotations
import io
from typing import Optional, Union

from .errors import BufferFlushError


class PlainReader:
    def __init__(self, source: io.BufferedReader) -> None:
        self.source = source

    def fill(self) -> int:
        # peek() reads from the raw file only when the buffer is empty
        return len(self.source.peek(1))

    def read(self, n: int) -> bytes:
        return self.source.read(n)

    def drain(self, to_eof: bool = False) -> bytes:
        """Take every byte currently buffered, or with to_eof everything left in the file."""
        chunks = []
        while True:
            expected = self.fill()
            if not expected:
                break
            data = self.source.read(expected)
            if len(data) != expected:
                raise BufferFlushError(expected, len(data))
            chunks.append(data)
            if not to_eof:
                break
        return b"".join(chunks)

    def collapse(self) -> "PlainReader":
        return self


class SplicedReader:
    def __init__(self, pending: bytes, next_reader: Optional[PlainReader]) -> None:
        self.pending = bytearray(pending)
        # None once the follower is closed and only the stashed bytes remain
        self.next = next_reader

    def fill(self) -> int:
        n = len(self.pending)
        if self.next is not None:
            n += self.next.fill()
        return n

    def read(self, n: int) -> bytes:
        out = bytes(self.pending[:n])
        del self.pending[:n]
        rest = n - len(out)
        if rest > 0 and self.next is not None:
            out += self.next.read(rest)
        return out

    def drain(self, to_eof: bool = False) -> bytes:
        data = bytes(self.pending)
        self.pending.clear()
        if self.next is not None:
            data += self.next.drain(to_eof)
        return data

    def collapse(self) -> "ActiveReader":
        if not self.pending and self.next is not None:
            return self.next
        return self


ActiveReader = Union[PlainReader, SplicedReader]
