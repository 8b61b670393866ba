"""
Errors surfaced by a Follower.

FileRemovedError and FileTruncatedError are kept apart from generic I/O
errors: after a removal the caller may follow the same path again once the
file reappears, while the other conditions mean the stream is dead.
"""
from __future__ import annotations


class FollowError(OSError):
    """Base class for conditions specific to following a file."""


class FileRemovedError(FollowError):
    def __init__(self, path: str) -> None:
        super().__init__(f"file was removed: {path}")
        self.path = path


class FileTruncatedError(FollowError):
    def __init__(self, path: str, old_size: int, new_size: int) -> None:
        super().__init__(f"file was truncated: {path} ({old_size} -> {new_size} bytes)")
        self.path = path
        self.old_size = old_size
        self.new_size = new_size


class BufferFlushError(FollowError):
    """Fewer bytes came out of the old read-ahead buffer than it reported holding."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"failed to flush the buffer completely: actual({actual}) | expected({expected})"
        )
        self.expected = expected
        self.actual = actual


class CloseError(FollowError):
    def __init__(self, watch_error: BaseException, file_error: BaseException) -> None:
        super().__init__(
            f"couldn't remove watch ({watch_error}) and close file ({file_error})"
        )
        self.watch_error = watch_error
        self.file_error = file_error


class UnexpectedEventError(RuntimeError):
    """The watch source delivered an event kind outside the recognized set."""
