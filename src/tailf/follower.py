"""
Blocking read stream over a file that keeps growing, like ``tail -f``.

Reaching the current end of the file does not end the stream: read() waits
until bytes are appended, the file is rotated (removed or renamed, then
recreated under the same name) or truncated, or the stream is closed.

One background thread per Follower consumes directory events and mutates the
follower under its lock; read() only ever blocks on a wake-up signal, never
while holding the lock.

Known limitation: truncation is inferred from the file shrinking below the
last seen size or below the read offset. A truncate followed by regrowth past
both before the next attribute event is not detected.
"""
from __future__ import annotations
import io
import logging
import os
import queue
import threading
import time
from concurrent.futures import Future
from typing import Iterator, Optional

from .config import FollowConfig
from .errors import CloseError, FileRemovedError, FileTruncatedError, UnexpectedEventError
from .readers import ActiveReader, PlainReader, SplicedReader
from .sources.watch import DirectoryWatch, EventKind, FsEvent

logger = logging.getLogger(__name__)


class WakeUp:
    """
    Single-slot wake-up signal.

    set() never blocks; several sets before a wait() collapse into one.
    wait() returns True when woken and False once the signal is closed.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending = False
        self._closed = False

    def set(self) -> None:
        with self._cond:
            self._pending = True
            self._cond.notify()

    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def wait(self) -> bool:
        with self._cond:
            while not self._pending and not self._closed:
                self._cond.wait()
            if self._pending:
                self._pending = False
                return True
            return False


class Follower(io.RawIOBase):
    """
    Follow the writes to a file.

    read() follows the raw I/O contract: bytes when data is available, None
    when the caller should simply call again, b"" at end of stream. End of
    stream is only reached after close() (or a clean shutdown of the watch),
    once everything buffered so far has been read.
    """

    def __init__(self, path: str, from_start: bool = False, config: Optional[FollowConfig] = None) -> None:
        super().__init__()
        self.config = config or FollowConfig()
        directory = os.path.realpath(os.path.dirname(os.path.abspath(path)))
        self.path = os.path.join(directory, os.path.basename(path))

        self._lock = threading.Lock()
        self._wakeup = WakeUp()
        self._outcome: "Future[None]" = Future()
        self._stopped = False
        # only touched by the watch loop thread
        self._missing_since: Optional[float] = None

        self._file: Optional[io.BufferedReader] = None
        try:
            self._file = self._open()
            if not from_start:
                self._file.seek(0, os.SEEK_END)
            self._size = os.fstat(self._file.fileno()).st_size
            self._reader: ActiveReader = PlainReader(self._file)

            self._watch = DirectoryWatch(
                directory,
                polling=self.config.polling,
                poll_interval=self.config.poll_interval,
            )
            self._watch.start()
        except BaseException:
            if self._file is not None:
                self._file.close()
            # nothing left for close() to release
            super().close()
            raise

        self._thread = threading.Thread(
            target=self._watch_loop,
            name=f"tailf-watch:{os.path.basename(self.path)}",
            daemon=True,
        )
        self._thread.start()
        logger.debug("Following %s from %s", self.path, "start" if from_start else "end")

    def _open(self) -> io.BufferedReader:
        return open(self.path, "rb", buffering=self.config.buffer_size)  # type: ignore[return-value]

    # -------------------------
    # Reading
    # -------------------------
    def readable(self) -> bool:
        return True

    def read(self, size: Optional[int] = -1) -> Optional[bytes]:
        if size == 0:
            return b""

        with self._lock:
            readable = self._reader.fill()

            if self._outcome.done():
                exc = self._outcome.exception()
                if exc is not None:
                    raise exc
                if readable == 0:
                    return b""

            if readable:
                n = readable if size is None or size < 0 else min(readable, size)
                data = self._reader.read(n)
                self._reader = self._reader.collapse()
                return data

        if self._wakeup.wait():
            return None
        # the loop records its outcome before closing the signal, so this
        # second pass resolves without waiting again
        return self.read(size)

    def readinto(self, b) -> Optional[int]:
        view = memoryview(b).cast("B")
        data = self.read(len(view))
        if data is None:
            return None
        view[: len(data)] = data
        return len(data)

    def readall(self) -> bytes:
        return b"".join(self.iter_chunks())

    def iter_chunks(self, size: Optional[int] = None) -> Iterator[bytes]:
        """Yield chunks as they are appended until the stream ends."""
        size = size or self.config.chunk_size
        while True:
            chunk = self.read(size)
            if chunk is None:
                continue
            if not chunk:
                return
            yield chunk

    def readline(self, size: Optional[int] = -1) -> bytes:
        """
        Read up to and including the next newline, waiting for it if needed.

        A shorter line without the newline is returned only once the stream
        has ended or ``size`` bytes were read.
        """
        limit = -1 if size is None else size
        line = bytearray()
        while limit < 0 or len(line) < limit:
            b = self.read(1)
            if b is None:
                continue
            if not b:
                break
            line += b
            if b == b"\n":
                break
        return bytes(line)

    def iter_lines(self) -> Iterator[bytes]:
        """Yield lines as they are completed until the stream ends."""
        while True:
            line = self.readline()
            if not line:
                return
            yield line

    def __iter__(self) -> Iterator[bytes]:
        # lines buffered before close() stay iterable
        return self.iter_lines()

    # -------------------------
    # Closing
    # -------------------------
    def close(self) -> None:
        """
        Stop watching and release the file.

        Bytes already buffered stay readable; read() reports end of stream
        once they are drained. If both the watch and the file fail to close,
        CloseError carries both errors.
        """
        if self.closed:
            return

        watch_err: Optional[OSError] = None
        file_err: Optional[OSError] = None
        try:
            with self._lock:
                self._stopped = True
                try:
                    self._watch.close()
                except OSError as e:
                    watch_err = e
                try:
                    self._release_file()
                except OSError as e:
                    file_err = e
        finally:
            super().close()

        if watch_err is not None and file_err is not None:
            raise CloseError(watch_err, file_err) from file_err
        if watch_err is not None:
            raise watch_err
        if file_err is not None:
            raise file_err

    def _release_file(self) -> None:
        pending = b""
        try:
            pending = self._reader.drain()
        finally:
            self._reader = SplicedReader(pending, None)
            self._file.close()

    # -------------------------
    # Watch loop
    # -------------------------
    def _watch_loop(self) -> None:
        outcome: Optional[BaseException] = None
        try:
            while True:
                try:
                    event = self._watch.next_event(timeout=self._grace_remaining())
                except queue.Empty:
                    self._check_removed()
                    continue
                if event is None:
                    break
                if event.path != self.path:
                    continue
                self._handle_event(event)
                self._wakeup.set()
        except UnexpectedEventError as exc:
            logger.critical("Watch source contract broken while following %s: %s", self.path, exc)
            outcome = exc
        except Exception as exc:
            logger.error("Stopped following %s: %s", self.path, exc)
            outcome = exc
        else:
            logger.debug("Watch on %s closed", self.path)

        if outcome is None:
            self._outcome.set_result(None)
        else:
            self._outcome.set_exception(outcome)
        try:
            self._watch.close()
        except OSError as exc:
            logger.warning("Failed to remove watch on %s: %s", self._watch.directory, exc)
        finally:
            self._wakeup.close()

    def _handle_event(self, event: FsEvent) -> None:
        if self._stopped:
            return
        kind = event.kind
        if kind is EventKind.CREATE:
            self._reopen()
        elif kind is EventKind.REMOVE or kind is EventKind.RENAME:
            self._mark_missing()
        elif kind is EventKind.ATTRIB:
            self._check_for_truncate()
        elif kind is EventKind.WRITE:
            self._refill()
        else:
            raise UnexpectedEventError(f"unknown event: {event!r}")

    def _refill(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._reader.fill()

    def _reopen(self) -> None:
        with self._lock:
            if self._stopped:
                return
            try:
                st = os.stat(self.path)
            except FileNotFoundError:
                raise FileRemovedError(self.path) from None
            if self._same_file(st):
                logger.debug("%s is already the open file, nothing to reopen", self.path)
                self._missing_since = None
                return
            logger.info("%s was replaced, reopening", self.path)
            self._reopen_locked(st, rotated=True)

    def _reopen_locked(self, st: os.stat_result, rotated: bool) -> None:
        # a replaced file is finished: keep everything it still holds.
        # after truncation only what was already buffered predates it
        pending = self._reader.drain(to_eof=rotated)
        self._reader = SplicedReader(pending, None)
        self._file.close()
        try:
            self._file = self._open()
        except FileNotFoundError:
            raise FileRemovedError(self.path) from None
        self._reader = SplicedReader(pending, PlainReader(self._file)).collapse()
        self._size = st.st_size
        self._missing_since = None

    def _check_for_truncate(self) -> None:
        with self._lock:
            if self._stopped:
                return
            try:
                st = os.stat(self.path)
            except FileNotFoundError:
                self._mark_missing()
                return
            if not self._same_file(st):
                # a replacement is in place; its create event reopens it
                return

            old_size = self._size
            offset = self._file.raw.tell()
            self._size = st.st_size
            if st.st_size >= old_size and st.st_size >= offset:
                return

            if self.config.truncate_policy == "fail":
                raise FileTruncatedError(self.path, max(old_size, offset), st.st_size)
            logger.warning(
                "%s was truncated (%d -> %d bytes), reopening",
                self.path, max(old_size, offset), st.st_size,
            )
            self._reopen_locked(st, rotated=False)

    def _same_file(self, st: os.stat_result) -> bool:
        fst = os.fstat(self._file.fileno())
        # an unlinked handle is never the file at path, whatever its inode number
        return fst.st_nlink > 0 and (fst.st_dev, fst.st_ino) == (st.st_dev, st.st_ino)

    # -------------------------
    # Removal grace
    # -------------------------
    def _mark_missing(self) -> None:
        if self._missing_since is None:
            self._missing_since = time.monotonic()
            logger.warning(
                "%s is missing, waiting up to %.1fs for it to reappear",
                self.path, self.config.removal_grace,
            )

    def _grace_remaining(self) -> Optional[float]:
        if self._missing_since is None:
            return None
        deadline = self._missing_since + self.config.removal_grace
        return max(0.0, deadline - time.monotonic())

    def _check_removed(self) -> None:
        if self._stopped:
            return
        if not os.path.exists(self.path):
            raise FileRemovedError(self.path)
        # back again without a create event reaching us
        self._reopen()
        self._missing_since = None


def follow(path: str, from_start: bool = False, config: Optional[FollowConfig] = None) -> Follower:
    """Open ``path`` and return a stream that follows its writes."""
    return Follower(path, from_start=from_start, config=config)
