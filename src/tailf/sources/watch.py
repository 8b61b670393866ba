"""
Directory-level change notifications, built on watchdog.

A DirectoryWatch funnels everything watchdog reports for one directory into a
single queue, so a consumer waits on events and errors at the same time.
The directory is watched rather than the file: once the original inode is
unlinked a file-level watch would never see the replacement appear.
"""
from __future__ import annotations
import enum
import errno
import logging
import os
import queue
import threading
from dataclasses import dataclass
from typing import List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

logger = logging.getLogger(__name__)


class EventKind(enum.Enum):
    CREATE = "create"
    REMOVE = "remove"
    RENAME = "rename"
    ATTRIB = "attrib"
    WRITE = "write"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class FsEvent:
    kind: EventKind
    path: str
    raw_type: str = ""


# access notifications, not changes
_IGNORED_TYPES = frozenset({"opened", "closed", "closed_no_write"})

_CLOSED = object()


def translate(event: FileSystemEvent) -> List[FsEvent]:
    """Map one watchdog event onto the kinds a follower understands."""
    if event.is_directory:
        return []

    src = os.fsdecode(event.src_path)
    etype = event.event_type

    if etype == "created":
        return [FsEvent(EventKind.CREATE, src, etype)]
    if etype == "deleted":
        return [FsEvent(EventKind.REMOVE, src, etype)]
    if etype == "moved":
        # the source name goes away; whatever lands on dest_path is a new file there
        dest = os.fsdecode(event.dest_path)
        return [FsEvent(EventKind.RENAME, src, etype), FsEvent(EventKind.CREATE, dest, etype)]
    if etype == "modified":
        # watchdog folds attribute and content changes into one event type
        return [FsEvent(EventKind.ATTRIB, src, etype), FsEvent(EventKind.WRITE, src, etype)]
    if etype in _IGNORED_TYPES:
        return []
    return [FsEvent(EventKind.UNKNOWN, src, etype)]


class _QueueingHandler(FileSystemEventHandler):
    def __init__(self, watch: "DirectoryWatch") -> None:
        super().__init__()
        self._watch = watch

    def on_any_event(self, event: FileSystemEvent) -> None:
        self._watch.dispatch(event)


class DirectoryWatch:
    """
    Non-recursive watch on one directory.

    next_event() returns FsEvent items in delivery order, None once the watch
    is closed, and raises any error the source reported.
    """

    def __init__(self, directory: str, *, polling: bool = False, poll_interval: float = 1.0) -> None:
        self.directory = directory
        self._queue: "queue.Queue[object]" = queue.Queue()
        if polling:
            self._observer = PollingObserver(timeout=poll_interval)
        else:
            self._observer = Observer()
        self._lock = threading.Lock()
        self._started = False
        self._closed = False

    def start(self) -> None:
        self._observer.schedule(_QueueingHandler(self), self.directory, recursive=False)
        self._observer.start()
        self._started = True
        logger.debug("Watching directory %s (%s)", self.directory, type(self._observer).__name__)

    def dispatch(self, event: FileSystemEvent) -> None:
        # inotify may report the watched directory itself without is_directory set
        if event.event_type == "deleted" and os.fsdecode(event.src_path) == self.directory:
            self._queue.put(
                FileNotFoundError(errno.ENOENT, "watched directory was removed", self.directory)
            )
            return
        for ev in translate(event):
            self._queue.put(ev)

    def next_event(self, timeout: Optional[float] = None) -> Optional[FsEvent]:
        """Block for the next item; raises queue.Empty when timeout expires."""
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            # keep the watch reporting closed to later callers
            self._queue.put(_CLOSED)
            return None
        if isinstance(item, BaseException):
            raise item
        return item  # type: ignore[return-value]

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            if self._started:
                self._observer.stop()
                self._observer.join()
        finally:
            self._queue.put(_CLOSED)
