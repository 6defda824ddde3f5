"""Directory watching on top of watchdog observers."""
from __future__ import annotations

import logging
import os
import queue
from pathlib import Path
from typing import Any, Callable, Iterable, List, Optional, Set

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .events import ChangeEvent, Operation, WatcherError, WatchItem

logger = logging.getLogger(__name__)

_OPERATIONS = {
    EVENT_TYPE_CREATED: Operation.CREATE,
    EVENT_TYPE_MODIFIED: Operation.WRITE,
    EVENT_TYPE_DELETED: Operation.REMOVE,
}


class WatchRegistrationError(Exception):
    """Raised when a directory watch cannot be established at startup."""


def translate_event(event: FileSystemEvent) -> List[ChangeEvent]:
    """Convert a watchdog event into zero or more change events.

    A move is reported as a rename of the old name plus a creation of the new
    one, which is how the kernel presents the ``..data`` symlink swap.
    """

    src_path = Path(os.fsdecode(event.src_path))
    if event.event_type == EVENT_TYPE_MOVED:
        dest_path = Path(os.fsdecode(event.dest_path))
        return [
            ChangeEvent(path=src_path, operation=Operation.RENAME),
            ChangeEvent(path=dest_path, operation=Operation.CREATE),
        ]

    operation = _OPERATIONS.get(event.event_type)
    if operation is None:
        return []
    return [ChangeEvent(path=src_path, operation=operation)]


class _QueueingHandler(FileSystemEventHandler):
    """Forwards translated watchdog events onto the coordinator queue."""

    def __init__(self, sink: "queue.Queue[WatchItem]"):
        super().__init__()
        self._sink = sink

    def on_any_event(self, event: FileSystemEvent) -> None:
        for change in translate_event(event):
            self._sink.put(change)


class DirectoryWatcher:
    """Watches a fixed set of directories and queues their raw events."""

    def __init__(
        self,
        directories: Iterable[Path],
        *,
        recursive: bool = False,
        observer_factory: Callable[[], Any] = Observer,
        events: Optional["queue.Queue[WatchItem]"] = None,
    ):
        self._directories = [Path(item) for item in directories]
        self._recursive = recursive
        self._observer_factory = observer_factory
        self._observer: Any = None
        self._reported: Set[int] = set()
        self.events: "queue.Queue[WatchItem]" = events if events is not None else queue.Queue()

    @property
    def directories(self) -> List[Path]:
        return list(self._directories)

    def start(self) -> None:
        """Register every watch; any failure is fatal to the caller."""

        if not self._directories:
            raise WatchRegistrationError("No directories to watch")

        self._observer = self._observer_factory()
        self._observer.start()
        handler = _QueueingHandler(self.events)
        for directory in self._directories:
            logger.info("Watching directory: %s", directory)
            if not directory.is_dir():
                self.stop()
                raise WatchRegistrationError(f"Cannot watch {directory}: not a directory")
            try:
                self._observer.schedule(handler, str(directory), recursive=self._recursive)
            except OSError as exc:
                self.stop()
                raise WatchRegistrationError(f"Cannot watch {directory}: {exc}") from exc

    def stop(self) -> None:
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        observer.stop()
        observer.join()

    def check_health(self) -> None:
        """Queue a WatcherError for each watch whose emitter has stopped."""

        if self._observer is None:
            return
        for emitter in list(self._observer.emitters):
            if emitter.is_alive() or id(emitter) in self._reported:
                continue
            self._reported.add(id(emitter))
            path = Path(os.fsdecode(emitter.watch.path))
            self.events.put(WatcherError("watch emitter stopped", path=path))
