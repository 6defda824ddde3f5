"""Event models shared across the watcher, filter and coordinator."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union


class Operation(str, Enum):
    """Kinds of filesystem operations reported by the watcher."""

    CREATE = "create"
    WRITE = "write"
    REMOVE = "remove"
    RENAME = "rename"
    CHMOD = "chmod"


@dataclass(frozen=True)
class ChangeEvent:
    """A single raw change observed in one of the watched directories."""

    path: Path
    operation: Operation


@dataclass(frozen=True)
class WatcherError:
    """A failure inside the watch mechanism itself; never fatal."""

    message: str
    path: Optional[Path] = None

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message} ({self.path})"


WatchItem = Union[ChangeEvent, WatcherError]
