"""Reduce raw filesystem noise to ConfigMap update signals."""
from __future__ import annotations

from .events import ChangeEvent, Operation

# Kubernetes repoints this symlink to a fresh revision directory on every update.
DATA_LINK_NAME = "..data"


def is_reload_signal(event: ChangeEvent) -> bool:
    """Return True when *event* is the creation of the ``..data`` link."""

    if event.operation is not Operation.CREATE:
        return False
    return event.path.name == DATA_LINK_NAME
