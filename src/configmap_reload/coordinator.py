"""Single-threaded loop that turns ConfigMap updates into reload requests."""
from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass

from .dispatcher import WebhookDispatcher
from .events import ChangeEvent, WatcherError, WatchItem
from .filters import is_reload_signal
from .metrics import MetricsSink
from .watcher import DirectoryWatcher

logger = logging.getLogger(__name__)


@dataclass
class CoordinatorStats:
    """Counters emitted by the coordinator for observability."""

    events_seen: int = 0
    reload_cycles: int = 0
    watcher_errors: int = 0


class ReloadCoordinator:
    """Consumes watcher output and drives the webhook dispatcher.

    Deliveries for one change finish before the next queued item is read, so
    at most one reload cycle is ever in flight.
    """

    def __init__(
        self,
        watcher: DirectoryWatcher,
        dispatcher: WebhookDispatcher,
        metrics: MetricsSink,
        *,
        poll_interval: float = 1.0,
    ):
        self._watcher = watcher
        self._dispatcher = dispatcher
        self._metrics = metrics
        self._poll_interval = poll_interval
        self._stop_event = threading.Event()
        self.stats = CoordinatorStats()

    def run(self) -> None:
        """Start watching and process events until stopped."""

        self._watcher.start()
        logger.info("Watching %d directories, notifying %d webhooks", len(self._watcher.directories), len(self._dispatcher.targets))
        try:
            while not self._stop_event.is_set():
                try:
                    item = self._watcher.events.get(timeout=self._poll_interval)
                except queue.Empty:
                    self._watcher.check_health()
                    continue
                try:
                    self.handle(item)
                finally:
                    self._watcher.events.task_done()
                self._watcher.check_health()
        except KeyboardInterrupt:
            logger.info("Coordinator interrupted by user")
        finally:
            self._watcher.stop()
            logger.info(
                "Coordinator stopped after %s events, %s reload cycles, %s watcher errors",
                self.stats.events_seen,
                self.stats.reload_cycles,
                self.stats.watcher_errors,
            )

    def stop(self) -> None:
        """Signal the loop to stop and cut short any backoff in progress."""

        self._stop_event.set()
        self._dispatcher.cancel()

    def handle(self, item: WatchItem) -> None:
        if isinstance(item, WatcherError):
            self.stats.watcher_errors += 1
            self._metrics.record_watcher_error()
            logger.error("Watcher error: %s", item)
            return

        self.stats.events_seen += 1
        if not is_reload_signal(item):
            logger.debug("Ignoring %s on %s", item.operation.value, item.path)
            return

        self._reload(item)

    def _reload(self, event: ChangeEvent) -> None:
        logger.info("Config map updated (%s)", event.path.parent)
        self.stats.reload_cycles += 1
        results = self._dispatcher.dispatch()
        failed = [result.target.label for result in results if not result.succeeded and not result.cancelled]
        if failed:
            logger.warning("Reload cycle finished with %d failed webhooks: %s", len(failed), ", ".join(failed))
        else:
            logger.debug("Reload cycle finished for %d webhooks", len(results))
