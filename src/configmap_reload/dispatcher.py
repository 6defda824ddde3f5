"""Sequential webhook delivery with bounded, fixed-interval retries."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, List, Optional

import httpx

from .config import WebhookTarget
from .metrics import FailureReason, MetricsSink
from .transport import Transport

logger = logging.getLogger(__name__)


class AttemptOutcome(str, Enum):
    """Result of a single delivery attempt."""

    SUCCESS = "success"
    REQUEST_BUILD_ERROR = "request_build_error"
    TRANSPORT_ERROR = "transport_error"
    UNEXPECTED_STATUS = "unexpected_status"


@dataclass(frozen=True)
class DeliveryAttempt:
    """One try at notifying a target."""

    target: WebhookTarget
    attempt_number: int
    outcome: AttemptOutcome
    duration_seconds: float = 0.0
    status_code: Optional[int] = None


@dataclass
class DeliveryResult:
    """Every attempt made against one target for one change."""

    target: WebhookTarget
    attempts: List[DeliveryAttempt] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> bool:
        return bool(self.attempts) and self.attempts[-1].outcome is AttemptOutcome.SUCCESS


class WebhookDispatcher:
    """Notifies every configured target, one after another, of a reload."""

    def __init__(
        self,
        targets: Iterable[WebhookTarget],
        transport: Transport,
        metrics: MetricsSink,
        *,
        method: str = "POST",
        expected_status: int = 200,
        retries: int = 1,
        backoff: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._targets = tuple(targets)
        self._transport = transport
        self._metrics = metrics
        self._method = method
        self._expected_status = expected_status
        self._retries = retries
        self._backoff = backoff
        self._clock = clock
        self._cancel_event = threading.Event()

    @property
    def targets(self) -> tuple:
        return self._targets

    def dispatch(self) -> List[DeliveryResult]:
        """Deliver one reload notification to every target in configured order."""

        results: List[DeliveryResult] = []
        for target in self._targets:
            if self._cancel_event.is_set():
                logger.info("Delivery cancelled before reaching %s", target)
                break
            results.append(self._deliver(target))
        return results

    def cancel(self) -> None:
        """Abort any in-progress backoff wait and skip remaining deliveries."""

        self._cancel_event.set()

    def _deliver(self, target: WebhookTarget) -> DeliveryResult:
        result = DeliveryResult(target=target)
        label = target.label

        try:
            request = self._build_request(target)
        except (httpx.InvalidURL, ValueError, TypeError) as exc:
            logger.error("Could not build webhook request for %s: %s", label, exc)
            self._metrics.record_failure(label, FailureReason.CLIENT_REQUEST_CREATE)
            result.attempts.append(
                DeliveryAttempt(target=target, attempt_number=1, outcome=AttemptOutcome.REQUEST_BUILD_ERROR)
            )
            return result

        for attempt_number in range(1, self._retries + 1):
            logger.info("Performing webhook request (%d/%d) %s %s", attempt_number, self._retries, self._method, label)
            attempt = self._attempt(target, request, attempt_number)
            result.attempts.append(attempt)

            if attempt.outcome is AttemptOutcome.SUCCESS:
                self._metrics.record_success(label, attempt.duration_seconds)
                logger.info("Successfully triggered reload of %s", label)
                return result

            if attempt_number < self._retries and self._cancel_event.wait(self._backoff):
                logger.info("Delivery to %s cancelled during backoff", label)
                result.cancelled = True
                return result

        self._metrics.record_failure(label, FailureReason.RETRIES_EXHAUSTED)
        logger.error("Webhook reload retries exhausted for %s", label)
        return result

    def _attempt(self, target: WebhookTarget, request: httpx.Request, attempt_number: int) -> DeliveryAttempt:
        label = target.label
        started = self._clock()
        try:
            response = self._transport.execute(request)
        except httpx.RequestError as exc:
            duration = self._clock() - started
            self._metrics.record_failure(label, FailureReason.CLIENT_REQUEST_DO)
            logger.warning("Webhook request to %s failed: %s", label, exc)
            return DeliveryAttempt(
                target=target,
                attempt_number=attempt_number,
                outcome=AttemptOutcome.TRANSPORT_ERROR,
                duration_seconds=duration,
            )

        duration = self._clock() - started
        status_code = response.status_code
        self._metrics.record_status_code(label, status_code)
        if status_code != self._expected_status:
            self._metrics.record_failure(label, FailureReason.CLIENT_RESPONSE)
            logger.warning(
                "Received response code %d from %s, expected %d", status_code, label, self._expected_status
            )
            outcome = AttemptOutcome.UNEXPECTED_STATUS
        else:
            outcome = AttemptOutcome.SUCCESS

        return DeliveryAttempt(
            target=target,
            attempt_number=attempt_number,
            outcome=outcome,
            duration_seconds=duration,
            status_code=status_code,
        )

    def _build_request(self, target: WebhookTarget) -> httpx.Request:
        request = httpx.Request(self._method, target.url)
        if target.credentials is not None:
            auth = httpx.BasicAuth(target.credentials.username, target.credentials.password)
            request = next(auth.sync_auth_flow(request))
        return request
