"""
Booking monitoring and health.

BookingMonitor keeps a bounded log of booking events (a ring buffer that
also drops events older than ``max_event_age_seconds``) and exposes only
aggregates: counters, error rates and a health verdict. It is created
explicitly and passed to whoever needs it; counters are per process.
"""

import time
from collections import deque
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Callable, Iterator, Optional

import structlog

from .config import MonitoringSettings


LOGGER = structlog.get_logger(__name__)

ATTEMPT = "attempt"
SUCCESS = "success"
FAILURE = "failure"
AVAILABILITY_CHECK = "availability_check"
CANCELLATION = "cancellation"
API_ERROR = "api_error"

EVENT_KINDS = (ATTEMPT, SUCCESS, FAILURE, AVAILABILITY_CHECK, CANCELLATION, API_ERROR)

HEALTHY = "healthy"
DEGRADED = "degraded"
CRITICAL = "critical"

_VERDICTS = (HEALTHY, DEGRADED, CRITICAL)


@dataclass(frozen=True)
class MonitoringEvent:
    kind: str
    timestamp: float
    duration_ms: Optional[float] = None
    summary: dict = field(default_factory=dict)


@dataclass
class Metrics:
    booking_attempts: int = 0
    successful_bookings: int = 0
    failed_bookings: int = 0
    availability_checks: int = 0
    cancellations: int = 0
    average_response_time: float = 0.0


@dataclass
class SystemHealth:
    status: str
    error_rate: float
    average_response_time: float
    issues: list[str] = field(default_factory=list)


class BookingMonitor:
    """Aggregates booking events into metrics and a health verdict."""

    def __init__(self, settings: Optional[MonitoringSettings] = None, clock: Callable[[], float] = time.time):
        self.settings = settings or MonitoringSettings()
        self._clock = clock
        self.reset()

    def reset(self) -> None:
        """Drop all events and zero every counter."""
        self._events: deque[MonitoringEvent] = deque(maxlen=self.settings.max_events)
        self._metrics = Metrics()
        self._timed_events = 0

    def track(self, kind: str, summary: Optional[dict] = None, duration_ms: Optional[float] = None) -> None:
        """Record an event of any kind."""
        if kind not in EVENT_KINDS:
            raise ValueError(f"Unknown event kind: {kind}")

        now = self._clock()
        self._evict(now)
        event = MonitoringEvent(kind=kind, timestamp=now, duration_ms=duration_ms, summary=dict(summary or {}))
        self._events.append(event)
        self._update_metrics(event)

        if kind in (FAILURE, API_ERROR):
            LOGGER.warning("booking.event", kind=kind, duration_ms=duration_ms, summary=event.summary)
        else:
            LOGGER.debug("booking.event", kind=kind, duration_ms=duration_ms, summary=event.summary)

    def track_booking_attempt(self, data: dict) -> None:
        self.track(ATTEMPT, data)

    def track_booking_success(self, data: dict, duration_ms: float) -> None:
        self.track(SUCCESS, data, duration_ms)

    def track_booking_failure(self, data: dict, duration_ms: float) -> None:
        self.track(FAILURE, data, duration_ms)

    def track_availability_check(self, data: dict, duration_ms: float) -> None:
        self.track(AVAILABILITY_CHECK, data, duration_ms)

    def track_cancellation(self, data: dict) -> None:
        self.track(CANCELLATION, data)

    def track_api_error(self, data: dict, duration_ms: Optional[float] = None) -> None:
        self.track(API_ERROR, data, duration_ms)

    def get_metrics(self) -> Metrics:
        return Metrics(**asdict(self._metrics))

    def get_error_rate(self, window_seconds: float) -> float:
        """Failed share of finished bookings in the trailing window, as a percentage."""
        cutoff = self._clock() - window_seconds
        succeeded = failed = 0
        for event in self._events:
            if event.timestamp < cutoff:
                continue
            if event.kind == SUCCESS:
                succeeded += 1
            elif event.kind == FAILURE:
                failed += 1

        finished = succeeded + failed
        if finished == 0:
            return 0.0
        return failed / finished * 100

    def get_system_health(self) -> SystemHealth:
        error_rate = self.get_error_rate(self.settings.health_window_seconds)
        average = self._metrics.average_response_time
        issues = []

        if error_rate <= self.settings.healthy_max_error_rate:
            level = 0
        elif error_rate <= self.settings.degraded_max_error_rate:
            level = 1
            issues.append(f"Elevated error rate: {error_rate:.1f}%")
        else:
            level = 2
            issues.append(f"High error rate: {error_rate:.1f}%")

        if average > self.settings.slow_response_ms:
            level = min(level + 1, 2)
            issues.append(f"Slow response time: {average:.0f}ms")

        return SystemHealth(
            status=_VERDICTS[level],
            error_rate=error_rate,
            average_response_time=average,
            issues=issues,
        )

    def health_report(self) -> dict:
        """Payload for the operational dashboard."""
        health = self.get_system_health()
        metrics = self._metrics
        if metrics.booking_attempts:
            success_rate = f"{metrics.successful_bookings / metrics.booking_attempts * 100:.1f}%"
        else:
            success_rate = "N/A"

        return {
            "status": health.status,
            "metrics": {
                "totalBookings": metrics.successful_bookings,
                "failedBookings": metrics.failed_bookings,
                "bookingAttempts": metrics.booking_attempts,
                "successRate": success_rate,
                "availabilityChecks": metrics.availability_checks,
                "cancellations": metrics.cancellations,
                "averageResponseTime": f"{round(metrics.average_response_time)}ms",
            },
            "health": {
                "errorRate": f"{health.error_rate:.1f}%",
                "issues": health.issues,
            },
        }

    def _evict(self, now: float) -> None:
        cutoff = now - self.settings.max_event_age_seconds
        while self._events and self._events[0].timestamp < cutoff:
            self._events.popleft()

    def _update_metrics(self, event: MonitoringEvent) -> None:
        metrics = self._metrics
        if event.kind == ATTEMPT:
            metrics.booking_attempts += 1
        elif event.kind == SUCCESS:
            metrics.successful_bookings += 1
        elif event.kind == FAILURE:
            metrics.failed_bookings += 1
        elif event.kind == AVAILABILITY_CHECK:
            metrics.availability_checks += 1
        elif event.kind == CANCELLATION:
            metrics.cancellations += 1

        if event.duration_ms is not None:
            self._timed_events += 1
            metrics.average_response_time += (
                event.duration_ms - metrics.average_response_time
            ) / self._timed_events


class Stopwatch:
    def __init__(self):
        self._start = time.perf_counter()
        self._end: Optional[float] = None

    def stop(self) -> float:
        self._end = time.perf_counter()
        return self.elapsed_ms

    @property
    def elapsed_ms(self) -> float:
        end = self._end if self._end is not None else time.perf_counter()
        return (end - self._start) * 1000


@contextmanager
def measure(monitor: BookingMonitor, summary: dict) -> Iterator[Stopwatch]:
    """
    Time a provider call.

    An exception escaping the block is recorded as an api_error with its
    duration and re-raised; on normal exit the caller records the outcome
    using ``stopwatch.elapsed_ms``.
    """
    stopwatch = Stopwatch()
    try:
        yield stopwatch
    except Exception as e:
        monitor.track_api_error({**summary, "error": str(e)}, stopwatch.stop())
        raise
    stopwatch.stop()


@dataclass
class Alert:
    type: str
    data: dict


class AlertPolicy:
    """Raises alerts from monitor state, at most once per cooldown period."""

    def __init__(
        self,
        monitor: BookingMonitor,
        settings: Optional[MonitoringSettings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.monitor = monitor
        self.settings = settings or monitor.settings
        self._clock = clock
        self.consecutive_failures = 0
        self._last_alert_at: Optional[float] = None

    def _cooling_down(self, now: float) -> bool:
        return (
            self._last_alert_at is not None
            and now - self._last_alert_at < self.settings.alert_cooldown_seconds
        )

    def _send(self, alerts: list[Alert], now: float) -> list[Alert]:
        for alert in alerts:
            LOGGER.error("booking.alert", alert=alert.type, data=alert.data)
        if alerts:
            self._last_alert_at = now
        return alerts

    def check(self) -> list[Alert]:
        """Alerts due for the current error rate, latency and health verdict."""
        now = self._clock()
        if self._cooling_down(now):
            return []

        health = self.monitor.get_system_health()
        alerts = []
        if health.error_rate > self.settings.alert_error_rate:
            alerts.append(Alert("HIGH_ERROR_RATE", {
                "error_rate": health.error_rate,
                "threshold": self.settings.alert_error_rate,
            }))
        if health.average_response_time > self.settings.alert_response_ms:
            alerts.append(Alert("SLOW_RESPONSE_TIME", {
                "response_time": health.average_response_time,
                "threshold": self.settings.alert_response_ms,
            }))
        if health.status == CRITICAL:
            alerts.append(Alert("SYSTEM_CRITICAL", {"issues": health.issues}))

        return self._send(alerts, now)

    def record_outcome(self, success: bool) -> list[Alert]:
        """Count consecutive booking failures; alert once the threshold is hit."""
        if success:
            self.consecutive_failures = 0
            return []

        self.consecutive_failures += 1
        if self.consecutive_failures < self.settings.alert_consecutive_failures:
            return []

        now = self._clock()
        if self._cooling_down(now):
            return []
        return self._send([Alert("CONSECUTIVE_FAILURES", {
            "failures": self.consecutive_failures,
            "threshold": self.settings.alert_consecutive_failures,
        })], now)
