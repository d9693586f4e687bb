"""Daily certificate reminders with per-day notification dedup."""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import date, datetime
from functools import partial
from typing import Protocol

from .certificate import EXPIRY_CRITICAL_DAYS
from .models import MonitorStatus

logger = logging.getLogger(__name__)

# Reminders fire between REMINDER_HOUR:00 and REMINDER_HOUR:(WINDOW - 1):59 local time.
DEFAULT_REMINDER_HOUR = 12
DEFAULT_WINDOW_MINUTES = 5

# Reminder deliveries running at once, off the check path
DELIVERY_WORKERS = 2

# Sweeper tick interval; the clear happens during the first minute of the day.
SWEEP_INTERVAL_SECONDS = 60

KIND_EXPIRED = "expired-critical"
KIND_EXPIRING_PREFIX = "expiring-critical"
KIND_CHECK_FAILED = "check-failed-daily"

Clock = Callable[[], datetime]


class StatusReader(Protocol):
    def get_last_status(self, monitor_id: str) -> MonitorStatus | None: ...


class Notifier(Protocol):
    def dispatch(
        self,
        monitor_id: str,
        status: MonitorStatus,
        message: str,
        previous_status: MonitorStatus | None,
    ) -> None: ...


class NotificationDedupCache:
    """Tracks which notification kinds were sent per monitor and day.

    Keys are "{monitor_id}-{YYYY-MM-DD}". All operations are guarded by one lock,
    and ``clear`` swaps in a fresh map.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sent: dict[str, set[str]] = {}

    @staticmethod
    def key(monitor_id: str, day: date) -> str:
        return f"{monitor_id}-{day.isoformat()}"

    def claim(self, monitor_id: str, day: date, kind: str) -> bool:
        """Atomically mark a kind as sent.

        Returns:
            True if the caller now owns the notification, False if it was
            already claimed for that monitor and day.
        """
        cache_key = self.key(monitor_id, day)
        with self._lock:
            kinds = self._sent.setdefault(cache_key, set())
            if kind in kinds:
                return False
            kinds.add(kind)
            return True

    def release(self, monitor_id: str, day: date, kind: str) -> None:
        """Undo a claim after a failed dispatch."""
        cache_key = self.key(monitor_id, day)
        with self._lock:
            kinds = self._sent.get(cache_key)
            if kinds is None:
                return
            kinds.discard(kind)
            if not kinds:
                del self._sent[cache_key]

    def has_sent(self, monitor_id: str, day: date, kind: str) -> bool:
        with self._lock:
            return kind in self._sent.get(self.key(monitor_id, day), ())

    def clear(self) -> None:
        with self._lock:
            self._sent = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._sent)


def notification_kind(monitor_name: str, days_remaining: int | None) -> tuple[str, str]:
    """Pick the reminder kind and message for a DOWN certificate verdict.

    Returns:
        Tuple of (kind, message).
    """
    if days_remaining is not None and days_remaining <= 0:
        return (
            KIND_EXPIRED,
            f"[Certificate expired] The SSL certificate of {monitor_name} is expired or invalid! "
            "Immediate action required!",
        )
    if days_remaining is not None and days_remaining <= EXPIRY_CRITICAL_DAYS:
        return (
            f"{KIND_EXPIRING_PREFIX}-{days_remaining}",
            f"[Certificate critical] The SSL certificate of {monitor_name} expires in {days_remaining} days "
            "(service marked as failed). Renew it now!",
        )
    return (
        KIND_CHECK_FAILED,
        f"[Daily certificate reminder] The SSL certificate check of {monitor_name} failed; "
        "the monitor is still DOWN.",
    )


class DailyReminder:
    """Sends at most one reminder per monitor, day and kind inside a daily window.

    Delivery runs on a small thread pool owned by the reminder, so a slow or
    failing notifier (webhook retries, timeouts) never holds up a health check.
    A failed delivery releases its claim and can be retried within the window.
    """

    def __init__(
        self,
        cache: NotificationDedupCache,
        notifier: Notifier,
        status_reader: StatusReader,
        clock: Clock = datetime.now,
        reminder_hour: int = DEFAULT_REMINDER_HOUR,
        window_minutes: int = DEFAULT_WINDOW_MINUTES,
        max_workers: int = DELIVERY_WORKERS,
    ) -> None:
        self._cache = cache
        self._notifier = notifier
        self._status_reader = status_reader
        self._clock = clock
        self._reminder_hour = reminder_hour
        self._window_minutes = window_minutes
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pulsecheck-reminder")

    def in_window(self, now: datetime) -> bool:
        return now.hour == self._reminder_hour and now.minute < self._window_minutes

    def maybe_notify_daily(
        self,
        monitor_id: str,
        monitor_name: str,
        days_remaining: int | None,
        status: MonitorStatus,
    ) -> bool:
        """Queue the daily certificate reminder if it is due.

        Returns immediately; delivery errors are logged and never raised.

        Returns:
            True if a reminder was queued for delivery.
        """
        if status != MonitorStatus.DOWN:
            return False

        now = self._clock()
        if not self.in_window(now):
            return False

        today = now.date()
        kind, message = notification_kind(monitor_name, days_remaining)

        if not self._cache.claim(monitor_id, today, kind):
            logger.debug("Reminder %s already sent today for %s", kind, monitor_name)
            return False

        previous_status = self._last_status(monitor_id)
        try:
            future = self._executor.submit(
                self._notifier.dispatch, monitor_id, MonitorStatus.DOWN, message, previous_status
            )
        except RuntimeError as e:
            # Executor already shut down
            self._cache.release(monitor_id, today, kind)
            logger.error("Cannot queue daily certificate reminder for %s: %s", monitor_name, e)
            return False

        future.add_done_callback(partial(self._on_delivered, monitor_id, monitor_name, today, kind))
        return True

    def close(self, wait: bool = True) -> None:
        """Stop accepting reminders; by default wait for queued deliveries."""
        self._executor.shutdown(wait=wait)

    def _on_delivered(self, monitor_id: str, monitor_name: str, day: date, kind: str, future: Future) -> None:
        if future.cancelled():
            self._cache.release(monitor_id, day, kind)
            logger.warning("Daily certificate reminder %s for %s was cancelled", kind, monitor_name)
            return

        error = future.exception()
        if error is not None:
            self._cache.release(monitor_id, day, kind)
            logger.error("Failed to send daily certificate reminder for %s: %s", monitor_name, error)
            return

        logger.info("Sent daily certificate reminder %s for %s", kind, monitor_name)

    def _last_status(self, monitor_id: str) -> MonitorStatus | None:
        try:
            return self._status_reader.get_last_status(monitor_id)
        except Exception as e:
            logger.warning("Could not read last status of %s: %s", monitor_id, e)
            return None


class CacheSweeper:
    """Clears the dedup cache once at the start of each day from a background thread."""

    def __init__(
        self,
        cache: NotificationDedupCache,
        clock: Clock = datetime.now,
        interval_seconds: float = SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._cache = cache
        self._clock = clock
        self._interval_seconds = interval_seconds
        self._last_swept: date | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> bool:
        """Clear the cache if the clock reads 00:00 and today was not swept yet.

        Returns:
            True if the cache was cleared.
        """
        now = self._clock()
        if now.hour != 0 or now.minute != 0:
            return False
        if self._last_swept == now.date():
            return False

        self._cache.clear()
        self._last_swept = now.date()
        logger.info("Certificate notification cache cleared")
        return True

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            logger.warning("Cache sweeper already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="cache-sweeper", daemon=True)
        self._thread.start()
        logger.debug("Cache sweeper started (interval: %ss)", self._interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        if not self._thread or not self._thread.is_alive():
            return

        self._stop_event.set()
        self._thread.join(timeout=timeout)

        if self._thread.is_alive():
            logger.warning("Cache sweeper thread did not stop gracefully")

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error("Cache sweep failed: %s", e)
            self._stop_event.wait(self._interval_seconds)
