"""Monitor facade wiring checks, persistence and notifications together."""

import logging
import sqlite3
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from datetime import datetime

from .alerter import WebhookNotifier
from .certificate import SocketCertificateInspector
from .checker import HttpChecker
from .config import Config
from .database import StatusStore
from .models import MonitorCheckConfig, MonitorCheckResult, MonitorStatus
from .reminder import CacheSweeper, Clock, DailyReminder, NotificationDedupCache, Notifier
from .transport import RequestsTransport

logger = logging.getLogger(__name__)

# Monitors checked in parallel by check_all()
MAX_WORKERS = 4

# Status-change notifications delivered at once
NOTIFY_WORKERS = 2


class Monitor:
    """Runs configured monitors and records their status.

    Checks are driven externally (cron, systemd timer); the monitor only owns
    the daily cache sweeper while started.

    Example:
        monitor = Monitor(config, db_conn)
        monitor.start()
        results = monitor.check_all()
        monitor.stop()
    """

    def __init__(
        self,
        config: Config,
        db_conn: sqlite3.Connection,
        notifier: Notifier | None = None,
        checker: HttpChecker | None = None,
        clock: Clock = datetime.now,
    ) -> None:
        """Initialize the monitor.

        Args:
            config: Application configuration with monitors to check.
            db_conn: Database connection for storing statuses.
            notifier: Notification collaborator (default: webhooks from config).
            checker: Checker to use instead of one built from config.
            clock: Local wall-clock source for reminders and the cache sweeper.
        """
        self._config = config
        self._store = StatusStore(db_conn)
        self._notifier = notifier or WebhookNotifier(config.alerts)
        self._cache = NotificationDedupCache()
        self._sweeper = CacheSweeper(self._cache, clock=clock)
        self._reminder = DailyReminder(
            self._cache,
            self._notifier,
            self._store,
            clock=clock,
            reminder_hour=config.reminders.hour,
            window_minutes=config.reminders.window_minutes,
        )
        self._checker = checker or self._build_checker()
        self._notify_executor = ThreadPoolExecutor(
            max_workers=NOTIFY_WORKERS, thread_name_prefix="pulsecheck-notify"
        )

    @property
    def cache(self) -> NotificationDedupCache:
        return self._cache

    def _build_checker(self) -> HttpChecker:
        proxy_transport = RequestsTransport(proxy_url=self._config.proxy.url) if self._config.proxy.url else None
        return HttpChecker(
            RequestsTransport(),
            proxy_transport=proxy_transport,
            settings=self._config.proxy,
            inspector=SocketCertificateInspector(timeout=self._config.checks.certificate_timeout),
            reminder=self._reminder,
            request_timeout=self._config.checks.request_timeout,
            keyword_cert_precheck=self._config.checks.keyword_cert_precheck,
        )

    def start(self) -> None:
        """Start the background cache sweeper."""
        self._sweeper.start()
        logger.info("Monitor started with %d monitor(s)", len(self._config.monitors))

    def stop(self) -> None:
        """Stop the sweeper, flush queued reminders and release the checker's threads."""
        self._sweeper.stop()
        self._checker.close()
        self._reminder.close()
        self._notify_executor.shutdown(wait=True)
        logger.info("Monitor stopped")

    def check(self, monitor: MonitorCheckConfig) -> MonitorCheckResult:
        """Check one monitor and record its status."""
        result = self._checker.check(monitor)
        self._store_result(monitor, result)
        return result

    def check_all(self, monitor_ids: list[str] | None = None) -> dict[str, MonitorCheckResult]:
        """Check monitors concurrently.

        Args:
            monitor_ids: Restrict the pass to these ids; all monitors when None.

        Returns:
            Mapping of monitor id to result for every check that completed.
        """
        monitors = [m for m in self._config.monitors if monitor_ids is None or m.monitor_id in monitor_ids]
        results: dict[str, MonitorCheckResult] = {}
        if not monitors:
            return results

        with ThreadPoolExecutor(max_workers=MAX_WORKERS) as executor:
            futures = {executor.submit(self.check, monitor): monitor for monitor in monitors}

            for future in as_completed(futures):
                monitor = futures[future]
                try:
                    results[monitor.monitor_id] = future.result()
                except Exception as e:
                    logger.error("Failed to check %s: %s", monitor.monitor_name, e)

        return results

    def _store_result(self, monitor: MonitorCheckConfig, result: MonitorCheckResult) -> None:
        """Record the result and notify on status changes."""
        previous_status: MonitorStatus | None = None
        try:
            previous_status = self._store.get_last_status(monitor.monitor_id)
            self._store.record_result(monitor.monitor_id, result)
        except Exception as e:
            logger.error("Failed to store check result for %s: %s", monitor.monitor_name, e)

        status = "UP" if result.is_up else "DOWN"
        logger.debug("%s: %s (%dms) %s", monitor.monitor_name, status, result.ping, result.message)

        # A queued daily reminder already reports this DOWN transition
        if previous_status is not None and previous_status != result.status and not result.reminder_queued:
            self._notify_status_change(monitor, result, previous_status)

    def _notify_status_change(
        self, monitor: MonitorCheckConfig, result: MonitorCheckResult, previous_status: MonitorStatus
    ) -> None:
        """Queue the notification on the notify pool; failures are logged."""
        try:
            future = self._notify_executor.submit(
                self._notifier.dispatch, monitor.monitor_id, result.status, result.message, previous_status
            )
        except RuntimeError as e:
            logger.error("Cannot queue status change notification for %s: %s", monitor.monitor_name, e)
            return

        def _log_failure(done: Future) -> None:
            if done.cancelled():
                logger.warning("Status change notification for %s was cancelled", monitor.monitor_name)
                return
            error = done.exception()
            if error is not None:
                logger.error("Status change notification failed for %s: %s", monitor.monitor_name, error)

        future.add_done_callback(_log_failure)
