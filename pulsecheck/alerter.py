"""Webhook notification delivery."""

import logging
import time
from datetime import UTC, datetime

import requests

from .config import AlertsConfig, WebhookConfig
from .errors import NotificationError
from .models import MonitorStatus

logger = logging.getLogger(__name__)


def _status_name(status: MonitorStatus | None) -> str | None:
    if status is None:
        return None
    return "up" if status == MonitorStatus.UP else "down"


class WebhookNotifier:
    """Delivers monitor notifications to the configured webhooks."""

    def __init__(self, config: AlertsConfig, max_retries: int = 3, retry_delay: int = 2):
        """Initialize notifier with configuration.

        Args:
            config: Alerts configuration with webhooks
            max_retries: Maximum number of retry attempts for failed webhooks
            retry_delay: Base delay in seconds between retries (increases exponentially)
        """
        self._config = config
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    def dispatch(
        self,
        monitor_id: str,
        status: MonitorStatus,
        message: str,
        previous_status: MonitorStatus | None,
    ) -> None:
        """Send a notification to every matching webhook.

        Raises:
            NotificationError: If no matching webhook accepted the notification.
        """
        is_failure = status == MonitorStatus.DOWN
        webhooks = [
            webhook
            for webhook in self._config.webhooks
            if webhook.enabled and (webhook.on_failure if is_failure else webhook.on_recovery)
        ]
        if not webhooks:
            logger.debug("No webhook configured for %s notification of %s", _status_name(status), monitor_id)
            return

        payload = self._build_payload(monitor_id, status, message, previous_status)
        delivered = sum(1 for webhook in webhooks if self._send_webhook(webhook, payload))

        if delivered == 0:
            raise NotificationError(f"Notification for {monitor_id} failed on all {len(webhooks)} webhook(s)")

    def _build_payload(
        self,
        monitor_id: str,
        status: MonitorStatus,
        message: str,
        previous_status: MonitorStatus | None,
    ) -> dict:
        return {
            "event": "monitor_down" if status == MonitorStatus.DOWN else "monitor_up",
            "monitor": {"id": monitor_id},
            "status": _status_name(status),
            "message": message,
            "previous_status": _status_name(previous_status),
            "timestamp": datetime.now(UTC).isoformat(),
        }

    def _send_webhook(self, webhook: WebhookConfig, payload: dict) -> bool:
        """Send a webhook (with retries).

        Returns:
            True if the webhook accepted the payload.
        """
        retry_count = 0

        while retry_count <= self._max_retries:
            try:
                response = requests.post(
                    webhook.url,
                    json=payload,
                    timeout=10,
                )
                response.raise_for_status()

                logger.info("Webhook sent successfully for %s to %s", payload["monitor"]["id"], webhook.url)
                return True

            except requests.RequestException as e:
                retry_count += 1
                if retry_count <= self._max_retries:
                    delay = self._retry_delay * (2 ** (retry_count - 1))
                    logger.warning(
                        "Webhook failed for %s (attempt %d/%d, retrying in %ds): %s",
                        webhook.url,
                        retry_count,
                        self._max_retries + 1,
                        delay,
                        e,
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        "Webhook failed for %s after %d attempts: %s",
                        webhook.url,
                        retry_count,
                        e,
                    )

        return False

    def test_webhooks(self) -> dict[str, bool]:
        """Send a test payload to every enabled webhook (single attempt, no retries).

        The payload status follows the webhook's subscription: "down" when it
        receives failures, "up" when it only receives recoveries.

        Returns:
            Dictionary mapping enabled webhook URLs to delivery success.
        """
        results = {}

        for webhook in self._config.webhooks:
            if not webhook.enabled:
                logger.debug("Skipping disabled webhook %s", webhook.url)
                continue

            status = MonitorStatus.DOWN if webhook.on_failure else MonitorStatus.UP
            payload = self._build_payload("TEST", status, "Test notification from pulsecheck", None)
            payload["event"] = "test"

            try:
                response = requests.post(webhook.url, json=payload, timeout=10)
                response.raise_for_status()
                results[webhook.url] = True
                logger.info("Test webhook sent successfully to %s", webhook.url)
            except requests.RequestException as e:
                results[webhook.url] = False
                logger.error("Test webhook failed for %s: %s", webhook.url, e)

        return results
