"""Tests for the webhook notifier."""

from unittest.mock import MagicMock, Mock, patch

import pytest
import requests

from pulsecheck.alerter import WebhookNotifier
from pulsecheck.config import AlertsConfig, WebhookConfig
from pulsecheck.errors import NotificationError
from pulsecheck.models import MonitorStatus


@pytest.fixture
def webhook_config() -> AlertsConfig:
    """Create test webhook configuration."""
    return AlertsConfig(webhooks=[WebhookConfig(url="https://example.com/webhook")])


@pytest.fixture
def notifier(webhook_config: AlertsConfig) -> WebhookNotifier:
    """Create test notifier instance."""
    return WebhookNotifier(webhook_config, max_retries=2, retry_delay=0)


def _ok_response() -> MagicMock:
    response = MagicMock()
    response.raise_for_status.return_value = None
    return response


class TestDispatch:
    """Tests for WebhookNotifier.dispatch."""

    @patch("pulsecheck.alerter.requests.post")
    def test_down_payload(self, mock_post: Mock, notifier: WebhookNotifier) -> None:
        """A DOWN notification carries the monitor, message and previous status."""
        mock_post.return_value = _ok_response()

        notifier.dispatch("mon-1", MonitorStatus.DOWN, "Certificate expires in 3 days", MonitorStatus.UP)

        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == "https://example.com/webhook"
        assert kwargs["timeout"] == 10
        payload = kwargs["json"]
        assert payload["event"] == "monitor_down"
        assert payload["monitor"] == {"id": "mon-1"}
        assert payload["status"] == "down"
        assert payload["message"] == "Certificate expires in 3 days"
        assert payload["previous_status"] == "up"
        assert "timestamp" in payload

    @patch("pulsecheck.alerter.requests.post")
    def test_up_payload_without_previous(self, mock_post: Mock, notifier: WebhookNotifier) -> None:
        """An unknown previous status is sent as null."""
        mock_post.return_value = _ok_response()

        notifier.dispatch("mon-1", MonitorStatus.UP, "Status code: 200", None)

        payload = mock_post.call_args.kwargs["json"]
        assert payload["event"] == "monitor_up"
        assert payload["previous_status"] is None

    @patch("pulsecheck.alerter.requests.post")
    def test_on_failure_filter(self, mock_post: Mock) -> None:
        """Webhooks without on_failure skip DOWN notifications."""
        config = AlertsConfig(webhooks=[WebhookConfig(url="https://example.com/hook", on_failure=False)])
        WebhookNotifier(config).dispatch("mon-1", MonitorStatus.DOWN, "down", MonitorStatus.UP)

        mock_post.assert_not_called()

    @patch("pulsecheck.alerter.requests.post")
    def test_on_recovery_filter(self, mock_post: Mock) -> None:
        """Webhooks without on_recovery skip UP notifications."""
        config = AlertsConfig(webhooks=[WebhookConfig(url="https://example.com/hook", on_recovery=False)])
        WebhookNotifier(config).dispatch("mon-1", MonitorStatus.UP, "up", MonitorStatus.DOWN)

        mock_post.assert_not_called()

    @patch("pulsecheck.alerter.requests.post")
    def test_disabled_webhook_not_sent(self, mock_post: Mock) -> None:
        config = AlertsConfig(webhooks=[WebhookConfig(url="https://example.com/hook", enabled=False)])
        WebhookNotifier(config).dispatch("mon-1", MonitorStatus.DOWN, "down", None)

        mock_post.assert_not_called()

    @patch("pulsecheck.alerter.requests.post")
    def test_no_webhooks_is_not_an_error(self, mock_post: Mock) -> None:
        WebhookNotifier(AlertsConfig()).dispatch("mon-1", MonitorStatus.DOWN, "down", None)

        mock_post.assert_not_called()

    @patch("pulsecheck.alerter.requests.post")
    def test_multiple_webhooks(self, mock_post: Mock) -> None:
        mock_post.return_value = _ok_response()
        config = AlertsConfig(
            webhooks=[
                WebhookConfig(url="https://example.com/a"),
                WebhookConfig(url="https://example.com/b"),
            ]
        )

        WebhookNotifier(config).dispatch("mon-1", MonitorStatus.DOWN, "down", None)

        assert mock_post.call_count == 2

    @patch("pulsecheck.alerter.time.sleep")
    @patch("pulsecheck.alerter.requests.post")
    def test_all_webhooks_failing_raises(self, mock_post: Mock, mock_sleep: Mock, notifier: WebhookNotifier) -> None:
        """Undelivered notifications raise so callers can retry later."""
        mock_post.side_effect = requests.RequestException("Connection error")

        with pytest.raises(NotificationError):
            notifier.dispatch("mon-1", MonitorStatus.DOWN, "down", None)

        # Initial attempt + 2 retries
        assert mock_post.call_count == 3

    @patch("pulsecheck.alerter.time.sleep")
    @patch("pulsecheck.alerter.requests.post")
    def test_partial_delivery_does_not_raise(self, mock_post: Mock, mock_sleep: Mock) -> None:
        """One accepting webhook is enough."""
        config = AlertsConfig(
            webhooks=[
                WebhookConfig(url="https://example.com/a"),
                WebhookConfig(url="https://example.com/b"),
            ]
        )

        def post(url: str, **kwargs) -> MagicMock:
            if url.endswith("/a"):
                raise requests.RequestException("Connection error")
            return _ok_response()

        mock_post.side_effect = post

        WebhookNotifier(config, max_retries=0).dispatch("mon-1", MonitorStatus.DOWN, "down", None)


class TestSendWebhook:
    """Tests for retry behavior of WebhookNotifier._send_webhook."""

    @patch("pulsecheck.alerter.time.sleep")
    @patch("pulsecheck.alerter.requests.post")
    def test_success_after_retry(self, mock_post: Mock, mock_sleep: Mock, notifier: WebhookNotifier) -> None:
        """Delivery succeeds on a later attempt."""
        mock_post.side_effect = [requests.RequestException("Connection error"), _ok_response()]

        webhook = WebhookConfig(url="https://example.com/webhook")
        assert notifier._send_webhook(webhook, {"monitor": {"id": "mon-1"}}) is True
        assert mock_post.call_count == 2

    @patch("pulsecheck.alerter.time.sleep")
    @patch("pulsecheck.alerter.requests.post")
    def test_exponential_backoff(self, mock_post: Mock, mock_sleep: Mock) -> None:
        """Retry delays double on each attempt."""
        mock_post.side_effect = requests.RequestException("Connection error")
        notifier = WebhookNotifier(AlertsConfig(), max_retries=3, retry_delay=2)

        webhook = WebhookConfig(url="https://example.com/webhook")
        assert notifier._send_webhook(webhook, {"monitor": {"id": "mon-1"}}) is False
        assert [c.args[0] for c in mock_sleep.call_args_list] == [2, 4, 8]

    @patch("pulsecheck.alerter.time.sleep")
    @patch("pulsecheck.alerter.requests.post")
    def test_http_error_is_retried(self, mock_post: Mock, mock_sleep: Mock, notifier: WebhookNotifier) -> None:
        """Non-2xx webhook answers count as failures."""
        bad = MagicMock()
        bad.raise_for_status.side_effect = requests.HTTPError("500 Server Error")
        mock_post.side_effect = [bad, _ok_response()]

        webhook = WebhookConfig(url="https://example.com/webhook")
        assert notifier._send_webhook(webhook, {"monitor": {"id": "mon-1"}}) is True


class TestTestWebhooks:
    """Tests for WebhookNotifier.test_webhooks."""

    @patch("pulsecheck.alerter.requests.post")
    def test_all_success(self, mock_post: Mock, notifier: WebhookNotifier) -> None:
        mock_post.return_value = _ok_response()

        results = notifier.test_webhooks()

        assert results == {"https://example.com/webhook": True}
        payload = mock_post.call_args.kwargs["json"]
        assert payload["event"] == "test"
        assert payload["monitor"] == {"id": "TEST"}
        assert payload["status"] == "down"

    @patch("pulsecheck.alerter.requests.post")
    def test_recovery_only_webhook_gets_up_payload(self, mock_post: Mock) -> None:
        """The test payload matches what the webhook subscribes to."""
        mock_post.return_value = _ok_response()
        config = AlertsConfig(webhooks=[WebhookConfig(url="https://example.com/webhook", on_failure=False)])

        WebhookNotifier(config).test_webhooks()

        assert mock_post.call_args.kwargs["json"]["status"] == "up"

    @patch("pulsecheck.alerter.time.sleep")
    @patch("pulsecheck.alerter.requests.post")
    def test_failure_is_not_retried(self, mock_post: Mock, mock_sleep: Mock, notifier: WebhookNotifier) -> None:
        mock_post.side_effect = requests.RequestException("Connection error")

        assert notifier.test_webhooks() == {"https://example.com/webhook": False}
        mock_post.assert_called_once()
        mock_sleep.assert_not_called()

    @patch("pulsecheck.alerter.requests.post")
    def test_disabled_webhook_is_skipped(self, mock_post: Mock) -> None:
        config = AlertsConfig(webhooks=[WebhookConfig(url="https://example.com/webhook", enabled=False)])

        assert WebhookNotifier(config).test_webhooks() == {}
        mock_post.assert_not_called()
