"""
============================================================================
Unit Tests - Discord Notifier
============================================================================

Tests:
- Enablement from arguments and environment
- Alert level filtering and the critical rate-limit bypass
- Embed payload construction and truncation
- Synchronous webhook delivery and HTTP error mapping
============================================================================
"""

import io
import json
import os
import socket
import sys
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.observability.discord_notifier import (
    AlertLevel,
    DiscordNotifier,
    EmbedColor,
    ERROR_DISCORD_RATE_LIMITED,
    ERROR_DISCORD_REQUEST_FAILED,
    ERROR_DISCORD_TIMEOUT,
    ERROR_DISCORD_WEBHOOK_MISSING,
    MAX_EMBED_TITLE_LENGTH,
    MAX_FIELDS_PER_EMBED,
)


WEBHOOK = "https://discord.example/api/webhooks/1/token"


def sync_notifier(**kwargs) -> DiscordNotifier:
    kwargs.setdefault("webhook_url", WEBHOOK)
    kwargs.setdefault("rate_limit_seconds", 0.0)
    kwargs.setdefault("alert_level", "INFO")
    return DiscordNotifier(async_delivery=False, **kwargs)


def ok_response(status: int = 204) -> MagicMock:
    response = MagicMock()
    response.getcode.return_value = status
    response.__enter__.return_value = response
    return response


@pytest.fixture(autouse=True)
def _clean_discord_env(monkeypatch):
    for name in (
        "DISCORD_WEBHOOK_URL",
        "DISCORD_ALERT_LEVEL",
        "DISCORD_RATE_LIMIT_SECONDS",
        "DISCORD_NOTIFICATIONS_ENABLED",
    ):
        monkeypatch.delenv(name, raising=False)


class TestEnablement:

    def test_disabled_without_webhook(self) -> None:
        notifier = DiscordNotifier(async_delivery=False)

        result = notifier.send(AlertLevel.CRITICAL, "Down")

        assert notifier.is_enabled is False
        assert result.success is False
        assert result.error_code == ERROR_DISCORD_WEBHOOK_MISSING

    def test_enabled_from_environment(self, monkeypatch) -> None:
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", WEBHOOK)

        assert DiscordNotifier(async_delivery=False).is_enabled is True

    def test_env_kill_switch(self, monkeypatch) -> None:
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", WEBHOOK)
        monkeypatch.setenv("DISCORD_NOTIFICATIONS_ENABLED", "false")

        assert DiscordNotifier(async_delivery=False).is_enabled is False

    def test_explicit_argument_wins(self, monkeypatch) -> None:
        monkeypatch.setenv("DISCORD_NOTIFICATIONS_ENABLED", "false")

        assert sync_notifier(enabled=True).is_enabled is True


class TestFiltering:

    def test_below_threshold_is_filtered_without_sending(self) -> None:
        notifier = sync_notifier(alert_level="ERROR")

        with patch("urllib.request.urlopen") as urlopen:
            result = notifier.send_warning("Slow")

        assert result.success is True
        assert result.error_message == "Filtered by alert level"
        urlopen.assert_not_called()

    def test_rate_limit_blocks_second_message(self) -> None:
        notifier = sync_notifier(rate_limit_seconds=3600)

        with patch("urllib.request.urlopen", return_value=ok_response()):
            first = notifier.send_info("one")
            second = notifier.send_info("two")

        assert first.success is True
        assert second.rate_limited is True
        assert second.error_code == ERROR_DISCORD_RATE_LIMITED

    def test_critical_bypasses_rate_limit(self) -> None:
        notifier = sync_notifier(rate_limit_seconds=3600)

        with patch("urllib.request.urlopen", return_value=ok_response()) as urlopen:
            notifier.send_info("one")
            result = notifier.send_critical("Strategy Auto-Paused")

        assert result.success is True
        assert urlopen.call_count == 2


class TestPayload:

    def test_fields_and_color(self) -> None:
        payload = sync_notifier().build_payload(
            AlertLevel.WARNING,
            "Approval Request: Publish",
            "Publish the article",
            fields=[
                {"name": "ID", "value": "approval_1", "inline": True},
                {"name": "Expires At", "value": "2024-06-01T13:00:00+00:00", "inline": False},
            ],
        )

        [embed] = payload["embeds"]
        assert embed["title"] == "Approval Request: Publish"
        assert embed["color"] == EmbedColor.WARNING.value
        assert embed["fields"][0] == {"name": "ID", "value": "approval_1", "inline": True}
        assert embed["fields"][1]["inline"] is False
        assert "timestamp" in embed

    def test_limits_are_enforced(self) -> None:
        payload = sync_notifier().build_payload(
            AlertLevel.INFO,
            "x" * 500,
            fields=[{"name": str(i), "value": "v"} for i in range(40)],
        )

        [embed] = payload["embeds"]
        assert len(embed["title"]) == MAX_EMBED_TITLE_LENGTH
        assert len(embed["fields"]) == MAX_FIELDS_PER_EMBED
        assert "description" not in embed

    def test_convenience_methods_prefix_title(self) -> None:
        notifier = sync_notifier()

        with patch("urllib.request.urlopen", return_value=ok_response()) as urlopen:
            notifier.send_error("Rejected: Publish", "too risky")

        request = urlopen.call_args[0][0]
        body = json.loads(request.data.decode("utf-8"))
        assert body["embeds"][0]["title"].endswith("Rejected: Publish")
        assert body["embeds"][0]["color"] == EmbedColor.ERROR.value


class TestDelivery:

    def test_http_429_is_reported_as_rate_limited(self) -> None:
        error = urllib.error.HTTPError(
            WEBHOOK, 429, "Too Many Requests", {"Retry-After": "7"}, io.BytesIO(b"")
        )

        with patch("urllib.request.urlopen", side_effect=error):
            result = sync_notifier().send_critical("Down")

        assert result.rate_limited is True
        assert result.retry_after_seconds == 7

    def test_http_500_is_request_failure(self) -> None:
        error = urllib.error.HTTPError(WEBHOOK, 500, "Server Error", {}, io.BytesIO(b""))

        with patch("urllib.request.urlopen", side_effect=error):
            result = sync_notifier().send_critical("Down")

        assert result.success is False
        assert result.error_code == ERROR_DISCORD_REQUEST_FAILED

    def test_url_error_is_request_failure(self) -> None:
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("dns")):
            result = sync_notifier().send_critical("Down")

        assert result.error_code == ERROR_DISCORD_REQUEST_FAILED

    def test_socket_timeout_is_reported_as_timeout(self) -> None:
        with patch("urllib.request.urlopen", side_effect=socket.timeout("timed out")):
            result = sync_notifier().send_critical("Down")

        assert result.success is False
        assert result.error_code == ERROR_DISCORD_TIMEOUT

    def test_connection_reset_is_request_failure(self) -> None:
        with patch("urllib.request.urlopen", side_effect=ConnectionResetError("reset")):
            result = sync_notifier().send_critical("Down")

        assert result.success is False
        assert result.error_code == ERROR_DISCORD_REQUEST_FAILED
