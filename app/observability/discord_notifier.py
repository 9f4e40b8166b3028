"""
============================================================================
Discord Notifier - Operator Alerts for the Approval Gate
============================================================================

Reliability Level: L5 High
Input Constraints: Valid Discord webhook URL required for delivery
Side Effects: Sends HTTP POST to Discord webhook endpoint

DELIVERY CONTRACT:
- Best-effort: send() reports failures in a NotificationResult and never
  raises to the gate or the runner
- Disabled automatically when no webhook URL is configured
- Local rate limit between messages; CRITICAL alerts bypass it
- Optional background thread so callers never block on HTTP

Every message is a single embed whose sidebar color follows the severity.
Approval requests carry ID / Risk Level / Type / Required Approvals /
Expires At fields; strategy alerts use title and description only.

ERROR CODES:
    - DISC-001: Webhook missing or notifications disabled
    - DISC-002: Rate limited (local or by Discord)
    - DISC-003: HTTP/URL failure
    - DISC-004: Unexpected response status
    - DISC-005: Request timed out

============================================================================
"""

import os
import json
import logging
import socket
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any
from enum import Enum
from queue import Queue, Empty
import urllib.request
import urllib.error

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

ENV_DISCORD_WEBHOOK_URL = "DISCORD_WEBHOOK_URL"
ENV_DISCORD_ALERT_LEVEL = "DISCORD_ALERT_LEVEL"
ENV_DISCORD_RATE_LIMIT = "DISCORD_RATE_LIMIT_SECONDS"
ENV_DISCORD_ENABLED = "DISCORD_NOTIFICATIONS_ENABLED"

DEFAULT_ALERT_LEVEL = "INFO"
DEFAULT_RATE_LIMIT_SECONDS = 1.0
DEFAULT_REQUEST_TIMEOUT_SECONDS = 10

# Discord embed limits
MAX_EMBED_TITLE_LENGTH = 256
MAX_EMBED_DESCRIPTION_LENGTH = 4096
MAX_FIELD_NAME_LENGTH = 256
MAX_FIELD_VALUE_LENGTH = 1024
MAX_FIELDS_PER_EMBED = 25

ERROR_DISCORD_WEBHOOK_MISSING = "DISC-001-WEBHOOK_MISSING"
ERROR_DISCORD_RATE_LIMITED = "DISC-002-RATE_LIMITED"
ERROR_DISCORD_REQUEST_FAILED = "DISC-003-REQUEST_FAILED"
ERROR_DISCORD_INVALID_RESPONSE = "DISC-004-INVALID_RESPONSE"
ERROR_DISCORD_TIMEOUT = "DISC-005-TIMEOUT"

_FALSE_VALUES = ("false", "0", "no", "off")


# =============================================================================
# ENUMS
# =============================================================================

class AlertLevel(Enum):
    """
    Notification severity.

    SUCCESS ranks just above INFO so an INFO threshold lets it through.
    """
    DEBUG = 10
    INFO = 20
    SUCCESS = 21
    WARNING = 30
    ERROR = 40
    CRITICAL = 50


class EmbedColor(Enum):
    SUCCESS = 0x2ECC71
    INFO = 0x3498DB
    WARNING = 0xF39C12
    ERROR = 0xE74C3C
    CRITICAL = 0x9B59B6


SEVERITY_COLORS: Dict[AlertLevel, int] = {
    AlertLevel.DEBUG: EmbedColor.INFO.value,
    AlertLevel.INFO: EmbedColor.INFO.value,
    AlertLevel.SUCCESS: EmbedColor.SUCCESS.value,
    AlertLevel.WARNING: EmbedColor.WARNING.value,
    AlertLevel.ERROR: EmbedColor.ERROR.value,
    AlertLevel.CRITICAL: EmbedColor.CRITICAL.value,
}

TITLE_PREFIXES: Dict[AlertLevel, str] = {
    AlertLevel.SUCCESS: "✅",
    AlertLevel.INFO: "ℹ️",
    AlertLevel.WARNING: "⚠️",
    AlertLevel.ERROR: "❌",
    AlertLevel.CRITICAL: "🚨",
}


def parse_alert_level(value: Optional[str], default: AlertLevel = AlertLevel.INFO) -> AlertLevel:
    if not value:
        return default
    try:
        return AlertLevel[value.strip().upper()]
    except KeyError:
        logger.warning(f"[DISCORD_CONFIG] Unknown alert level, using {default.name} | value={value}")
        return default


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class NotifierSettings:
    """Resolved notifier settings (arguments override environment)."""

    webhook_url: Optional[str] = None
    alert_level: AlertLevel = AlertLevel.INFO
    rate_limit_seconds: float = DEFAULT_RATE_LIMIT_SECONDS
    enabled: bool = False

    @classmethod
    def from_environment(
        cls,
        webhook_url: Optional[str] = None,
        alert_level: Optional[str] = None,
        rate_limit_seconds: Optional[float] = None,
        enabled: Optional[bool] = None,
    ) -> "NotifierSettings":
        url = webhook_url or os.getenv(ENV_DISCORD_WEBHOOK_URL) or None

        if rate_limit_seconds is None:
            raw = os.getenv(ENV_DISCORD_RATE_LIMIT, "")
            try:
                rate_limit_seconds = float(raw) if raw else DEFAULT_RATE_LIMIT_SECONDS
            except ValueError:
                logger.warning(
                    f"[DISCORD_CONFIG] Invalid {ENV_DISCORD_RATE_LIMIT}, "
                    f"using {DEFAULT_RATE_LIMIT_SECONDS} | value={raw}"
                )
                rate_limit_seconds = DEFAULT_RATE_LIMIT_SECONDS

        if enabled is None:
            switched_off = os.getenv(ENV_DISCORD_ENABLED, "").strip().lower() in _FALSE_VALUES
            enabled = bool(url) and not switched_off

        return cls(
            webhook_url=url,
            alert_level=parse_alert_level(
                alert_level or os.getenv(ENV_DISCORD_ALERT_LEVEL, DEFAULT_ALERT_LEVEL)
            ),
            rate_limit_seconds=max(0.0, rate_limit_seconds),
            enabled=enabled,
        )


@dataclass
class EmbedField:
    name: str
    value: str
    inline: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name[:MAX_FIELD_NAME_LENGTH],
            "value": self.value[:MAX_FIELD_VALUE_LENGTH],
            "inline": self.inline,
        }


@dataclass
class NotificationResult:
    """Outcome of one send() call."""
    success: bool
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    rate_limited: bool = False
    retry_after_seconds: Optional[int] = None


class _RateLimiter:
    """Minimum spacing between messages, shared by all sending threads."""

    def __init__(self, interval_seconds: float) -> None:
        self._interval = interval_seconds
        self._last = None  # type: Optional[float]
        self._lock = threading.Lock()

    def allow(self) -> bool:
        with self._lock:
            now = time.monotonic()
            if self._last is not None and now - self._last < self._interval:
                return False
            self._last = now
            return True


# =============================================================================
# DISCORD NOTIFIER CLASS
# =============================================================================

class DiscordNotifier:
    """
    Discord webhook notification client.

    USAGE:
        notifier = DiscordNotifier()
        notifier.send(
            AlertLevel.WARNING,
            "Approval Request: Publish article",
            "Publishing to the public blog",
            fields=[{"name": "ID", "value": "approval_...", "inline": True}],
        )
        notifier.send_critical("Strategy Auto-Paused", "3 consecutive failures")
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        alert_level: Optional[str] = None,
        rate_limit_seconds: Optional[float] = None,
        enabled: Optional[bool] = None,
        async_delivery: bool = True
    ) -> None:
        """
        Args:
            webhook_url: Discord webhook URL (default: DISCORD_WEBHOOK_URL)
            alert_level: Minimum severity delivered (default: INFO)
            rate_limit_seconds: Minimum seconds between messages
            enabled: Force on/off (default: on when a URL is configured)
            async_delivery: Deliver from a background thread
        """
        self._settings = NotifierSettings.from_environment(
            webhook_url=webhook_url,
            alert_level=alert_level,
            rate_limit_seconds=rate_limit_seconds,
            enabled=enabled,
        )
        self._limiter = _RateLimiter(self._settings.rate_limit_seconds)

        self._async_delivery = async_delivery
        self._outbox = Queue()  # type: Queue[Dict[str, Any]]
        self._stop = threading.Event()
        self._worker = None  # type: Optional[threading.Thread]

        if self._settings.enabled and async_delivery:
            self._worker = threading.Thread(
                target=self._drain_outbox,
                name="discord-notifier",
                daemon=True,
            )
            self._worker.start()

        logger.info(
            f"[DISCORD_NOTIFIER_INIT] enabled={self._settings.enabled} | "
            f"alert_level={self._settings.alert_level.name} | "
            f"rate_limit={self._settings.rate_limit_seconds}s | "
            f"async={async_delivery}"
        )

    @property
    def is_enabled(self) -> bool:
        return self._settings.enabled

    # =========================================================================
    # Payload
    # =========================================================================

    def build_payload(
        self,
        severity: AlertLevel,
        title: str,
        description: Optional[str] = None,
        fields: Optional[List[Dict[str, Any]]] = None,
        footer_text: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Build a single-embed webhook payload, truncated to Discord limits."""
        embed = {
            "title": title[:MAX_EMBED_TITLE_LENGTH],
            "color": SEVERITY_COLORS.get(severity, EmbedColor.INFO.value),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }  # type: Dict[str, Any]

        if description:
            embed["description"] = description[:MAX_EMBED_DESCRIPTION_LENGTH]

        if fields:
            embed["fields"] = [
                EmbedField(
                    name=str(f.get("name", "")),
                    value=str(f.get("value", "")),
                    inline=bool(f.get("inline", True)),
                ).to_dict()
                for f in fields[:MAX_FIELDS_PER_EMBED]
            ]

        if footer_text:
            embed["footer"] = {"text": footer_text}

        return {"embeds": [embed]}

    # =========================================================================
    # Sending
    # =========================================================================

    def send(
        self,
        severity: AlertLevel,
        title: str,
        description: Optional[str] = None,
        fields: Optional[List[Dict[str, Any]]] = None,
        footer_text: Optional[str] = None,
        blocking: bool = False
    ) -> NotificationResult:
        """
        Send one embed.

        Returns:
            The delivery result when sending synchronously, otherwise a
            "queued" result
        """
        if not self._settings.enabled:
            return NotificationResult(
                success=False,
                error_code=ERROR_DISCORD_WEBHOOK_MISSING,
                error_message="Discord notifications disabled",
            )

        if severity.value < self._settings.alert_level.value:
            logger.debug(
                f"[DISCORD_FILTERED] severity={severity.name} | "
                f"threshold={self._settings.alert_level.name}"
            )
            return NotificationResult(success=True, error_message="Filtered by alert level")

        if severity != AlertLevel.CRITICAL and not self._limiter.allow():
            logger.debug(f"[{ERROR_DISCORD_RATE_LIMITED}] Local rate limit | title={title}")
            return NotificationResult(
                success=False,
                error_code=ERROR_DISCORD_RATE_LIMITED,
                error_message="Local rate limit active",
                rate_limited=True,
            )

        payload = self.build_payload(severity, title, description, fields, footer_text)

        if blocking or self._worker is None:
            return self._post(payload)

        self._outbox.put(payload)
        return NotificationResult(success=True, error_message="Queued for async delivery")

    def send_success(self, title: str, description: Optional[str] = None) -> NotificationResult:
        return self._send_prefixed(AlertLevel.SUCCESS, title, description)

    def send_info(self, title: str, description: Optional[str] = None) -> NotificationResult:
        return self._send_prefixed(AlertLevel.INFO, title, description)

    def send_warning(self, title: str, description: Optional[str] = None) -> NotificationResult:
        return self._send_prefixed(AlertLevel.WARNING, title, description)

    def send_error(self, title: str, description: Optional[str] = None) -> NotificationResult:
        return self._send_prefixed(AlertLevel.ERROR, title, description)

    def send_critical(self, title: str, description: Optional[str] = None) -> NotificationResult:
        return self._send_prefixed(AlertLevel.CRITICAL, title, description)

    def shutdown(self) -> None:
        """Flush queued messages and stop the delivery thread."""
        if self._worker is None:
            return

        logger.info(f"[DISCORD_NOTIFIER] Shutting down | queued={self._outbox.qsize()}")
        self._outbox.join()
        self._stop.set()
        self._worker.join(timeout=2.0)
        self._worker = None

    # =========================================================================
    # Internals
    # =========================================================================

    def _send_prefixed(
        self,
        severity: AlertLevel,
        title: str,
        description: Optional[str],
    ) -> NotificationResult:
        return self.send(severity, f"{TITLE_PREFIXES[severity]} {title}", description)

    def _drain_outbox(self) -> None:
        while not self._stop.is_set():
            try:
                payload = self._outbox.get(timeout=1.0)
            except Empty:
                continue
            try:
                self._post(payload)
            except Exception as e:
                logger.error(f"[{ERROR_DISCORD_REQUEST_FAILED}] Delivery thread error | error={e}")
            finally:
                self._outbox.task_done()

    def _post(self, payload: Dict[str, Any]) -> NotificationResult:
        """POST a payload to the webhook and map the outcome."""
        request = urllib.request.Request(
            self._settings.webhook_url,
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Content-Type": "application/json",
                "User-Agent": "StrategyApprovalGate/1.0",
            },
            method="POST",
        )

        try:
            with urllib.request.urlopen(request, timeout=DEFAULT_REQUEST_TIMEOUT_SECONDS) as response:
                status = response.getcode()
        except urllib.error.HTTPError as e:
            return self._http_failure(e)
        except urllib.error.URLError as e:
            logger.error(f"[{ERROR_DISCORD_REQUEST_FAILED}] Webhook unreachable | error={e.reason}")
            return NotificationResult(
                success=False,
                error_code=ERROR_DISCORD_REQUEST_FAILED,
                error_message=str(e),
            )
        except (TimeoutError, socket.timeout):
            logger.error(
                f"[{ERROR_DISCORD_TIMEOUT}] Webhook timed out | "
                f"timeout={DEFAULT_REQUEST_TIMEOUT_SECONDS}s"
            )
            return NotificationResult(
                success=False,
                error_code=ERROR_DISCORD_TIMEOUT,
                error_message="Request timed out",
            )
        except OSError as e:
            logger.error(f"[{ERROR_DISCORD_REQUEST_FAILED}] Webhook connection failed | error={e}")
            return NotificationResult(
                success=False,
                error_code=ERROR_DISCORD_REQUEST_FAILED,
                error_message=str(e),
            )

        if status in (200, 204):
            return NotificationResult(success=True)

        logger.warning(f"[{ERROR_DISCORD_INVALID_RESPONSE}] Unexpected webhook status | status={status}")
        return NotificationResult(
            success=False,
            error_code=ERROR_DISCORD_INVALID_RESPONSE,
            error_message=f"Unexpected status: {status}",
        )

    def _http_failure(self, error: urllib.error.HTTPError) -> NotificationResult:
        if error.code == 429:
            try:
                retry_after = int(error.headers.get("Retry-After", "60"))
            except (TypeError, ValueError):
                retry_after = 60
            logger.warning(
                f"[{ERROR_DISCORD_RATE_LIMITED}] Discord rate limit | retry_after={retry_after}s"
            )
            return NotificationResult(
                success=False,
                error_code=ERROR_DISCORD_RATE_LIMITED,
                error_message="Discord rate limit exceeded",
                rate_limited=True,
                retry_after_seconds=retry_after,
            )

        logger.error(
            f"[{ERROR_DISCORD_REQUEST_FAILED}] Webhook rejected message | "
            f"status={error.code} | reason={error.reason}"
        )
        return NotificationResult(
            success=False,
            error_code=ERROR_DISCORD_REQUEST_FAILED,
            error_message=f"HTTP {error.code}: {error.reason}",
        )


# =============================================================================
# SINGLETON INSTANCE
# =============================================================================

_discord_notifier = None  # type: Optional[DiscordNotifier]


def get_discord_notifier() -> DiscordNotifier:
    """Process-wide notifier configured from the environment."""
    global _discord_notifier

    if _discord_notifier is None:
        _discord_notifier = DiscordNotifier()

    return _discord_notifier


def reset_discord_notifier() -> None:
    """Shut down and drop the global instance (used by tests)."""
    global _discord_notifier

    if _discord_notifier is not None:
        _discord_notifier.shutdown()
    _discord_notifier = None


__all__ = [
    "AlertLevel",
    "EmbedColor",
    "NotifierSettings",
    "NotificationResult",
    "DiscordNotifier",
    "parse_alert_level",
    "get_discord_notifier",
    "reset_discord_notifier",
]
