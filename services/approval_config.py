"""
============================================================================
Approval Gate - Configuration
============================================================================

Reliability Level: L6 Critical

This module provides configuration management for the Approval Gate,
the expiry sweep and the strategy circuit breaker:
- Environment variable parsing with type safety
- Default values for optional configuration
- Fallback to defaults (with a warning) on malformed values
- Validation with APG-040 on unusable values

ENVIRONMENT VARIABLES:
    - APPROVAL_REQUEST_DIR: Directory holding the request index (default: data/approvals)
    - APPROVAL_DEFAULT_TIMEOUT_SECONDS: Request lifetime (default: 86400)
    - APPROVAL_AUTO_APPROVE_RISK_LEVEL: Highest auto-approved level (default: LOW)
    - APPROVAL_POLL_INTERVAL_SECONDS: wait_for_approval poll interval (default: 5)
    - APPROVAL_SWEEP_INTERVAL_SECONDS: Expiry sweep interval (default: 60)
    - STRATEGY_FAILURE_THRESHOLD: Consecutive failures before auto-pause (default: 3)

ERROR CODES:
    - APG-040: Invalid configuration

============================================================================
"""

from typing import Optional, Callable, TypeVar
from dataclasses import dataclass
import logging
import os

from services.risk_policy import RiskLevel, parse_risk_level

# Configure module logger
logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Error Codes
# =============================================================================

class ApprovalConfigErrorCode:
    """Configuration error codes for audit logging."""
    CONFIG_INVALID = "APG-040"


# =============================================================================
# Default Values
# =============================================================================

DEFAULT_REQUEST_DIR = "data/approvals"

# 24 hours
DEFAULT_TIMEOUT_SECONDS = 24 * 60 * 60

DEFAULT_AUTO_APPROVE_RISK_LEVEL = RiskLevel.LOW

DEFAULT_POLL_INTERVAL_SECONDS = 5.0

DEFAULT_SWEEP_INTERVAL_SECONDS = 60

DEFAULT_FAILURE_THRESHOLD = 3


# =============================================================================
# Configuration Validation Exception
# =============================================================================

class ApprovalConfigurationError(Exception):
    """Raised by validate() when configuration values are unusable."""

    def __init__(self, message: str, error_code: str = ApprovalConfigErrorCode.CONFIG_INVALID):
        self.error_code = error_code
        self.message = message
        super().__init__(f"[{error_code}] {message}")


# =============================================================================
# ApprovalGateConfig Class
# =============================================================================

@dataclass
class ApprovalGateConfig:
    """
    Approval Gate configuration.

    ============================================================================
    CONFIGURATION PARAMETERS:
    ============================================================================
    - request_dir: Directory holding pending.json
    - default_timeout_seconds: Lifetime of a request when no timeout is given
    - auto_approve_risk_level: Requests at or below this level auto-approve
    - poll_interval_seconds: Default wait_for_approval poll interval
    - sweep_interval_seconds: Interval of the periodic expiry sweep
    - failure_threshold: Consecutive failures that trip the circuit breaker
    ============================================================================
    """

    request_dir: str = DEFAULT_REQUEST_DIR
    default_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    auto_approve_risk_level: RiskLevel = DEFAULT_AUTO_APPROVE_RISK_LEVEL
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD

    def __post_init__(self) -> None:
        self.auto_approve_risk_level = parse_risk_level(self.auto_approve_risk_level)

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ApprovalConfigurationError: If any value is unusable
        """
        errors = []

        if not str(self.request_dir).strip():
            errors.append("APPROVAL_REQUEST_DIR must be non-empty")

        if self.default_timeout_seconds <= 0:
            errors.append(
                f"APPROVAL_DEFAULT_TIMEOUT_SECONDS must be positive, "
                f"got: {self.default_timeout_seconds}"
            )

        if self.poll_interval_seconds <= 0:
            errors.append(
                f"APPROVAL_POLL_INTERVAL_SECONDS must be positive, "
                f"got: {self.poll_interval_seconds}"
            )

        if self.sweep_interval_seconds <= 0:
            errors.append(
                f"APPROVAL_SWEEP_INTERVAL_SECONDS must be positive, "
                f"got: {self.sweep_interval_seconds}"
            )

        if self.failure_threshold < 1:
            errors.append(
                f"STRATEGY_FAILURE_THRESHOLD must be at least 1, "
                f"got: {self.failure_threshold}"
            )

        if errors:
            error_msg = "Approval gate configuration validation failed: " + "; ".join(errors)
            logger.error(f"[{ApprovalConfigErrorCode.CONFIG_INVALID}] {error_msg}")
            raise ApprovalConfigurationError(error_msg)

        logger.info(
            f"[APPROVAL-CONFIG] Configuration validated | "
            f"request_dir={self.request_dir} | "
            f"default_timeout_seconds={self.default_timeout_seconds} | "
            f"auto_approve_risk_level={self.auto_approve_risk_level.name} | "
            f"poll_interval_seconds={self.poll_interval_seconds} | "
            f"sweep_interval_seconds={self.sweep_interval_seconds} | "
            f"failure_threshold={self.failure_threshold}"
        )

    @classmethod
    def from_environment(cls, validate: bool = True) -> "ApprovalGateConfig":
        """
        Load configuration from environment variables.

        Malformed values are logged and replaced by their defaults.

        Args:
            validate: Whether to validate configuration after loading

        Returns:
            ApprovalGateConfig instance with values from environment

        Raises:
            ApprovalConfigurationError: If validate is True and a value is unusable
        """
        request_dir = os.environ.get("APPROVAL_REQUEST_DIR", DEFAULT_REQUEST_DIR).strip()

        config = cls(
            request_dir=request_dir or DEFAULT_REQUEST_DIR,
            default_timeout_seconds=_read_env(
                "APPROVAL_DEFAULT_TIMEOUT_SECONDS", float, DEFAULT_TIMEOUT_SECONDS
            ),
            auto_approve_risk_level=_read_env(
                "APPROVAL_AUTO_APPROVE_RISK_LEVEL", parse_risk_level,
                DEFAULT_AUTO_APPROVE_RISK_LEVEL
            ),
            poll_interval_seconds=_read_env(
                "APPROVAL_POLL_INTERVAL_SECONDS", float, DEFAULT_POLL_INTERVAL_SECONDS
            ),
            sweep_interval_seconds=_read_env(
                "APPROVAL_SWEEP_INTERVAL_SECONDS", int, DEFAULT_SWEEP_INTERVAL_SECONDS
            ),
            failure_threshold=_read_env(
                "STRATEGY_FAILURE_THRESHOLD", int, DEFAULT_FAILURE_THRESHOLD
            ),
        )

        logger.info(
            f"[APPROVAL-CONFIG] Loading configuration from environment | "
            f"{config.to_dict()}"
        )

        if validate:
            config.validate()

        return config

    def to_dict(self) -> dict:
        """Convert configuration to dictionary for serialization/logging."""
        return {
            "request_dir": self.request_dir,
            "default_timeout_seconds": self.default_timeout_seconds,
            "auto_approve_risk_level": self.auto_approve_risk_level.name,
            "poll_interval_seconds": self.poll_interval_seconds,
            "sweep_interval_seconds": self.sweep_interval_seconds,
            "failure_threshold": self.failure_threshold,
        }


def _read_env(name: str, parse: Callable[[str], T], default: T) -> T:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default

    try:
        return parse(raw.strip())
    except ValueError:
        logger.warning(
            f"[APPROVAL-CONFIG] Invalid {name} value: {raw}, "
            f"using default: {default}"
        )
        return default


# =============================================================================
# Module-Level Configuration Instance
# =============================================================================

_config_instance: Optional[ApprovalGateConfig] = None


def get_approval_config(validate: bool = True) -> ApprovalGateConfig:
    """
    Get the process-wide configuration, loading it from the environment
    on first access.

    validate=True checks the cached instance too, so an unvalidated load
    from an earlier caller is never handed out unchecked.
    """
    global _config_instance

    if _config_instance is None:
        _config_instance = ApprovalGateConfig.from_environment(validate=validate)
    elif validate:
        _config_instance.validate()

    return _config_instance


def reset_approval_config() -> None:
    """Drop the cached configuration (used by tests)."""
    global _config_instance
    _config_instance = None
    logger.debug("[APPROVAL-CONFIG] Configuration instance reset")


__all__ = [
    "ApprovalGateConfig",
    "ApprovalConfigurationError",
    "ApprovalConfigErrorCode",
    "DEFAULT_REQUEST_DIR",
    "DEFAULT_TIMEOUT_SECONDS",
    "DEFAULT_AUTO_APPROVE_RISK_LEVEL",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "DEFAULT_SWEEP_INTERVAL_SECONDS",
    "DEFAULT_FAILURE_THRESHOLD",
    "get_approval_config",
    "reset_approval_config",
]
