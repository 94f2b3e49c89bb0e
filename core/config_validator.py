"""
Configuration validation module.

Validates the sync client's settings on startup so misconfigurations fail
early with clear error messages instead of surfacing as retry loops.
"""

import logging
from typing import Dict, List, Any, Optional, Tuple
from urllib.parse import urlsplit

import config as app_config


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""
    pass


class ConfigValidator:
    """Validates the sync client configuration"""

    VALID_STRATEGIES = ("fixed", "exponential")
    VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

    def __init__(self, settings: Optional[Any] = None):
        """
        Args:
            settings: Object exposing the config.py names, defaults to config
        """
        self.settings = settings or app_config
        self.errors: List[str] = []
        self.warnings: List[str] = []

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """
        Validate all configuration settings.

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        self.errors.clear()
        self.warnings.clear()

        self._validate_endpoints()
        self._validate_snapshot_config()
        self._validate_reconnect_config()
        self._validate_feed_config()
        self._validate_polling_config()
        self._validate_logging_config()

        is_valid = len(self.errors) == 0
        return is_valid, self.errors.copy(), self.warnings.copy()

    def _validate_endpoints(self):
        base_url = self.settings.API_BASE_URL
        parts = urlsplit(base_url)
        if parts.scheme not in ("http", "https"):
            self.errors.append(f"API base URL must use http or https, got {base_url!r}")
        elif not parts.netloc:
            self.errors.append(f"API base URL has no host: {base_url!r}")
        elif parts.scheme == "http" and parts.hostname not in ("localhost", "127.0.0.1", "::1"):
            self.warnings.append(f"API base URL {base_url} is not encrypted")

        for name in ("snapshot", "push"):
            path = self.settings.API_ENDPOINTS.get(name)
            if not path:
                self.errors.append(f"Missing API endpoint path: {name}")
            elif not path.startswith("/"):
                self.errors.append(f"API endpoint path for {name} must start with '/': {path!r}")

    def _validate_snapshot_config(self):
        self._require_positive(self.settings.SNAPSHOT_CONFIG, "timeout", "SNAPSHOT_CONFIG")
        self._require_positive(self.settings.PUSH_CONFIG, "open_timeout", "PUSH_CONFIG")

    def _validate_reconnect_config(self):
        cfg = self.settings.RECONNECT_CONFIG
        strategy = str(cfg.get("strategy", "")).lower()
        if strategy not in self.VALID_STRATEGIES:
            self.errors.append(
                f"Unknown reconnect strategy {strategy!r}, expected one of {', '.join(self.VALID_STRATEGIES)}"
            )
            return

        if strategy == "fixed":
            for key in ("connect_failure_delay", "disconnect_delay"):
                self._require_positive(cfg, key, "RECONNECT_CONFIG")
            return

        for key in ("base_delay", "max_delay"):
            self._require_positive(cfg, key, "RECONNECT_CONFIG")

        if self._is_number(cfg.get("multiplier")) and cfg["multiplier"] < 1:
            self.errors.append("RECONNECT_CONFIG multiplier must be at least 1")

        if (self._is_number(cfg.get("base_delay")) and self._is_number(cfg.get("max_delay"))
                and cfg["max_delay"] < cfg["base_delay"]):
            self.errors.append("RECONNECT_CONFIG max_delay must not be smaller than base_delay")

        jitter = cfg.get("jitter", 0)
        if not self._is_number(jitter) or not 0 <= jitter <= 1:
            self.errors.append(f"RECONNECT_CONFIG jitter must be between 0 and 1, got {jitter!r}")

        max_attempts = cfg.get("max_attempts")
        if max_attempts is not None and (not isinstance(max_attempts, int) or max_attempts < 1):
            self.errors.append("RECONNECT_CONFIG max_attempts must be a positive integer or None")
        elif max_attempts is not None:
            self.warnings.append(
                f"Push channel will stop reconnecting after {max_attempts} consecutive failures"
            )

    def _validate_feed_config(self):
        limit = self.settings.FEED_CONFIG.get("activity_limit")
        if not isinstance(limit, int) or isinstance(limit, bool) or limit < 1:
            self.errors.append(f"FEED_CONFIG activity_limit must be a positive integer, got {limit!r}")

    def _validate_polling_config(self):
        cfg = self.settings.POLLING_CONFIG
        if cfg.get("enabled"):
            self._require_positive(cfg, "interval_seconds", "POLLING_CONFIG")
            interval = cfg.get("interval_seconds")
            if self._is_number(interval) and 0 < interval < 5:
                self.warnings.append(f"Polling every {interval}s adds load on top of the push channel")

    def _validate_logging_config(self):
        level = str(self.settings.LOGGING_CONFIG.get("log_level", "INFO")).upper()
        if level not in self.VALID_LOG_LEVELS:
            self.errors.append(f"Invalid log level: {level}")

    def _require_positive(self, section: Dict[str, Any], key: str, section_name: str):
        value = section.get(key)
        if not self._is_number(value) or value <= 0:
            self.errors.append(f"{section_name} {key} must be a positive number, got {value!r}")

    @staticmethod
    def _is_number(value: Any) -> bool:
        return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_startup_config(settings: Optional[Any] = None) -> None:
    """
    Validate configuration before starting the application

    Raises:
        ConfigValidationError: If any setting is invalid
    """
    logger = logging.getLogger(__name__)
    validator = ConfigValidator(settings)
    is_valid, errors, warnings = validator.validate_all()

    for warning in warnings:
        logger.warning(f"Configuration warning: {warning}")

    if not is_valid:
        raise ConfigValidationError("Configuration validation failed:\n  " + "\n  ".join(errors))

    logger.info("Configuration validation passed")
