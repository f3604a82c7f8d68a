"""Configuration for the logsentinel client."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .errors import ConfigInvalid


logger = logging.getLogger(__name__)

ENV_API_KEY = "LOGSENTINEL_API_KEY"
ENV_BASE_URL = "LOGSENTINEL_BASE_URL"
ENV_DEBUG = "LOGSENTINEL_DEBUG"

LOGS_PATH = "/api/sdk/logs"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "false").lower() == "true"


@dataclass
class ClientConfig:
    """
    Credentials and endpoint of the collector.

    Can be set via:
    - Constructor arguments
    - Environment variables (LOGSENTINEL_*)

    Missing values never raise; they only disable transmission.
    """
    api_key: str = field(
        default_factory=lambda: os.environ.get(ENV_API_KEY, "")
    )
    base_url: str = field(
        default_factory=lambda: os.environ.get(ENV_BASE_URL, "")
    )
    debug: bool = field(
        default_factory=lambda: _env_flag(ENV_DEBUG)
    )

    @classmethod
    def resolve(
        cls,
        api_key: str | None = None,
        base_url: str | None = None,
        debug: bool | None = None,
    ) -> ClientConfig:
        """
        Build a config with precedence: explicit > environment > empty default.

        Empty explicit strings fall through to the environment. Missing
        values are reported by `warn_if_incomplete()` when the shipper starts.
        """
        config = cls()
        if api_key:
            config.api_key = api_key
        if base_url:
            config.base_url = base_url
        if debug is not None:
            config.debug = debug
        return config

    @property
    def is_valid(self) -> bool:
        """True when both credential and endpoint are present."""
        return bool(self.api_key and self.base_url)

    @property
    def logs_endpoint(self) -> str:
        return f"{self.base_url.rstrip('/')}{LOGS_PATH}"

    def validate(self) -> None:
        """
        Raises:
            ConfigInvalid: If the credential or the endpoint is missing
        """
        missing = []
        if not self.api_key:
            missing.append(ENV_API_KEY)
        if not self.base_url:
            missing.append(ENV_BASE_URL)
        if missing:
            raise ConfigInvalid(missing)

    def warn_if_incomplete(self) -> None:
        try:
            self.validate()
        except ConfigInvalid as e:
            for name in e.missing:
                logger.warning("%s is not set. Logs will not be sent to the server.", name)

        if self.debug:
            logger.debug("Debug mode enabled. All log operations will be printed to console.")

    def __repr__(self) -> str:
        masked = "***" if self.api_key else ""
        return f"ClientConfig(api_key={masked!r}, base_url={self.base_url!r}, debug={self.debug})"


@dataclass
class QueueConfig:
    """Buffering and flush triggers."""
    capacity: int = 1000
    batch_size: int = 50
    flush_interval_seconds: float = 5.0

    def __post_init__(self):
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.flush_interval_seconds <= 0:
            raise ValueError(
                f"flush_interval_seconds must be > 0, got {self.flush_interval_seconds}"
            )


@dataclass
class RetryConfig:
    """Dispatch retry budget and backoff."""
    max_attempts: int = 3
    initial_backoff_seconds: float = 1.0
    backoff_multiplier: float = 2.0

    # Per-request timeout
    request_timeout_seconds: float = 10.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.initial_backoff_seconds < 0:
            raise ValueError(
                f"initial_backoff_seconds must be >= 0, got {self.initial_backoff_seconds}"
            )
        if self.request_timeout_seconds <= 0:
            raise ValueError(
                f"request_timeout_seconds must be > 0, got {self.request_timeout_seconds}"
            )

    def delay_for(self, attempt: int) -> float:
        """Backoff before the attempt following `attempt` (1-based)."""
        return self.initial_backoff_seconds * self.backoff_multiplier ** (attempt - 1)


DEFAULT_SENSITIVE_PATTERNS = (
    r"password",
    r"token",
    r"api[_-]?key",
    r"secret",
    r"authorization",
    r"bearer",
    r"auth",
    r"credit[_-]?card",
    r"ssn",
    r"social[_-]?security",
)


@dataclass
class SanitizerConfig:
    """Redaction rules, size budget and the markers written into payloads."""
    max_body_size: int = 10 * 1024
    sensitive_patterns: tuple[str, ...] = DEFAULT_SENSITIVE_PATTERNS

    # Largest raw body the capture middleware buffers before giving up on it
    max_capture_bytes: int = 1024 * 1024

    redaction_marker: str = "[REDACTED]"
    circular_marker: str = "[Circular Reference]"
    truncation_marker: str = "... [truncated]"
    function_marker: str = "[Function]"
    sanitize_failed_marker: str = "[sanitization failed]"
    cap_failed_marker: str = "[size capping failed]"
    stringify_failed_marker: str = "[stringify failed]"
    binary_placeholder: str = "[binary data]"
    multipart_placeholder: str = "[multipart/form-data]"
    oversize_placeholder: str = "[body exceeds capture limit]"

    def __post_init__(self):
        if self.max_body_size < 1:
            raise ValueError(f"max_body_size must be >= 1, got {self.max_body_size}")
        self.sensitive_patterns = tuple(self.sensitive_patterns)


@dataclass
class Config:
    """Main configuration container."""
    client: ClientConfig = field(default_factory=ClientConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    sanitizer: SanitizerConfig = field(default_factory=SanitizerConfig)

    @classmethod
    def from_dict(cls, data: dict) -> Config:
        """Create config from dictionary."""
        return cls(
            client=ClientConfig.resolve(**data.get("client", {})),
            queue=QueueConfig(**data.get("queue", {})),
            retry=RetryConfig(**data.get("retry", {})),
            sanitizer=SanitizerConfig(**data.get("sanitizer", {})),
        )

    @classmethod
    def from_yaml(cls, path: str) -> Config:
        """Load config from YAML file."""
        import yaml
        with open(path, "r") as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data or {})

    @classmethod
    def from_json(cls, path: str) -> Config:
        """Load config from JSON file."""
        import json
        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)
