"""Payload sanitization: redaction, cycle-safe serialization, size capping.

Everything here is pure and total. A failure inside any operation is
logged and replaced by a fixed marker string, never raised.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any

from .config import SanitizerConfig
from .errors import SanitizationFailure


logger = logging.getLogger(__name__)

BINARY_CONTENT_TYPES = (
    "image/",
    "audio/",
    "video/",
    "application/octet-stream",
    "application/pdf",
    "application/zip",
)

MULTIPART_CONTENT_TYPE = "multipart/form-data"

# Exact header names (lowercase) that are always redacted
SENSITIVE_HEADERS = frozenset({
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "api-key",
})

# Any header whose name contains one of these is redacted
SENSITIVE_HEADER_FRAGMENTS = ("token", "secret")

_SEQUENCE_TYPES = (list, tuple, set, frozenset)
_PRIMITIVE_TYPES = (str, int, float, bool, type(None))


def is_binary_content(content_type: str | None) -> bool:
    """Check if a content type denotes binary data."""
    if not content_type:
        return False
    return any(kind in content_type for kind in BINARY_CONTENT_TYPES)


def is_multipart_form(content_type: str | None) -> bool:
    """Check if a content type denotes multipart form data."""
    return bool(content_type) and MULTIPART_CONTENT_TYPE in content_type


@dataclass
class Sanitizer:
    """
    Redacts sensitive fields and bounds payload size.

    Usage:
        sanitizer = Sanitizer()
        sanitizer.sanitize({"username": "john", "password": "secret123"})
        # {"username": "john", "password": "[REDACTED]"}
    """
    config: SanitizerConfig = field(default_factory=SanitizerConfig)

    _key_pattern: re.Pattern = field(init=False, repr=False)

    def __post_init__(self):
        self._key_pattern = re.compile(
            "|".join(f"(?:{p})" for p in self.config.sensitive_patterns),
            re.IGNORECASE,
        )

    def is_sensitive_key(self, key: Any) -> bool:
        return bool(self.config.sensitive_patterns) and bool(self._key_pattern.search(str(key)))

    # -- redaction ---------------------------------------------------------

    def sanitize(self, value: Any) -> Any:
        """
        Recursively redact sensitive mapping keys.

        Scalars are returned unchanged. Containers are copied; tuples and
        sets come back as lists. A container seen twice in one call is
        replaced by the circular marker.
        """
        if not isinstance(value, (Mapping, *_SEQUENCE_TYPES)):
            return value

        try:
            return self._redact(value, set())
        except Exception as e:
            logger.warning("Failed to sanitize object: %s", SanitizationFailure(str(e)))
            return self.config.sanitize_failed_marker

    def _redact(self, value: Any, seen: set[int]) -> Any:
        if not isinstance(value, (Mapping, *_SEQUENCE_TYPES)):
            return value

        if id(value) in seen:
            return self.config.circular_marker
        seen.add(id(value))

        if isinstance(value, Mapping):
            return {
                key: (
                    self.config.redaction_marker
                    if self.is_sensitive_key(key)
                    else self._redact(item, seen)
                )
                for key, item in value.items()
            }

        return [self._redact(item, seen) for item in value]

    def sanitize_headers(self, headers: Mapping[str, Any] | None) -> dict[str, Any]:
        """Redact credential-bearing headers; everything else passes through."""
        sanitized: dict[str, Any] = {}
        if not headers:
            return sanitized

        for key, value in headers.items():
            lower_key = str(key).lower()
            if lower_key in SENSITIVE_HEADERS or any(
                fragment in lower_key for fragment in SENSITIVE_HEADER_FRAGMENTS
            ):
                sanitized[key] = self.config.redaction_marker
            else:
                sanitized[key] = value

        return sanitized

    # -- serialization -----------------------------------------------------

    def safe_stringify(self, value: Any) -> str:
        """Serialize to JSON, marking cycles instead of failing on them."""
        try:
            return json.dumps(self._jsonable(value, set()), default=str)
        except Exception as e:
            logger.warning("Failed to stringify object: %s", e)
            return self.config.stringify_failed_marker

    def _jsonable(self, value: Any, seen: set[int]) -> Any:
        if isinstance(value, _PRIMITIVE_TYPES):
            return value

        if isinstance(value, (bytes, bytearray)):
            return bytes(value).decode("utf-8", errors="replace")

        if isinstance(value, (datetime, date, time)):
            return value.isoformat()

        if isinstance(value, BaseException):
            return {"name": type(value).__name__, "message": str(value)}

        if isinstance(value, (Mapping, *_SEQUENCE_TYPES)):
            if id(value) in seen:
                return self.config.circular_marker
            seen.add(id(value))

            if isinstance(value, Mapping):
                return {str(k): self._jsonable(v, seen) for k, v in value.items()}
            return [self._jsonable(item, seen) for item in value]

        if callable(value):
            return self.config.function_marker

        return str(value)

    # -- size capping ------------------------------------------------------

    def cap_size(self, body: Any) -> Any:
        """
        Bound a body to `max_body_size` characters.

        Strings over budget are cut and suffixed with the truncation marker.
        Structured values are measured by their JSON form: over budget they
        come back as the truncated JSON string, otherwise unchanged.
        """
        if not body:
            return body

        limit = self.config.max_body_size
        try:
            if isinstance(body, str):
                if len(body) > limit:
                    logger.debug("Body size %d exceeds limit, truncating to %d", len(body), limit)
                    return body[:limit] + self.config.truncation_marker
                return body

            serialized = self.safe_stringify(body)
            if len(serialized) > limit:
                logger.debug(
                    "Body size %d exceeds limit, truncating to %d", len(serialized), limit
                )
                return serialized[:limit] + self.config.truncation_marker

            return body
        except Exception as e:
            logger.warning("Failed to cap body size: %s", e)
            return self.config.cap_failed_marker

    def serialize_body(self, body: Any) -> str | None:
        """
        Wire form of a captured body: sanitized, capped, then JSON-encoded.

        Text bodies are encoded as JSON strings, so `'{"id": 7}'` sent as
        text stays distinguishable from the object `{"id": 7}`.
        """
        if body is None or body == "" or body == b"":
            return None

        if isinstance(body, (bytes, bytearray)):
            body = bytes(body).decode("utf-8", errors="replace")

        if isinstance(body, str):
            return self.safe_stringify(self.cap_size(body))

        return self.safe_stringify(self.cap_size(self.sanitize(body)))

    def body_placeholder(self, content_type: str | None) -> str | None:
        """Fixed placeholder for bodies that must not be captured at all."""
        if is_multipart_form(content_type):
            return self.config.multipart_placeholder
        if is_binary_content(content_type):
            return self.config.binary_placeholder
        return None


_default_sanitizer = Sanitizer()


def sanitize(value: Any) -> Any:
    """Redact sensitive keys using the default settings."""
    return _default_sanitizer.sanitize(value)


def sanitize_headers(headers: Mapping[str, Any] | None) -> dict[str, Any]:
    """Redact sensitive headers using the default settings."""
    return _default_sanitizer.sanitize_headers(headers)


def cap_size(body: Any) -> Any:
    """Cap a body to 10 KiB using the default settings."""
    return _default_sanitizer.cap_size(body)


def safe_stringify(value: Any) -> str:
    """Cycle-safe JSON serialization using the default settings."""
    return _default_sanitizer.safe_stringify(value)
