"""Log sanitization for error text that reaches logs or results.

Azure SDK errors can echo request headers or query strings. Everything that
leaves a component as text (submission errors, poll errors, credential
errors) goes through LogSanitizer first.

Resource IDs are not masked: they are the identifiers reported back to
the user.
"""

import re
from re import Pattern


class LogSanitizer:
    """Sanitize sensitive data from logs and error messages.

    All methods are class methods and can be called without instantiation.
    """

    REDACTED = "[REDACTED]"
    MAX_LENGTH = 500

    # Order matters: more specific patterns should come first
    SECRET_PATTERNS: dict[str, Pattern] = {
        "client_secret_assignment": re.compile(
            r'(client[_-]?secret["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "client_secret_env": re.compile(
            r"(AZURE_CLIENT_SECRET[\"']?\s*[:=]\s*[\"']?)([^\s\"'&,\)]+)",
            re.IGNORECASE,
        ),
        "password": re.compile(r'(password["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)', re.IGNORECASE),
        "authorization_bearer": re.compile(r"(Authorization:\s*Bearer\s+)([^\s]+)", re.IGNORECASE),
        "access_token": re.compile(
            r'(access[_-]?token["\']?\s*[:=]\s*["\']?)([^\s"\'&,\)]+)',
            re.IGNORECASE,
        ),
        "sas_signature": re.compile(r"([?&]sig=)([^&\s]+)", re.IGNORECASE),
    }

    @classmethod
    def sanitize(cls, message: str) -> str:
        """Sanitize message by redacting sensitive patterns.

        Examples:
            >>> LogSanitizer.sanitize("client_secret=abc123")
            'client_secret=[REDACTED]'
        """
        if not isinstance(message, str):
            message = str(message)

        result = message
        for pattern in cls.SECRET_PATTERNS.values():
            result = pattern.sub(r"\1" + cls.REDACTED, result)

        if len(result) > cls.MAX_LENGTH:
            result = result[: cls.MAX_LENGTH] + "..."

        return result

    @classmethod
    def sanitize_exception(cls, exc: Exception) -> str:
        """Sanitize exception message, falling back to the type name."""
        return cls.sanitize(str(exc) or type(exc).__name__)

    @classmethod
    def create_safe_error_message(cls, error: Exception, context: str = "") -> str:
        """Create error message with secrets sanitized.

        Examples:
            >>> err = ValueError("Auth failed with client_secret=abc123")
            >>> LogSanitizer.create_safe_error_message(err, "Authentication")
            'Authentication: Auth failed with client_secret=[REDACTED]'
        """
        sanitized_msg = cls.sanitize_exception(error)
        if context:
            return f"{context}: {sanitized_msg}"
        return sanitized_msg


__all__ = ["LogSanitizer"]
