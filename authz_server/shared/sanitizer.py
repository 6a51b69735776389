"""OAuth data sanitization for logging.

Ensures no secrets or full token values reach the logs.
"""

import hashlib
from typing import Any, Dict


class OAuthSanitizer:
    """Utility class for sanitizing OAuth-related sensitive data."""

    # Fields that should be completely redacted
    REDACT_FIELDS = {
        'client_secret', 'jwt_secret', 'jwt_private_key', 'private_key',
        'password', 'redis_password', 'code_verifier',
    }

    # Fields that should be partially masked
    MASK_FIELDS = {
        'access_token', 'refresh_token', 'id_token', 'token',
        'code', 'state', 'nonce', 'registration_access_token',
    }

    @staticmethod
    def sanitize_token(token: str, preview_length: int = 6) -> str:
        """Show only the first N and last 4 characters of a token.

        Args:
            token: Token to sanitize
            preview_length: Number of characters to show at start

        Returns:
            Sanitized token string
        """
        if not token:
            return "***EMPTY***"

        if len(token) <= (preview_length + 8):
            return f"***{len(token)}_chars***"

        return f"{token[:preview_length]}...{token[-4:]}"

    @classmethod
    def sanitize_dict(cls, data: Dict[str, Any], depth: int = 0) -> Dict[str, Any]:
        """Recursively redact or mask sensitive fields of a mapping."""
        if depth > 5:
            return {"...": "max depth"}

        sanitized = {}
        for key, value in data.items():
            lowered = str(key).lower()
            if lowered in cls.REDACT_FIELDS:
                sanitized[key] = "***REDACTED***"
            elif lowered in cls.MASK_FIELDS and isinstance(value, str):
                sanitized[key] = cls.sanitize_token(value)
            elif isinstance(value, dict):
                sanitized[key] = cls.sanitize_dict(value, depth + 1)
            else:
                sanitized[key] = value
        return sanitized


def sanitize_token(token: str) -> str:
    """Module-level shortcut for :meth:`OAuthSanitizer.sanitize_token`."""
    return OAuthSanitizer.sanitize_token(token)


def hash_token(token: str) -> str:
    """Create SHA256 hash of a token, used for storage index keys."""
    return f"sha256:{hashlib.sha256(token.encode()).hexdigest()}"
