"""
Exception types shared across the hub, plus the error-normalization rule
used whenever a platform or OAuth provider call fails.
"""
from typing import Any, Optional

import httpx

UNKNOWN_ERROR = "Unknown error"


class SocialHubError(Exception):
    """Base class for hub errors."""


class ConfigurationError(SocialHubError):
    """Raised at startup when required configuration is missing or invalid."""


class DecryptionError(SocialHubError):
    """Stored credential failed authentication (tampered data or wrong key)."""


class TokenStorageError(SocialHubError):
    """A credential write could not be committed."""


class TokenRefreshError(SocialHubError):
    """A refresh attempt was rejected or could not be performed."""


def _platform_error_message(body: Any) -> Optional[str]:
    if not isinstance(body, dict):
        return None

    error = body.get("error")
    # Graph API / Google style: {"error": {"message": ...}}
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    # OAuth style: {"error": "invalid_grant", "error_description": ...}
    if body.get("error_description"):
        return str(body["error_description"])
    # Telegram: {"ok": false, "description": ...}
    if body.get("description"):
        return str(body["description"])
    # Slack: {"ok": false, "error": "channel_not_found"}
    if isinstance(error, str) and error:
        return error
    return None


def describe_http_error(exc: BaseException) -> str:
    """
    Reduce a failed platform call to a single human-readable string.

    Prefers the message reported by the platform in the response body, then
    the transport-level exception text, then "Unknown error".
    """
    response = getattr(exc, "response", None)
    if isinstance(response, httpx.Response):
        try:
            message = _platform_error_message(response.json())
        except ValueError:
            message = None
        if message:
            return message

    text = str(exc)
    return text if text else UNKNOWN_ERROR
