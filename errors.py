"""Error taxonomy shared by the record store, the Gemini proxy and the HTTP layer."""

from typing import Any, Dict, Optional

__all__ = [
    "ProxyError",
    "ValidationError",
    "ConfigurationError",
    "StorageError",
    "UpstreamError",
]


class ProxyError(Exception):
    """Base class for errors that end up in the ``{success: false}`` envelope."""

    status_code = 500

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"success": False, "error": self.message}
        if self.detail:
            payload["dbError"] = self.detail
        return payload


class ValidationError(ProxyError):
    """A required request field is missing or empty."""

    status_code = 400


class ConfigurationError(ProxyError):
    """Configuration needed for the request (e.g. the Gemini key) is absent or invalid."""

    status_code = 400


class StorageError(ProxyError):
    """The SQLite store rejected a statement; ``detail`` holds the driver message."""

    status_code = 500


class UpstreamError(ProxyError):
    """The generative-language service call failed."""

    status_code = 500

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}
