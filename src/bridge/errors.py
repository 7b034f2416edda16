"""Domain-specific exceptions for call placement and media relaying.

These exceptions are safe to import from API layers without pulling in SDK clients.
"""

from __future__ import annotations


class BridgeError(Exception):
    status_code: int = 500
    default_detail: str = "Bridge error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class ValidationError(BridgeError):
    status_code = 400
    default_detail = "Missing required parameters"

    def __init__(self, missing: list[str] | None = None, detail: str | None = None) -> None:
        self.missing = list(missing or [])
        if detail is None and self.missing:
            detail = f"{self.default_detail}: {', '.join(self.missing)}"
        super().__init__(detail)


class TelephonyError(BridgeError):
    status_code = 500
    default_detail = "Failed to initiate call"


class ProviderUnavailable(BridgeError):
    status_code = 502
    default_detail = "Failed to get signed URL"


class ProviderProtocolError(BridgeError):
    status_code = 502
    default_detail = "Unexpected response from conversational AI provider"


class MalformedMessageError(BridgeError):
    status_code = 400
    default_detail = "Malformed stream message"
