"""
Error taxonomy for Parley
Every rejection is reported to the initiating connection only
"""

from typing import Any, Dict, Optional


class ParleyError(Exception):
    """Base class for errors reported back to a client"""

    code = "error"
    error_event = "error"

    def __init__(self, message: str, scope_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.scope_id = scope_id

    def to_payload(self) -> Dict[str, Any]:
        """Fields carried by the error event"""
        return {"error": self.message, "code": self.code}


class ValidationError(ParleyError):
    """Malformed or out-of-range input"""
    code = "invalid_request"


class NotFound(ParleyError):
    """Channel, server or connection does not exist"""
    code = "not_found"


class PermissionDenied(ParleyError):
    """Owner/admin-only action attempted by an ineligible user"""
    code = "permission_denied"
    error_event = "permission-error"


class SlowModeActive(ParleyError):
    """Slow-mode cooldown has not elapsed for this user"""

    code = "slow_mode"
    error_event = "message-error"

    def __init__(self, retry_after: int, scope_id: Optional[str] = None):
        super().__init__(
            f"Slow mode active. Please wait {retry_after} seconds before sending another message.",
            scope_id
        )
        self.retry_after = retry_after

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["retry_after"] = self.retry_after
        return payload


class VoiceChannelFull(ParleyError):
    """Voice room is at its user limit"""
    code = "voice_full"
    error_event = "voice-error"


class RateLimited(ParleyError):
    """Connection is sending faster than the flood limit allows"""

    code = "rate_limited"

    def __init__(self, message: str, retry_after: int, scope_id: Optional[str] = None):
        super().__init__(message, scope_id)
        self.retry_after = retry_after

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["retry_after"] = self.retry_after
        return payload


class StoreError(ParleyError):
    """The message store refused or failed to persist"""
    code = "store_failure"
    error_event = "message-error"


class TransportDropped(ParleyError):
    """Signaling target is not a live connection; logged, never sent to the sender"""
    code = "target_unreachable"
