from __future__ import annotations
from typing import Optional


class SourceError(RuntimeError):
    """A source could not produce a usable response (network, timeout, HTTP status, payload)."""

    def __init__(self, source: str, message: Optional[str] = None) -> None:
        super().__init__(message or "")
        self.source = source
        self.message = message


class AllSourcesFailed(RuntimeError):
    def __init__(self, last_error: BaseException) -> None:
        super().__init__(str(last_error))
        self.last_error = last_error

    @property
    def message(self) -> Optional[str]:
        msg = getattr(self.last_error, "message", None)
        if msg is None:
            msg = str(self.last_error) or None
        return msg


class ThresholdValidationError(ValueError):
    pass


class PushDeliveryError(RuntimeError):
    pass
