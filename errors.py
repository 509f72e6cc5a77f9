"""
Error taxonomy for the overlay tool.

Every error is terminal only to the operation that raised it; the owning
component reports it as a status message and carries on.
"""


class OverlayError(Exception):
    """Base class for all recoverable overlay errors."""


class HardwareUnsupported(OverlayError):
    """A zoom or torch constraint was rejected or is unavailable."""

    def __init__(self, feature, detail=None):
        self.feature = feature
        self.detail = detail
        message = f"{feature} not supported"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class RecognitionFailure(OverlayError):
    """The text-recognition service answered non-2xx or with an error payload."""


class SpeechUnavailable(OverlayError):
    """No text-to-speech engine is available on this platform."""


class InputValidation(OverlayError):
    """User input was rejected before any state changed."""
