"""
Error taxonomy for the interview engine.

Speech adapters raise these instead of provider-specific exceptions so the
turn and session layers can decide what is fatal and what is recoverable.
"""
from enum import Enum
from typing import Optional


class RecognitionErrorCategory(str, Enum):
    """Categories reported by speech-to-text engines."""
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network"
    NO_SPEECH = "no_speech"
    ABORTED = "aborted"
    UNSUPPORTED = "unsupported"
    OTHER = "other"


class SpeechError(Exception):
    """Base class for speech input/output failures."""


class RecognitionError(SpeechError):
    """Speech recognition failed."""

    category = RecognitionErrorCategory.OTHER

    def __init__(self, message: str = "", category: Optional[RecognitionErrorCategory] = None):
        super().__init__(message or "Speech recognition error")
        if category is not None:
            self.category = category

    @property
    def fatal(self) -> bool:
        return self.category in (RecognitionErrorCategory.PERMISSION_DENIED,
                                 RecognitionErrorCategory.UNSUPPORTED)


class PermissionDeniedError(RecognitionError):
    """Microphone access was denied. The user must grant access and retry."""

    category = RecognitionErrorCategory.PERMISSION_DENIED

    def __init__(self, message: str = ""):
        super().__init__(message or "Microphone access denied. Allow microphone access, then try again.")


class DeviceUnsupportedError(RecognitionError):
    """Speech capture is not available on this runtime."""

    category = RecognitionErrorCategory.UNSUPPORTED

    def __init__(self, message: str = ""):
        super().__init__(message or "Speech recognition is not supported on this device.")


class TransientNetworkError(RecognitionError):
    """Recognition lost its network connection."""

    category = RecognitionErrorCategory.NETWORK

    def __init__(self, message: str = ""):
        super().__init__(message or "Network connection unstable. Please check your internet and try again.")


class SynthesisFailure(SpeechError):
    """Text-to-speech failed for a reason other than cancellation."""


class SessionFault(Exception):
    """Session-level fault signal raised by the turn controller."""

    def __init__(self, category: str, message: str, fatal: bool = False,
                 cause: Optional[BaseException] = None):
        super().__init__(message)
        self.category = category
        self.fatal = fatal
        self.cause = cause

    def __repr__(self) -> str:
        return f"SessionFault(category={self.category!r}, fatal={self.fatal}, message={str(self)!r})"


class InvalidTransitionError(RuntimeError):
    """A state machine was asked to make a transition it does not allow."""

    def __init__(self, machine: str, current, target):
        super().__init__(f"{machine}: invalid transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


class TranscriptFrozenError(RuntimeError):
    """The transcript was modified after being frozen."""


class ScoringError(Exception):
    """The scoring service failed or returned unusable output."""
