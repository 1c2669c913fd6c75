"""Utility functions for the interview engine."""

from .logging import setup_logging
from .imports import with_suppressed_audio_warnings

__all__ = ["setup_logging", "with_suppressed_audio_warnings"]
