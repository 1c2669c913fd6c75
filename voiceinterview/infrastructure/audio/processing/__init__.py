"""Audio processing and capture modules."""

# Import processing functions immediately (numpy/scipy only)
from .processing import (
    stereo_to_mono,
    remove_dc,
    resample,
    rms_level,
    normalize_audio,
    int16_to_float,
    float_to_pcm16,
    prepare_for_recognition,
)


# Lazy imports for capture (avoid importing pyaudio unless needed)
def _get_microphone_stream():
    """Lazy import for MicrophoneStream."""
    from .capture import MicrophoneStream
    return MicrophoneStream


def __getattr__(name):
    if name == "MicrophoneStream":
        return _get_microphone_stream()
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "MicrophoneStream",
    "stereo_to_mono",
    "remove_dc",
    "resample",
    "rms_level",
    "normalize_audio",
    "int16_to_float",
    "float_to_pcm16",
    "prepare_for_recognition",
]
