"""
Basic audio processing functions including format conversions and normalization.
"""
from math import gcd

import numpy as np
from scipy.signal import resample_poly

from ....config import TARGET_RMS


def stereo_to_mono(x: np.ndarray) -> np.ndarray:
    """Convert multi-channel audio to mono by averaging channels."""
    if x.ndim == 1:
        return x
    return np.mean(x, axis=1)


def remove_dc(x: np.ndarray) -> np.ndarray:
    """Remove DC offset from audio signal."""
    if x.size == 0:
        return x
    return x - np.mean(x)


def resample(x: np.ndarray, sr_in: int, sr_out: int) -> np.ndarray:
    """Resample audio between integer sample rates with a polyphase filter."""
    if sr_in == sr_out:
        return x.astype(np.float32)
    g = gcd(int(sr_in), int(sr_out))
    return resample_poly(x, up=sr_out // g, down=sr_in // g).astype(np.float32)


def rms_level(x: np.ndarray) -> float:
    """Root-mean-square level of a float signal."""
    if x.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(x, dtype=np.float64))))


def normalize_audio(audio: np.ndarray, target_rms: float = TARGET_RMS) -> np.ndarray:
    """Normalize audio to target RMS level, with gain capped at 20x."""
    rms = rms_level(audio) + 1e-9
    gain = min(20.0, target_rms / rms)
    return audio * gain


def int16_to_float(pcm16: bytes) -> np.ndarray:
    """Convert little-endian PCM16 bytes to float samples in [-1, 1]."""
    return np.frombuffer(pcm16, dtype=np.int16).astype(np.float32) / 32768.0


def float_to_pcm16(audio: np.ndarray) -> bytes:
    """Convert float samples in [-1, 1] to PCM16 bytes."""
    return np.clip(audio * 32767, -32768, 32767).astype(np.int16).tobytes()


def prepare_for_recognition(frames: np.ndarray, sr_capture: int, sr_target: int) -> bytes:
    """Mono, DC-free, resampled PCM16 ready for a speech recognizer."""
    mono = remove_dc(stereo_to_mono(frames))
    return float_to_pcm16(resample(mono, sr_capture, sr_target))
