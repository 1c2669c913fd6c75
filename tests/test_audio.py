import numpy as np
import pytest
from google.api_core import exceptions as google_exceptions

from voiceinterview.infrastructure.audio.processing.capture import _map_open_error
from voiceinterview.infrastructure.audio.processing.processing import (
    float_to_pcm16, int16_to_float, normalize_audio, prepare_for_recognition,
    remove_dc, resample, rms_level, stereo_to_mono,
)
from voiceinterview.infrastructure.audio.speech.stt import categorize_google_error
from voiceinterview.interview.errors import (
    DeviceUnsupportedError, PermissionDeniedError, RecognitionErrorCategory,
)


def test_stereo_to_mono_averages_channels():
    stereo = np.array([[1.0, 0.0], [0.5, 0.5]], dtype=np.float32)
    assert np.allclose(stereo_to_mono(stereo), [0.5, 0.5])
    mono = np.array([0.1, 0.2], dtype=np.float32)
    assert stereo_to_mono(mono) is mono


def test_remove_dc_centers_signal():
    x = np.array([1.0, 2.0, 3.0])
    assert np.mean(remove_dc(x)) == pytest.approx(0.0)
    assert remove_dc(np.array([])).size == 0


def test_resample_changes_length():
    x = np.zeros(48000, dtype=np.float32)
    assert len(resample(x, 48000, 16000)) == 16000
    assert resample(x, 16000, 16000).dtype == np.float32


def test_rms_and_normalize():
    x = np.full(100, 0.01, dtype=np.float32)
    assert rms_level(x) == pytest.approx(0.01, rel=1e-4)
    assert rms_level(np.array([])) == 0.0
    assert rms_level(normalize_audio(x, target_rms=0.05)) == pytest.approx(0.05, rel=1e-3)
    # gain is capped
    quiet = np.full(100, 1e-4, dtype=np.float32)
    assert rms_level(normalize_audio(quiet, target_rms=0.5)) == pytest.approx(2e-3, rel=1e-3)


def test_pcm16_conversion():
    pcm = float_to_pcm16(np.array([0.0, 0.5, -0.5, 2.0], dtype=np.float32))
    assert len(pcm) == 8
    back = int16_to_float(pcm)
    assert back[0] == 0.0
    assert back[1] == pytest.approx(0.5, abs=1e-3)
    assert back[3] == pytest.approx(1.0, abs=1e-3)


def test_prepare_for_recognition_outputs_target_rate_pcm():
    frames = np.random.default_rng(0).uniform(-0.1, 0.1, size=(4800, 2)).astype(np.float32)
    pcm = prepare_for_recognition(frames, 48000, 16000)
    assert len(pcm) == 1600 * 2


def test_microphone_open_errors_are_categorized():
    assert isinstance(_map_open_error(OSError("Permission denied by system")), PermissionDeniedError)
    assert isinstance(_map_open_error(OSError("Invalid sample rate")), DeviceUnsupportedError)


@pytest.mark.parametrize(
    "error,category",
    [
        (google_exceptions.PermissionDenied("no"), RecognitionErrorCategory.PERMISSION_DENIED),
        (google_exceptions.Unauthenticated("no"), RecognitionErrorCategory.PERMISSION_DENIED),
        (google_exceptions.ServiceUnavailable("down"), RecognitionErrorCategory.NETWORK),
        (google_exceptions.DeadlineExceeded("slow"), RecognitionErrorCategory.NETWORK),
        (google_exceptions.OutOfRange("no audio"), RecognitionErrorCategory.NO_SPEECH),
        (google_exceptions.Cancelled("stop"), RecognitionErrorCategory.ABORTED),
        (google_exceptions.MethodNotImplemented("nope"), RecognitionErrorCategory.UNSUPPORTED),
        (ValueError("boom"), RecognitionErrorCategory.OTHER),
    ],
)
def test_google_errors_are_categorized(error, category):
    assert categorize_google_error(error) == category
