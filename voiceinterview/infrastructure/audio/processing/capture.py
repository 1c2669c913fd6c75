"""
Microphone capture for streaming speech recognition.
"""
import logging
import queue
from typing import Iterator, Optional, Tuple

import numpy as np

from ....config import CHANNELS, SAMPLE_RATE_CAPTURE, SAMPLE_RATE_TARGET, FRAME_MS
from ....interview.errors import DeviceUnsupportedError, PermissionDeniedError
from ....utils import with_suppressed_audio_warnings
from .processing import prepare_for_recognition, rms_level, stereo_to_mono

logger = logging.getLogger("audio_capture")


def _import_pyaudio():
    # pyaudio is an optional extra; import lazily so text mode works without it
    try:
        import pyaudio
    except ImportError as e:
        raise DeviceUnsupportedError(
            "Microphone capture needs PyAudio (pip install 'voiceinterview[audio]')"
        ) from e
    return pyaudio


def _map_open_error(e: Exception) -> Exception:
    message = str(e)
    if "denied" in message.lower() or "permission" in message.lower():
        return PermissionDeniedError(f"Microphone access denied: {message}")
    return DeviceUnsupportedError(f"Could not open microphone: {message}")


@with_suppressed_audio_warnings
def find_input_device(pa, input_device: Optional[int] = None) -> Tuple[int, int, int]:
    """
    Pick the microphone to record from.
    Returns (device_index, channels, sample_rate) tuple.

    Raises:
        DeviceUnsupportedError: If no input device exists
    """
    try:
        if input_device is not None:
            info = pa.get_device_info_by_index(input_device)
        else:
            info = pa.get_default_input_device_info()
    except (IOError, OSError) as e:
        raise DeviceUnsupportedError(f"No microphone available: {e}") from e

    max_input_channels = int(info.get("maxInputChannels", 0) or 0)
    if max_input_channels <= 0:
        raise DeviceUnsupportedError(f"Device {info.get('name')} has no input channels")

    channels = min(max(CHANNELS, 1), max_input_channels)
    sample_rate = int(info.get("defaultSampleRate") or SAMPLE_RATE_CAPTURE)
    logger.info(f"Using microphone {info.get('index')}: {info.get('name')} "
                f"({channels} channel(s) at {sample_rate} Hz)")
    return int(info["index"]), channels, sample_rate


class MicrophoneStream:
    """Opens the microphone and yields recognizer-ready PCM16 chunks.

    PyAudio calls ``_fill`` from its own thread; chunks are handed over
    through a thread-safe queue and consumed by ``chunks()``, which is meant
    to run in a worker thread alongside the recognizer.
    """

    def __init__(self,
                 input_device: Optional[int] = None,
                 sr_target: int = SAMPLE_RATE_TARGET,
                 frame_ms: int = FRAME_MS):
        self.input_device = input_device
        self.sr_target = sr_target
        self.frame_ms = frame_ms
        self.level = 0.0

        self._pyaudio = None
        self._pa = None
        self._stream = None
        self._channels = 1
        self._sr_capture = SAMPLE_RATE_CAPTURE
        self._buffer: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._closed = True

    @with_suppressed_audio_warnings
    def open(self) -> "MicrophoneStream":
        """
        Start recording.

        Raises:
            PermissionDeniedError: The OS refused microphone access
            DeviceUnsupportedError: No usable microphone or PyAudio missing
        """
        self._pyaudio = _import_pyaudio()
        self._pa = self._pyaudio.PyAudio()
        try:
            device, self._channels, self._sr_capture = find_input_device(self._pa, self.input_device)
            frames_per_buffer = int(self._sr_capture * self.frame_ms / 1000)
            self._stream = self._pa.open(
                format=self._pyaudio.paInt16,
                channels=self._channels,
                rate=self._sr_capture,
                input=True,
                input_device_index=device,
                frames_per_buffer=frames_per_buffer,
                stream_callback=self._fill,
            )
        except (DeviceUnsupportedError, PermissionDeniedError):
            self._pa.terminate()
            raise
        except (IOError, OSError) as e:
            self._pa.terminate()
            raise _map_open_error(e) from e

        self._closed = False
        logger.info("Microphone opened successfully")
        return self

    def _fill(self, in_data, frame_count, time_info, status_flags):
        frames = np.frombuffer(in_data, dtype=np.int16).astype(np.float32) / 32768.0
        if self._channels > 1:
            frames = frames.reshape(-1, self._channels)
        self.level = rms_level(stereo_to_mono(frames))
        self._buffer.put(prepare_for_recognition(frames, self._sr_capture, self.sr_target))
        return None, self._pyaudio.paContinue

    def chunks(self) -> Iterator[bytes]:
        """Yield audio until ``close()`` is called."""
        while not self._closed:
            chunk = self._buffer.get()
            if chunk is None:
                return
            data = [chunk]
            # Drain whatever else is buffered into one request
            while True:
                try:
                    chunk = self._buffer.get(block=False)
                except queue.Empty:
                    break
                if chunk is None:
                    yield b"".join(data)
                    return
                data.append(chunk)
            yield b"".join(data)

    def close(self) -> None:
        if self._closed and self._pa is None:
            return
        self._closed = True
        self._buffer.put(None)
        try:
            if self._stream is not None:
                self._stream.stop_stream()
                self._stream.close()
        except (IOError, OSError) as e:
            logger.warning(f"Error closing microphone stream: {e}")
        finally:
            self._stream = None
            if self._pa is not None:
                self._pa.terminate()
                self._pa = None
        logger.info("Microphone closed")

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
