"""
Speech output and input for the interview engine.

``SpeechOutput`` wraps a text-to-speech engine and makes playback
cancellable. ``SpeechInput`` wraps a streaming speech-to-text engine and
turns its events into one finalized answer per ``listen()`` call, using a
silence window to detect the end of the candidate's turn.

Both sit on top of small capability interfaces (``TextToSpeech`` and
``SpeechToText``) so the Google Cloud adapters, the console adapters and the
scripted test fakes are interchangeable.
"""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional, Set

from ..config import (
    LANGUAGE_CODE, VOICE_RETRY_DELAY, SILENCE_TIMEOUT, NO_SPEECH_TIMEOUT,
    MAX_LISTEN_SECONDS, NETWORK_RESTART_DELAY, MAX_NETWORK_RESTARTS,
)
from .errors import (
    RecognitionError, RecognitionErrorCategory, PermissionDeniedError,
    DeviceUnsupportedError, TransientNetworkError, SynthesisFailure,
)

output_logger = logging.getLogger("speech_output")
input_logger = logging.getLogger("speech_input")


# =============================================================================
# Text normalization
# =============================================================================

_SPEECH_SUBSTITUTIONS = [
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"\*(.*?)\*"), r"\1"),
    (re.compile(r"^#{1,6}\s*(.*?)$", re.MULTILINE), r"\1"),
    (re.compile(r"`{1,3}(.*?)`{1,3}"), r"\1"),
    (re.compile(r"\[(.*?)\]\(.*?\)"), r"\1"),
    (re.compile(r"[_~`]"), ""),
    (re.compile(r"\n\s*\n"), ". "),
    (re.compile(r"\n"), " "),
    (re.compile(r"\s+"), " "),
    (re.compile(r"\be\.g\."), "for example"),
    (re.compile(r"\bi\.e\."), "that is"),
    (re.compile(r"\betc\."), "and so on"),
    (re.compile(r"\bvs\."), "versus"),
    (re.compile(r"\bAPI\b"), "A P I"),
    (re.compile(r"\bURL\b"), "U R L"),
    (re.compile(r"\bHTTP\b"), "H T T P"),
    (re.compile(r"\bJSON\b"), "J S O N"),
    (re.compile(r"\bSQL\b"), "S Q L"),
    (re.compile(r"([.!?])\s*([A-Z])"), r"\1 \2"),
    (re.compile(r":\s*"), ": "),
    (re.compile(r";\s*"), "; "),
]


def normalize_for_speech(text: str) -> str:
    """Strip markdown and spell out abbreviations so text reads well aloud."""
    if not text:
        return ""
    for pattern, replacement in _SPEECH_SUBSTITUTIONS:
        text = pattern.sub(replacement, text)
    return text.strip()


# =============================================================================
# Capability interfaces
# =============================================================================

class TextToSpeech(ABC):
    """A speech synthesis engine."""

    @abstractmethod
    async def list_voices(self) -> List[str]:
        """Return available voice names. May be empty while the engine warms up."""

    @abstractmethod
    async def play(self, text: str, voice: Optional[str] = None) -> None:
        """Synthesize and play ``text``; returns when playback ends.

        Must stop promptly when the awaiting task is cancelled.
        """

    async def close(self) -> None:
        """Release the output device."""


@dataclass
class RecognitionEvent:
    """One recognition result from a streaming speech-to-text engine."""
    text: str
    is_final: bool
    confidence: Optional[float] = None


class SpeechToText(ABC):
    """A streaming speech recognition engine."""

    @abstractmethod
    def stream(self) -> AsyncIterator[RecognitionEvent]:
        """Start capturing and yield recognition events until closed.

        Failures are raised as ``RecognitionError`` with a category.
        """

    async def close(self) -> None:
        """Release the capture device."""


# =============================================================================
# SpeechOutput
# =============================================================================

class SpeechOutput:
    """Cancellable spoken output."""

    def __init__(self, tts: TextToSpeech, language_code: str = LANGUAGE_CODE,
                 preferred_voice: Optional[str] = None,
                 on_start: Optional[Callable[[str], None]] = None,
                 on_end: Optional[Callable[[str], None]] = None,
                 voice_retry_delay: float = VOICE_RETRY_DELAY):
        self._tts = tts
        self.language_code = language_code
        self.preferred_voice = preferred_voice
        self.on_start = on_start
        self.on_end = on_end
        self.voice_retry_delay = voice_retry_delay

        self._voice: Optional[str] = None
        self._voice_resolved = False
        self._task: Optional[asyncio.Task] = None
        self._cancelled: Set[asyncio.Task] = set()
        # Set by cancel() while a speak() is still choosing its voice
        self._pending: Optional[asyncio.Event] = None
        self._interruptible = True
        self._closed = False

    @property
    def is_speaking(self) -> bool:
        if self._pending is not None:
            return True
        return self._task is not None and not self._task.done()

    @property
    def interruptible(self) -> bool:
        return self.is_speaking and self._interruptible

    async def _select_voice(self) -> Optional[str]:
        if self._voice_resolved:
            return self._voice

        voices = await self._list_voices()
        if not voices:
            # Some engines load their voice list asynchronously
            await asyncio.sleep(self.voice_retry_delay)
            voices = await self._list_voices()

        if not voices:
            output_logger.warning("No voices available; using engine default voice")
            return None

        if self.preferred_voice and self.preferred_voice in voices:
            self._voice = self.preferred_voice
        else:
            prefix = self.language_code.split("-")[0].lower()
            matching = [v for v in voices if v.lower().startswith(self.language_code.lower())]
            matching = matching or [v for v in voices if v.lower().startswith(prefix)]
            self._voice = matching[0] if matching else voices[0]
        self._voice_resolved = True
        output_logger.info(f"Selected voice: {self._voice}")
        return self._voice

    async def _list_voices(self) -> List[str]:
        try:
            return list(await self._tts.list_voices())
        except Exception as e:
            output_logger.warning(f"Could not list voices: {e}")
            return []

    async def speak(self, text: str, interruptible: bool = True) -> None:
        """
        Speak ``text`` aloud.

        Returns when playback finishes or is cancelled through ``cancel()``.

        Raises:
            ValueError: If the text is empty after normalization
            SynthesisFailure: If the engine fails to synthesize or play
        """
        if self._closed:
            raise SynthesisFailure("Speech output is closed")

        spoken = normalize_for_speech(text)
        if not spoken:
            raise ValueError("Nothing to speak after text normalization")

        # Stop any ongoing speech
        self.cancel()

        self._interruptible = interruptible
        pending = asyncio.Event()
        self._pending = pending
        try:
            voice = await self._select_voice()
        finally:
            if self._pending is pending:
                self._pending = None
        if pending.is_set():
            output_logger.debug("Speech cancelled before playback started")
            return

        task = asyncio.ensure_future(self._tts.play(spoken, voice))
        self._task = task

        output_logger.debug("Speaking (%d chars, interruptible=%s)", len(spoken), interruptible)
        self._notify(self.on_start, spoken)
        try:
            await task
        except asyncio.CancelledError:
            if task not in self._cancelled:
                raise
            output_logger.debug("Speech cancelled")
        except SynthesisFailure:
            raise
        except Exception as e:
            raise SynthesisFailure(f"Speech synthesis failed: {e}") from e
        finally:
            self._cancelled.discard(task)
            if self._task is task:
                self._task = None
            self._notify(self.on_end, spoken)

    def cancel(self) -> bool:
        """Stop playback immediately. Returns True if something was playing or about to play."""
        task = self._task
        if task is None or task.done():
            pending = self._pending
            if pending is not None and not pending.is_set():
                pending.set()
                return True
            return False
        self._cancelled.add(task)
        task.cancel()
        return True

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.cancel()
        try:
            await self._tts.close()
        except Exception as e:
            output_logger.warning(f"Error closing speech output: {e}")

    @staticmethod
    def _notify(callback, text: str) -> None:
        if callback is None:
            return
        try:
            callback(text)
        except Exception as e:
            output_logger.error(f"Error in speech callback: {e}")


# =============================================================================
# SpeechInput
# =============================================================================

_STOP = object()
_END = object()


class _Capture:
    """Book-keeping for the one active listen."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.finals: List[str] = []
        self.confidences: List[float] = []
        self.interim = ""

    @property
    def text(self) -> str:
        return " ".join(self.finals).strip()

    @property
    def partial(self) -> str:
        return " ".join(self.finals + [self.interim]).strip()


class SpeechInput:
    """Turns a streaming recognizer into one answer per ``listen()``."""

    def __init__(self, stt: SpeechToText,
                 silence_timeout: float = SILENCE_TIMEOUT,
                 no_speech_timeout: float = NO_SPEECH_TIMEOUT,
                 max_listen_seconds: float = MAX_LISTEN_SECONDS,
                 network_restart_delay: float = NETWORK_RESTART_DELAY,
                 max_network_restarts: int = MAX_NETWORK_RESTARTS):
        self._stt = stt
        self.silence_timeout = silence_timeout
        self.no_speech_timeout = no_speech_timeout
        self.max_listen_seconds = max_listen_seconds
        self.network_restart_delay = network_restart_delay
        self.max_network_restarts = max_network_restarts

        self._active: Optional[_Capture] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._last_result = ""
        self.last_confidence: Optional[float] = None
        self._closed = False

    @property
    def is_listening(self) -> bool:
        return self._active is not None

    async def listen(self, on_partial: Optional[Callable[[str], None]] = None) -> str:
        """
        Capture one utterance.

        Args:
            on_partial: Called with the running text (finals plus interim)

        Returns:
            The finalized text, or "" if nothing was said

        Raises:
            PermissionDeniedError: Microphone access denied (fatal)
            DeviceUnsupportedError: No speech capture on this runtime (fatal)
            TransientNetworkError: Network failed again after one restart
            RecognitionError: Any other recognition failure
        """
        if self._closed:
            raise DeviceUnsupportedError("Speech input is closed")

        if self._active is not None:
            input_logger.info("Listen requested while already listening; stopping previous capture")
            self._active.queue.put_nowait(_STOP)
            await self._idle.wait()

        capture = _Capture()
        self._active = capture
        self._idle.clear()
        self.last_confidence = None
        try:
            text = await self._capture(capture, on_partial)
        finally:
            self._active = None
            self._idle.set()

        self._last_result = text
        if capture.confidences:
            self.last_confidence = sum(capture.confidences) / len(capture.confidences)
        input_logger.info(f"Listen finished: {len(text.split())} words")
        return text

    def request_stop(self) -> bool:
        """Ask the active listen to finalize. Returns False if not listening."""
        if self._active is None:
            return False
        self._active.queue.put_nowait(_STOP)
        return True

    async def stop(self) -> str:
        """Finalize the active listen and return what it captured."""
        if self.request_stop():
            await self._idle.wait()
        return self._last_result

    async def close(self) -> None:
        if self._closed:
            return
        await self.stop()
        self._closed = True
        try:
            await self._stt.close()
        except Exception as e:
            input_logger.warning(f"Error closing speech input: {e}")

    async def _pump(self, queue: asyncio.Queue) -> None:
        stream = self._stt.stream()
        try:
            async for event in stream:
                queue.put_nowait(event)
        except asyncio.CancelledError:
            raise
        except RecognitionError as e:
            queue.put_nowait(e)
        except Exception as e:
            queue.put_nowait(RecognitionError(str(e)))
        else:
            queue.put_nowait(_END)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    @staticmethod
    async def _cancel_pump(pump: Optional[asyncio.Task]) -> None:
        if pump is None or pump.done():
            return
        pump.cancel()
        try:
            await pump
        except asyncio.CancelledError:
            pass

    async def _capture(self, capture: _Capture, on_partial) -> str:
        loop = asyncio.get_running_loop()
        started = loop.time()
        hard_deadline = started + self.max_listen_seconds
        no_speech_deadline = started + self.no_speech_timeout
        last_activity: Optional[float] = None
        restarts = 0

        pump = asyncio.ensure_future(self._pump(capture.queue))
        try:
            while True:
                now = loop.time()
                if capture.finals:
                    wait_until = last_activity + self.silence_timeout
                elif last_activity is not None:
                    wait_until = max(no_speech_deadline, last_activity + self.silence_timeout)
                else:
                    wait_until = no_speech_deadline
                timeout = min(wait_until, hard_deadline) - now
                if timeout <= 0:
                    break

                try:
                    item = await asyncio.wait_for(capture.queue.get(), timeout)
                except asyncio.TimeoutError:
                    input_logger.debug("Silence window elapsed")
                    break

                if item is _STOP:
                    input_logger.debug("Listen stopped on request")
                    break
                if item is _END:
                    input_logger.debug("Recognizer stream ended")
                    break

                if isinstance(item, RecognitionError):
                    category = item.category
                    if category in (RecognitionErrorCategory.NO_SPEECH, RecognitionErrorCategory.ABORTED):
                        input_logger.info(f"Recognition ended: {category.value}")
                        break
                    if category == RecognitionErrorCategory.NETWORK:
                        if restarts < self.max_network_restarts:
                            restarts += 1
                            input_logger.warning(
                                f"Network error during recognition, restarting capture ({restarts}/{self.max_network_restarts})"
                            )
                            await self._cancel_pump(pump)
                            await asyncio.sleep(self.network_restart_delay)
                            pump = asyncio.ensure_future(self._pump(capture.queue))
                            # The restarted stream gets a full listening window
                            restarted = loop.time()
                            no_speech_deadline = restarted + self.no_speech_timeout
                            if last_activity is not None:
                                last_activity = restarted
                            continue
                        raise item if isinstance(item, TransientNetworkError) else TransientNetworkError(str(item))
                    if category == RecognitionErrorCategory.PERMISSION_DENIED:
                        raise item if isinstance(item, PermissionDeniedError) else PermissionDeniedError(str(item))
                    if category == RecognitionErrorCategory.UNSUPPORTED:
                        raise item if isinstance(item, DeviceUnsupportedError) else DeviceUnsupportedError(str(item))
                    raise item

                last_activity = loop.time()
                if item.is_final:
                    text = item.text.strip()
                    if text:
                        capture.finals.append(text)
                    if item.confidence is not None:
                        capture.confidences.append(item.confidence)
                    capture.interim = ""
                else:
                    capture.interim = item.text.strip()

                if on_partial is not None:
                    try:
                        on_partial(capture.partial)
                    except Exception as e:
                        input_logger.error(f"Error in partial transcript callback: {e}")
        finally:
            await self._cancel_pump(pump)

        return capture.text
