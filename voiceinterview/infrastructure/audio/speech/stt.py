"""
Streaming speech-to-text using Google Cloud Speech and the local microphone.
"""
import asyncio
import logging
import threading
from typing import AsyncIterator, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import speech

from ....config import LANGUAGE_CODE, SAMPLE_RATE_TARGET
from ....interview.errors import RecognitionError, RecognitionErrorCategory
from ....interview.speech import RecognitionEvent, SpeechToText
from ..processing.capture import MicrophoneStream

logger = logging.getLogger("speech_stt")

_END = object()


def categorize_google_error(e: Exception) -> RecognitionErrorCategory:
    """Map Google API errors onto recognition error categories."""
    if isinstance(e, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)):
        return RecognitionErrorCategory.PERMISSION_DENIED
    if isinstance(e, (google_exceptions.ServiceUnavailable, google_exceptions.DeadlineExceeded,
                      google_exceptions.RetryError, google_exceptions.InternalServerError)):
        return RecognitionErrorCategory.NETWORK
    if isinstance(e, google_exceptions.OutOfRange):
        # Raised when the stream goes too long without audio
        return RecognitionErrorCategory.NO_SPEECH
    if isinstance(e, google_exceptions.Cancelled):
        return RecognitionErrorCategory.ABORTED
    if isinstance(e, google_exceptions.MethodNotImplemented):
        return RecognitionErrorCategory.UNSUPPORTED
    return RecognitionErrorCategory.OTHER


class GoogleSpeechToText(SpeechToText):
    """Google Cloud streaming recognition over the local microphone."""

    def __init__(self,
                 language_code: str = LANGUAGE_CODE,
                 sample_rate: int = SAMPLE_RATE_TARGET,
                 input_device: Optional[int] = None,
                 client: Optional[speech.SpeechClient] = None):
        self.language_code = language_code
        self.sample_rate = sample_rate
        self.input_device = input_device
        self._client = client

    @property
    def client(self) -> speech.SpeechClient:
        if self._client is None:
            self._client = speech.SpeechClient()
        return self._client

    def _streaming_config(self) -> speech.StreamingRecognitionConfig:
        config = speech.RecognitionConfig(
            encoding=speech.RecognitionConfig.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.sample_rate,
            language_code=self.language_code,
            enable_automatic_punctuation=True,
        )
        return speech.StreamingRecognitionConfig(config=config, interim_results=True)

    def _recognize(self, mic: MicrophoneStream, emit, stop: threading.Event) -> None:
        """Worker thread: feed microphone audio to Google and report results."""
        requests = (speech.StreamingRecognizeRequest(audio_content=chunk) for chunk in mic.chunks())
        try:
            responses = self.client.streaming_recognize(self._streaming_config(), requests)
            for response in responses:
                if stop.is_set():
                    break
                for result in response.results:
                    if not result.alternatives:
                        continue
                    best = result.alternatives[0]
                    confidence = best.confidence if result.is_final and best.confidence else None
                    emit(RecognitionEvent(text=best.transcript, is_final=result.is_final,
                                          confidence=confidence))
        except google_exceptions.GoogleAPICallError as e:
            if not stop.is_set():
                emit(RecognitionError(str(e), category=categorize_google_error(e)))
        except google_exceptions.RetryError as e:
            if not stop.is_set():
                emit(RecognitionError(str(e), category=RecognitionErrorCategory.NETWORK))
        except Exception as e:
            logger.error(f"Streaming recognition failed: {e}")
            if not stop.is_set():
                emit(RecognitionError(str(e)))
        finally:
            emit(_END)

    async def stream(self) -> AsyncIterator[RecognitionEvent]:
        loop = asyncio.get_running_loop()
        events: asyncio.Queue = asyncio.Queue()
        stop = threading.Event()

        def emit(item):
            loop.call_soon_threadsafe(events.put_nowait, item)

        mic = MicrophoneStream(input_device=self.input_device, sr_target=self.sample_rate)
        await asyncio.to_thread(mic.open)
        worker = asyncio.ensure_future(asyncio.to_thread(self._recognize, mic, emit, stop))
        logger.info("Streaming recognition started")
        try:
            while True:
                item = await events.get()
                if item is _END:
                    return
                if isinstance(item, RecognitionError):
                    raise item
                yield item
        finally:
            stop.set()
            mic.close()
            try:
                await asyncio.shield(worker)
            except asyncio.CancelledError:
                pass
            logger.info("Streaming recognition stopped")
