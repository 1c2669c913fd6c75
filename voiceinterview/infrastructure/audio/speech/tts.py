"""
Text-to-speech using Google Cloud TTS, played through the local speaker.
"""
import asyncio
import logging
import threading
from typing import List, Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import texttospeech

from ....config import (
    LANGUAGE_CODE, TTS_VOICE, SPEAKING_RATE,
    SPEAKER_SAMPLE_RATE, SPEAKER_CHUNK_SAMPLES,
)
from ....interview.errors import SynthesisFailure
from ....interview.speech import TextToSpeech
from ....utils import with_suppressed_audio_warnings

logger = logging.getLogger("speech_tts")


class SpeakerPlayback:
    """Plays PCM16 audio on the default output device, stoppable from any thread."""

    def __init__(self, sample_rate: int = SPEAKER_SAMPLE_RATE,
                 chunk_samples: int = SPEAKER_CHUNK_SAMPLES):
        self.sample_rate = sample_rate
        self.chunk_samples = chunk_samples
        self._pa = None
        self._pyaudio = None
        self._lock = threading.Lock()

    @with_suppressed_audio_warnings
    def _ensure_open(self):
        if self._pa is None:
            try:
                import pyaudio
            except ImportError as e:
                raise SynthesisFailure(
                    "Speaker playback needs PyAudio (pip install 'voiceinterview[audio]')"
                ) from e
            self._pyaudio = pyaudio
            self._pa = pyaudio.PyAudio()
            logger.info(f"Initialized speaker at {self.sample_rate} Hz")

    def play(self, pcm16: bytes, stop_event: threading.Event) -> None:
        """Blocking playback; returns early when ``stop_event`` is set."""
        with self._lock:
            self._ensure_open()
            try:
                stream = self._pa.open(format=self._pyaudio.paInt16, channels=1,
                                       rate=self.sample_rate, output=True)
            except (IOError, OSError) as e:
                raise SynthesisFailure(f"Could not open speaker: {e}") from e
            try:
                step = self.chunk_samples * 2
                for offset in range(0, len(pcm16), step):
                    if stop_event.is_set():
                        logger.debug("Playback stopped")
                        break
                    stream.write(pcm16[offset:offset + step])
            finally:
                stream.stop_stream()
                stream.close()

    def close(self) -> None:
        with self._lock:
            if self._pa is not None:
                self._pa.terminate()
                self._pa = None
                logger.info("Speaker closed")


class GoogleTextToSpeech(TextToSpeech):
    """Google Cloud Text-to-Speech engine."""

    def __init__(self,
                 language_code: str = LANGUAGE_CODE,
                 default_voice: str = TTS_VOICE,
                 speaking_rate: float = SPEAKING_RATE,
                 speaker: Optional[SpeakerPlayback] = None,
                 client: Optional[texttospeech.TextToSpeechClient] = None):
        self.language_code = language_code
        self.default_voice = default_voice
        self.speaking_rate = speaking_rate
        self.speaker = speaker or SpeakerPlayback()
        self._client = client

    @property
    def client(self) -> texttospeech.TextToSpeechClient:
        if self._client is None:
            self._client = texttospeech.TextToSpeechClient()
        return self._client

    async def list_voices(self) -> List[str]:
        try:
            response = await asyncio.to_thread(self.client.list_voices, language_code=self.language_code)
        except google_exceptions.GoogleAPICallError as e:
            logger.warning(f"Listing TTS voices failed: {e}")
            return []
        return [voice.name for voice in response.voices]

    def _synthesize(self, text: str, voice: Optional[str]) -> bytes:
        voice_params = texttospeech.VoiceSelectionParams(
            language_code=self.language_code,
            name=voice or self.default_voice,
        )
        audio_config = texttospeech.AudioConfig(
            audio_encoding=texttospeech.AudioEncoding.LINEAR16,
            sample_rate_hertz=self.speaker.sample_rate,
            speaking_rate=self.speaking_rate,
        )
        try:
            response = self.client.synthesize_speech(
                input=texttospeech.SynthesisInput(text=text),
                voice=voice_params,
                audio_config=audio_config,
            )
        except google_exceptions.GoogleAPICallError as e:
            raise SynthesisFailure(f"Google TTS failed: {e}") from e
        # LINEAR16 responses carry a 44-byte WAV header
        return response.audio_content[44:]

    async def play(self, text: str, voice: Optional[str] = None) -> None:
        pcm16 = await asyncio.to_thread(self._synthesize, text, voice)
        stop_event = threading.Event()
        playback = asyncio.ensure_future(asyncio.to_thread(self.speaker.play, pcm16, stop_event))
        try:
            await asyncio.shield(playback)
        except asyncio.CancelledError:
            stop_event.set()
            # Wait for the device to go quiet before listening starts
            try:
                await playback
            except SynthesisFailure as e:
                logger.warning(f"Playback error after cancel: {e}")
            raise

    async def close(self) -> None:
        await asyncio.to_thread(self.speaker.close)
