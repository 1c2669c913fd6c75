"""
Console adapters for running an interview without audio devices.

Prompts are printed instead of spoken and answers are typed. Typed lines
are delivered through ``ConsoleTextInput``; the recognizer side stays
silent so listening only ends through a typed answer or a control command.
"""
import asyncio
import logging
import sys
from typing import AsyncIterator, Callable, List, Optional

from ....interview.speech import RecognitionEvent, SpeechToText, TextToSpeech

logger = logging.getLogger("speech_console")


class ConsoleTextToSpeech(TextToSpeech):
    """Prints what the interviewer would say."""

    def __init__(self, prefix: str = "🤖", stream=None):
        self.prefix = prefix
        self.stream = stream or sys.stdout

    async def list_voices(self) -> List[str]:
        return ["console"]

    async def play(self, text: str, voice: Optional[str] = None) -> None:
        print(f"{self.prefix} {text}", file=self.stream, flush=True)


class SilentSpeechToText(SpeechToText):
    """A recognizer that never hears anything."""

    async def stream(self) -> AsyncIterator[RecognitionEvent]:
        await asyncio.Event().wait()
        # Unreachable; makes this an async generator
        yield RecognitionEvent(text="", is_final=True)


class ConsoleTextInput:
    """Reads typed lines from stdin on the event loop and hands them to a callback."""

    def __init__(self, on_line: Callable[[str], None], stream=None):
        self.on_line = on_line
        self.stream = stream or sys.stdin
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._loop.add_reader(self.stream.fileno(), self._read)
        logger.debug("Console input started")

    def _read(self) -> None:
        line = self.stream.readline()
        if not line:
            # EOF: stop watching stdin
            self.close()
            return
        line = line.strip()
        if line:
            try:
                self.on_line(line)
            except Exception as e:
                logger.error(f"Error handling console input: {e}")

    def close(self) -> None:
        if self._loop is not None:
            self._loop.remove_reader(self.stream.fileno())
            self._loop = None
            logger.debug("Console input closed")
