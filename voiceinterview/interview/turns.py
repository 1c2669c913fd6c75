"""
Turn-taking for a single interview question.

The TurnController speaks a prompt, listens for the answer, handles barge-in,
help requests and typed answers, and maps speech failures onto session faults.
Speaking and listening never overlap: output is always cancelled before a
capture starts.
"""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

from ..config import (
    HELP_KEYWORDS, MAX_HELP_REQUESTS, MAX_SYNTHESIS_ATTEMPTS, MAX_TURN_REPROMPTS,
)
from .analysis import estimate_confidence
from .errors import RecognitionError, SessionFault, SynthesisFailure
from .models import InputMethod
from .schemas import TurnState, TURN_TRANSITIONS, UtteranceKind, check_transition
from .services import CoachingService
from .speech import SpeechInput, SpeechOutput

logger = logging.getLogger("turn_controller")


class HelpClassifier(ABC):
    """Decides whether an utterance is an answer or a request for help."""

    @abstractmethod
    def classify(self, text: str) -> UtteranceKind:
        pass


class KeywordHelpClassifier(HelpClassifier):
    """Keyword matching on short utterances.

    Long utterances are treated as answers even when they contain a help
    phrase, since candidates often say "I'm not sure, but..." and then answer.
    """

    def __init__(self, keywords: Sequence[str] = HELP_KEYWORDS, max_words: int = 25):
        self.max_words = max_words
        escaped = sorted((re.escape(k.lower()) for k in keywords), key=len, reverse=True)
        self._pattern = re.compile(r"\b(?:" + "|".join(escaped) + r")\b")

    def classify(self, text: str) -> UtteranceKind:
        lowered = (text or "").lower().replace("’", "'")
        if not lowered.strip() or len(lowered.split()) > self.max_words:
            return UtteranceKind.ANSWER
        if self._pattern.search(lowered):
            return UtteranceKind.HELP
        return UtteranceKind.ANSWER


@dataclass
class TurnOutcome:
    """What one question produced."""
    text: str
    input_method: str = InputMethod.VOICE.value
    latency_seconds: Optional[float] = None
    confidence: Optional[float] = None
    help_requests: int = 0
    interrupted: bool = False
    fault: Optional[str] = None
    coaching: List[Tuple[str, str]] = field(default_factory=list)


class TurnController:
    """Runs speak -> listen for one question at a time."""

    def __init__(self,
                 output: SpeechOutput,
                 speech_input: SpeechInput,
                 coaching: Optional[CoachingService] = None,
                 classifier: Optional[HelpClassifier] = None,
                 speech_enabled: bool = True,
                 max_help_requests: int = MAX_HELP_REQUESTS,
                 max_synthesis_attempts: int = MAX_SYNTHESIS_ATTEMPTS,
                 max_reprompts: int = MAX_TURN_REPROMPTS,
                 on_state: Optional[Callable[[TurnState], None]] = None,
                 on_partial: Optional[Callable[[str], None]] = None,
                 on_interrupt: Optional[Callable[[], None]] = None,
                 on_text_fallback: Optional[Callable[[str], None]] = None,
                 on_fault: Optional[Callable[[SessionFault], None]] = None,
                 on_help: Optional[Callable[[int, str, str], None]] = None):
        self.output = output
        self.input = speech_input
        self.coaching = coaching
        self.classifier = classifier or KeywordHelpClassifier()
        self.speech_enabled = speech_enabled
        self.max_help_requests = max_help_requests
        self.max_synthesis_attempts = max_synthesis_attempts
        self.max_reprompts = max_reprompts

        self.on_state = on_state
        self.on_partial = on_partial
        self.on_interrupt = on_interrupt
        self.on_text_fallback = on_text_fallback
        self.on_fault = on_fault
        self.on_help = on_help

        self._state = TurnState.IDLE
        self._finish_requested = False
        self._help_requested = False
        self._typed_text: Optional[str] = None
        self._utterance_interrupted = False
        self._turn_interrupted = False
        self._first_activity: Optional[float] = None

    @property
    def state(self) -> TurnState:
        return self._state

    def _set_state(self, target: TurnState) -> None:
        if target == self._state:
            return
        check_transition("TurnController", TURN_TRANSITIONS, self._state, target)
        logger.debug(f"Turn state: {self._state.value} -> {target.value}")
        self._state = target
        if self.on_state is not None:
            try:
                self.on_state(target)
            except Exception as e:
                logger.error(f"Error in turn state callback: {e}")

    # ------------------------------------------------------------------
    # Controls (called from outside the turn loop)
    # ------------------------------------------------------------------

    def interrupt(self) -> bool:
        """Barge-in: stop the interviewer's speech so the candidate can talk."""
        if self._state != TurnState.SPEAKING or self._utterance_interrupted:
            return False
        if not self.output.interruptible:
            return False
        if not self.output.cancel():
            return False
        self._utterance_interrupted = True
        self._turn_interrupted = True
        logger.info("Speech interrupted by candidate")
        if self.on_interrupt is not None:
            try:
                self.on_interrupt()
            except Exception as e:
                logger.error(f"Error in interrupt callback: {e}")
        return True

    def request_help(self) -> bool:
        """Help button: run a coaching exchange before listening again."""
        if self._state == TurnState.IDLE or self._finish_requested:
            return False
        self._help_requested = True
        if self._state == TurnState.SPEAKING:
            self.output.cancel()
        else:
            self.input.request_stop()
        logger.info("Help requested")
        return True

    def submit_text(self, text: str) -> bool:
        """Use typed text as the answer to the current question."""
        text = (text or "").strip()
        if not text or self._state == TurnState.IDLE or self._finish_requested:
            return False
        self._typed_text = text
        if self._state == TurnState.SPEAKING:
            self.output.cancel()
        else:
            self.input.request_stop()
        logger.info("Typed answer submitted")
        return True

    def stop_listening(self) -> bool:
        """Finalize the current capture early (the "done answering" button)."""
        if self._state != TurnState.LISTENING:
            return False
        return self.input.request_stop()

    def finish_now(self) -> None:
        """End the in-flight turn immediately, keeping whatever was captured."""
        if self._state == TurnState.IDLE:
            return
        self._finish_requested = True
        self.output.cancel()
        self.input.request_stop()
        logger.info("Turn force-finished")

    # ------------------------------------------------------------------
    # Turn loop
    # ------------------------------------------------------------------

    async def run_turn(self, prompt: str, question_index: int) -> TurnOutcome:
        """
        Ask ``prompt`` and collect the candidate's answer.

        Returns:
            TurnOutcome with the answer text ("" if nothing was said)

        Raises:
            SessionFault: With ``fatal=True`` when speech input cannot work at all
        """
        if self._state != TurnState.IDLE:
            raise RuntimeError("A turn is already in progress")

        self._finish_requested = False
        self._help_requested = False
        self._typed_text = None
        self._turn_interrupted = False
        self._first_activity = None

        loop = asyncio.get_running_loop()
        captured: List[str] = []
        coaching: List[Tuple[str, str]] = []
        help_requests = 0
        reprompts = 0
        fault: Optional[str] = None
        latency: Optional[float] = None
        recognizer_confidence: Optional[float] = None
        to_speak = prompt

        try:
            while not self._finish_requested:
                await self._speak(to_speak)

                help_request: Optional[str] = None
                if self._typed_text is None and self._help_requested:
                    help_request = ""
                elif self._typed_text is None and not self._finish_requested:
                    # Never listen while speech is still playing
                    self.output.cancel()
                    self._set_state(TurnState.LISTENING)
                    listen_started = loop.time()
                    self._first_activity = None
                    try:
                        text = await self.input.listen(on_partial=self._handle_partial)
                    except RecognitionError as e:
                        if e.fatal:
                            logger.error(f"Fatal speech input error: {e}")
                            raise SessionFault(e.category.value, str(e), fatal=True, cause=e) from e
                        self._report_fault(SessionFault(e.category.value, str(e), fatal=False, cause=e))
                        if reprompts < self.max_reprompts and not self._finish_requested:
                            reprompts += 1
                            logger.info(f"Re-asking question {question_index + 1} after {e.category.value} error")
                            to_speak = prompt
                            continue
                        fault = e.category.value
                        break

                    if latency is None and self._first_activity is not None:
                        latency = round(self._first_activity - listen_started, 2)
                    if self.input.last_confidence is not None:
                        recognizer_confidence = self.input.last_confidence

                    if self._help_requested:
                        # Help button mid-answer: keep what was said so far
                        if text:
                            captured.append(text)
                        help_request = ""
                    elif (text and help_requests < self.max_help_requests
                          and self.classifier.classify(text) == UtteranceKind.HELP):
                        help_request = text
                    elif text:
                        captured.append(text)

                if self._typed_text is not None or self._finish_requested:
                    break

                if help_request is None:
                    break

                self._help_requested = False
                if help_requests >= self.max_help_requests:
                    logger.info(f"Help limit reached for question {question_index + 1}")
                    if help_request:
                        captured.append(help_request)
                    to_speak = None
                    continue

                help_requests += 1
                guidance = await self._guidance(prompt, help_request, question_index)
                coaching.append((help_request, guidance))
                if self.on_help is not None:
                    try:
                        self.on_help(question_index, help_request, guidance)
                    except Exception as e:
                        logger.error(f"Error in help callback: {e}")
                to_speak = guidance
        finally:
            if self._state != TurnState.IDLE:
                self._set_state(TurnState.IDLE)

        if self._typed_text is not None:
            text = self._typed_text
            return TurnOutcome(
                text=text,
                input_method=InputMethod.TEXT.value,
                help_requests=help_requests,
                interrupted=self._turn_interrupted,
                coaching=coaching,
            )

        text = " ".join(captured).strip()
        if text:
            fault = None
        return TurnOutcome(
            text=text,
            input_method=InputMethod.VOICE.value,
            latency_seconds=latency if text else None,
            confidence=estimate_confidence(text, latency, recognizer_confidence),
            help_requests=help_requests,
            interrupted=self._turn_interrupted,
            fault=fault,
            coaching=coaching,
        )

    async def _speak(self, text: Optional[str]) -> None:
        """Speak ``text``, retrying once, then fall back to showing it."""
        if not text or self._finish_requested or self._typed_text is not None:
            return
        self._set_state(TurnState.SPEAKING)
        self._utterance_interrupted = False

        if not self.speech_enabled:
            self._show_text(text)
            return

        for attempt in range(1, self.max_synthesis_attempts + 1):
            if self._finish_requested:
                return
            try:
                await self.output.speak(text, interruptible=True)
                return
            except ValueError as e:
                logger.warning(f"Nothing speakable in prompt: {e}")
                break
            except SynthesisFailure as e:
                logger.warning(f"Speech synthesis failed (attempt {attempt}/{self.max_synthesis_attempts}): {e}")
        self._show_text(text)

    def _show_text(self, text: str) -> None:
        logger.info("Showing prompt as text")
        if self.on_text_fallback is not None:
            try:
                self.on_text_fallback(text)
            except Exception as e:
                logger.error(f"Error in text fallback callback: {e}")

    async def _guidance(self, question: str, request: str, question_index: int) -> str:
        if self.coaching is None:
            return "Take a moment to think it through, and answer whenever you're ready."
        return await self.coaching.respond(question, request, question_index)

    def _handle_partial(self, text: str) -> None:
        if self._first_activity is None:
            self._first_activity = asyncio.get_running_loop().time()
        if self.on_partial is not None:
            try:
                self.on_partial(text)
            except Exception as e:
                logger.error(f"Error in partial transcript callback: {e}")

    def _report_fault(self, fault: SessionFault) -> None:
        logger.warning(f"Recoverable speech fault: {fault!r}")
        if self.on_fault is not None:
            try:
                self.on_fault(fault)
            except Exception as e:
                logger.error(f"Error in fault callback: {e}")
