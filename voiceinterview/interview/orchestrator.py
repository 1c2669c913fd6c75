"""
Interview session orchestrator.

Sequences the welcome, the question turns and the ending of one interview,
enforces the time budget, and hands the finished transcript to scoring and
storage. Everything runs on one asyncio event loop; every session state
change goes through ``_transition``.
"""
import asyncio
import logging
import time
import uuid
from typing import Optional, List, Dict, Any, Sequence, Union

from ..config import Config, SCORING_TIMEOUT, get_config
from ..infrastructure.data import ResultSink
from .analysis import compute_metrics, count_words, response_analytics
from .clock import SessionClock
from .errors import SessionFault, SynthesisFailure
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics,
    SessionStartedEvent, StateChangedEvent, QuestionAskedEvent, SpeakingEvent,
    SpeechInterruptedEvent, PartialTranscriptEvent, HelpRequestedEvent,
    TextFallbackEvent, FaultRaisedEvent, TimeRemainingEvent, ClockExpiredEvent, TurnCompletedEvent,
    SessionCompletedEvent, FeedbackReadyEvent, ErrorOccurredEvent,
)
from .models import (
    CompletionReason, FeedbackResult, InterviewResult, JobContext, Question,
    SessionMetrics, Transcript, Turn, utc_timestamp,
)
from .prompts import InterviewPrompts
from .schemas import SessionState, SESSION_TRANSITIONS, TurnState, check_transition
from .scoring import ScoringGateway, rule_based_feedback
from .services import CoachingService
from .speech import SpeechInput, SpeechOutput, SpeechToText, TextToSpeech
from .turns import HelpClassifier, TurnController

logger = logging.getLogger("orchestrator")


class InterviewSession:
    """
    One spoken interview, from welcome to stored feedback.

    Construction only wires components together; ``start()`` validates the
    inputs and runs the whole interview. The session also works as an async
    context manager, which guarantees the speech devices are released if the
    caller abandons it.
    """

    def __init__(self,
                 questions: Sequence[Union[str, Dict[str, Any], Question]],
                 tts: TextToSpeech,
                 stt: SpeechToText,
                 job: Optional[JobContext] = None,
                 scoring: Optional[ScoringGateway] = None,
                 result_sink: Optional[ResultSink] = None,
                 coaching: Optional[CoachingService] = None,
                 config: Optional[Config] = None,
                 event_bus: Optional[InterviewEventBus] = None,
                 classifier: Optional[HelpClassifier] = None,
                 scoring_timeout: float = SCORING_TIMEOUT,
                 session_id: Optional[str] = None):
        self.config = config or get_config()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self.job = job or JobContext(
            job_title=self.config.job_position,
            candidate_name=self.config.candidate_name,
            interview_type=self.config.interview_type,
        )
        self.scoring = scoring
        self.result_sink = result_sink
        self.scoring_timeout = scoring_timeout
        self.scoring_policy = self.config.get_scoring_policy()
        self._raw_questions = list(questions or [])

        # Initialize event system
        self.event_bus = event_bus or InterviewEventBus()
        self.event_logger = EventLogger()
        self.metrics = InterviewMetrics()
        self.event_bus.subscribe_all(self.event_logger.handle_event)
        self.event_bus.subscribe_all(self.metrics.handle_event)

        self.output = SpeechOutput(
            tts,
            language_code=self.config.language_code,
            preferred_voice=self.config.tts_voice,
            on_start=lambda text: self._emit(SpeakingEvent(self.session_id, time.time(), True, text)),
            on_end=lambda text: self._emit(SpeakingEvent(self.session_id, time.time(), False, text)),
        )
        self.input = SpeechInput(
            stt,
            silence_timeout=self.config.silence_timeout,
            no_speech_timeout=self.config.no_speech_timeout,
            max_listen_seconds=self.config.max_listen_seconds,
            network_restart_delay=self.config.network_restart_delay,
        )
        self.turns = TurnController(
            self.output,
            self.input,
            coaching=coaching,
            classifier=classifier,
            speech_enabled=self.config.enable_tts,
            max_help_requests=self.config.max_help_requests,
            on_state=self._on_turn_state,
            on_partial=self._on_partial,
            on_interrupt=self._on_interrupt,
            on_text_fallback=self._on_text_fallback,
            on_fault=self._on_fault,
            on_help=self._on_help,
        )

        self._state = SessionState.NOT_STARTED
        self._questions: tuple = ()
        self._transcript = Transcript()
        self._clock: Optional[SessionClock] = None
        self._current_index: Optional[int] = None
        self._early_end = False
        self._time_up = False
        self._fault: Optional[SessionFault] = None
        self._result: Optional[InterviewResult] = None
        self._started_at: Optional[str] = None
        self._task: Optional[asyncio.Task] = None
        self._done: Optional[asyncio.Future] = None
        self._devices_released = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def phase(self) -> str:
        return self._state.phase

    @property
    def current_question_index(self) -> Optional[int]:
        return self._current_index

    @property
    def remaining_seconds(self) -> float:
        if self._clock is None:
            return self.config.time_budget_seconds
        return self._clock.remaining

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    @property
    def questions(self) -> tuple:
        return self._questions

    @property
    def result(self) -> Optional[InterviewResult]:
        return self._result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "InterviewSession":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.abandon()

    async def start(self) -> Optional[InterviewResult]:
        """
        Run the interview to completion.

        Returns:
            InterviewResult with transcript, metrics and feedback

        Raises:
            ValueError: If there are no questions or the time budget is not positive
            RuntimeError: If the interview is already running
        """
        if self._state == SessionState.COMPLETED:
            if self._done is not None and not self._done.done():
                return await asyncio.shield(self._done)
            return self._result
        if self._state != SessionState.NOT_STARTED:
            raise RuntimeError("Interview is already running")

        questions = [Question.from_raw(q) for q in self._raw_questions]
        if not questions:
            raise ValueError("An interview needs at least one question")
        if self.config.max_questions and len(questions) > self.config.max_questions:
            questions = questions[:self.config.max_questions]
        budget = self.config.time_budget_seconds
        if budget <= 0:
            raise ValueError("Interview time budget must be positive")

        loop = asyncio.get_running_loop()
        self._questions = tuple(questions)
        self._task = asyncio.current_task()
        self._done = loop.create_future()
        self._clock = SessionClock(budget, on_expire=self._on_clock_expired,
                                   on_tick=self._on_clock_tick,
                                   tick_interval=self.config.clock_tick_seconds)
        self._started_at = utc_timestamp()

        self._transition(SessionState.AWAITING_QUESTION)
        self._clock.start()
        self._emit(SessionStartedEvent(self.session_id, time.time(), len(self._questions), budget))
        logger.info(f"Interview started: {len(self._questions)} questions, {budget:.0f}s budget")

        try:
            await self._welcome()
            await self._question_loop()
        except SessionFault as fault:
            logger.error(f"Interview fault: {fault!r}")
            self._on_fault(fault)
            self._fault = fault
        except asyncio.CancelledError:
            logger.warning("Interview cancelled; releasing devices")
            await self._teardown_abandoned()
            raise
        except Exception as e:
            logger.exception("Interview failed with error: %s", e)
            self._emit(ErrorOccurredEvent(self.session_id, time.time(), type(e).__name__, str(e), "orchestrator"))
            self._fault = SessionFault("internal", str(e), fatal=True, cause=e)

        try:
            return await self._end()
        except asyncio.CancelledError:
            logger.warning("Interview cancelled while ending; releasing devices")
            await self._teardown_abandoned()
            raise

    async def abandon(self) -> None:
        """Tear down a session the caller is walking away from."""
        if self._state == SessionState.COMPLETED:
            await self._release_devices()
            return
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            return
        await self._teardown_abandoned()

    # ------------------------------------------------------------------
    # Controls
    # ------------------------------------------------------------------

    def request_early_end(self) -> bool:
        """End after the in-flight turn. Never discards what was captured."""
        if not self._state.running:
            return False
        if not self._early_end:
            self._early_end = True
            logger.info("Early end requested")
        return True

    def interrupt_speech(self) -> bool:
        if not self._state.running:
            return False
        if self.turns.state != TurnState.IDLE:
            return self.turns.interrupt()
        # Welcome message
        if self.output.interruptible and self.output.cancel():
            self._on_interrupt()
            return True
        return False

    def request_help(self) -> bool:
        if not self._state.running:
            return False
        return self.turns.request_help()

    def submit_text(self, text: str) -> bool:
        if not self._state.running:
            return False
        return self.turns.submit_text(text)

    def stop_listening(self) -> bool:
        if not self._state.running:
            return False
        return self.turns.stop_listening()

    # ------------------------------------------------------------------
    # Interview flow
    # ------------------------------------------------------------------

    def _transition(self, target: SessionState) -> None:
        previous = self._state
        if previous == target:
            return
        check_transition("InterviewSession", SESSION_TRANSITIONS, previous, target)
        self._state = target
        logger.info(f"Session state: {previous.value} -> {target.value}")
        self._emit(StateChangedEvent(self.session_id, time.time(), previous.value, target.value))

    def _stop_requested(self) -> bool:
        return self._time_up or self._early_end or self._fault is not None

    async def _welcome(self) -> None:
        message = InterviewPrompts.welcome_message(
            candidate_name=self.job.candidate_name or "Candidate",
            interview_type=self.job.interview_type,
            job_position=self.job.job_title or "this",
            minutes=self.config.interview_minutes,
            question_count=len(self._questions),
        )
        self._transition(SessionState.SPEAKING)
        await self._say(message, "welcome")
        if self._state == SessionState.SPEAKING:
            self._transition(SessionState.AWAITING_QUESTION)

    async def _question_loop(self) -> None:
        total = len(self._questions)
        for index, question in enumerate(self._questions):
            if self._stop_requested():
                break

            self._current_index = index
            self._transcript.add_message("assistant", question.text, "question", question_index=index)
            self._emit(QuestionAskedEvent(self.session_id, time.time(), index, question.text, total))
            logger.info(f"Question {index + 1}/{total}: {question.text}")

            outcome = await self.turns.run_turn(question.text, index)

            self._transition(SessionState.PROCESSING)
            turn = Turn(
                question_index=index,
                question=question.text,
                response=outcome.text,
                timestamp=utc_timestamp(),
                input_method=outcome.input_method,
                latency_seconds=outcome.latency_seconds,
                confidence=outcome.confidence,
                word_count=count_words(outcome.text),
                help_requests=outcome.help_requests,
                interrupted=outcome.interrupted,
                fault=outcome.fault,
            )
            self._transcript.add_turn(turn)
            if outcome.text:
                self._transcript.add_message("candidate", outcome.text, "answer", question_index=index)
            self._emit(TurnCompletedEvent(
                self.session_id, time.time(), index, outcome.text, outcome.input_method,
                outcome.latency_seconds, outcome.confidence,
            ))
            logger.info(f"Answer {index + 1}: {outcome.text or '(no response)'}")
            self._transition(SessionState.AWAITING_QUESTION)

    def _completion_reason(self) -> CompletionReason:
        if self._fault is not None and self._fault.fatal:
            return CompletionReason.FAULT
        if self._time_up:
            return CompletionReason.TIME_UP
        if self._early_end:
            return CompletionReason.USER_ENDED
        return CompletionReason.COMPLETED

    async def _end(self) -> InterviewResult:
        reason = self._completion_reason()
        self._transition(SessionState.ENDING)
        logger.info(f"Interview ending: {reason.value}")

        name = self.job.candidate_name or "Candidate"
        if reason == CompletionReason.TIME_UP:
            await self._say(InterviewPrompts.time_up_message(name), "time_up", scored=False)
        elapsed = self._clock.elapsed if self._clock else 0.0
        goodbye = InterviewPrompts.goodbye_message(
            reason=reason.value,
            candidate_name=name,
            question_count=len(self._transcript.turns),
            total_questions=len(self._questions),
            actual_minutes=int(round(elapsed / 60.0)),
        )
        await self._say(goodbye, "goodbye", scored=False)

        self._transcript.freeze()
        self._clock.stop()
        await self._release_devices()

        metrics = compute_metrics(self._transcript.turns, len(self._questions), self._clock.elapsed)
        fault_name = self._fault.category if self._fault is not None else None
        self._transition(SessionState.COMPLETED)
        self._emit(SessionCompletedEvent(
            self.session_id, time.time(), reason.value,
            metrics.questions_completed, metrics.total_questions, fault_name,
        ))

        feedback = await self._score(metrics)
        result = InterviewResult(
            transcript=self._transcript,
            metrics=metrics,
            feedback=feedback,
            completion_reason=reason,
            fault=fault_name,
            started_at=self._started_at,
            ended_at=utc_timestamp(),
        )
        result.persisted = await self._persist(result)
        self._result = result
        self._emit(FeedbackReadyEvent(self.session_id, time.time(), feedback.overall_score,
                                      feedback.source, feedback.recommended))
        logger.info(f"Interview completed - reason={reason.value} score={feedback.overall_score} "
                    f"source={feedback.source} persisted={result.persisted}")
        if self._done is not None and not self._done.done():
            self._done.set_result(result)
        return result

    async def _teardown_abandoned(self) -> None:
        """Stop everything without scoring: the caller is gone."""
        if self._state != SessionState.COMPLETED:
            self.turns.finish_now()
            self.output.cancel()
            if not self._transcript.frozen:
                self._transcript.freeze()
            if self._clock is not None:
                self._clock.stop()
            await self._release_devices()
            if self._state not in (SessionState.NOT_STARTED, SessionState.ENDING):
                self._transition(SessionState.ENDING)
            self._transition(SessionState.COMPLETED)
        else:
            await self._release_devices()

        if self._result is None:
            # Cancelled before the result was built (possibly mid-scoring)
            elapsed = self._clock.elapsed if self._clock else 0.0
            self._result = InterviewResult(
                transcript=self._transcript,
                metrics=compute_metrics(self._transcript.turns, len(self._questions), elapsed),
                feedback=None,
                completion_reason=CompletionReason.USER_ENDED,
                started_at=self._started_at,
                ended_at=utc_timestamp(),
            )
            logger.info("Interview abandoned")
        if self._done is not None and not self._done.done():
            self._done.set_result(self._result)

    async def _release_devices(self) -> None:
        if self._devices_released:
            return
        self._devices_released = True
        await self.output.close()
        await self.input.close()
        logger.info("Speech devices released")

    async def _say(self, text: str, kind: str, scored: bool = True) -> None:
        """Speak a session message (welcome, time up, goodbye). Best effort."""
        self._transcript.add_message("assistant", text, kind, scored=scored)
        if not self.config.enable_tts:
            self._on_text_fallback(text)
            return
        for attempt in range(2):
            try:
                await self.output.speak(text, interruptible=True)
                return
            except SynthesisFailure as e:
                logger.warning(f"Could not speak {kind} message (attempt {attempt + 1}): {e}")
            except ValueError as e:
                logger.warning(f"Nothing to speak for {kind} message: {e}")
                break
        self._on_text_fallback(text)

    def _conversation_for_scoring(self) -> Dict[str, List[Dict[str, str]]]:
        conversation = self._transcript.to_conversation()
        if self._transcript.exchange_count() < self.scoring_policy.min_exchanges:
            greeting, acknowledgment = InterviewPrompts.fallback_messages()["padding"]
            conversation["messages"].extend([
                {"role": "assistant", "content": greeting},
                {"role": "user", "content": acknowledgment},
            ])
        return conversation

    async def _score(self, metrics: SessionMetrics) -> FeedbackResult:
        if self.scoring is None:
            logger.info("No scoring service configured; using rule-based feedback")
            return rule_based_feedback(metrics, self.scoring_policy)

        try:
            return await asyncio.wait_for(
                self.scoring.score(
                    self._conversation_for_scoring(),
                    self.job,
                    metrics,
                    response_analytics(self._transcript.turns),
                ),
                self.scoring_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Scoring timed out after {self.scoring_timeout:.0f}s; using rule-based feedback")
            self._emit(ErrorOccurredEvent(self.session_id, time.time(), "TimeoutError",
                                          "Scoring timed out", "scoring"))
        except Exception as e:
            logger.warning(f"Scoring failed: {e}; using rule-based feedback")
            self._emit(ErrorOccurredEvent(self.session_id, time.time(), type(e).__name__, str(e), "scoring"))
        return rule_based_feedback(metrics, self.scoring_policy)

    async def _persist(self, result: InterviewResult) -> bool:
        if self.result_sink is None:
            return False
        record = result.to_record(self.job)
        record["session_id"] = self.session_id
        try:
            await self.result_sink.save(record)
            return True
        except Exception as e:
            logger.error(f"Failed to save interview result: {e}")
            self._emit(ErrorOccurredEvent(self.session_id, time.time(), type(e).__name__, str(e), "result_sink"))
            return False

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _emit(self, event) -> None:
        self.event_bus.emit(event)

    def _on_turn_state(self, state: TurnState) -> None:
        if state == TurnState.SPEAKING:
            self._transition(SessionState.SPEAKING)
        elif state == TurnState.LISTENING:
            self._transition(SessionState.LISTENING)

    def _on_partial(self, text: str) -> None:
        self._emit(PartialTranscriptEvent(self.session_id, time.time(), self._current_index, text))

    def _on_interrupt(self) -> None:
        self._emit(SpeechInterruptedEvent(self.session_id, time.time(), self._current_index))

    def _on_text_fallback(self, text: str) -> None:
        self._emit(TextFallbackEvent(self.session_id, time.time(), text))

    def _on_fault(self, fault: SessionFault) -> None:
        self._emit(FaultRaisedEvent(self.session_id, time.time(), fault.category, str(fault), fault.fatal))

    def _on_help(self, question_index: int, request: str, guidance: str) -> None:
        if request:
            self._transcript.add_message("candidate", request, "help_request",
                                         question_index=question_index, scored=False)
        self._transcript.add_message("assistant", guidance, "coaching",
                                     question_index=question_index, scored=False)
        self._emit(HelpRequestedEvent(self.session_id, time.time(), question_index, request, guidance))

    def _on_clock_tick(self, remaining: float) -> None:
        self._emit(TimeRemainingEvent(self.session_id, time.time(), remaining))

    def _on_clock_expired(self) -> None:
        if not self._state.running:
            return
        self._time_up = True
        logger.info("Time is up; finishing the current turn")
        self._emit(ClockExpiredEvent(self.session_id, time.time(), self._clock.budget_seconds))
        self.turns.finish_now()
        # Welcome message still playing
        self.output.cancel()
