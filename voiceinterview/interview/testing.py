"""
Testing infrastructure with scripted engines and mock services for the interview system.
"""
import asyncio
from dataclasses import replace
from typing import Dict, Any, List, Optional, Sequence, Union

from ..config import Config
from ..infrastructure.data import ResultSink
from ..infrastructure.llm import LLMClient
from .errors import RecognitionError
from .models import FeedbackResult, JobContext, Rating, SessionMetrics
from .scoring import ScoringGateway
from .speech import RecognitionEvent, SpeechToText, TextToSpeech

# Script step: recognizer goes quiet until the stream is closed
HOLD = object()


def interim(text: str) -> RecognitionEvent:
    return RecognitionEvent(text=text, is_final=False)


def final(text: str, confidence: Optional[float] = None) -> RecognitionEvent:
    return RecognitionEvent(text=text, is_final=True, confidence=confidence)


def say(text: str, confidence: Optional[float] = 0.9) -> List[Any]:
    """Interim result for the first word, then the final text."""
    first = text.split()[0] if text.split() else text
    return [interim(first), final(text, confidence)]


class ScriptedTextToSpeech(TextToSpeech):
    """Records what would have been spoken.

    Args:
        voice_lists: Voice lists returned by successive ``list_voices`` calls;
            the last one repeats
        speak_seconds: How long each playback takes
        fail_times: Number of initial ``play`` calls that raise
        hold: Playback never finishes on its own (for barge-in tests)
    """

    def __init__(self,
                 voice_lists: Optional[Sequence[List[str]]] = None,
                 speak_seconds: float = 0.0,
                 fail_times: int = 0,
                 hold: bool = False):
        self.voice_lists = list(voice_lists) if voice_lists is not None else [["en-US-Neural2-F"]]
        self.speak_seconds = speak_seconds
        self.fail_times = fail_times
        self.hold = hold

        self.spoken: List[str] = []
        self.voices_used: List[Optional[str]] = []
        self.cancelled: List[str] = []
        self.list_calls = 0
        self.play_calls = 0
        self.closed = False
        self.started = asyncio.Event()

    async def list_voices(self) -> List[str]:
        index = min(self.list_calls, len(self.voice_lists) - 1)
        self.list_calls += 1
        return list(self.voice_lists[index]) if self.voice_lists else []

    async def play(self, text: str, voice: Optional[str] = None) -> None:
        self.play_calls += 1
        if self.play_calls <= self.fail_times:
            raise RuntimeError("synthesis engine error")
        self.spoken.append(text)
        self.voices_used.append(voice)
        self.started.set()
        try:
            if self.hold:
                await asyncio.Event().wait()
            elif self.speak_seconds:
                await asyncio.sleep(self.speak_seconds)
        except asyncio.CancelledError:
            self.cancelled.append(text)
            raise
        finally:
            self.started.clear()

    async def close(self) -> None:
        self.closed = True


class ScriptedSpeechToText(SpeechToText):
    """Replays one scripted utterance per ``stream()`` call.

    Each utterance is a list of steps: a ``RecognitionEvent`` is yielded, a
    number sleeps that many seconds, a ``RecognitionError`` is raised, and
    ``HOLD`` waits until the stream is closed. After the steps run out the
    stream stays silent, so the listener's silence window decides when the
    answer is over. Once every utterance is used up, further streams are silent.
    """

    def __init__(self, utterances: Optional[Sequence[Sequence[Any]]] = None, end_streams: bool = False):
        self.utterances = [list(u) for u in (utterances or [])]
        self.end_streams = end_streams
        self.streams_started = 0
        self.streams_closed = 0
        self.closed = False

    async def stream(self):
        index = self.streams_started
        self.streams_started += 1
        steps = self.utterances[index] if index < len(self.utterances) else []
        try:
            for step in steps:
                if step is HOLD:
                    await asyncio.Event().wait()
                elif isinstance(step, (int, float)):
                    await asyncio.sleep(step)
                elif isinstance(step, RecognitionError):
                    raise step
                else:
                    yield step
            if not self.end_streams:
                await asyncio.Event().wait()
        finally:
            self.streams_closed += 1

    async def close(self) -> None:
        self.closed = True


class MockScoringGateway(ScoringGateway):
    """Scoring gateway that returns a canned result, fails, or stalls."""

    def __init__(self,
                 result: Optional[FeedbackResult] = None,
                 error: Optional[Exception] = None,
                 delay: float = 0.0):
        self.result = result or FeedbackResult(
            overall_score=82.0,
            rating=Rating(technical_skills=8, communication=8, problem_solving=8, experience=8, total=8),
            summary=["Clear and structured answers."],
            strengths=["Communication"],
            improvements=["More concrete examples"],
            recommended=True,
            recommendation_message="Recommended for the next round.",
            source="gateway",
        )
        self.error = error
        self.delay = delay
        self.calls: List[Dict[str, Any]] = []

    async def score(self, conversation, job, metrics, response_analytics=None) -> FeedbackResult:
        self.calls.append({
            "conversation": conversation,
            "job": job,
            "metrics": metrics,
            "response_analytics": response_analytics,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


class InMemoryResultSink(ResultSink):
    """Keeps saved records in a list; optionally fails every save."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.records: List[Dict[str, Any]] = []
        self.attempts = 0

    async def save(self, record: Dict[str, Any]) -> Optional[str]:
        self.attempts += 1
        if self.fail:
            raise OSError("result store unavailable")
        self.records.append(record)
        return str(len(self.records))


class MockLLMClient(LLMClient):
    """Mock LLM client for testing."""

    def __init__(self, mock_responses: List[Union[str, Exception]]):
        self.mock_responses = mock_responses
        self.current_response_idx = 0
        self.request_history: List[Dict[str, Any]] = []

    def generate_content(self, prompt_text: str, temperature: float = 0.0, max_output_tokens: int = 2048) -> str:
        """Return the next scripted response."""
        self.request_history.append({
            "prompt": prompt_text,
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        })
        if self.current_response_idx >= len(self.mock_responses):
            raise RuntimeError("No more mock LLM responses")
        response = self.mock_responses[self.current_response_idx]
        self.current_response_idx += 1
        if isinstance(response, Exception):
            raise response
        return response


def create_test_config(**overrides) -> Config:
    """Config with short timeouts so interviews run in well under a second."""
    config = Config(
        google_cloud_project=None,
        interview_minutes=1,
        max_questions=5,
        candidate_name="Alex",
        job_position="Backend Engineer",
        results_dir="./_test_interviews",
        silence_timeout=0.05,
        no_speech_timeout=0.3,
        max_listen_seconds=2.0,
        max_help_requests=2,
        network_restart_delay=0.01,
    )
    return replace(config, **overrides)


def create_test_job() -> JobContext:
    return JobContext(
        job_title="Backend Engineer",
        job_description="Build and operate Python services.",
        required_skills=["Python", "SQL", "Distributed systems"],
        company_criteria="Clear communication and ownership",
        candidate_name="Alex",
        interview_type="technical",
    )


def create_test_metrics(answered: int, total: int = 5, completed: Optional[int] = None) -> SessionMetrics:
    completed = answered if completed is None else completed
    return SessionMetrics(
        questions_completed=completed,
        questions_answered=answered,
        total_questions=total,
        completion_rate=(completed / total * 100.0) if total else 0.0,
        actual_duration_seconds=600.0,
    )
