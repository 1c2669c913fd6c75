"""
State machines and structured schemas for the interview system.
"""
from enum import Enum
from typing import Dict, Any, FrozenSet, List, Optional, Union

from ..infrastructure.llm.client import LLMError, extract_json_object
from .errors import InvalidTransitionError, ScoringError
from .models import FeedbackResult, Rating


class SessionState(str, Enum):
    """Lifecycle of an interview session."""
    NOT_STARTED = "not_started"
    AWAITING_QUESTION = "awaiting_question"
    SPEAKING = "speaking"
    LISTENING = "listening"
    PROCESSING = "processing"
    ENDING = "ending"
    COMPLETED = "completed"

    @property
    def phase(self) -> str:
        """Coarse phase: not_started, running, ending or completed."""
        if self is SessionState.NOT_STARTED:
            return "not_started"
        if self is SessionState.ENDING:
            return "ending"
        if self is SessionState.COMPLETED:
            return "completed"
        return "running"

    @property
    def running(self) -> bool:
        return self.phase == "running"


SESSION_TRANSITIONS: Dict[SessionState, FrozenSet[SessionState]] = {
    SessionState.NOT_STARTED: frozenset({SessionState.AWAITING_QUESTION, SessionState.COMPLETED}),
    SessionState.AWAITING_QUESTION: frozenset({SessionState.SPEAKING, SessionState.LISTENING,
                                               SessionState.ENDING}),
    SessionState.SPEAKING: frozenset({SessionState.LISTENING, SessionState.AWAITING_QUESTION,
                                      SessionState.PROCESSING, SessionState.ENDING}),
    SessionState.LISTENING: frozenset({SessionState.SPEAKING, SessionState.PROCESSING,
                                       SessionState.ENDING}),
    SessionState.PROCESSING: frozenset({SessionState.AWAITING_QUESTION, SessionState.ENDING}),
    SessionState.ENDING: frozenset({SessionState.COMPLETED}),
    SessionState.COMPLETED: frozenset(),
}


class TurnState(str, Enum):
    """What the turn controller is doing. Speaking and listening are exclusive."""
    IDLE = "idle"
    SPEAKING = "speaking"
    LISTENING = "listening"


TURN_TRANSITIONS: Dict[TurnState, FrozenSet[TurnState]] = {
    TurnState.IDLE: frozenset({TurnState.SPEAKING, TurnState.LISTENING}),
    TurnState.SPEAKING: frozenset({TurnState.LISTENING, TurnState.IDLE}),
    TurnState.LISTENING: frozenset({TurnState.SPEAKING, TurnState.IDLE}),
}


def check_transition(machine: str, table: Dict[Any, FrozenSet[Any]], current, target) -> None:
    """Raise InvalidTransitionError unless ``current -> target`` is in ``table``."""
    if target not in table.get(current, frozenset()):
        raise InvalidTransitionError(machine, current, target)


class UtteranceKind(str, Enum):
    """Classification of a candidate utterance."""
    ANSWER = "answer"
    HELP = "help"


def _number(value: Any, lo: float, hi: float) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip().rstrip("%"))
    except ValueError:
        return None
    return max(lo, min(hi, number))


def _lines(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [line.strip() for line in value.splitlines() if line.strip()]
    return [str(item).strip() for item in value if str(item).strip()]


def parse_feedback(raw_response: Union[str, Dict[str, Any]]) -> FeedbackResult:
    """
    Parse an LLM feedback response into a FeedbackResult.

    Accepts the ``{"feedback": {...}}`` envelope or a flat object, with or
    without surrounding markdown code fences.

    Args:
        raw_response: Raw text returned by the model, or its parsed JSON

    Returns:
        FeedbackResult with ``source="gateway"``

    Raises:
        ScoringError: If the response has no usable score
    """
    if isinstance(raw_response, dict):
        data = raw_response
    else:
        try:
            data = extract_json_object(raw_response)
        except LLMError as e:
            raise ScoringError(str(e)) from e
    body = data.get("feedback") if isinstance(data.get("feedback"), dict) else data

    rating_raw = body.get("rating") or {}
    if not isinstance(rating_raw, dict):
        rating_raw = {}
    rating = Rating(
        technical_skills=_number(rating_raw.get("technicalSkills"), 0, 10) or 0.0,
        communication=_number(rating_raw.get("communication"), 0, 10) or 0.0,
        problem_solving=_number(rating_raw.get("problemSolving"), 0, 10) or 0.0,
        experience=_number(rating_raw.get("experience"), 0, 10) or 0.0,
        total=_number(rating_raw.get("totalRating"), 0, 10) or 0.0,
    )

    overall = _number(body.get("overallScore"), 0, 100)
    if overall is None and "totalRating" in rating_raw:
        overall = rating.total * 10.0
    if overall is None:
        raise ScoringError(f"Feedback has no overall score: {body}")

    recommended = body.get("recommendation")
    if isinstance(recommended, str):
        recommended = recommended.strip().lower() in ("true", "yes", "y")

    return FeedbackResult(
        overall_score=round(overall, 1),
        rating=rating,
        summary=_lines(body.get("summary") or body.get("overallFeedback")),
        strengths=_lines(body.get("strengths")),
        improvements=_lines(body.get("areasForImprovement") or body.get("improvements")),
        recommended=bool(recommended),
        recommendation_message=str(body.get("recommendationMsg") or ""),
        match_score=_number(body.get("matchScore"), 0, 100),
        source="gateway",
        raw=data,
    )
