"""
Data models for the interview system.
"""
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Dict, List, Any, Tuple, Union

from .errors import TranscriptFrozenError


def utc_timestamp() -> str:
    """ISO-8601 timestamp in UTC."""
    return datetime.now(timezone.utc).isoformat()


class CompletionReason(str, Enum):
    """Why an interview ended."""
    COMPLETED = "completed"
    USER_ENDED = "user_ended"
    TIME_UP = "time_up"
    FAULT = "fault"


class InputMethod(str, Enum):
    VOICE = "voice"
    TEXT = "text"


@dataclass(frozen=True)
class Question:
    """A single interview question."""
    text: str
    type: Optional[str] = None

    @classmethod
    def from_raw(cls, raw: Union[str, Dict[str, Any], 'Question']) -> 'Question':
        """Build a question from a string or a ``{"question"|"text", "type"}`` mapping."""
        if isinstance(raw, Question):
            return raw
        if isinstance(raw, str):
            text = raw
            qtype = None
        elif isinstance(raw, dict):
            text = raw.get("question") or raw.get("text") or ""
            qtype = raw.get("type")
        else:
            raise ValueError(f"Unsupported question format: {type(raw).__name__}")
        text = text.strip()
        if not text:
            raise ValueError("Question text cannot be empty")
        return cls(text=text, type=qtype)


@dataclass(frozen=True)
class Turn:
    """One scored question/answer exchange."""
    question_index: int
    question: str
    response: str
    timestamp: str
    input_method: str = InputMethod.VOICE.value
    latency_seconds: Optional[float] = None
    confidence: Optional[float] = None
    word_count: int = 0
    help_requests: int = 0
    interrupted: bool = False
    fault: Optional[str] = None

    @property
    def answered(self) -> bool:
        return bool(self.response.strip())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class TranscriptMessage:
    """A single utterance in the interview transcript."""
    role: str  # "assistant" | "candidate"
    content: str
    kind: str
    question_index: Optional[int] = None
    timestamp: str = field(default_factory=utc_timestamp)
    scored: bool = True


class Transcript:
    """Ordered record of everything said, plus the scored turns.

    Owned by the session. Once ``freeze()`` is called it cannot change.
    """

    def __init__(self):
        self._messages: List[TranscriptMessage] = []
        self._turns: List[Turn] = []
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def messages(self) -> Tuple[TranscriptMessage, ...]:
        return tuple(self._messages)

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return tuple(self._turns)

    def _check_open(self):
        if self._frozen:
            raise TranscriptFrozenError("Transcript is frozen")

    def add_message(self, role: str, content: str, kind: str,
                    question_index: Optional[int] = None, scored: bool = True) -> TranscriptMessage:
        self._check_open()
        message = TranscriptMessage(role=role, content=content, kind=kind,
                                    question_index=question_index, scored=scored)
        self._messages.append(message)
        return message

    def add_turn(self, turn: Turn) -> None:
        """Append a scored turn. Turns must arrive in question order."""
        self._check_open()
        if self._turns and turn.question_index <= self._turns[-1].question_index:
            raise ValueError(
                f"Turn {turn.question_index} recorded out of order after {self._turns[-1].question_index}"
            )
        self._turns.append(turn)

    def freeze(self) -> None:
        self._frozen = True

    def to_conversation(self, include_unscored: bool = False) -> Dict[str, List[Dict[str, str]]]:
        """Serialize as ``{"messages": [{"role": "assistant"|"user", "content": ...}]}``."""
        messages = []
        for message in self._messages:
            if not message.scored and not include_unscored:
                continue
            if not message.content:
                continue
            role = "assistant" if message.role == "assistant" else "user"
            messages.append({"role": role, "content": message.content})
        return {"messages": messages}

    def exchange_count(self) -> int:
        """Number of candidate utterances that carry content."""
        return sum(1 for m in self._messages if m.role == "candidate" and m.scored and m.content)

    def __len__(self) -> int:
        return len(self._messages)


@dataclass
class JobContext:
    """What the candidate is interviewing for."""
    job_title: str = ""
    job_description: str = ""
    required_skills: List[str] = field(default_factory=list)
    company_criteria: str = ""
    candidate_name: str = ""
    interview_type: str = "technical"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SessionMetrics:
    """Aggregate statistics for a finished interview."""
    questions_completed: int = 0
    questions_answered: int = 0
    total_questions: int = 0
    completion_rate: float = 0.0
    average_latency_seconds: Optional[float] = None
    average_confidence: Optional[float] = None
    help_requests: int = 0
    actual_duration_seconds: float = 0.0

    @property
    def actual_duration_minutes(self) -> int:
        return int(round(self.actual_duration_seconds / 60.0))

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["actual_duration_minutes"] = self.actual_duration_minutes
        return data


@dataclass
class Rating:
    technical_skills: float = 0.0
    communication: float = 0.0
    problem_solving: float = 0.0
    experience: float = 0.0
    total: float = 0.0


@dataclass
class FeedbackResult:
    """Scoring outcome, from the scoring service or the rule-based fallback."""
    overall_score: float
    rating: Rating = field(default_factory=Rating)
    summary: List[str] = field(default_factory=list)
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)
    recommended: bool = False
    recommendation_message: str = ""
    match_score: Optional[float] = None
    source: str = "gateway"
    raw: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("raw", None)
        return data


@dataclass
class InterviewResult:
    """Final interview results."""
    transcript: Transcript
    metrics: SessionMetrics
    feedback: Optional[FeedbackResult]
    completion_reason: CompletionReason
    fault: Optional[str] = None
    persisted: bool = False
    started_at: Optional[str] = None
    ended_at: Optional[str] = None

    @property
    def turns(self) -> Tuple[Turn, ...]:
        return self.transcript.turns

    def to_record(self, job: Optional[JobContext] = None) -> Dict[str, Any]:
        """Flatten into the dictionary handed to a result sink."""
        return {
            "completion_reason": self.completion_reason.value,
            "fault": self.fault,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "job": job.to_dict() if job else None,
            "metrics": self.metrics.to_dict(),
            "feedback": self.feedback.to_dict() if self.feedback else None,
            "turns": [t.to_dict() for t in self.transcript.turns],
            "conversation": self.transcript.to_conversation(include_unscored=True)["messages"],
        }
