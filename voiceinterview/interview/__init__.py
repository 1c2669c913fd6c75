"""Interview system components.

This module contains the business logic for conducting spoken interviews:
turn-taking, the session lifecycle, the time budget, scoring and the
interview-specific services.
"""

# Core session class
from .orchestrator import InterviewSession

# Turn-taking and speech
from .turns import TurnController, TurnOutcome, HelpClassifier, KeywordHelpClassifier
from .speech import (
    SpeechOutput, SpeechInput, TextToSpeech, SpeechToText,
    RecognitionEvent, normalize_for_speech
)
from .clock import SessionClock

# Data models
from .models import (
    Question, Turn, Transcript, TranscriptMessage, JobContext,
    SessionMetrics, Rating, FeedbackResult, InterviewResult,
    CompletionReason, InputMethod
)

# Structured schemas and state management
from .schemas import SessionState, TurnState, UtteranceKind, parse_feedback

# Errors
from .errors import (
    RecognitionErrorCategory, RecognitionError, PermissionDeniedError,
    DeviceUnsupportedError, TransientNetworkError, SynthesisFailure,
    SessionFault, InvalidTransitionError, TranscriptFrozenError, ScoringError
)

# Scoring and services
from .scoring import ScoringGateway, VertexScoringGateway, rule_based_feedback
from .services import CoachingService

# Event system
from .events import (
    InterviewEventBus, EventLogger, InterviewMetrics,
    EventType, InterviewEvent, SessionStartedEvent, StateChangedEvent,
    QuestionAskedEvent, SpeakingEvent, SpeechInterruptedEvent,
    PartialTranscriptEvent, HelpRequestedEvent, TextFallbackEvent,
    FaultRaisedEvent, TimeRemainingEvent, ClockExpiredEvent, TurnCompletedEvent,
    SessionCompletedEvent, FeedbackReadyEvent, ErrorOccurredEvent
)

__all__ = [
    # Session
    "InterviewSession",

    # Turn-taking and speech
    "TurnController", "TurnOutcome", "HelpClassifier", "KeywordHelpClassifier",
    "SpeechOutput", "SpeechInput", "TextToSpeech", "SpeechToText",
    "RecognitionEvent", "normalize_for_speech", "SessionClock",

    # Data models
    "Question", "Turn", "Transcript", "TranscriptMessage", "JobContext",
    "SessionMetrics", "Rating", "FeedbackResult", "InterviewResult",
    "CompletionReason", "InputMethod",

    # Schemas and state
    "SessionState", "TurnState", "UtteranceKind", "parse_feedback",

    # Errors
    "RecognitionErrorCategory", "RecognitionError", "PermissionDeniedError",
    "DeviceUnsupportedError", "TransientNetworkError", "SynthesisFailure",
    "SessionFault", "InvalidTransitionError", "TranscriptFrozenError", "ScoringError",

    # Scoring and services
    "ScoringGateway", "VertexScoringGateway", "rule_based_feedback", "CoachingService",

    # Events
    "InterviewEventBus", "EventLogger", "InterviewMetrics",
    "EventType", "InterviewEvent", "SessionStartedEvent", "StateChangedEvent",
    "QuestionAskedEvent", "SpeakingEvent", "SpeechInterruptedEvent",
    "PartialTranscriptEvent", "HelpRequestedEvent", "TextFallbackEvent",
    "FaultRaisedEvent", "TimeRemainingEvent", "ClockExpiredEvent", "TurnCompletedEvent",
    "SessionCompletedEvent", "FeedbackReadyEvent", "ErrorOccurredEvent",
]
