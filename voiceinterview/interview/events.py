"""
Event-driven architecture for the interview system.
"""
import logging
from abc import ABC
from typing import Dict, Any, List, Callable, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger("events")


class EventType(str, Enum):
    """Types of interview events."""
    SESSION_STARTED = "session_started"
    STATE_CHANGED = "state_changed"
    QUESTION_ASKED = "question_asked"
    SPEAKING_STARTED = "speaking_started"
    SPEAKING_ENDED = "speaking_ended"
    SPEECH_INTERRUPTED = "speech_interrupted"
    PARTIAL_TRANSCRIPT = "partial_transcript"
    HELP_REQUESTED = "help_requested"
    TEXT_FALLBACK = "text_fallback"
    FAULT_RAISED = "fault_raised"
    TIME_REMAINING = "time_remaining"
    CLOCK_EXPIRED = "clock_expired"
    TURN_COMPLETED = "turn_completed"
    SESSION_COMPLETED = "session_completed"
    FEEDBACK_READY = "feedback_ready"
    ERROR_OCCURRED = "error_occurred"


@dataclass
class InterviewEvent(ABC):
    """Base class for all interview events."""
    event_type: EventType
    session_id: str
    timestamp: float
    data: Dict[str, Any]


@dataclass
class SessionStartedEvent(InterviewEvent):
    """Event fired when the interview begins."""
    def __init__(self, session_id: str, timestamp: float, total_questions: int, budget_seconds: float):
        super().__init__(
            event_type=EventType.SESSION_STARTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"total_questions": total_questions, "budget_seconds": budget_seconds}
        )


@dataclass
class StateChangedEvent(InterviewEvent):
    """Event fired on every session state transition."""
    def __init__(self, session_id: str, timestamp: float, previous: str, current: str):
        super().__init__(
            event_type=EventType.STATE_CHANGED,
            session_id=session_id,
            timestamp=timestamp,
            data={"previous": previous, "current": current}
        )


@dataclass
class QuestionAskedEvent(InterviewEvent):
    """Event fired when a question turn begins."""
    def __init__(self, session_id: str, timestamp: float, question_index: int,
                 question: str, total_questions: int):
        super().__init__(
            event_type=EventType.QUESTION_ASKED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "question_index": question_index,
                "question": question,
                "total_questions": total_questions
            }
        )


@dataclass
class SpeakingEvent(InterviewEvent):
    """Event fired when the interviewer starts or stops speaking."""
    def __init__(self, session_id: str, timestamp: float, started: bool, text: str):
        super().__init__(
            event_type=EventType.SPEAKING_STARTED if started else EventType.SPEAKING_ENDED,
            session_id=session_id,
            timestamp=timestamp,
            data={"text": text}
        )


@dataclass
class SpeechInterruptedEvent(InterviewEvent):
    """Event fired when the candidate barges in."""
    def __init__(self, session_id: str, timestamp: float, question_index: Optional[int]):
        super().__init__(
            event_type=EventType.SPEECH_INTERRUPTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"question_index": question_index}
        )


@dataclass
class PartialTranscriptEvent(InterviewEvent):
    """Event fired with the running transcript while listening."""
    def __init__(self, session_id: str, timestamp: float, question_index: Optional[int], text: str):
        super().__init__(
            event_type=EventType.PARTIAL_TRANSCRIPT,
            session_id=session_id,
            timestamp=timestamp,
            data={"question_index": question_index, "text": text}
        )


@dataclass
class HelpRequestedEvent(InterviewEvent):
    """Event fired when a coaching exchange happens."""
    def __init__(self, session_id: str, timestamp: float, question_index: int,
                 request: str, guidance: str):
        super().__init__(
            event_type=EventType.HELP_REQUESTED,
            session_id=session_id,
            timestamp=timestamp,
            data={"question_index": question_index, "request": request, "guidance": guidance}
        )


@dataclass
class TextFallbackEvent(InterviewEvent):
    """Event fired when a prompt is shown as text instead of spoken."""
    def __init__(self, session_id: str, timestamp: float, text: str):
        super().__init__(
            event_type=EventType.TEXT_FALLBACK,
            session_id=session_id,
            timestamp=timestamp,
            data={"text": text}
        )


@dataclass
class FaultRaisedEvent(InterviewEvent):
    """Event fired when speech input reports a fault."""
    def __init__(self, session_id: str, timestamp: float, category: str,
                 message: str, fatal: bool):
        super().__init__(
            event_type=EventType.FAULT_RAISED,
            session_id=session_id,
            timestamp=timestamp,
            data={"category": category, "message": message, "fatal": fatal}
        )


@dataclass
class TimeRemainingEvent(InterviewEvent):
    """Event fired on every clock tick, for countdown displays."""
    def __init__(self, session_id: str, timestamp: float, remaining_seconds: float):
        super().__init__(
            event_type=EventType.TIME_REMAINING,
            session_id=session_id,
            timestamp=timestamp,
            data={"remaining_seconds": round(remaining_seconds, 1)}
        )


@dataclass
class ClockExpiredEvent(InterviewEvent):
    """Event fired when the time budget runs out."""
    def __init__(self, session_id: str, timestamp: float, budget_seconds: float):
        super().__init__(
            event_type=EventType.CLOCK_EXPIRED,
            session_id=session_id,
            timestamp=timestamp,
            data={"budget_seconds": budget_seconds}
        )


@dataclass
class TurnCompletedEvent(InterviewEvent):
    """Event fired when a question has been answered (or skipped)."""
    def __init__(self, session_id: str, timestamp: float, question_index: int,
                 response: str, input_method: str, latency_seconds: Optional[float],
                 confidence: Optional[float]):
        super().__init__(
            event_type=EventType.TURN_COMPLETED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "question_index": question_index,
                "response": response,
                "input_method": input_method,
                "latency_seconds": latency_seconds,
                "confidence": confidence
            }
        )


@dataclass
class SessionCompletedEvent(InterviewEvent):
    """Event fired when the session reaches its terminal state."""
    def __init__(self, session_id: str, timestamp: float, completion_reason: str,
                 questions_completed: int, total_questions: int, fault: Optional[str]):
        super().__init__(
            event_type=EventType.SESSION_COMPLETED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "completion_reason": completion_reason,
                "questions_completed": questions_completed,
                "total_questions": total_questions,
                "fault": fault
            }
        )


@dataclass
class FeedbackReadyEvent(InterviewEvent):
    """Event fired once feedback is available."""
    def __init__(self, session_id: str, timestamp: float, overall_score: float,
                 source: str, recommended: bool):
        super().__init__(
            event_type=EventType.FEEDBACK_READY,
            session_id=session_id,
            timestamp=timestamp,
            data={"overall_score": overall_score, "source": source, "recommended": recommended}
        )


@dataclass
class ErrorOccurredEvent(InterviewEvent):
    """Event fired when an error occurs."""
    def __init__(self, session_id: str, timestamp: float, error_type: str,
                 error_message: str, component: str):
        super().__init__(
            event_type=EventType.ERROR_OCCURRED,
            session_id=session_id,
            timestamp=timestamp,
            data={
                "error_type": error_type,
                "error_message": error_message,
                "component": component
            }
        )


EventHandler = Callable[[InterviewEvent], None]


class InterviewEventBus:
    """Event bus for interview system communication."""

    def __init__(self):
        self._handlers: Dict[EventType, List[EventHandler]] = {}
        self._global_handlers: List[EventHandler] = []

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Subscribe to specific event type.

        Args:
            event_type: Type of event to listen for
            handler: Function to call when event occurs
        """
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug(f"Subscribed handler to {event_type}")

    def subscribe_all(self, handler: EventHandler) -> None:
        """
        Subscribe to all events.

        Args:
            handler: Function to call for any event
        """
        self._global_handlers.append(handler)
        logger.debug("Subscribed global handler")

    def unsubscribe(self, event_type: EventType, handler: EventHandler) -> None:
        """
        Unsubscribe from specific event type.

        Args:
            event_type: Type of event to stop listening for
            handler: Handler function to remove
        """
        if event_type in self._handlers:
            try:
                self._handlers[event_type].remove(handler)
                logger.debug(f"Unsubscribed handler from {event_type}")
            except ValueError:
                logger.warning(f"Handler not found for {event_type}")

    def emit(self, event: InterviewEvent) -> None:
        """
        Emit an event to all subscribers. Handler errors are logged, never raised.

        Args:
            event: Event to emit
        """
        logger.debug(f"Emitting event: {event.event_type} for session {event.session_id}")

        for handler in list(self._handlers.get(event.event_type, [])):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.event_type}: {e}")

        for handler in list(self._global_handlers):
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in global event handler: {e}")

    def clear_handlers(self) -> None:
        """Clear all event handlers."""
        self._handlers.clear()
        self._global_handlers.clear()
        logger.debug("Cleared all event handlers")


class EventLogger:
    """Logs all events for debugging and analysis."""

    # High-frequency events go to DEBUG
    _VERBOSE = {EventType.PARTIAL_TRANSCRIPT, EventType.STATE_CHANGED, EventType.TIME_REMAINING}

    def __init__(self, log_level: int = logging.INFO):
        self.logger = logging.getLogger("event_logger")
        self.log_level = log_level

    def handle_event(self, event: InterviewEvent) -> None:
        """Log event details."""
        level = logging.DEBUG if event.event_type in self._VERBOSE else self.log_level
        self.logger.log(level, f"Event: {event.event_type.value} | Session: {event.session_id} | Data: {event.data}")


class InterviewMetrics:
    """Collects counters from interview events."""

    _COUNTED = {
        EventType.SESSION_STARTED: "sessions_started",
        EventType.SESSION_COMPLETED: "sessions_completed",
        EventType.TURN_COMPLETED: "total_turns",
        EventType.SPEECH_INTERRUPTED: "interruptions",
        EventType.HELP_REQUESTED: "help_requests",
        EventType.TEXT_FALLBACK: "text_fallbacks",
        EventType.FAULT_RAISED: "faults",
        EventType.CLOCK_EXPIRED: "time_ups",
        EventType.ERROR_OCCURRED: "errors_occurred",
    }

    def __init__(self):
        self.reset()

    def handle_event(self, event: InterviewEvent) -> None:
        """Update metrics based on event."""
        name = self._COUNTED.get(event.event_type)
        if name is not None:
            self._counts[name] += 1

    def get_metrics(self) -> Dict[str, int]:
        """Get current metrics snapshot."""
        return dict(self._counts)

    def reset(self) -> None:
        """Reset all metrics to zero."""
        self._counts: Dict[str, int] = {name: 0 for name in self._COUNTED.values()}
