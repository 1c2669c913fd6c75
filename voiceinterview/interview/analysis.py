"""
Response analytics for interview turns.
Handles filler/hesitation detection, confidence estimates, and session metrics.
"""
import logging
import re
from typing import Dict, List, Optional, Any, Sequence

from .models import Turn, SessionMetrics

logger = logging.getLogger("interview_analysis")

FILLER_WORDS = {"um", "uh", "hmm", "er", "ah", "like", "basically", "actually"}
FILLER_PHRASES = ("you know", "i mean", "sort of", "kind of")

# Latency beyond this many seconds counts as hesitation
HESITATION_LATENCY = 1.5

_WORD_RE = re.compile(r"[a-zA-Z']+")


def count_words(text: str) -> int:
    return len(text.split()) if text else 0


def analyze_response(text: str, latency_seconds: Optional[float] = None) -> Dict[str, Any]:
    """Detect filler words and hesitation in a single response."""
    lowered = (text or "").lower()
    words = _WORD_RE.findall(lowered)
    fillers = sum(1 for w in words if w in FILLER_WORDS)
    fillers += sum(lowered.count(phrase) for phrase in FILLER_PHRASES)
    latency = latency_seconds or 0.0
    return {
        "word_count": len(words),
        "filler_count": fillers,
        "latency_seconds": round(latency, 2),
        "hesitation": latency > HESITATION_LATENCY or fillers > 0,
    }


def estimate_confidence(text: str, latency_seconds: Optional[float] = None,
                        recognizer_confidence: Optional[float] = None) -> Optional[float]:
    """
    Estimate how confidently a response was delivered, on a 0-100 scale.

    Starts from the recognizer's own confidence when the engine reports one,
    otherwise from answer length, then subtracts for fillers and slow starts.

    Returns:
        Estimated confidence, or None for an empty response
    """
    if not text or not text.strip():
        return None

    stats = analyze_response(text, latency_seconds)
    if recognizer_confidence is not None:
        base = max(0.0, min(1.0, recognizer_confidence))
    else:
        base = min(1.0, 0.5 + stats["word_count"] / 100.0)

    score = base * 10
    score -= stats["filler_count"] * 0.5
    score -= max(0.0, stats["latency_seconds"] - 1) * 0.7
    score = max(0.0, min(10.0, score))
    return round(score * 10, 1)


def compute_metrics(turns: Sequence[Turn], total_questions: int,
                    duration_seconds: float) -> SessionMetrics:
    """Aggregate per-turn analytics into session metrics."""
    completed = len(turns)
    answered = [t for t in turns if t.answered]
    latencies = [t.latency_seconds for t in answered if t.latency_seconds is not None]
    confidences = [t.confidence for t in answered if t.confidence is not None]

    completion_rate = (completed / total_questions * 100.0) if total_questions else 0.0

    metrics = SessionMetrics(
        questions_completed=completed,
        questions_answered=len(answered),
        total_questions=total_questions,
        completion_rate=round(completion_rate, 1),
        average_latency_seconds=round(sum(latencies) / len(latencies), 2) if latencies else None,
        average_confidence=round(sum(confidences) / len(confidences), 1) if confidences else None,
        help_requests=sum(t.help_requests for t in turns),
        actual_duration_seconds=round(max(0.0, duration_seconds), 1),
    )
    logger.debug(f"Computed metrics: {metrics}")
    return metrics


def response_analytics(turns: Sequence[Turn]) -> List[Dict[str, Any]]:
    """Per-question analytics included in the scoring payload."""
    rows = []
    for turn in turns:
        row = analyze_response(turn.response, turn.latency_seconds)
        row.update({
            "question_number": turn.question_index + 1,
            "question": turn.question,
            "response": turn.response,
            "answered": turn.answered,
            "input_method": turn.input_method,
            "confidence": turn.confidence,
            "help_requests": turn.help_requests,
        })
        rows.append(row)
    return rows
