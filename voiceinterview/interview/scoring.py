"""
Scoring of finished interviews.

``ScoringGateway`` is the seam to whatever grades a transcript. The Vertex
implementation asks Gemini for structured feedback; ``rule_based_feedback``
produces a deterministic result from session metrics when the gateway fails.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional

from ..config import ScoringPolicy
from ..infrastructure.llm import LLMClient
from .errors import ScoringError
from .models import FeedbackResult, JobContext, Rating, SessionMetrics
from .prompts import InterviewPrompts, PromptFormatter
from .schemas import parse_feedback

logger = logging.getLogger("scoring")


class ScoringGateway(ABC):
    """Turns a finished conversation into feedback."""

    @abstractmethod
    async def score(self,
                    conversation: Dict[str, Any],
                    job: JobContext,
                    metrics: SessionMetrics,
                    response_analytics: Optional[List[Dict[str, Any]]] = None) -> FeedbackResult:
        """
        Score an interview.

        Raises:
            ScoringError: If no usable feedback could be produced
        """


class VertexScoringGateway(ScoringGateway):
    """Scores interviews with a Gemini model on Vertex AI."""

    def __init__(self, llm_client: LLMClient):
        self.llm_client = llm_client

    def build_prompt(self, conversation: Dict[str, Any], job: JobContext,
                     metrics: SessionMetrics,
                     response_analytics: Optional[List[Dict[str, Any]]] = None) -> str:
        interview_metrics = {
            "questionsCompleted": metrics.questions_completed,
            "questionsAnswered": metrics.questions_answered,
            "totalQuestions": metrics.total_questions,
            "actualDuration": metrics.actual_duration_minutes,
            "completionRate": metrics.completion_rate,
            "averageResponseTime": metrics.average_latency_seconds,
            "averageConfidence": metrics.average_confidence,
            "helpRequests": metrics.help_requests,
        }
        return InterviewPrompts.feedback_prompt(
            conversation=conversation,
            job_title=job.job_title or "Job Position",
            job_description=job.job_description or "A professional role requiring strong skills.",
            required_skills=PromptFormatter.format_skills(job.required_skills),
            company_criteria=job.company_criteria or "Looking for qualified candidates",
            interview_metrics=interview_metrics,
            response_analytics=response_analytics or [],
        )

    async def score(self, conversation, job, metrics, response_analytics=None) -> FeedbackResult:
        prompt = self.build_prompt(conversation, job, metrics, response_analytics)
        logger.info("Requesting interview feedback from LLM...")
        try:
            data = await asyncio.to_thread(self.llm_client.generate_json, prompt)
        except Exception as e:
            raise ScoringError(f"LLM scoring request failed: {e}") from e
        feedback = parse_feedback(data)
        logger.info(f"LLM feedback received: overall score {feedback.overall_score}")
        return feedback


def _interpolate(low: float, high: float, fraction: float) -> float:
    fraction = max(0.0, min(1.0, fraction))
    return low + (high - low) * fraction


def rule_based_feedback(metrics: SessionMetrics, policy: Optional[ScoringPolicy] = None) -> FeedbackResult:
    """
    Deterministic feedback from session metrics.

    The band is chosen by the number of answered questions; the score
    moves within the band with the completion rate.

    Args:
        metrics: Metrics of the finished session
        policy: Score bands and recommendation threshold

    Returns:
        FeedbackResult with ``source="fallback"``
    """
    policy = policy or ScoringPolicy()
    answered = metrics.questions_answered
    band = policy.band_for(answered)
    score = round(_interpolate(band.score_low, band.score_high, metrics.completion_rate / 100.0), 1)

    if answered == 0:
        summary = ["Interview was too short to provide detailed feedback."]
        strengths = ["Participated in the interview"]
        improvements = ["Complete more questions for better assessment"]
    else:
        summary = [
            f"The candidate answered {answered} of {metrics.total_questions} questions.",
            f"Completion rate was {metrics.completion_rate:.0f}% over {metrics.actual_duration_minutes} minutes.",
            "Detailed AI feedback was unavailable, so this score is based on participation only.",
        ]
        strengths = ["Engaged with the interview questions"]
        if metrics.average_confidence is not None and metrics.average_confidence >= 70:
            strengths.append("Spoke with confidence")
        improvements = []
        if answered < metrics.total_questions:
            improvements.append("Answer every question, even briefly, to show your reasoning")
        if metrics.average_latency_seconds is not None and metrics.average_latency_seconds > 10:
            improvements.append("Start answering sooner; long pauses read as lack of preparation")
        if not improvements:
            improvements.append("Practice structuring answers with concrete examples")

    recommended = score >= policy.recommend_threshold
    total = round(score / 10.0, 1)
    logger.info(f"Rule-based feedback: band={band.label} score={score}")
    return FeedbackResult(
        overall_score=score,
        rating=Rating(total=total),
        summary=summary,
        strengths=strengths,
        improvements=improvements,
        recommended=recommended,
        recommendation_message=(
            "Recommended for the next round based on participation."
            if recommended else "Practice more interview questions before the next attempt."
        ),
        source="fallback",
    )
