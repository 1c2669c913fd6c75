"""
Service classes for the interview system.
"""
import asyncio
import logging
from typing import Optional

from ..config import COACHING_TIMEOUT
from ..infrastructure.llm import LLMClient
from .models import JobContext
from .prompts import InterviewPrompts
from .speech import normalize_for_speech

logger = logging.getLogger("services")


class CoachingService:
    """Produces spoken guidance when the candidate asks for help."""

    def __init__(self,
                 llm_client: Optional[LLMClient],
                 job: JobContext,
                 total_questions: int,
                 timeout: float = COACHING_TIMEOUT):
        self.llm_client = llm_client
        self.job = job
        self.total_questions = total_questions
        self.timeout = timeout
        self._fallbacks = InterviewPrompts.fallback_messages()["coaching"]
        self._fallback_index = 0

    def fallback_guidance(self) -> str:
        """Canned guidance, rotating so repeated requests don't sound identical."""
        message = self._fallbacks[self._fallback_index % len(self._fallbacks)]
        self._fallback_index += 1
        return message

    async def respond(self, question: str, request: str, question_index: int) -> str:
        """
        Generate a hint for the current question.

        Args:
            question: The question being answered
            request: What the candidate said when asking for help
            question_index: Zero-based index of the question

        Returns:
            Guidance text ready to be spoken. Never raises; falls back to a
            canned line when the model is unavailable or slow.
        """
        if self.llm_client is None:
            return self.fallback_guidance()

        prompt = InterviewPrompts.coaching_prompt(
            question=question,
            request=request or "The candidate pressed the help button.",
            job_position=self.job.job_title or "this",
            interview_type=self.job.interview_type,
            question_number=question_index + 1,
            total_questions=self.total_questions,
        )
        try:
            text = await asyncio.wait_for(
                asyncio.to_thread(self.llm_client.generate_content, prompt, 0.7, 256),
                self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Coaching request timed out after %.1fs", self.timeout)
            return self.fallback_guidance()
        except Exception as e:
            logger.warning(f"Coaching request failed: {e}")
            return self.fallback_guidance()

        guidance = normalize_for_speech(text)
        if not guidance:
            logger.warning("Coaching response was empty")
            return self.fallback_guidance()
        logger.info(f"Coaching guidance for question {question_index + 1}: {guidance}")
        return guidance
