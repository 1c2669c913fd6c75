"""
voiceinterview: a spoken AI interview engine.

Conducts a timed interview over speech: the interviewer speaks each question,
listens for the candidate's answer, handles barge-in and help requests, and
scores the finished transcript.
"""

__version__ = "1.0.0"

# Main entry points
from .interview.orchestrator import InterviewSession
from .interview.models import Turn, InterviewResult, FeedbackResult

__all__ = ["InterviewSession", "Turn", "InterviewResult", "FeedbackResult"]
