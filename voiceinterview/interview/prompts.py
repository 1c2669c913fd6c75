"""
Interview prompt templates and spoken messages.

This module contains all the prompt templates and spoken scripts used throughout
the interview system, keeping them separate from the business logic for easier
maintenance and editing.
"""

from typing import Dict, Any, List, Optional
import json


class InterviewPrompts:
    """Collection of all interview-related prompts."""

    @staticmethod
    def feedback_prompt(
        conversation: Dict[str, Any],
        job_title: str,
        job_description: str,
        required_skills: str,
        company_criteria: str,
        interview_metrics: Dict[str, Any],
        response_analytics: List[Dict[str, Any]]
    ) -> str:
        """Prompt for scoring a finished interview."""
        return f"""
{json.dumps(conversation, ensure_ascii=False)}
Depends on this Interview Conversation between assistant and user,
Give me feedback for user interview.

Job Title: {job_title}
Job Description: {job_description}
Required Skills: {required_skills}
Company Criteria: {company_criteria}

Interview metrics: {json.dumps(interview_metrics, ensure_ascii=False)}
Response analytics: {json.dumps(response_analytics, ensure_ascii=False)}

Give me rating out of 10 for technical Skills,
Communication, Problem Solving, Experience. Also give me summary in 3 lines
about the interview and one line to let me know whether the candidate is recommended
for hire or not with a message. Give an overall score out of 100 that accounts
for how many questions were actually answered.

Pay special attention to how well the candidate meets the company's specific criteria.
Unanswered questions, voice confidence below 70 and response times over 10 seconds
all indicate weaker performance.

Give me response in JSON format
{{
    "feedback": {{
        "rating": {{
            "technicalSkills": <0-10>,
            "communication": <0-10>,
            "problemSolving": <0-10>,
            "experience": <0-10>,
            "totalRating": <0-10>
        }},
        "overallScore": <0-100>,
        "summary": [<3 lines as array>],
        "strengths": [<up to 3 items>],
        "areasForImprovement": [<up to 3 items>],
        "recommendation": true|false,
        "recommendationMsg": "<one line message>",
        "matchScore": <percentage match with company criteria>
    }}
}}

Respond ONLY with JSON (no code fences).
        """.strip()

    @staticmethod
    def coaching_prompt(question: str, request: str, job_position: str,
                        interview_type: str, question_number: int, total_questions: int) -> str:
        """Prompt for a spoken hint when the candidate asks for help."""
        return f"""
The candidate is asking for help during a {interview_type} interview for the {job_position} position.
Be supportive and provide guidance.

Current question ({question_number} of {total_questions}): "{question}"
Candidate's help request: "{request}"

IMPORTANT: Your response will be read aloud by text-to-speech, so:
- DO NOT use markdown formatting (**, *, #, etc.)
- DO NOT use special characters or symbols
- Write in plain, spoken English only

Provide helpful guidance:
- Give a hint or direction without giving away the full answer
- Be encouraging and supportive
- Ask a leading question to guide their thinking
- Keep it to two or three short sentences

Respond with ONLY what the interviewer would say.
        """.strip()

    @staticmethod
    def welcome_message(candidate_name: str, interview_type: str, job_position: str,
                        minutes: float, question_count: int) -> str:
        return (
            f"Hello {candidate_name}! Welcome to your {interview_type} interview for the {job_position} position. "
            f"I'm your AI interviewer, and I'm excited to get to know you better today. "
            f"We have {PromptFormatter.format_minutes(minutes)} minutes allocated for this interview, "
            f"and I'll be asking you {question_count} questions to assess your skills and experience. "
            "Please speak clearly and take your time to think through your answers. "
            "Feel free to ask for help or clarification if needed. "
            "Let's start with our first question."
        )

    @staticmethod
    def time_up_message(candidate_name: str) -> str:
        return (
            f"{candidate_name}, I'm sorry but our allocated interview time has come to an end. "
            "Thank you for your responses today. We'll now proceed to evaluate your performance."
        )

    @staticmethod
    def goodbye_message(reason: str, candidate_name: str, question_count: int,
                        total_questions: int, actual_minutes: int) -> str:
        """Closing remarks for each way an interview can end."""
        if reason == "time_up":
            return (
                f"{candidate_name}, that concludes our interview as we've reached the allocated time limit. "
                f"I've gathered valuable insights during our {actual_minutes} minute conversation. "
                "Your interview performance will now be evaluated, and you'll receive detailed feedback shortly. "
                "Thank you for your time today."
            )
        if reason == "user_ended":
            return (
                f"{candidate_name}, I understand you'd like to conclude the interview at this point. "
                f"We covered {question_count} questions in our {actual_minutes} minute session, "
                "and I appreciate your responses. "
                "Your interview performance will be evaluated based on what we discussed. "
                "Thank you for participating in this interview process."
            )
        if reason == "fault":
            return (
                f"{candidate_name}, we've run into a technical problem and need to end the interview here. "
                "Your answers so far will still be evaluated. Thank you for your time."
            )
        return (
            f"{candidate_name}, that brings us to the end of our interview. "
            f"We've completed all {total_questions} questions in our {actual_minutes} minute session. "
            "Thank you for your thoughtful responses. "
            "This concludes our interview. Thank you for your time."
        )

    @staticmethod
    def fallback_messages() -> Dict[str, List[str]]:
        """Fallback messages for when LLM generation fails."""
        return {
            "coaching": [
                "Of course! Let me help you think through this. Try breaking the question into smaller parts and start with what you already know.",
                "No problem. Think of a concrete example from your own experience and walk me through it step by step.",
            ],
            "padding": [
                "Thank you for participating in this interview. We'll analyze your responses and get back to you soon.",
                "Thank you for the opportunity.",
            ],
        }


class PromptFormatter:
    """Helper class for formatting prompt inputs."""

    @staticmethod
    def format_minutes(minutes: float) -> str:
        return str(int(minutes)) if float(minutes).is_integer() else f"{minutes:.1f}"

    @staticmethod
    def format_skills(skills: Optional[List[str]]) -> str:
        if not skills:
            return "Communication, problem-solving, teamwork"
        return ", ".join(skills)
