#!/usr/bin/env python3
"""
Main entry point for the voice interview engine.
Allows running the package with: python -m voiceinterview
"""
import asyncio
import json
import sys
from dataclasses import replace
from typing import List

from .config import get_config, Config, MAX_LISTEN_SECONDS
from .infrastructure.audio.speech import ConsoleTextToSpeech, SilentSpeechToText, ConsoleTextInput
from .infrastructure.data import JsonResultStore
from .interview import (
    InterviewSession, InterviewResult, JobContext, EventType, InterviewEvent,
    VertexScoringGateway, CoachingService,
)
from .utils import setup_logging

DEFAULT_QUESTIONS = [
    "Tell me about yourself.",
    "Describe a challenging project you worked on and how you handled it.",
    "How do you approach debugging a problem you have never seen before?",
    "Tell me about a time you disagreed with a teammate and how you resolved it.",
    "Where do you see yourself growing in your next role?",
]

TEXT_MODE_HELP = "Type your answer and press Enter. Commands: /help, /done, /end"


def load_questions(path: str) -> List:
    """Read questions from a JSON file holding a list of strings or objects."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("questions", [])
    if not isinstance(data, list):
        raise ValueError("Questions file must contain a list of questions")
    return data


class ConsoleReporter:
    """Prints interview progress to the terminal."""

    def __init__(self, text_mode: bool):
        self.text_mode = text_mode

    def handle_event(self, event: InterviewEvent) -> None:
        data = event.data
        if event.event_type == EventType.QUESTION_ASKED:
            print(f"\n❓ Question {data['question_index'] + 1}/{data['total_questions']}")
        elif event.event_type == EventType.TEXT_FALLBACK:
            print(f"📝 {data['text']}")
        elif event.event_type == EventType.SPEECH_INTERRUPTED:
            print("✋ Go ahead, I'm listening.")
        elif event.event_type == EventType.HELP_REQUESTED:
            print("💡 Help requested")
        elif event.event_type == EventType.FAULT_RAISED:
            marker = "❌" if data["fatal"] else "⚠️"
            print(f"{marker} {data['message']}")
        elif event.event_type == EventType.CLOCK_EXPIRED:
            print("⏰ Time is up!")
        elif event.event_type == EventType.TURN_COMPLETED:
            if data["response"]:
                if not self.text_mode:
                    print(f"🗣️ {data['response']}")
            else:
                print("🤐 (no response)")
        elif event.event_type == EventType.FEEDBACK_READY:
            print("\n📊 Feedback ready")


def print_result(result: InterviewResult) -> None:
    metrics = result.metrics
    print("\n" + "=" * 60)
    print("📋 INTERVIEW SUMMARY")
    print("=" * 60)
    print(f"Ended:     {result.completion_reason.value}")
    print(f"Answered:  {metrics.questions_answered}/{metrics.total_questions} "
          f"({metrics.completion_rate:.0f}% completed)")
    print(f"Duration:  {metrics.actual_duration_minutes} min")
    if result.feedback is not None:
        feedback = result.feedback
        source = "AI" if feedback.source == "gateway" else "rule-based"
        print(f"Score:     {feedback.overall_score:.0f}/100 ({source})")
        print(f"Verdict:   {'✅ Recommended' if feedback.recommended else '❌ Not recommended'}")
        for line in feedback.summary:
            print(f"  • {line}")
        if feedback.strengths:
            print("Strengths:")
            for line in feedback.strengths:
                print(f"  + {line}")
        if feedback.improvements:
            print("To improve:")
            for line in feedback.improvements:
                print(f"  - {line}")
    if not result.persisted:
        print("⚠️ Results were not saved (see log file)")
    print("=" * 60)


def build_speech(config: Config, text_mode: bool):
    if text_mode:
        return ConsoleTextToSpeech(), SilentSpeechToText()
    from .infrastructure.audio.speech import GoogleTextToSpeech, GoogleSpeechToText
    tts = GoogleTextToSpeech(
        language_code=config.language_code,
        default_voice=config.tts_voice,
        speaking_rate=config.speaking_rate,
    )
    stt = GoogleSpeechToText(language_code=config.language_code)
    return tts, stt


async def run_interview(config: Config, questions: List, text_mode: bool) -> InterviewResult:
    job = JobContext(
        job_title=config.job_position,
        candidate_name=config.candidate_name,
        interview_type=config.interview_type,
    )

    scoring = None
    coaching = None
    if config.scoring_enabled:
        from .infrastructure.llm import VertexRestClient
        llm = VertexRestClient(
            project=config.google_cloud_project,
            credentials_json=config.google_application_credentials,
        )
        scoring = VertexScoringGateway(llm)
        coaching = CoachingService(llm, job, min(len(questions), config.max_questions))
    else:
        print("ℹ️ No Google Cloud project configured: using rule-based scoring")
        coaching = CoachingService(None, job, min(len(questions), config.max_questions))

    tts, stt = build_speech(config, text_mode)
    session = InterviewSession(
        questions,
        tts,
        stt,
        job=job,
        scoring=scoring,
        result_sink=JsonResultStore(config.results_dir),
        coaching=coaching,
        config=config,
    )
    session.event_bus.subscribe_all(ConsoleReporter(text_mode).handle_event)

    def on_line(line: str) -> None:
        command = line.lower()
        if command == "/help":
            session.request_help()
        elif command == "/end":
            print("👋 Ending after this question...")
            session.request_early_end()
        elif command in ("/done", "/skip"):
            session.stop_listening()
        elif command == "/stop":
            session.interrupt_speech()
        else:
            session.submit_text(line)

    console = ConsoleTextInput(on_line)
    async with session:
        console.start()
        try:
            return await session.start()
        finally:
            console.close()


def main():
    """Command-line interface for the interview session."""

    # Load configuration from environment
    try:
        config = get_config()
    except ValueError as e:
        print(f"❌ Configuration Error: {e}")
        sys.exit(1)

    text_mode = "--text" in sys.argv or "--no-tts" in sys.argv
    questions = DEFAULT_QUESTIONS
    for arg in sys.argv[1:]:
        try:
            if arg.startswith("--questions="):
                questions = load_questions(arg.split("=", 1)[1])
            elif arg.startswith("--minutes="):
                config = replace(config, interview_minutes=float(arg.split("=", 1)[1]))
            elif arg.startswith("--name="):
                config = replace(config, candidate_name=arg.split("=", 1)[1])
            elif arg.startswith("--job="):
                config = replace(config, job_position=arg.split("=", 1)[1])
        except (OSError, ValueError) as e:
            print(f"❌ Invalid argument {arg}: {e}")
            sys.exit(1)

    if text_mode:
        # Typing takes longer than speaking; only a typed line or a command ends a turn
        config = replace(config, no_speech_timeout=MAX_LISTEN_SECONDS * 5,
                         max_listen_seconds=MAX_LISTEN_SECONDS * 5)
        print("📝 Text Mode: Questions will be displayed as text only")
        print(f"   ({TEXT_MODE_HELP})")
    else:
        print("🔊 Voice Mode: questions are spoken and answers are heard through the microphone")
        print("   (Use --text to type answers instead)")

    log_path = setup_logging(config.log_file, config.log_level)
    print(f"📄 Detailed logs: {log_path}")

    try:
        result = asyncio.run(run_interview(config, questions, text_mode))
    except KeyboardInterrupt:
        print("\n👋 Interview cancelled")
        sys.exit(130)
    except ValueError as e:
        print(f"❌ {e}")
        sys.exit(1)

    if result is not None:
        print_result(result)


if __name__ == "__main__":
    main()
