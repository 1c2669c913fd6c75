import pytest

from voiceinterview.interview.errors import TranscriptFrozenError
from voiceinterview.interview.models import (
    CompletionReason, FeedbackResult, InterviewResult, Question, SessionMetrics, Transcript, Turn,
)
from voiceinterview.interview.testing import create_test_job


def _turn(index, response="answer"):
    return Turn(question_index=index, question=f"Q{index}?", response=response,
                timestamp="2024-01-01T00:00:00+00:00")


@pytest.mark.parametrize(
    "raw,text,qtype",
    [
        ("  Why Python? ", "Why Python?", None),
        ({"question": "Explain REST.", "type": "technical"}, "Explain REST.", "technical"),
        ({"text": "Describe a conflict."}, "Describe a conflict.", None),
    ],
)
def test_question_from_raw(raw, text, qtype):
    question = Question.from_raw(raw)

    assert question.text == text
    assert question.type == qtype


@pytest.mark.parametrize("raw", ["", {"type": "technical"}, 42])
def test_question_from_raw_rejects(raw):
    with pytest.raises(ValueError):
        Question.from_raw(raw)


def test_transcript_orders_turns():
    transcript = Transcript()
    transcript.add_turn(_turn(0))
    transcript.add_turn(_turn(2))

    with pytest.raises(ValueError):
        transcript.add_turn(_turn(1))
    assert [t.question_index for t in transcript.turns] == [0, 2]


def test_frozen_transcript_rejects_writes():
    transcript = Transcript()
    transcript.add_message("assistant", "Hello", "welcome")
    transcript.freeze()

    with pytest.raises(TranscriptFrozenError):
        transcript.add_message("candidate", "Hi", "answer")
    with pytest.raises(TranscriptFrozenError):
        transcript.add_turn(_turn(0))
    assert len(transcript) == 1


def test_conversation_maps_roles_and_skips_unscored():
    transcript = Transcript()
    transcript.add_message("assistant", "Question?", "question", question_index=0)
    transcript.add_message("candidate", "Can I get a hint", "help_request", question_index=0, scored=False)
    transcript.add_message("assistant", "Think about caching.", "coaching", question_index=0, scored=False)
    transcript.add_message("candidate", "Use a cache", "answer", question_index=0)
    transcript.add_message("assistant", "Goodbye", "goodbye", scored=False)

    assert transcript.to_conversation() == {"messages": [
        {"role": "assistant", "content": "Question?"},
        {"role": "user", "content": "Use a cache"},
    ]}
    assert len(transcript.to_conversation(include_unscored=True)["messages"]) == 5
    assert transcript.exchange_count() == 1


def test_turn_answered_flag():
    assert _turn(0, "An answer").answered is True
    assert _turn(0, "   ").answered is False


def test_interview_result_record():
    transcript = Transcript()
    transcript.add_message("assistant", "Q0?", "question", question_index=0)
    transcript.add_turn(_turn(0))
    result = InterviewResult(
        transcript=transcript,
        metrics=SessionMetrics(questions_completed=1, questions_answered=1, total_questions=2,
                               completion_rate=50.0, actual_duration_seconds=90.0),
        feedback=FeedbackResult(overall_score=40.0, source="fallback", raw={"secret": 1}),
        completion_reason=CompletionReason.USER_ENDED,
    )

    record = result.to_record(create_test_job())

    assert record["completion_reason"] == "user_ended"
    assert record["job"]["job_title"] == "Backend Engineer"
    assert record["metrics"]["actual_duration_minutes"] == 2
    assert record["feedback"]["source"] == "fallback"
    assert "raw" not in record["feedback"]
    assert record["turns"][0]["response"] == "answer"
    assert record["conversation"] == [{"role": "assistant", "content": "Q0?"}]
