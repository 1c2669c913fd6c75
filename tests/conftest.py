import pytest

from voiceinterview.interview import InterviewEventBus, InterviewSession
from voiceinterview.interview.testing import (
    ScriptedTextToSpeech, ScriptedSpeechToText, MockScoringGateway, InMemoryResultSink,
    create_test_config, create_test_job,
)


_DEFAULT = object()


@pytest.fixture
def config():
    return create_test_config()


@pytest.fixture
def job():
    return create_test_job()


@pytest.fixture
def make_session(job):
    """Build a session around scripted engines; returns (session, tts, stt, scoring, sink)."""

    def _make(questions=None, utterances=None, config=None, tts=None, scoring=_DEFAULT,
              sink=None, **kwargs):
        tts = tts or ScriptedTextToSpeech()
        stt = ScriptedSpeechToText(utterances or [])
        scoring = MockScoringGateway() if scoring is _DEFAULT else scoring
        sink = sink if sink is not None else InMemoryResultSink()
        session = InterviewSession(
            questions if questions is not None else ["Tell me about yourself.", "Why this role?"],
            tts,
            stt,
            job=job,
            scoring=scoring,
            result_sink=sink,
            config=config or create_test_config(),
            event_bus=InterviewEventBus(),
            session_id="test-session",
            **kwargs,
        )
        return session, tts, stt, scoring, sink

    return _make
