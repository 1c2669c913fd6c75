import asyncio

import pytest

from voiceinterview.interview.errors import (
    PermissionDeniedError, RecognitionError, SessionFault,
)
from voiceinterview.interview.schemas import TurnState, UtteranceKind
from voiceinterview.interview.services import CoachingService
from voiceinterview.interview.speech import SpeechInput, SpeechOutput
from voiceinterview.interview.testing import (
    HOLD, ScriptedSpeechToText, ScriptedTextToSpeech, create_test_job, final, say,
)
from voiceinterview.interview.turns import KeywordHelpClassifier, TurnController

QUESTION = "Describe a system you designed."


def _controller(utterances=None, tts=None, silence_timeout=0.05, no_speech_timeout=0.3, **kwargs):
    tts = tts or ScriptedTextToSpeech()
    stt = ScriptedSpeechToText(utterances or [])
    output = SpeechOutput(tts, voice_retry_delay=0)
    speech_input = SpeechInput(stt, silence_timeout=silence_timeout,
                               no_speech_timeout=no_speech_timeout, max_listen_seconds=2.0,
                               network_restart_delay=0.01)
    coaching = CoachingService(None, create_test_job(), total_questions=3)
    controller = TurnController(output, speech_input, coaching=coaching, **kwargs)
    return controller, tts, stt


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Can you give me a hint?", UtteranceKind.HELP),
        ("I'm not sure what you mean", UtteranceKind.HELP),
        ("I don’t know", UtteranceKind.HELP),
        ("I built a queue on top of Redis streams", UtteranceKind.ANSWER),
        ("helpful colleagues made the project work", UtteranceKind.ANSWER),
        ("", UtteranceKind.ANSWER),
    ],
)
def test_keyword_help_classifier(text, expected):
    assert KeywordHelpClassifier().classify(text) == expected


def test_long_answers_are_never_help_requests():
    text = "I'm not sure this is the best example, " + "but we rebuilt the billing pipeline " * 5
    assert KeywordHelpClassifier(max_words=25).classify(text) == UtteranceKind.ANSWER


@pytest.mark.asyncio
async def test_turn_speaks_then_listens():
    states = []
    controller, tts, _ = _controller([say("We split the monolith into services", 0.9)],
                                     on_state=states.append)

    outcome = await controller.run_turn(QUESTION, 0)

    assert tts.spoken == [QUESTION]
    assert outcome.text == "We split the monolith into services"
    assert outcome.input_method == "voice"
    assert outcome.confidence is not None
    assert outcome.latency_seconds is not None
    assert outcome.fault is None
    assert states == [TurnState.SPEAKING, TurnState.LISTENING, TurnState.IDLE]
    assert controller.state == TurnState.IDLE


@pytest.mark.asyncio
async def test_silent_candidate_gives_empty_outcome():
    controller, _, _ = _controller([], no_speech_timeout=0.05)

    outcome = await controller.run_turn(QUESTION, 0)

    assert outcome.text == ""
    assert outcome.confidence is None
    assert outcome.latency_seconds is None


@pytest.mark.asyncio
async def test_interrupt_fires_once_per_utterance():
    interrupts = []
    tts = ScriptedTextToSpeech(hold=True)
    controller, _, _ = _controller([say("Let me answer right away")], tts=tts,
                                   on_interrupt=lambda: interrupts.append(True))

    task = asyncio.create_task(controller.run_turn(QUESTION, 0))
    await asyncio.wait_for(tts.started.wait(), 1)

    assert controller.interrupt() is True
    assert controller.interrupt() is False
    outcome = await asyncio.wait_for(task, 2)

    assert interrupts == [True]
    assert tts.cancelled == [QUESTION]
    assert outcome.interrupted is True
    assert outcome.text == "Let me answer right away"


@pytest.mark.asyncio
async def test_interrupt_ignored_while_listening():
    controller, _, _ = _controller([[HOLD]], no_speech_timeout=0.1)

    task = asyncio.create_task(controller.run_turn(QUESTION, 0))
    await asyncio.sleep(0.03)

    assert controller.state == TurnState.LISTENING
    assert controller.interrupt() is False
    await task


@pytest.mark.asyncio
async def test_spoken_help_request_gets_coaching_then_answer():
    helped = []
    controller, tts, _ = _controller(
        [say("Can you give me a hint"), say("We used consistent hashing")],
        on_help=lambda index, request, guidance: helped.append((index, request, guidance)),
    )

    outcome = await controller.run_turn(QUESTION, 2)

    assert outcome.text == "We used consistent hashing"
    assert outcome.help_requests == 1
    assert len(outcome.coaching) == 1
    assert helped[0][0] == 2
    assert helped[0][1] == "Can you give me a hint"
    assert tts.spoken[0] == QUESTION
    assert tts.spoken[1] == helped[0][2]


@pytest.mark.asyncio
async def test_help_limit_treats_further_requests_as_answers():
    controller, _, _ = _controller(
        [say("I need help"), say("still stuck on this")],
        max_help_requests=1,
    )

    outcome = await controller.run_turn(QUESTION, 0)

    assert outcome.help_requests == 1
    assert outcome.text == "still stuck on this"


@pytest.mark.asyncio
async def test_help_button_during_speech_skips_to_coaching():
    tts = ScriptedTextToSpeech(speak_seconds=0.5)
    helped = []
    controller, _, _ = _controller([say("Okay here is my answer")], tts=tts,
                                   on_help=lambda *args: helped.append(args))

    task = asyncio.create_task(controller.run_turn(QUESTION, 0))
    await asyncio.wait_for(tts.started.wait(), 1)
    tts.speak_seconds = 0
    assert controller.request_help() is True
    outcome = await asyncio.wait_for(task, 2)

    assert tts.cancelled == [QUESTION]
    assert helped and helped[0][1] == ""
    assert outcome.help_requests == 1
    assert outcome.text == "Okay here is my answer"


@pytest.mark.asyncio
async def test_help_button_while_listening_keeps_captured_text():
    controller, _, _ = _controller([[final("So first we"), HOLD], say("then we sharded it")],
                                   silence_timeout=5, no_speech_timeout=5)

    task = asyncio.create_task(controller.run_turn(QUESTION, 0))
    await asyncio.sleep(0.05)
    assert controller.request_help() is True
    controller.input.silence_timeout = 0.05
    outcome = await asyncio.wait_for(task, 2)

    assert outcome.help_requests == 1
    assert outcome.text == "So first we then we sharded it"


@pytest.mark.asyncio
async def test_synthesis_retried_then_shown_as_text():
    shown = []
    tts = ScriptedTextToSpeech(fail_times=2)
    controller, _, _ = _controller([say("My answer")], tts=tts, on_text_fallback=shown.append)

    outcome = await controller.run_turn(QUESTION, 0)

    assert tts.play_calls == 2
    assert shown == [QUESTION]
    assert outcome.text == "My answer"


@pytest.mark.asyncio
async def test_synthesis_recovers_on_retry():
    shown = []
    tts = ScriptedTextToSpeech(fail_times=1)
    controller, _, _ = _controller([say("My answer")], tts=tts, on_text_fallback=shown.append)

    await controller.run_turn(QUESTION, 0)

    assert tts.spoken == [QUESTION]
    assert shown == []


@pytest.mark.asyncio
async def test_speech_disabled_shows_prompt_as_text():
    shown = []
    tts = ScriptedTextToSpeech()
    controller, _, _ = _controller([say("My answer")], tts=tts, speech_enabled=False,
                                   on_text_fallback=shown.append)

    outcome = await controller.run_turn(QUESTION, 0)

    assert tts.play_calls == 0
    assert shown == [QUESTION]
    assert outcome.text == "My answer"


@pytest.mark.asyncio
async def test_typed_answer_replaces_listening():
    controller, _, _ = _controller([[HOLD]], no_speech_timeout=5)

    def on_state(state):
        if state == TurnState.LISTENING:
            asyncio.get_running_loop().call_soon(controller.submit_text, "  typed answer ")

    controller.on_state = on_state
    outcome = await asyncio.wait_for(controller.run_turn(QUESTION, 0), 2)

    assert outcome.text == "typed answer"
    assert outcome.input_method == "text"
    assert outcome.confidence is None


@pytest.mark.asyncio
async def test_submit_text_outside_a_turn_is_rejected():
    controller, _, _ = _controller([])

    assert controller.submit_text("hello") is False
    assert controller.request_help() is False
    assert controller.stop_listening() is False


@pytest.mark.asyncio
async def test_stop_listening_finalizes_early():
    controller, _, _ = _controller([[final("short answer"), HOLD]], silence_timeout=5, no_speech_timeout=5)

    task = asyncio.create_task(controller.run_turn(QUESTION, 0))
    await asyncio.sleep(0.05)
    assert controller.stop_listening() is True
    outcome = await asyncio.wait_for(task, 1)

    assert outcome.text == "short answer"


@pytest.mark.asyncio
async def test_finish_now_keeps_partial_answer():
    controller, _, _ = _controller([[final("I was saying"), HOLD]], silence_timeout=5, no_speech_timeout=5)

    task = asyncio.create_task(controller.run_turn(QUESTION, 0))
    await asyncio.sleep(0.05)
    controller.finish_now()
    outcome = await asyncio.wait_for(task, 1)

    assert outcome.text == "I was saying"


@pytest.mark.asyncio
async def test_recoverable_error_reprompts_once():
    faults = []
    controller, tts, _ = _controller([[RecognitionError("engine hiccup")], say("Second try works")],
                                     on_fault=faults.append)

    outcome = await controller.run_turn(QUESTION, 0)

    assert tts.spoken == [QUESTION, QUESTION]
    assert outcome.text == "Second try works"
    assert outcome.fault is None
    assert len(faults) == 1
    assert faults[0].fatal is False


@pytest.mark.asyncio
async def test_repeated_recoverable_error_records_fault():
    controller, _, _ = _controller([[RecognitionError("engine hiccup")], [RecognitionError("again")]])

    outcome = await controller.run_turn(QUESTION, 0)

    assert outcome.text == ""
    assert outcome.fault == "other"


@pytest.mark.asyncio
async def test_fatal_recognition_error_raises_session_fault():
    controller, _, _ = _controller([[PermissionDeniedError()]])

    with pytest.raises(SessionFault) as excinfo:
        await controller.run_turn(QUESTION, 0)

    assert excinfo.value.fatal is True
    assert excinfo.value.category == "permission_denied"
    assert controller.state == TurnState.IDLE


@pytest.mark.asyncio
async def test_only_one_turn_at_a_time():
    controller, _, _ = _controller([[HOLD]], no_speech_timeout=0.2)

    task = asyncio.create_task(controller.run_turn(QUESTION, 0))
    await asyncio.sleep(0.02)
    with pytest.raises(RuntimeError):
        await controller.run_turn(QUESTION, 1)
    await task
