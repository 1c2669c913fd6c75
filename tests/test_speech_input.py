import asyncio

import pytest

from voiceinterview.interview.errors import (
    DeviceUnsupportedError, PermissionDeniedError, RecognitionError,
    RecognitionErrorCategory, TransientNetworkError,
)
from voiceinterview.interview.speech import SpeechInput
from voiceinterview.interview.testing import HOLD, ScriptedSpeechToText, final, interim, say


def _input(utterances, **kwargs):
    stt = ScriptedSpeechToText(utterances)
    options = dict(silence_timeout=0.05, no_speech_timeout=0.2, max_listen_seconds=2.0,
                   network_restart_delay=0.01)
    options.update(kwargs)
    return SpeechInput(stt, **options), stt


@pytest.mark.asyncio
async def test_listen_finalizes_after_silence():
    speech_input, stt = _input([say("I have five years of Python experience", confidence=0.8)])
    partials = []

    text = await speech_input.listen(on_partial=partials.append)

    assert text == "I have five years of Python experience"
    assert partials == ["I", "I have five years of Python experience"]
    assert speech_input.last_confidence == pytest.approx(0.8)
    assert speech_input.is_listening is False
    assert stt.streams_closed == 1


@pytest.mark.asyncio
async def test_listen_joins_final_segments():
    speech_input, _ = _input([[final("First part."), 0.02, interim("sec"), final("Second part.")]],
                             silence_timeout=0.1)

    assert await speech_input.listen() == "First part. Second part."


@pytest.mark.asyncio
async def test_no_speech_returns_empty():
    speech_input, _ = _input([])

    loop = asyncio.get_running_loop()
    started = loop.time()
    assert await speech_input.listen() == ""
    assert loop.time() - started >= 0.15
    assert speech_input.last_confidence is None


@pytest.mark.asyncio
async def test_interim_only_text_is_discarded():
    speech_input, _ = _input([[interim("um so")]])

    assert await speech_input.listen() == ""


@pytest.mark.asyncio
async def test_recognizer_no_speech_error_ends_listen_quietly():
    speech_input, _ = _input([[RecognitionError("silence", RecognitionErrorCategory.NO_SPEECH)]],
                             no_speech_timeout=5)

    assert await speech_input.listen() == ""


@pytest.mark.asyncio
async def test_stream_end_finalizes_immediately():
    stt = ScriptedSpeechToText([[final("done talking")]], end_streams=True)
    speech_input = SpeechInput(stt, silence_timeout=5, no_speech_timeout=5)

    assert await asyncio.wait_for(speech_input.listen(), 1) == "done talking"


@pytest.mark.asyncio
async def test_network_error_restarts_capture_once():
    speech_input, stt = _input([[TransientNetworkError()], say("recovered answer")])

    assert await speech_input.listen() == "recovered answer"
    assert stt.streams_started == 2


@pytest.mark.asyncio
async def test_network_error_twice_raises():
    speech_input, stt = _input([[TransientNetworkError()],
                                [RecognitionError("dropped", RecognitionErrorCategory.NETWORK)]])

    with pytest.raises(TransientNetworkError):
        await speech_input.listen()
    assert stt.streams_started == 2
    assert speech_input.is_listening is False


@pytest.mark.asyncio
async def test_permission_denied_is_fatal():
    speech_input, _ = _input([[RecognitionError("denied", RecognitionErrorCategory.PERMISSION_DENIED)]])

    with pytest.raises(PermissionDeniedError) as excinfo:
        await speech_input.listen()
    assert excinfo.value.fatal is True


@pytest.mark.asyncio
async def test_unsupported_is_fatal():
    speech_input, _ = _input([[DeviceUnsupportedError()]])

    with pytest.raises(DeviceUnsupportedError):
        await speech_input.listen()


@pytest.mark.asyncio
async def test_other_errors_propagate():
    speech_input, _ = _input([[RecognitionError("engine crashed")]])

    with pytest.raises(RecognitionError) as excinfo:
        await speech_input.listen()
    assert excinfo.value.fatal is False
    assert excinfo.value.category == RecognitionErrorCategory.OTHER


@pytest.mark.asyncio
async def test_stop_returns_captured_text():
    speech_input, _ = _input([[final("partial thought"), HOLD]], silence_timeout=5, no_speech_timeout=5)

    task = asyncio.create_task(speech_input.listen())
    await asyncio.sleep(0.05)
    assert speech_input.is_listening is True

    assert await speech_input.stop() == "partial thought"
    assert await task == "partial thought"


@pytest.mark.asyncio
async def test_second_listen_stops_the_first():
    speech_input, stt = _input([[final("first answer"), HOLD]], silence_timeout=5, no_speech_timeout=5)

    first = asyncio.create_task(speech_input.listen())
    await asyncio.sleep(0.05)
    second = asyncio.create_task(speech_input.listen())

    assert await first == "first answer"
    await asyncio.sleep(0.05)
    assert speech_input.is_listening is True
    speech_input.request_stop()
    assert await second == ""
    assert stt.streams_started == 2


@pytest.mark.asyncio
async def test_hard_deadline_caps_listen():
    speech_input, _ = _input([[HOLD]], no_speech_timeout=5, max_listen_seconds=0.1)

    assert await asyncio.wait_for(speech_input.listen(), 1) == ""


@pytest.mark.asyncio
async def test_request_stop_when_idle_is_noop():
    speech_input, _ = _input([])

    assert speech_input.request_stop() is False


@pytest.mark.asyncio
async def test_closed_input_cannot_listen():
    speech_input, stt = _input([])

    await speech_input.close()

    assert stt.closed is True
    with pytest.raises(DeviceUnsupportedError):
        await speech_input.listen()


@pytest.mark.asyncio
async def test_network_restart_gets_a_fresh_listening_window():
    speech_input, stt = _input([[0.1, TransientNetworkError()], say("answer after reconnect")],
                               no_speech_timeout=0.2, network_restart_delay=0.3)

    assert await asyncio.wait_for(speech_input.listen(), 2) == "answer after reconnect"
    assert stt.streams_started == 2


@pytest.mark.asyncio
async def test_network_restart_extends_silence_window_after_speech():
    speech_input, _ = _input([[final("First part."), 0.02, TransientNetworkError()],
                              [0.05, final("Second part.")]],
                             silence_timeout=0.1, network_restart_delay=0.15)

    assert await asyncio.wait_for(speech_input.listen(), 2) == "First part. Second part."
