import asyncio

import pytest

from voiceinterview.interview.errors import SynthesisFailure
from voiceinterview.interview.speech import SpeechOutput, normalize_for_speech
from voiceinterview.interview.testing import ScriptedTextToSpeech


def test_normalize_for_speech_strips_markdown_and_expands_abbreviations():
    text = "**Great** answer!\n\nNext, explain the API design, e.g. `REST` vs. RPC."
    assert normalize_for_speech(text) == (
        "Great answer!. Next, explain the A P I design, for example REST versus RPC."
    )


def test_normalize_for_speech_empty():
    assert normalize_for_speech("") == ""
    assert normalize_for_speech("   \n  ") == ""


@pytest.mark.asyncio
async def test_speak_plays_normalized_text_with_preferred_voice():
    tts = ScriptedTextToSpeech(voice_lists=[["en-US-Neural2-F", "en-GB-Neural2-A"]])
    output = SpeechOutput(tts, preferred_voice="en-GB-Neural2-A")

    await output.speak("Hello **there**")

    assert tts.spoken == ["Hello there"]
    assert tts.voices_used == ["en-GB-Neural2-A"]
    assert output.is_speaking is False


@pytest.mark.asyncio
async def test_speak_rejects_text_that_normalizes_to_nothing():
    tts = ScriptedTextToSpeech()
    output = SpeechOutput(tts)

    with pytest.raises(ValueError):
        await output.speak("   ")
    assert tts.play_calls == 0


@pytest.mark.asyncio
async def test_voice_list_retried_once_when_empty():
    tts = ScriptedTextToSpeech(voice_lists=[[], ["fr-FR-Standard-A", "en-US-Standard-C"]])
    output = SpeechOutput(tts, language_code="en-US", voice_retry_delay=0)

    await output.speak("First question")
    await output.speak("Second question")

    assert tts.list_calls == 2
    assert tts.voices_used == ["en-US-Standard-C", "en-US-Standard-C"]


@pytest.mark.asyncio
async def test_no_voices_uses_engine_default():
    tts = ScriptedTextToSpeech(voice_lists=[[]])
    output = SpeechOutput(tts, voice_retry_delay=0)

    await output.speak("Hello")

    assert tts.voices_used == [None]
    assert tts.list_calls == 2


@pytest.mark.asyncio
async def test_cancel_stops_playback_and_speak_returns_normally():
    tts = ScriptedTextToSpeech(hold=True)
    ended = []
    output = SpeechOutput(tts, on_end=ended.append)

    task = asyncio.create_task(output.speak("A long question"))
    await asyncio.wait_for(tts.started.wait(), 1)
    assert output.is_speaking is True
    assert output.interruptible is True

    assert output.cancel() is True
    await asyncio.wait_for(task, 1)

    assert tts.cancelled == ["A long question"]
    assert ended == ["A long question"]
    assert output.is_speaking is False
    assert output.cancel() is False


@pytest.mark.asyncio
async def test_new_speech_cancels_previous():
    tts = ScriptedTextToSpeech(speak_seconds=5)
    output = SpeechOutput(tts)

    first = asyncio.create_task(output.speak("First"))
    await asyncio.wait_for(tts.started.wait(), 1)
    tts.speak_seconds = 0
    await output.speak("Second")
    await asyncio.wait_for(first, 1)

    assert tts.cancelled == ["First"]
    assert tts.spoken == ["First", "Second"]


@pytest.mark.asyncio
async def test_external_cancellation_propagates():
    tts = ScriptedTextToSpeech(hold=True)
    output = SpeechOutput(tts)

    task = asyncio.create_task(output.speak("Hello"))
    await asyncio.wait_for(tts.started.wait(), 1)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_engine_error_becomes_synthesis_failure():
    tts = ScriptedTextToSpeech(fail_times=1)
    output = SpeechOutput(tts)

    with pytest.raises(SynthesisFailure):
        await output.speak("Hello")
    await output.speak("Hello again")
    assert tts.spoken == ["Hello again"]


@pytest.mark.asyncio
async def test_closed_output_refuses_to_speak():
    tts = ScriptedTextToSpeech()
    output = SpeechOutput(tts)

    await output.close()
    await output.close()

    assert tts.closed is True
    with pytest.raises(SynthesisFailure):
        await output.speak("Hello")


@pytest.mark.asyncio
async def test_cancel_while_choosing_voice_skips_playback():
    tts = ScriptedTextToSpeech(voice_lists=[[], ["en-US-Standard-C"]])
    ended = []
    output = SpeechOutput(tts, voice_retry_delay=0.2, on_end=ended.append)

    task = asyncio.create_task(output.speak("Question that never plays"))
    await asyncio.sleep(0.05)
    assert output.is_speaking is True

    assert output.cancel() is True
    assert output.cancel() is False
    await asyncio.wait_for(task, 1)

    assert tts.play_calls == 0
    assert ended == []
    assert output.is_speaking is False


@pytest.mark.asyncio
async def test_new_speech_supersedes_one_still_choosing_voice():
    tts = ScriptedTextToSpeech(voice_lists=[[], ["en-US-Standard-C"]])
    output = SpeechOutput(tts, voice_retry_delay=0.1)

    first = asyncio.create_task(output.speak("First"))
    await asyncio.sleep(0.02)
    await output.speak("Second")
    await asyncio.wait_for(first, 1)

    assert tts.spoken == ["Second"]
