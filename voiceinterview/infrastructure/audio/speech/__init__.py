"""Speech engine adapters: Google Cloud TTS/STT and console text mode."""

from .console import ConsoleTextToSpeech, SilentSpeechToText, ConsoleTextInput


# Google adapters pull in the cloud SDKs; import them on first use
def __getattr__(name):
    if name == "GoogleTextToSpeech":
        from .tts import GoogleTextToSpeech
        return GoogleTextToSpeech
    if name == "GoogleSpeechToText":
        from .stt import GoogleSpeechToText
        return GoogleSpeechToText
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "ConsoleTextToSpeech", "SilentSpeechToText", "ConsoleTextInput",
    "GoogleTextToSpeech", "GoogleSpeechToText",
]
