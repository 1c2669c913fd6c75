"""
Audio capture, processing, and speech engines for the interview system.

This module contains all audio-related functionality organized into clear submodules:
- processing: Signal processing and microphone capture
- speech: Text-to-speech and speech-to-text adapters
"""
