"""
Voice Interview Configuration System
====================================

This file contains ALL configuration for the voice interview engine.
- User settings at the top (things users might want to change)
- Internal constants at the bottom (technical defaults)
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional


# =============================================================================
# USER SETTINGS - Edit these to customize the interview
# =============================================================================

# Google Cloud project used for scoring (Vertex AI) and speech services
GOOGLE_CLOUD_PROJECT = "your-project-id"  # Change this!
GOOGLE_APPLICATION_CREDENTIALS = None  # Optional: path to credentials JSON

# Interview settings
INTERVIEW_MINUTES = 30
MAX_QUESTIONS = 5
INTERVIEW_TYPE = "technical"
JOB_POSITION = "Software Engineer"
CANDIDATE_NAME = "Candidate"
RESULTS_DIR = "./_interviews"

# Speech settings
ENABLE_TTS = True
TTS_VOICE = "en-US-Neural2-F"
LANGUAGE_CODE = "en-US"
SPEAKING_RATE = 0.9

# Turn-taking
SILENCE_TIMEOUT = 2.0
NO_SPEECH_TIMEOUT = 8.0
MAX_LISTEN_SECONDS = 120.0
MAX_HELP_REQUESTS = 2

# Logging
LOG_FILE = "./_interviews/interview.log"
LOG_LEVEL = "INFO"


# =============================================================================
# SCORING POLICY
# =============================================================================

@dataclass
class ScoreBand:
    """Fallback score band selected by the number of answered questions."""
    label: str
    min_answered: int
    max_answered: Optional[int]
    score_low: float
    score_high: float

    def contains(self, answered: int) -> bool:
        if answered < self.min_answered:
            return False
        return self.max_answered is None or answered <= self.max_answered


def _default_bands() -> List[ScoreBand]:
    return [
        ScoreBand("insufficient", 0, 0, 0.0, 10.0),
        ScoreBand("poor", 1, 2, 10.0, 30.0),
        ScoreBand("below_average", 3, 4, 30.0, 50.0),
        ScoreBand("acceptable", 5, None, 50.0, 80.0),
    ]


@dataclass
class ScoringPolicy:
    """Rule-based feedback thresholds used when the scoring service fails."""
    bands: List[ScoreBand] = field(default_factory=_default_bands)
    recommend_threshold: float = 70.0
    min_exchanges: int = 2

    def band_for(self, answered: int) -> ScoreBand:
        for band in self.bands:
            if band.contains(answered):
                return band
        # Bands are ordered; anything past the last one uses it
        return self.bands[-1]

    @classmethod
    def from_preset(cls, preset_name: str) -> 'ScoringPolicy':
        """Create policy from preset."""
        presets = {
            "strict": cls(
                bands=[
                    ScoreBand("insufficient", 0, 0, 0.0, 5.0),
                    ScoreBand("poor", 1, 2, 5.0, 20.0),
                    ScoreBand("below_average", 3, 4, 20.0, 40.0),
                    ScoreBand("acceptable", 5, None, 40.0, 70.0),
                ],
                recommend_threshold=75.0,
            ),
            "lenient": cls(
                bands=[
                    ScoreBand("insufficient", 0, 0, 10.0, 20.0),
                    ScoreBand("poor", 1, 2, 20.0, 40.0),
                    ScoreBand("below_average", 3, 4, 40.0, 60.0),
                    ScoreBand("acceptable", 5, None, 60.0, 90.0),
                ],
                recommend_threshold=65.0,
            ),
        }
        return presets.get(preset_name, cls())


# Set to a preset name ("strict", "lenient") to replace the default bands
SCORING_PRESET = "default"


# =============================================================================
# INTERNAL CONSTANTS - Don't change these unless you know what you're doing
# =============================================================================

# Audio capture
SAMPLE_RATE_CAPTURE = 48000
SAMPLE_RATE_TARGET = 16000
CHANNELS = 1
FRAME_MS = 100
TARGET_RMS = 0.06

# Audio playback
SPEAKER_SAMPLE_RATE = 16000
SPEAKER_CHUNK_SAMPLES = 1600

# Speech engines
VOICE_RETRY_DELAY = 0.1
NETWORK_RESTART_DELAY = 1.0
MAX_NETWORK_RESTARTS = 1
MAX_SYNTHESIS_ATTEMPTS = 2
MAX_TURN_REPROMPTS = 1
HELP_KEYWORDS = (
    "help", "hint", "clarify", "confused", "what do you mean",
    "can you help", "i need help", "stuck", "don't know", "dont know",
    "not sure", "can you give me", "guide me", "can you explain",
    "explain the question", "repeat the question",
)

# Session clock (countdown events)
CLOCK_TICK_SECONDS = 1.0

# LLM
VERTEX_LOCATION = "us-central1"
MODEL_NAME = "gemini-2.5-flash-lite"
LLM_TIMEOUT = 60
MAX_OUTPUT_TOKENS = 2048
SCORING_TIMEOUT = 45.0
COACHING_TIMEOUT = 10.0


# =============================================================================
# MAIN CONFIG OBJECT
# =============================================================================

@dataclass
class Config:
    """Main configuration object."""
    google_cloud_project: Optional[str] = None
    google_application_credentials: Optional[str] = None
    interview_minutes: float = INTERVIEW_MINUTES
    max_questions: int = MAX_QUESTIONS
    interview_type: str = INTERVIEW_TYPE
    job_position: str = JOB_POSITION
    candidate_name: str = CANDIDATE_NAME
    results_dir: str = RESULTS_DIR
    enable_tts: bool = ENABLE_TTS
    tts_voice: str = TTS_VOICE
    language_code: str = LANGUAGE_CODE
    speaking_rate: float = SPEAKING_RATE
    silence_timeout: float = SILENCE_TIMEOUT
    no_speech_timeout: float = NO_SPEECH_TIMEOUT
    max_listen_seconds: float = MAX_LISTEN_SECONDS
    max_help_requests: int = MAX_HELP_REQUESTS
    network_restart_delay: float = NETWORK_RESTART_DELAY
    clock_tick_seconds: float = CLOCK_TICK_SECONDS
    log_file: str = LOG_FILE
    log_level: str = LOG_LEVEL

    @property
    def time_budget_seconds(self) -> float:
        return float(self.interview_minutes) * 60.0

    @property
    def scoring_enabled(self) -> bool:
        return bool(self.google_cloud_project) and self.google_cloud_project != "your-project-id"

    def get_scoring_policy(self) -> ScoringPolicy:
        """Get fallback scoring policy."""
        if SCORING_PRESET != "default":
            return ScoringPolicy.from_preset(SCORING_PRESET)
        return ScoringPolicy()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def get_config() -> Config:
    """Load configuration, applying environment overrides."""
    project = os.getenv("GOOGLE_CLOUD_PROJECT") or GOOGLE_CLOUD_PROJECT
    credentials = os.getenv("GOOGLE_APPLICATION_CREDENTIALS") or GOOGLE_APPLICATION_CREDENTIALS

    minutes = _env_float("INTERVIEW_MINUTES", INTERVIEW_MINUTES)
    if minutes <= 0:
        raise ValueError("INTERVIEW_MINUTES must be positive")

    silence_timeout = _env_float("INTERVIEW_SILENCE_TIMEOUT", SILENCE_TIMEOUT)
    if silence_timeout <= 0:
        raise ValueError("INTERVIEW_SILENCE_TIMEOUT must be positive")

    return Config(
        google_cloud_project=None if project == "your-project-id" else project,
        google_application_credentials=credentials,
        interview_minutes=minutes,
        silence_timeout=silence_timeout,
        results_dir=os.getenv("INTERVIEW_RESULTS_DIR") or RESULTS_DIR,
        log_level=(os.getenv("INTERVIEW_LOG_LEVEL") or LOG_LEVEL).upper(),
    )
