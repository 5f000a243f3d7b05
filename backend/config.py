"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No protocol constants
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import (
    ASR_MODEL_DEFAULT,
    ASR_RECONNECT_WINDOW_MS,
    BARGE_IN_MIN_CHARS,
    GREETING_TEXT_DEFAULT,
    PLAYBACK_GAP_TIMEOUT_MS,
)


class ConfigError(RuntimeError):
    """Raised when the environment cannot support the selected providers."""


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the app factory and every call gateway.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"
    server_host: str | None = None

    # ------------------------------------------------------------------
    # Telephony (Twilio)
    # ------------------------------------------------------------------

    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    from_number: str | None = None

    # ------------------------------------------------------------------
    # ASR
    # ------------------------------------------------------------------

    deepgram_api_key: str | None = None
    deepgram_model: str = ASR_MODEL_DEFAULT
    asr_reconnect_window_ms: int = ASR_RECONNECT_WINDOW_MS

    # ------------------------------------------------------------------
    # LLM configuration
    # ------------------------------------------------------------------

    llm_provider: str = "openai"
    llm_model: str = "gpt-4o-mini"
    openai_api_key: str | None = None
    groq_api_key: str | None = None

    # ------------------------------------------------------------------
    # TTS
    # ------------------------------------------------------------------

    tts_provider: str = "speechmatics"
    speechmatics_api_key: str | None = None
    speechmatics_voice: str = "sarah"
    elevenlabs_api_key: str | None = None
    elevenlabs_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    elevenlabs_model_id: str = "eleven_turbo_v2"

    # ------------------------------------------------------------------
    # Conversation tunables
    # ------------------------------------------------------------------

    greeting_text: str = GREETING_TEXT_DEFAULT
    barge_in_min_chars: int = BARGE_IN_MIN_CHARS
    playback_gap_timeout_ms: int = PLAYBACK_GAP_TIMEOUT_MS

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """Load configuration from environment variables."""
        env = os.environ
        return AppConfig(
            env=env.get("ENV", "dev"),
            log_level=env.get("LOG_LEVEL", "INFO"),
            server_host=env.get("SERVER"),

            twilio_account_sid=env.get("TWILIO_ACCOUNT_SID"),
            twilio_auth_token=env.get("TWILIO_AUTH_TOKEN"),
            from_number=env.get("FROM_NUMBER"),

            deepgram_api_key=env.get("DEEPGRAM_API_KEY"),
            deepgram_model=env.get("DEEPGRAM_MODEL", ASR_MODEL_DEFAULT),
            asr_reconnect_window_ms=int(
                env.get("ASR_RECONNECT_WINDOW_MS", ASR_RECONNECT_WINDOW_MS)
            ),

            llm_provider=env.get("LLM_PROVIDER", "openai"),
            llm_model=env.get("LLM_MODEL", "gpt-4o-mini"),
            openai_api_key=env.get("OPENAI_API_KEY"),
            groq_api_key=env.get("GROQ_API_KEY"),

            tts_provider=env.get("TTS_PROVIDER", "speechmatics"),
            speechmatics_api_key=env.get("SPEECHMATICS_API_KEY"),
            speechmatics_voice=env.get("SPEECHMATICS_VOICE", "sarah"),
            elevenlabs_api_key=env.get("ELEVENLABS_API_KEY"),
            elevenlabs_voice_id=env.get("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM"),
            elevenlabs_model_id=env.get("ELEVENLABS_MODEL_ID", "eleven_turbo_v2"),

            greeting_text=env.get("GREETING_TEXT", GREETING_TEXT_DEFAULT),
            barge_in_min_chars=int(env.get("BARGE_IN_MIN_CHARS", BARGE_IN_MIN_CHARS)),
            playback_gap_timeout_ms=int(
                env.get("PLAYBACK_GAP_TIMEOUT_MS", PLAYBACK_GAP_TIMEOUT_MS)
            ),
        )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """
        Check that credentials exist for every selected provider.

        Raises:
            ConfigError naming the first missing variable.
        """
        if not self.deepgram_api_key:
            raise ConfigError("DEEPGRAM_API_KEY environment variable not set")

        provider = self.llm_provider.lower()
        if provider == "groq" and not self.groq_api_key:
            raise ConfigError("GROQ_API_KEY environment variable not set")
        if provider != "groq" and not self.openai_api_key:
            raise ConfigError("OPENAI_API_KEY environment variable not set")

        tts = self.tts_provider.lower()
        if tts == "speechmatics":
            if not self.speechmatics_api_key:
                raise ConfigError("SPEECHMATICS_API_KEY environment variable not set")
        elif tts == "elevenlabs":
            if not self.elevenlabs_api_key:
                raise ConfigError("ELEVENLABS_API_KEY environment variable not set")
        else:
            raise ConfigError(f"Unknown TTS_PROVIDER: {self.tts_provider}")

        if self.barge_in_min_chars < 0:
            raise ConfigError("BARGE_IN_MIN_CHARS must be >= 0")
        if self.playback_gap_timeout_ms <= 0:
            raise ConfigError("PLAYBACK_GAP_TIMEOUT_MS must be > 0")
