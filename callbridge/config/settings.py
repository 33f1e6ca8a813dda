"""
Environment-driven settings for the call bridge.

BridgeSettings reads the process environment (after ``.env`` has been loaded
by ``callbridge.main``) when it is instantiated. Fields whose variable name
differs from the attribute name carry an alias; keyword arguments by field
name still work, which is how tests build custom settings.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from callbridge.config.constants import (
    AI_READY_TIMEOUT,
    DEFAULT_GREETING,
    DEFAULT_INSTRUCTIONS,
    DEFAULT_REALTIME_MODEL,
    DEFAULT_SUMMARY_MODEL,
    DEFAULT_TRANSCRIPTION_MODEL,
    DEFAULT_VOICE,
    HANGUP_GRACE_SECONDS,
    RESPONSE_TIMEOUT,
)


class BridgeSettings(BaseSettings):
    """Runtime configuration shared by the bridge, its adapters and the summarizer."""

    # OpenAI
    openai_api_key: Optional[str] = Field(None, description="OpenAI API key")
    realtime_model: str = Field(DEFAULT_REALTIME_MODEL, alias="OPENAI_REALTIME_MODEL")
    voice: str = Field(DEFAULT_VOICE, alias="REALTIME_VOICE")
    transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL
    instructions: str = Field(DEFAULT_INSTRUCTIONS, alias="BRIDGE_INSTRUCTIONS")

    # Conversation
    greeting_enabled: bool = True
    greeting_instructions: str = DEFAULT_GREETING
    hangup_on_goodbye: bool = True
    hangup_grace_seconds: float = Field(HANGUP_GRACE_SECONDS, gt=0)

    # Server
    ws_host: Optional[str] = Field(None, description="Public host used in TwiML stream URLs")

    # Summaries
    summary_model: str = DEFAULT_SUMMARY_MODEL
    summarizer_mock: bool = False

    # Timeouts
    ai_ready_timeout: float = Field(AI_READY_TIMEOUT, gt=0)
    response_timeout: float = Field(RESPONSE_TIMEOUT, gt=0)

    model_config = SettingsConfigDict(
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("openai_api_key", "ws_host", mode="before")
    @classmethod
    def blank_as_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v
