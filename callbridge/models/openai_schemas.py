"""
Pydantic models for OpenAI Realtime API message structures.

This module provides type-safe models for the client events the bridge sends to the
OpenAI Realtime API, plus helpers that pull caller and assistant text out of the
loosely structured server events.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from callbridge.config.constants import (
    AUDIO_FORMAT_G711_ULAW,
    DEFAULT_TRANSCRIPTION_MODEL,
    DEFAULT_VOICE,
    VAD_PREFIX_PADDING_MS,
    VAD_SILENCE_DURATION_MS,
    VAD_THRESHOLD,
)


class TurnDetection(BaseModel):
    """Server-side voice activity detection settings.

    Automatic response creation and interruption are switched off: the bridge
    decides when to create or cancel a response.
    """
    type: str = "server_vad"
    threshold: float = Field(VAD_THRESHOLD, ge=0.0, le=1.0)
    prefix_padding_ms: int = Field(VAD_PREFIX_PADDING_MS, ge=0)
    silence_duration_ms: int = Field(VAD_SILENCE_DURATION_MS, ge=0)
    create_response: bool = False
    interrupt_response: bool = False


class InputAudioTranscription(BaseModel):
    """Transcription settings for caller audio."""
    model: str = DEFAULT_TRANSCRIPTION_MODEL
    language: Optional[str] = "en"


class SessionConfig(BaseModel):
    """Body of a session.update event."""
    voice: str = DEFAULT_VOICE
    instructions: str = ""
    input_audio_format: str = AUDIO_FORMAT_G711_ULAW
    output_audio_format: str = AUDIO_FORMAT_G711_ULAW
    modalities: List[str] = Field(default_factory=lambda: ["text", "audio"])
    temperature: float = 0.8
    turn_detection: TurnDetection = Field(default_factory=TurnDetection)
    input_audio_transcription: InputAudioTranscription = Field(
        default_factory=InputAudioTranscription
    )


class RealtimeBaseMessage(BaseModel):
    """Base model for Realtime API client events."""
    type: str


class SessionUpdateMessage(RealtimeBaseMessage):
    type: Literal["session.update"] = "session.update"
    session: SessionConfig


class AudioCommitMessage(RealtimeBaseMessage):
    type: Literal["input_audio_buffer.commit"] = "input_audio_buffer.commit"


class ResponseOptions(BaseModel):
    instructions: Optional[str] = None


class ResponseCreateMessage(RealtimeBaseMessage):
    type: Literal["response.create"] = "response.create"
    response: Optional[ResponseOptions] = None


class ResponseCancelMessage(RealtimeBaseMessage):
    type: Literal["response.cancel"] = "response.cancel"


class ItemTruncateMessage(RealtimeBaseMessage):
    """Trim an assistant item to the audio the caller actually heard."""
    type: Literal["conversation.item.truncate"] = "conversation.item.truncate"
    item_id: str
    content_index: int = 0
    audio_end_ms: int = Field(..., ge=0)


def extract_user_transcript(event: Dict[str, Any]) -> str:
    """Return the caller transcript carried by a transcription-completed event."""
    transcript = event.get("transcript")
    if isinstance(transcript, str) and transcript.strip():
        return transcript.strip()

    item = event.get("item") or {}
    for part in item.get("content") or []:
        if isinstance(part, dict) and isinstance(part.get("transcript"), str):
            if part["transcript"].strip():
                return part["transcript"].strip()
    return ""


def extract_assistant_text(event: Dict[str, Any]) -> str:
    """
    Return the assistant's reply text from a response.done event.

    Voice responses carry a transcript per content part; text-only responses
    carry text. Only assistant outputs are considered.

    Args:
        event: The decoded response.done event

    Returns:
        The reply text, or an empty string when none is present
    """
    response = event.get("response") or {}
    for output in response.get("output") or []:
        if not isinstance(output, dict):
            continue
        message = output.get("message") or {}
        role = output.get("role") or message.get("role")
        if role != "assistant":
            continue

        content = output.get("content")
        if not isinstance(content, list):
            content = message.get("content") if isinstance(message.get("content"), list) else []

        for part in content:
            if isinstance(part, dict) and isinstance(part.get("transcript"), str):
                if part["transcript"].strip():
                    return part["transcript"].strip()
        for part in content:
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                if part["text"].strip():
                    return part["text"].strip()
    return ""
