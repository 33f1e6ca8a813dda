"""
Pydantic models for Twilio Media Streams message schemas.

This module defines structured data models for the incoming and outgoing frames
of the Twilio Media Streams WebSocket protocol, providing type validation and documentation.
Only the fields the bridge relies on are declared; everything else Twilio sends is ignored.
"""

import base64
import binascii
from typing import Any, Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class TwilioBaseMessage(BaseModel):
    """Base model for all Media Streams frames."""

    event: str = Field(..., description="Frame type identifier")
    streamSid: Optional[str] = Field(None, description="Stream identifier")
    sequenceNumber: Optional[str] = Field(None, description="Per-stream sequence number")


# Inbound frames
class ConnectedMessage(TwilioBaseMessage):
    """First frame Twilio sends after the WebSocket opens."""

    event: Literal["connected"]
    protocol: Optional[str] = None
    version: Optional[str] = None


class StartPayload(BaseModel):
    """Metadata carried by the start frame."""

    streamSid: str = Field(..., description="Stream identifier")
    callSid: str = Field(..., description="Call identifier")
    accountSid: Optional[str] = None
    customParameters: Dict[str, str] = Field(default_factory=dict)

    @field_validator("streamSid", "callSid")
    def validate_not_blank(cls, v):
        """Identifiers are mandatory for routing outbound frames."""
        if not v.strip():
            raise ValueError("Identifier cannot be empty")
        return v


class StartMessage(TwilioBaseMessage):
    """Model for the start frame."""

    event: Literal["start"]
    start: StartPayload


class MarkPayload(BaseModel):
    """Name of a playback acknowledgment mark."""

    name: str


class MarkMessage(TwilioBaseMessage):
    """Model for a mark frame (inbound acknowledgment or outbound request)."""

    event: Literal["mark"]
    mark: MarkPayload


class StopMessage(TwilioBaseMessage):
    """Model for the stop frame."""

    event: Literal["stop"]
    stop: Optional[Dict[str, Any]] = None


class DtmfPayload(BaseModel):
    """Keypad digit pressed by the caller."""

    digit: str
    track: Optional[str] = None


class DtmfMessage(TwilioBaseMessage):
    """Model for a dtmf frame."""

    event: Literal["dtmf"]
    dtmf: DtmfPayload


# Outbound frames
class OutboundMediaPayload(BaseModel):
    """Audio sent back to the caller."""

    payload: str = Field(..., description="Base64-encoded mu-law audio")

    @field_validator("payload")
    def validate_payload(cls, v):
        """Validate that audio payload is valid base64."""
        if not v:
            raise ValueError("Audio payload cannot be empty")
        try:
            base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError):
            raise ValueError("Invalid base64 encoded audio data")
        return v


class OutboundMediaMessage(BaseModel):
    """Model for a media frame sent to Twilio."""

    event: Literal["media"] = "media"
    streamSid: str
    media: OutboundMediaPayload


class OutboundMarkMessage(BaseModel):
    """Model for a mark frame sent to Twilio."""

    event: Literal["mark"] = "mark"
    streamSid: str
    mark: MarkPayload


class ClearMessage(BaseModel):
    """Model for a clear frame that flushes Twilio's playback buffer."""

    event: Literal["clear"] = "clear"
    streamSid: str


# Union type for all possible inbound frames
IncomingTwilioMessage = Union[
    ConnectedMessage,
    StartMessage,
    MarkMessage,
    StopMessage,
    DtmfMessage,
]

# Union type for all possible outbound frames
OutgoingTwilioMessage = Union[
    OutboundMediaMessage,
    OutboundMarkMessage,
    ClearMessage,
]
