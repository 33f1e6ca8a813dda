"""
Handles the Twilio Media Streams side of a call.

This module turns the JSON frames Twilio sends over the media-stream WebSocket
(connected, start, media, mark, dtmf, stop) into calls on a TelephonyEventHandler,
and builds the frames the bridge sends back to the caller (media, mark, clear).
"""

import json
import logging
from typing import Dict, Optional, Protocol

from fastapi import WebSocket
from pydantic import ValidationError

from callbridge.config.constants import (
    LOGGER_NAME,
    TWILIO_EVENT_CONNECTED,
    TWILIO_EVENT_DTMF,
    TWILIO_EVENT_MARK,
    TWILIO_EVENT_MEDIA,
    TWILIO_EVENT_START,
    TWILIO_EVENT_STOP,
)
from callbridge.models.telephony_schemas import (
    ClearMessage,
    ConnectedMessage,
    DtmfMessage,
    MarkMessage,
    MarkPayload,
    OutboundMarkMessage,
    OutboundMediaMessage,
    OutboundMediaPayload,
    StartMessage,
    StopMessage,
)

logger = logging.getLogger(LOGGER_NAME)


class TelephonyEventHandler(Protocol):
    """Receiver of the normalized events produced by TwilioMediaStreamAdapter."""

    async def on_start(self, stream_id: str, call_id: str, custom_parameters: Dict[str, str]) -> None: ...

    async def on_media_frame(self, timestamp_ms: int, chunk: str) -> None: ...

    async def on_mark_consumed(self, name: str) -> None: ...

    async def on_stop(self) -> None: ...


class TwilioMediaStreamAdapter:
    """
    Adapter around the Twilio media-stream WebSocket for one call.

    Outbound frames need the streamSid from the start frame; any send before
    that is dropped and logged as a protocol violation.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.stream_id: Optional[str] = None
        self.call_id: Optional[str] = None
        self.closed = False
        self.frames_dropped = 0

    async def dispatch(self, raw: str, handler: TelephonyEventHandler) -> bool:
        """
        Parse one inbound frame and route it to the handler.

        Args:
            raw: The text frame as received from Twilio
            handler: Receiver of the normalized event

        Returns:
            True if the frame was understood and routed, False if it was dropped
        """
        try:
            frame = json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            return self._drop(f"Malformed Twilio frame: {str(raw)[:100]}")

        if not isinstance(frame, dict):
            return self._drop(f"Unexpected Twilio frame: {str(raw)[:100]}")

        event = frame.get("event")

        # Fast path for audio frames
        if event == TWILIO_EVENT_MEDIA:
            media = frame.get("media")
            if not isinstance(media, dict) or not media.get("payload"):
                return self._drop("Media frame without payload")
            try:
                timestamp = int(media.get("timestamp") or 0)
            except (TypeError, ValueError):
                timestamp = -1
            if timestamp < 0:
                return self._drop(f"Media frame with bad timestamp: {media.get('timestamp')}")
            await handler.on_media_frame(timestamp, media["payload"])
            return True

        try:
            if event == TWILIO_EVENT_START:
                start = StartMessage(**frame)
                self.stream_id = start.start.streamSid
                self.call_id = start.start.callSid
                logger.info(f"Media stream started: stream={self.stream_id} call={self.call_id}")
                await handler.on_start(
                    start.start.streamSid, start.start.callSid, start.start.customParameters
                )
            elif event == TWILIO_EVENT_MARK:
                mark = MarkMessage(**frame)
                await handler.on_mark_consumed(mark.mark.name)
            elif event == TWILIO_EVENT_STOP:
                StopMessage(**frame)
                logger.info(f"Media stream stopped: stream={self.stream_id}")
                await handler.on_stop()
            elif event == TWILIO_EVENT_CONNECTED:
                connected = ConnectedMessage(**frame)
                logger.debug(f"Twilio media stream connected (protocol={connected.protocol})")
            elif event == TWILIO_EVENT_DTMF:
                dtmf = DtmfMessage(**frame)
                logger.info(f"Caller pressed DTMF digit {dtmf.dtmf.digit} on stream {self.stream_id}")
            else:
                return self._drop(f"Unknown Twilio event: {event}")
        except ValidationError as e:
            return self._drop(f"Invalid Twilio {event} frame: {e}")

        return True

    def _drop(self, reason: str) -> bool:
        self.frames_dropped += 1
        logger.warning(f"{reason} - frame dropped")
        return False

    async def _send(self, message) -> bool:
        if self.closed:
            logger.debug(f"Not sending {message.event} - telephony socket closed")
            return False
        try:
            await self.websocket.send_text(message.model_dump_json())
            return True
        except Exception as e:
            logger.warning(f"Failed to send {message.event} frame to Twilio: {e}")
            return False

    def _require_stream(self, what: str) -> bool:
        if self.stream_id is None:
            logger.warning(f"Protocol violation: {what} before media stream start - ignored")
            return False
        return True

    async def send_audio(self, chunk: str) -> bool:
        """Send a base64 audio chunk to the caller."""
        if not self._require_stream("send_audio"):
            return False
        try:
            message = OutboundMediaMessage(
                streamSid=self.stream_id, media=OutboundMediaPayload(payload=chunk)
            )
        except ValidationError as e:
            logger.warning(f"Invalid outbound audio chunk: {e}")
            return False
        return await self._send(message)

    async def send_mark(self, name: str) -> bool:
        """Ask Twilio to echo a mark once the audio sent so far has played."""
        if not self._require_stream("send_mark"):
            return False
        return await self._send(OutboundMarkMessage(streamSid=self.stream_id, mark=MarkPayload(name=name)))

    async def send_clear(self) -> bool:
        """Flush audio Twilio has buffered but not yet played."""
        if not self._require_stream("send_clear"):
            return False
        return await self._send(ClearMessage(streamSid=self.stream_id))

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self.websocket.close()
        except Exception as e:
            logger.debug(f"Telephony socket already closed: {e}")
        logger.info(f"Telephony socket closed for stream: {self.stream_id}")
