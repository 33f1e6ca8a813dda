"""
Session adapter for the OpenAI Realtime API.

RealtimeSessionAdapter owns the outbound WebSocket for one call. It sends the
session configuration once, turns bridge commands into Realtime client events,
and turns server events into calls on a RealtimeEventHandler.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, List, Optional, Protocol

import websockets
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from callbridge.config.constants import (
    AI_READY_TIMEOUT,
    EVENT_AUDIO_DELTA,
    EVENT_AUDIO_TRANSCRIPT_DELTA,
    EVENT_AUDIO_TRANSCRIPT_DONE,
    EVENT_ERROR,
    EVENT_INPUT_TRANSCRIPTION_COMPLETED,
    EVENT_OUTPUT_AUDIO_DELTA,
    EVENT_OUTPUT_AUDIO_TRANSCRIPT_DELTA,
    EVENT_OUTPUT_AUDIO_TRANSCRIPT_DONE,
    EVENT_RESPONSE_CREATED,
    EVENT_RESPONSE_DONE,
    EVENT_SESSION_CREATED,
    EVENT_SESSION_UPDATED,
    EVENT_SPEECH_STARTED,
    EVENT_SPEECH_STOPPED,
    EVENT_TEXT_DELTA,
    EVENT_TEXT_DONE,
    LOGGER_NAME,
    MESSAGE_TYPE_AUDIO_APPEND,
    OPENAI_REALTIME_URL,
)
from callbridge.models.openai_schemas import (
    AudioCommitMessage,
    ItemTruncateMessage,
    ResponseCancelMessage,
    ResponseCreateMessage,
    ResponseOptions,
    SessionConfig,
    SessionUpdateMessage,
    extract_assistant_text,
    extract_user_transcript,
)

logger = logging.getLogger(LOGGER_NAME)

# WebSocket configuration for low latency
WS_MAX_SIZE = 16 * 1024 * 1024  # 16MB - large enough for audio chunks
WS_PING_INTERVAL = 5

TRANSCRIPT_DELTA_EVENTS = {
    EVENT_TEXT_DELTA,
    EVENT_AUDIO_TRANSCRIPT_DELTA,
    EVENT_OUTPUT_AUDIO_TRANSCRIPT_DELTA,
}
TRANSCRIPT_DONE_EVENTS = {
    EVENT_TEXT_DONE,
    EVENT_AUDIO_TRANSCRIPT_DONE,
    EVENT_OUTPUT_AUDIO_TRANSCRIPT_DONE,
}


class RealtimeEventHandler(Protocol):
    """Receiver of the normalized events produced by RealtimeSessionAdapter."""

    async def on_ai_ready(self) -> None: ...

    async def on_response_created(self, response_id: Optional[str]) -> None: ...

    async def on_audio_delta(self, chunk: str, item_id: Optional[str]) -> None: ...

    async def on_user_transcript(self, text: str) -> None: ...

    async def on_assistant_transcript(self, text: str) -> None: ...

    async def on_response_done(self, text: str, response_id: Optional[str] = None) -> None: ...

    async def on_speech_started(self) -> None: ...

    async def on_speech_stopped(self) -> None: ...

    async def on_ai_error(self, detail: Dict[str, Any]) -> None: ...

    async def on_ai_closed(self) -> None: ...


class RealtimeSessionAdapter:
    """
    Client for one OpenAI Realtime session.

    Commands issued before the socket is open are queued and flushed, in order,
    right after the session.update event. The connection is attempted once;
    a failed or timed-out open ends the session.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        session_config: SessionConfig,
        ready_timeout: float = AI_READY_TIMEOUT,
        url: str = OPENAI_REALTIME_URL,
    ):
        if not api_key:
            logger.error("OPENAI_API_KEY environment variable not set")
            raise ValueError("OPENAI_API_KEY environment variable not set")

        self.api_key = api_key
        self.model = model
        self.session_config = session_config
        self.ready_timeout = ready_timeout
        self.url = f"{url}?model={model}"
        self.ws = None
        self.handler: Optional[RealtimeEventHandler] = None
        self._pending: List[str] = []
        self._ready = False
        self._session_configured = False
        self._is_closing = False
        self._recv_task: Optional[asyncio.Task] = None
        self._assistant_text_parts: List[str] = []

    def set_handler(self, handler: RealtimeEventHandler) -> None:
        self.handler = handler

    @property
    def is_ready(self) -> bool:
        """True once session.update has been sent and the backlog flushed."""
        return self._ready and not self._is_closing

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def connect(self) -> bool:
        """
        Open the WebSocket, configure the session and flush queued commands.

        Returns:
            bool: True if the session is ready, False if the connection failed
        """
        if self._is_closing:
            logger.warning("Cannot connect - session is closing")
            return False

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "OpenAI-Beta": "realtime=v1",
        }

        try:
            logger.info(f"Connecting to OpenAI Realtime API with model: {self.model}")
            connection_start = time.time()
            ws = await asyncio.wait_for(
                websockets.connect(
                    self.url,
                    max_size=WS_MAX_SIZE,
                    ping_interval=WS_PING_INTERVAL,
                    ping_timeout=10,
                    compression=None,
                    additional_headers=headers,
                ),
                timeout=self.ready_timeout,
            )
            logger.debug(f"WebSocket connection established in {time.time() - connection_start:.2f} seconds")
        except asyncio.TimeoutError:
            logger.error(f"Timeout while connecting to OpenAI Realtime API (after {self.ready_timeout}s)")
            await self._startup_failed()
            return False
        except Exception as e:
            logger.error(f"Failed to connect to OpenAI Realtime API: {e}")
            await self._startup_failed()
            return False

        if self._is_closing:
            logger.info("Session closed while connecting; dropping new connection")
            await ws.close()
            return False

        self.ws = ws
        await self._configure_session()
        await self._flush_pending()
        self._ready = True

        self._recv_task = asyncio.create_task(self._recv_loop())
        logger.info("OpenAI Realtime session ready")

        if self.handler:
            await self.handler.on_ai_ready()
        return True

    async def _configure_session(self) -> None:
        if self._session_configured:
            return
        message = SessionUpdateMessage(session=self.session_config)
        await self._send_now(message.model_dump_json(exclude_none=True))
        self._session_configured = True
        logger.debug("Session configuration sent")

    async def _flush_pending(self) -> None:
        flushed = 0
        # Commands queued while flushing are appended and picked up by this loop
        while self._pending:
            payload = self._pending.pop(0)
            await self._send_now(payload)
            flushed += 1
        if flushed:
            logger.info(f"Flushed {flushed} queued command(s) to OpenAI")

    async def _startup_failed(self) -> None:
        if self._pending:
            logger.warning(f"Dropping {len(self._pending)} queued command(s); OpenAI session never became ready")
            self._pending.clear()
        if self.handler and not self._is_closing:
            await self.handler.on_ai_closed()

    async def _send(self, payload: str) -> bool:
        if self._is_closing:
            logger.debug("Ignoring command - session is closing")
            return False
        if not self._ready:
            self._pending.append(payload)
            return True
        return await self._send_now(payload)

    async def _send_now(self, payload: str) -> bool:
        try:
            await self.ws.send(payload)
            return True
        except ConnectionClosed as e:
            logger.warning(f"OpenAI connection closed while sending: {e}")
            return False

    async def append_audio(self, chunk: str) -> bool:
        """Append a base64 audio chunk to the input buffer."""
        # Hot path: skip model validation
        return await self._send(json.dumps({"type": MESSAGE_TYPE_AUDIO_APPEND, "audio": chunk}))

    async def commit_audio(self) -> bool:
        return await self._send(AudioCommitMessage().model_dump_json())

    async def create_response(self, instructions: Optional[str] = None) -> bool:
        message = ResponseCreateMessage()
        if instructions:
            message.response = ResponseOptions(instructions=instructions)
        return await self._send(message.model_dump_json(exclude_none=True))

    async def cancel_response(self) -> bool:
        return await self._send(ResponseCancelMessage().model_dump_json())

    async def truncate_item(self, item_id: str, audio_end_ms: int, content_index: int = 0) -> bool:
        message = ItemTruncateMessage(
            item_id=item_id,
            content_index=content_index,
            audio_end_ms=max(0, int(audio_end_ms)),
        )
        return await self._send(message.model_dump_json())

    async def _recv_loop(self) -> None:
        """Read server events until the socket closes."""
        try:
            async for message in self.ws:
                await self._handle_message(message)
            logger.info("OpenAI Realtime connection closed normally")
        except ConnectionClosedError as e:
            logger.warning(f"OpenAI Realtime connection closed unexpectedly: {e}")
        except Exception as e:
            logger.error(f"Error in OpenAI receive loop: {e}", exc_info=True)

        self._ready = False
        if not self._is_closing and self.handler:
            await self.handler.on_ai_closed()

    async def _handle_message(self, message) -> None:
        if isinstance(message, bytes):
            logger.debug(f"Ignoring binary frame of {len(message)} bytes from OpenAI")
            return

        try:
            data = json.loads(message)
        except json.JSONDecodeError:
            logger.warning(f"Received invalid JSON from OpenAI: {message[:100]}...")
            return

        if not isinstance(data, dict):
            logger.warning(f"Unexpected OpenAI frame: {message[:100]}...")
            return

        try:
            await self.dispatch_event(data)
        except Exception as e:
            logger.error(f"Error handling OpenAI event {data.get('type')}: {e}", exc_info=True)

    async def dispatch_event(self, data: Dict[str, Any]) -> None:
        """Translate one decoded server event into a handler call."""
        if not self.handler:
            return

        event_type = data.get("type")

        if event_type in (EVENT_AUDIO_DELTA, EVENT_OUTPUT_AUDIO_DELTA):
            delta = data.get("delta")
            if delta:
                await self.handler.on_audio_delta(delta, data.get("item_id"))
        elif event_type == EVENT_RESPONSE_CREATED:
            self._assistant_text_parts = []
            response = data.get("response") or {}
            await self.handler.on_response_created(response.get("id"))
        elif event_type in TRANSCRIPT_DELTA_EVENTS:
            delta = data.get("delta")
            if isinstance(delta, str):
                self._assistant_text_parts.append(delta)
        elif event_type in TRANSCRIPT_DONE_EVENTS:
            text = data.get("text") or data.get("transcript") or "".join(self._assistant_text_parts)
            self._assistant_text_parts = []
            if text and text.strip():
                await self.handler.on_assistant_transcript(text.strip())
        elif event_type == EVENT_INPUT_TRANSCRIPTION_COMPLETED:
            text = extract_user_transcript(data)
            if text:
                await self.handler.on_user_transcript(text)
        elif event_type == EVENT_SPEECH_STARTED:
            await self.handler.on_speech_started()
        elif event_type == EVENT_SPEECH_STOPPED:
            await self.handler.on_speech_stopped()
        elif event_type == EVENT_RESPONSE_DONE:
            self._assistant_text_parts = []
            response = data.get("response") or {}
            await self.handler.on_response_done(extract_assistant_text(data), response.get("id"))
        elif event_type == EVENT_ERROR:
            detail = data.get("error") or data
            await self.handler.on_ai_error(detail)
        elif event_type in (EVENT_SESSION_CREATED, EVENT_SESSION_UPDATED):
            logger.debug(f"OpenAI {event_type}")
        else:
            logger.debug(f"Received OpenAI event of type: {event_type or 'unknown'}")

    async def close(self) -> None:
        """Close the WebSocket and stop the receive loop."""
        if self._is_closing:
            return
        logger.info("Closing OpenAI Realtime session")
        self._is_closing = True
        self._ready = False

        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} queued command(s)")
            self._pending.clear()

        if self._recv_task and self._recv_task is not asyncio.current_task():
            self._recv_task.cancel()

        if self.ws:
            try:
                await self.ws.close()
            except Exception as e:
                logger.warning(f"Error closing OpenAI WebSocket: {e}")

        logger.info("OpenAI Realtime session closed")
