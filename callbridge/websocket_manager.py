"""
WebSocket connection manager for Twilio Media Streams.

This module implements the server side of the /media-stream WebSocket:
- Accept the Twilio connection and tune the socket for low latency
- Build the per-call adapters and the CallBridge that joins them
- Feed every inbound frame to the telephony adapter until the call ends
- Make sure the bridge is finalized however the connection ends
"""

import logging
import socket
from typing import Callable, Optional

from fastapi import WebSocket, WebSocketDisconnect

from callbridge.bot.bridge_controller import CallBridge
from callbridge.bot.realtime_api import RealtimeSessionAdapter
from callbridge.config.constants import LOGGER_NAME
from callbridge.config.settings import BridgeSettings
from callbridge.handlers.stream_handlers import TwilioMediaStreamAdapter
from callbridge.models.call_registry import CallRegistry
from callbridge.models.openai_schemas import InputAudioTranscription, SessionConfig
from callbridge.services.summarizer import Summarizer

logger = logging.getLogger(LOGGER_NAME)

AIFactory = Callable[[BridgeSettings], RealtimeSessionAdapter]


def build_realtime_adapter(settings: BridgeSettings) -> RealtimeSessionAdapter:
    """Create the OpenAI Realtime adapter for one call from settings."""
    session_config = SessionConfig(
        voice=settings.voice,
        instructions=settings.instructions,
        input_audio_transcription=InputAudioTranscription(model=settings.transcription_model),
    )
    return RealtimeSessionAdapter(
        api_key=settings.openai_api_key,
        model=settings.realtime_model,
        session_config=session_config,
        ready_timeout=settings.ai_ready_timeout,
    )


class MediaStreamManager:
    """Runs one CallBridge per Twilio media-stream connection.

    The registry and summarizer are shared by every call this manager serves.
    The AI factory is injectable so tests can substitute a fake adapter.
    """

    def __init__(
        self,
        registry: CallRegistry,
        summarizer: Optional[Summarizer] = None,
        settings: Optional[BridgeSettings] = None,
        ai_factory: AIFactory = build_realtime_adapter,
    ):
        self.registry = registry
        self.summarizer = summarizer
        self.settings = settings or BridgeSettings()
        self.ai_factory = ai_factory

    async def _optimize_socket(self, websocket: WebSocket) -> None:
        """
        Disable Nagle's algorithm on the underlying TCP socket when reachable.

        Args:
            websocket: The FastAPI WebSocket connection
        """
        try:
            client = websocket.client
            if hasattr(client, "sock") and client.sock is not None:
                client.sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                logger.info("Optimized socket: TCP_NODELAY enabled for low latency")
        except Exception as e:
            logger.warning(f"Could not optimize socket: {e}")

    async def handle_websocket(self, websocket: WebSocket) -> Optional[CallBridge]:
        """Handle a Twilio media-stream connection for its whole lifetime.

        Args:
            websocket: The FastAPI WebSocket connection object

        Returns:
            The CallBridge that served the call, or None if none could be built

        The loop ends when Twilio disconnects, when the bridge finalizes
        (stop frame, OpenAI closed, duplicate call id) or on an unexpected
        error. The bridge is finalized in every case.
        """
        await websocket.accept()
        await self._optimize_socket(websocket)
        logger.info("Twilio media stream connection accepted")

        try:
            ai = self.ai_factory(self.settings)
        except ValueError as e:
            logger.error(f"Cannot bridge call: {e}")
            await websocket.close()
            return None

        telephony = TwilioMediaStreamAdapter(websocket)
        bridge = CallBridge(
            registry=self.registry,
            telephony=telephony,
            ai=ai,
            summarizer=self.summarizer,
            settings=self.settings,
        )
        reason = "telephony disconnected"

        try:
            await bridge.start()
            while not bridge.is_closed:
                data = await websocket.receive_text()
                await telephony.dispatch(data, bridge)
        except WebSocketDisconnect as e:
            logger.info(f"Twilio disconnected (code={e.code}) for call {bridge.call_label}")
        except Exception as e:
            reason = "media stream error"
            logger.error(f"Error in media stream connection: {e}", exc_info=True)
        finally:
            await bridge.finalize(reason)

        return bridge
