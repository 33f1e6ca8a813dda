"""
FastAPI server bridging Twilio phone calls to the OpenAI Realtime API.

Twilio calls /incoming-call when a call arrives and receives TwiML that
connects the call audio to the /media-stream WebSocket. Each media-stream
connection is served by a CallBridge that streams caller audio to OpenAI and
plays the assistant's audio back, with barge-in support. When the call ends
the conversation is handed to the summarizer.
"""

import os
from pathlib import Path
from xml.sax.saxutils import quoteattr

import dotenv
from fastapi import FastAPI, Request, WebSocket
from fastapi.responses import Response

from callbridge.config.logging_config import configure_logging
from callbridge.config.settings import BridgeSettings
from callbridge.models.call_registry import CallRegistry
from callbridge.services.summarizer import build_summarizer
from callbridge.websocket_manager import MediaStreamManager

# Load environment variables from .env file if it exists
env_path = Path(".") / ".env"
if env_path.exists():
    dotenv.load_dotenv(env_path)

logger = configure_logging()

PORT = int(os.getenv("PORT", "8000"))
HOST = os.getenv("HOST", "0.0.0.0")

settings = BridgeSettings()
registry = CallRegistry()
summarizer = build_summarizer(settings)
media_stream_manager = MediaStreamManager(registry, summarizer, settings)

app = FastAPI(
    title="Call Bridge",
    description="Bridge between Twilio Media Streams and the OpenAI Realtime API",
    version="1.0.0",
)


def build_connect_twiml(host: str) -> str:
    """TwiML that connects the call's audio to this server's media stream."""
    stream_url = quoteattr(f"wss://{host}/media-stream")
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        "<Response>"
        "<Connect>"
        f"<Stream url={stream_url} />"
        "</Connect>"
        "</Response>"
    )


@app.api_route("/incoming-call", methods=["GET", "POST"])
async def incoming_call(request: Request):
    """Answer Twilio's voice webhook with a <Connect><Stream> instruction.

    The stream host is WS_HOST when configured, otherwise the Host header of
    the webhook request.
    """
    host = settings.ws_host or request.headers.get("host") or request.url.hostname
    logger.info(f"Incoming call; streaming media to wss://{host}/media-stream")
    return Response(content=build_connect_twiml(host), media_type="application/xml")


@app.websocket("/media-stream")
async def media_stream(websocket: WebSocket):
    """WebSocket endpoint for Twilio Media Streams.

    Twilio sends connected, start, media, mark and stop frames here; the
    bridge answers with media, mark and clear frames for the same stream.
    """
    await media_stream_manager.handle_websocket(websocket)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring system status.

    Returns:
        dict: Status plus the number of calls currently bridged
    """
    return {
        "status": "healthy",
        "openai_api_key_configured": bool(settings.openai_api_key),
        "active_calls": len(registry),
    }


@app.get("/")
async def root():
    """Root endpoint to display basic information about the API."""
    return {
        "name": "Call Bridge",
        "description": "Bridge between Twilio Media Streams and the OpenAI Realtime API",
        "version": "1.0.0",
        "endpoints": {
            "/incoming-call": "Twilio voice webhook returning TwiML",
            "/media-stream": "WebSocket endpoint for Twilio Media Streams",
            "/health": "Health check endpoint",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Starting server on http://{HOST}:{PORT}")
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        ws_ping_interval=5,
        ws_ping_timeout=20,
        ws_max_size=16 * 1024 * 1024,
        http="h11",
    )
