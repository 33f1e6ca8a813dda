import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import pytest
from fastapi import WebSocketDisconnect

from callbridge.bot.bridge_controller import CallBridge
from callbridge.config.settings import BridgeSettings
from callbridge.handlers.stream_handlers import TwilioMediaStreamAdapter
from callbridge.models.call_registry import CallRegistry


@pytest.fixture(autouse=True)
def reset_logging():
    """Reset logging configuration before each test"""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    logging.basicConfig(level=logging.NOTSET)
    yield


class MockWebSocket:
    """Stand-in for the FastAPI WebSocket that records every frame sent."""

    def __init__(self, incoming: Optional[List[str]] = None):
        self.sent_messages: List[Dict[str, Any]] = []
        self.incoming = list(incoming or [])
        self.accepted = False
        self.closed = False
        self.client = None

    async def accept(self):
        self.accepted = True

    async def send_text(self, data: str):
        self.sent_messages.append(json.loads(data))

    async def receive_text(self) -> str:
        await asyncio.sleep(0)
        if not self.incoming:
            raise WebSocketDisconnect(code=1000)
        return self.incoming.pop(0)

    async def close(self, code: int = 1000):
        self.closed = True

    def events(self, name: str) -> List[Dict[str, Any]]:
        return [m for m in self.sent_messages if m.get("event") == name]


class FakeRealtimeAdapter:
    """Records the commands the bridge issues to the AI side."""

    def __init__(self, connect_result: bool = True):
        self.handler = None
        self.commands: List[tuple] = []
        self.connect_result = connect_result
        self.closed = False

    def set_handler(self, handler):
        self.handler = handler

    async def connect(self) -> bool:
        if self.connect_result and self.handler:
            await self.handler.on_ai_ready()
        elif self.handler:
            await self.handler.on_ai_closed()
        return self.connect_result

    async def append_audio(self, chunk: str) -> bool:
        self.commands.append(("append", chunk))
        return True

    async def commit_audio(self) -> bool:
        self.commands.append(("commit",))
        return True

    async def create_response(self, instructions: Optional[str] = None) -> bool:
        self.commands.append(("create", instructions))
        return True

    async def cancel_response(self) -> bool:
        self.commands.append(("cancel",))
        return True

    async def truncate_item(self, item_id: str, audio_end_ms: int, content_index: int = 0) -> bool:
        self.commands.append(("truncate", item_id, audio_end_ms))
        return True

    async def close(self) -> None:
        self.closed = True

    def named(self, name: str) -> List[tuple]:
        return [c for c in self.commands if c[0] == name]


class RecordingSummarizer:
    def __init__(self):
        self.calls: List[tuple] = []

    async def summarize_call(self, call_id, pairs, caller=None):
        self.calls.append((call_id, pairs, caller))
        return None


def start_frame(call_sid: str = "CA123", stream_sid: str = "MZ123", **params) -> str:
    return json.dumps({
        "event": "start",
        "sequenceNumber": "1",
        "streamSid": stream_sid,
        "start": {
            "streamSid": stream_sid,
            "callSid": call_sid,
            "accountSid": "AC123",
            "customParameters": params,
        },
    })


def media_frame(timestamp: int, payload: str = "AAAA") -> str:
    return json.dumps({
        "event": "media",
        "streamSid": "MZ123",
        "media": {"track": "inbound", "chunk": "1", "timestamp": str(timestamp), "payload": payload},
    })


def mark_frame(name: str) -> str:
    return json.dumps({"event": "mark", "streamSid": "MZ123", "mark": {"name": name}})


def stop_frame() -> str:
    return json.dumps({"event": "stop", "streamSid": "MZ123", "stop": {"callSid": "CA123"}})


@pytest.fixture
def registry():
    return CallRegistry()


@pytest.fixture
def websocket():
    return MockWebSocket()


@pytest.fixture
def telephony(websocket):
    return TwilioMediaStreamAdapter(websocket)


@pytest.fixture
def fake_ai():
    return FakeRealtimeAdapter()


@pytest.fixture
def summarizer():
    return RecordingSummarizer()


@pytest.fixture
def quiet_settings():
    """Settings without the opening greeting, so response counts start at zero."""
    return BridgeSettings(greeting_enabled=False)


@pytest.fixture
def bridge(registry, telephony, fake_ai, summarizer, quiet_settings):
    return CallBridge(registry, telephony, fake_ai, summarizer, quiet_settings)
