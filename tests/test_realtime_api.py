"""
Unit tests for the OpenAI Realtime session adapter.

These tests cover the readiness gate (queueing before the socket opens and
flushing after session.update), the event translation to handler callbacks,
and connection failure handling.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest

from callbridge.bot.realtime_api import RealtimeSessionAdapter
from callbridge.models.openai_schemas import SessionConfig


class FakeServerSocket:
    """Realtime server side: records sent frames, yields queued server events."""

    def __init__(self):
        self.sent = []
        self.closed = False
        self.inbox = asyncio.Queue()

    async def send(self, payload):
        self.sent.append(json.loads(payload))

    async def close(self):
        self.closed = True
        await self.inbox.put(None)

    def push(self, event):
        self.inbox.put_nowait(event if isinstance(event, (str, bytes)) else json.dumps(event))

    def __aiter__(self):
        return self

    async def __anext__(self):
        message = await self.inbox.get()
        if message is None:
            raise StopAsyncIteration
        return message

    def types(self):
        return [m["type"] for m in self.sent]


@pytest.fixture
def server():
    return FakeServerSocket()


@pytest.fixture
def handler():
    return AsyncMock()


@pytest.fixture
def adapter(handler):
    client = RealtimeSessionAdapter("test-api-key", "gpt-realtime-test", SessionConfig(instructions="Be brief"))
    client.set_handler(handler)
    return client


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def test_missing_api_key_raises():
    with pytest.raises(ValueError, match="OPENAI_API_KEY"):
        RealtimeSessionAdapter(None, "gpt-realtime-test", SessionConfig())


@pytest.mark.asyncio
async def test_commands_before_ready_are_flushed_after_session_update(adapter, handler, server):
    await adapter.append_audio("AAAA")
    await adapter.create_response()
    assert adapter.pending_count == 2
    assert not adapter.is_ready

    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)) as mock_connect:
        assert await adapter.connect()

    assert server.types() == ["session.update", "input_audio_buffer.append", "response.create"]
    assert server.sent[0]["session"]["instructions"] == "Be brief"
    assert adapter.pending_count == 0
    assert adapter.is_ready
    handler.on_ai_ready.assert_awaited_once()

    headers = mock_connect.call_args.kwargs["additional_headers"]
    assert headers["Authorization"] == "Bearer test-api-key"
    assert mock_connect.call_args.args[0].endswith("?model=gpt-realtime-test")
    await adapter.close()


@pytest.mark.asyncio
async def test_session_update_sent_once(adapter, server):
    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)):
        await adapter.connect()
    await adapter._configure_session()

    assert server.types().count("session.update") == 1
    await adapter.close()


@pytest.mark.asyncio
async def test_connect_failure_reports_closed(adapter, handler):
    await adapter.append_audio("AAAA")

    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(side_effect=OSError("refused"))):
        assert not await adapter.connect()

    assert adapter.pending_count == 0
    handler.on_ai_closed.assert_awaited_once()
    handler.on_ai_ready.assert_not_awaited()


@pytest.mark.asyncio
async def test_connect_timeout_reports_closed(handler):
    adapter = RealtimeSessionAdapter("key", "model", SessionConfig(), ready_timeout=0.01)
    adapter.set_handler(handler)

    async def never_connects(*args, **kwargs):
        await asyncio.sleep(1)

    with patch("callbridge.bot.realtime_api.websockets.connect", never_connects):
        assert not await adapter.connect()

    handler.on_ai_closed.assert_awaited_once()


@pytest.mark.asyncio
async def test_commands_after_ready_are_sent_immediately(adapter, server):
    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)):
        await adapter.connect()

    await adapter.truncate_item("item_1", 640)
    await adapter.cancel_response()
    await adapter.commit_audio()

    assert server.sent[1] == {
        "type": "conversation.item.truncate", "item_id": "item_1", "content_index": 0, "audio_end_ms": 640,
    }
    assert server.types()[2:] == ["response.cancel", "input_audio_buffer.commit"]
    await adapter.close()


@pytest.mark.asyncio
async def test_server_events_reach_handler(adapter, handler, server):
    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)):
        await adapter.connect()

    server.push({"type": "response.created", "response": {"id": "resp_1"}})
    server.push({"type": "response.audio.delta", "delta": "UklGRg==", "item_id": "item_1"})
    server.push({"type": "input_audio_buffer.speech_started"})
    server.push({"type": "input_audio_buffer.speech_stopped"})
    server.push({"type": "conversation.item.input_audio_transcription.completed", "transcript": "Hi there"})
    server.push({"type": "response.audio_transcript.delta", "delta": "Hel"})
    server.push({"type": "response.audio_transcript.delta", "delta": "lo"})
    server.push({"type": "response.audio_transcript.done"})
    server.push({
        "type": "response.done",
        "response": {"id": "resp_1", "output": [{"role": "assistant", "content": [{"transcript": "Hello"}]}]},
    })
    server.push({"type": "error", "error": {"message": "oops"}})
    await settle()

    handler.on_response_created.assert_awaited_once_with("resp_1")
    handler.on_audio_delta.assert_awaited_once_with("UklGRg==", "item_1")
    handler.on_speech_started.assert_awaited_once()
    handler.on_speech_stopped.assert_awaited_once()
    handler.on_user_transcript.assert_awaited_once_with("Hi there")
    handler.on_assistant_transcript.assert_awaited_once_with("Hello")
    handler.on_response_done.assert_awaited_once_with("Hello", "resp_1")
    handler.on_ai_error.assert_awaited_once_with({"message": "oops"})
    await adapter.close()


@pytest.mark.asyncio
async def test_invalid_json_is_skipped(adapter, handler, server):
    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)):
        await adapter.connect()

    server.push("{broken")
    server.push(b"\x00\x01")
    server.push({"type": "input_audio_buffer.speech_started"})
    await settle()

    handler.on_speech_started.assert_awaited_once()
    handler.on_ai_closed.assert_not_awaited()
    await adapter.close()


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_receive_loop(adapter, handler, server):
    handler.on_speech_started.side_effect = RuntimeError("boom")
    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)):
        await adapter.connect()

    server.push({"type": "input_audio_buffer.speech_started"})
    server.push({"type": "input_audio_buffer.speech_stopped"})
    await settle()

    handler.on_speech_stopped.assert_awaited_once()
    await adapter.close()


@pytest.mark.asyncio
async def test_server_close_notifies_handler(adapter, handler, server):
    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)):
        await adapter.connect()

    server.inbox.put_nowait(None)
    await settle()

    handler.on_ai_closed.assert_awaited_once()
    assert not adapter.is_ready


@pytest.mark.asyncio
async def test_close_is_idempotent_and_silences_commands(adapter, handler, server):
    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)):
        await adapter.connect()

    await adapter.close()
    await adapter.close()

    assert server.closed
    assert not await adapter.append_audio("AAAA")
    handler.on_ai_closed.assert_not_awaited()


@pytest.mark.asyncio
async def test_audio_order_preserved_across_readiness(adapter, server):
    before = ["AAEC", "AwQF", "BgcI"]
    after = ["CQoL", "DA0O"]
    for chunk in before:
        await adapter.append_audio(chunk)

    with patch("callbridge.bot.realtime_api.websockets.connect", AsyncMock(return_value=server)):
        await adapter.connect()
    for chunk in after:
        await adapter.append_audio(chunk)

    assert server.types()[0] == "session.update"
    appended = [m["audio"] for m in server.sent if m["type"] == "input_audio_buffer.append"]
    assert appended == before + after
    await adapter.close()
