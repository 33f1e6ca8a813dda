import pytest

from callbridge.config.settings import BridgeSettings
from callbridge.models.call_registry import CallRegistry
from callbridge.models.call_session import BridgeState
from callbridge.websocket_manager import MediaStreamManager, build_realtime_adapter
from conftest import (
    FakeRealtimeAdapter,
    MockWebSocket,
    RecordingSummarizer,
    mark_frame,
    media_frame,
    start_frame,
    stop_frame,
)


@pytest.fixture
def fake_ai():
    return FakeRealtimeAdapter()


@pytest.fixture
def manager(fake_ai):
    return MediaStreamManager(
        CallRegistry(),
        RecordingSummarizer(),
        BridgeSettings(greeting_enabled=False),
        ai_factory=lambda settings: fake_ai,
    )


@pytest.mark.asyncio
async def test_full_call_is_bridged_and_finalized(manager, fake_ai):
    websocket = MockWebSocket([
        start_frame(), media_frame(20, "AAEC"), media_frame(40, "AwQF"), media_frame(60, "BgcI"), stop_frame(), media_frame(80),
    ])

    bridge = await manager.handle_websocket(websocket)
    await bridge.summary_task

    assert websocket.accepted
    assert websocket.closed
    assert bridge.state == BridgeState.CLOSED
    assert fake_ai.named("append") == [("append", "AAEC"), ("append", "AwQF"), ("append", "BgcI")]
    assert len(manager.registry) == 0
    assert len(manager.summarizer.calls) == 1


@pytest.mark.asyncio
async def test_disconnect_without_stop_still_finalizes(manager):
    websocket = MockWebSocket([start_frame(), media_frame(20)])

    bridge = await manager.handle_websocket(websocket)

    assert bridge.is_closed
    assert len(manager.registry) == 0


@pytest.mark.asyncio
async def test_malformed_frames_do_not_end_the_call(manager, fake_ai):
    websocket = MockWebSocket([start_frame(), "{oops", media_frame(20), mark_frame("reply-1"), stop_frame()])

    bridge = await manager.handle_websocket(websocket)

    assert bridge.telephony.frames_dropped == 1
    assert fake_ai.named("append") == [("append", "AAAA")]


@pytest.mark.asyncio
async def test_ai_connect_failure_ends_call(manager):
    failing_ai = FakeRealtimeAdapter(connect_result=False)
    manager.ai_factory = lambda settings: failing_ai
    websocket = MockWebSocket([start_frame(), media_frame(20), media_frame(40)])

    bridge = await manager.handle_websocket(websocket)

    assert bridge.is_closed
    assert websocket.closed


@pytest.mark.asyncio
async def test_missing_api_key_closes_connection():
    manager = MediaStreamManager(CallRegistry(), settings=BridgeSettings(openai_api_key=None))
    websocket = MockWebSocket([start_frame()])

    assert await manager.handle_websocket(websocket) is None
    assert websocket.accepted
    assert websocket.closed


def test_build_realtime_adapter_uses_settings():
    settings = BridgeSettings(openai_api_key="key", realtime_model="gpt-realtime-x", voice="sage", ai_ready_timeout=2.5)

    adapter = build_realtime_adapter(settings)

    assert adapter.model == "gpt-realtime-x"
    assert adapter.session_config.voice == "sage"
    assert adapter.ready_timeout == 2.5
