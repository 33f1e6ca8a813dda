"""
Bot module joining Twilio calls to the OpenAI Realtime API.

Key components:
- RealtimeSessionAdapter: Client for one OpenAI Realtime session. Sends the
  session configuration once, queues commands until the socket is ready and
  turns server events into RealtimeEventHandler callbacks.
- CallBridge: Per-call state machine. Forwards caller audio, plays assistant
  audio with marks, handles barge-in, gates response requests, records the
  question/answer log and finalizes the call exactly once.

Usage examples:
```python
from callbridge.bot.bridge_controller import CallBridge
from callbridge.bot.realtime_api import RealtimeSessionAdapter
from callbridge.models.openai_schemas import SessionConfig

ai = RealtimeSessionAdapter(api_key, "gpt-realtime", SessionConfig())
bridge = CallBridge(registry, telephony, ai, summarizer)
await bridge.start()
```
"""
