"""
Models module for data structures and state management in the call bridge.

Key components:
- telephony_schemas: Pydantic models for the Twilio Media Streams frames the
  bridge consumes (start, media, mark, stop) and produces (media, mark, clear).
- openai_schemas: Models for the OpenAI Realtime client events (session.update,
  audio append/commit, response create/cancel, item truncate) and helpers that
  extract transcripts from server events.
- call_session: CallSession, the per-call turn-taking state and QA log.
- call_registry: CallRegistry, the process-wide map from call id to bridge.

Usage examples:
```python
from callbridge.models.call_registry import CallRegistry
from callbridge.models.telephony_schemas import StartMessage

registry = CallRegistry()
start = StartMessage(**{
    "event": "start",
    "start": {"streamSid": "MZ123", "callSid": "CA123"},
})
```
"""

from callbridge.models.call_registry import CallRegistry, DuplicateCallError
from callbridge.models.call_session import BridgeState, CallSession, QAPair, TurnState
from callbridge.models.openai_schemas import (
    ItemTruncateMessage,
    ResponseCreateMessage,
    SessionConfig,
    SessionUpdateMessage,
    TurnDetection,
)
from callbridge.models.telephony_schemas import (
    ClearMessage,
    IncomingTwilioMessage,
    MarkMessage,
    OutboundMarkMessage,
    OutboundMediaMessage,
    OutgoingTwilioMessage,
    StartMessage,
    StopMessage,
)
