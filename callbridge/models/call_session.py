"""
Per-call state for the Twilio to OpenAI Realtime bridge.

A CallSession is owned by exactly one CallBridge for the lifetime of one phone
call. It is mutated only from that bridge's transition methods, which the event
loop runs one at a time, so it carries no locking.
"""

from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, Dict, List, Optional

from pydantic import BaseModel


class TurnState(str, Enum):
    """Who currently owns the audio channel."""
    IDLE = "idle"
    ASSISTANT_SPEAKING = "assistant_speaking"
    BARGE_IN = "barge_in"


class BridgeState(str, Enum):
    """Lifecycle of a CallBridge."""
    CONNECTING = "connecting"
    ACTIVE = "active"
    FINALIZING = "finalizing"
    CLOSED = "closed"


class QAPair(BaseModel):
    """One caller utterance paired with the assistant's reply."""
    question: Optional[str] = None
    answer: str

    def as_summary_pair(self) -> Dict[str, Optional[str]]:
        """Shape used by the summarizer: {"q": ..., "a": ...}."""
        return {"q": self.question, "a": self.answer}


class CallSession:
    """
    Mutable state of one phone call.

    Attributes:
        call_id: Provider call identifier (Twilio callSid)
        stream_id: Provider stream identifier, set on the start frame
        caller: Caller number from the start frame's custom parameters, if any
        turn_state: Current turn-taking state
        mark_queue: Outstanding playback marks, oldest first
        pending_user_utterance: Latest caller transcript awaiting an answer
        qa_log: Chronological question/answer pairs
        response_active: True between response.created and response.done
        latest_media_timestamp: Timestamp (ms) of the last caller frame
        response_start_timestamp: Caller timestamp when the current reply began playing
        last_assistant_item_id: Item id of the assistant audio being played
    """

    def __init__(self, call_id: Optional[str] = None):
        self.call_id: Optional[str] = call_id
        self.stream_id: Optional[str] = None
        self.caller: Optional[str] = None
        self.turn_state = TurnState.IDLE
        self.mark_queue: Deque[str] = deque()
        self.pending_user_utterance: Optional[str] = None
        self.qa_log: List[QAPair] = []
        self.response_active = False
        self.latest_media_timestamp = 0
        self.response_start_timestamp: Optional[int] = None
        self.last_assistant_item_id: Optional[str] = None
        self.started_at = datetime.now(timezone.utc)
        self.ended_at: Optional[datetime] = None

    def record_answer(self, answer: str) -> QAPair:
        """Pair the answer with the pending question (if any) and append it to the log."""
        pair = QAPair(question=self.pending_user_utterance, answer=answer)
        self.qa_log.append(pair)
        self.pending_user_utterance = None
        return pair

    def reset_playback(self) -> None:
        """Forget everything about the assistant audio currently draining."""
        self.mark_queue.clear()
        self.response_start_timestamp = None
        self.last_assistant_item_id = None

    def summary_pairs(self) -> List[Dict[str, Optional[str]]]:
        return [pair.as_summary_pair() for pair in self.qa_log]

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.ended_at is None:
            return None
        return (self.ended_at - self.started_at).total_seconds()
