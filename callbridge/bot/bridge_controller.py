"""
Per-call bridge between a Twilio media stream and an OpenAI Realtime session.

CallBridge is the state machine that glues one TwilioMediaStreamAdapter to one
RealtimeSessionAdapter. Each inbound event from either socket maps to exactly
one transition method below. The event loop runs them one at a time, so the
CallSession they mutate needs no locking.

Turn-taking rules:
- Caller audio is appended to the model's input buffer as it arrives.
- Assistant audio is played to the caller, each chunk followed by a mark so
  the bridge knows when playback has drained.
- When the caller starts talking over queued assistant audio, the assistant
  item is truncated to what was heard, Twilio's buffer is cleared and the
  response is cancelled (barge-in).
- When the caller stops talking and no response is active or requested, a
  response is requested. Otherwise the turn waits for the current response.
- A response the watchdog gave up on is remembered so its late completion
  cannot release the gate held by the next request.
- When the assistant says goodbye the call ends once its audio has played.
"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from callbridge.config.constants import GOODBYE_PATTERN, LOGGER_NAME, MARK_NAME_PREFIX
from callbridge.config.settings import BridgeSettings
from callbridge.models.call_registry import CallRegistry, DuplicateCallError
from callbridge.models.call_session import BridgeState, CallSession, TurnState

if TYPE_CHECKING:
    from callbridge.bot.realtime_api import RealtimeSessionAdapter
    from callbridge.handlers.stream_handlers import TwilioMediaStreamAdapter
    from callbridge.services.summarizer import Summarizer

logger = logging.getLogger(LOGGER_NAME)

GOODBYE_RE = re.compile(GOODBYE_PATTERN, re.IGNORECASE)


class CallBridge:
    """
    Bidirectional bridge for a single phone call.

    Lifecycle: CONNECTING until both the Twilio start frame has arrived and the
    OpenAI session is ready, then ACTIVE, then FINALIZING and CLOSED once
    either side ends the call. Finalization runs exactly once.
    """

    def __init__(
        self,
        registry: CallRegistry,
        telephony: "TwilioMediaStreamAdapter",
        ai: "RealtimeSessionAdapter",
        summarizer: Optional["Summarizer"] = None,
        settings: Optional[BridgeSettings] = None,
    ):
        self.registry = registry
        self.telephony = telephony
        self.ai = ai
        self.summarizer = summarizer
        self.settings = settings or BridgeSettings()
        self.session = CallSession()
        self.state = BridgeState.CONNECTING

        self._telephony_started = False
        self._ai_ready = False
        self._registered = False
        self._finalized = False
        self._response_requested = False
        self._turn_deferred = False
        self._greeting_sent = False
        self._hangup_pending = False
        self._mark_counter = 0
        self._active_response_id: Optional[str] = None
        self._abandoned_responses: List[Optional[str]] = []
        self._last_assistant_transcript: Optional[str] = None
        self._suppressed_item_id: Optional[str] = None
        self._connect_task: Optional[asyncio.Task] = None
        self._watchdog_task: Optional[asyncio.Task] = None
        self._hangup_task: Optional[asyncio.Task] = None
        self.summary_task: Optional[asyncio.Task] = None

        self.ai.set_handler(self)

    @property
    def call_label(self) -> str:
        return self.session.call_id or "pending"

    @property
    def is_closed(self) -> bool:
        return self._finalized

    async def start(self) -> None:
        """Begin opening the OpenAI session while Twilio frames keep flowing."""
        self._connect_task = asyncio.create_task(self.ai.connect())

    # Telephony transitions

    async def on_start(self, stream_id: str, call_id: str, custom_parameters: Optional[Dict[str, str]] = None) -> None:
        if self._finalized:
            return
        params = custom_parameters or {}
        self.session.stream_id = stream_id
        self.session.call_id = call_id
        self.session.caller = params.get("from") or params.get("caller")

        try:
            self.registry.register(call_id, self)
        except DuplicateCallError as e:
            logger.error(f"Rejecting media stream {stream_id}: {e}")
            await self.finalize("duplicate call id")
            return

        self._registered = True
        self._telephony_started = True
        await self._maybe_activate()

    async def on_media_frame(self, timestamp_ms: int, chunk: str) -> None:
        if self._finalized:
            return
        self.session.latest_media_timestamp = timestamp_ms
        await self.ai.append_audio(chunk)

    async def on_mark_consumed(self, name: str) -> None:
        if not self.session.mark_queue:
            logger.debug(f"Mark {name} acknowledged with empty queue for call {self.call_label}")
            return

        expected = self.session.mark_queue.popleft()
        if expected != name:
            logger.debug(f"Mark {name} acknowledged, expected {expected}")

        if self.session.mark_queue:
            return
        if self._hangup_pending:
            await self.finalize("assistant said goodbye")
        elif not self.session.response_active:
            # Caller has heard everything sent so far
            self.session.reset_playback()
            if self.session.turn_state == TurnState.ASSISTANT_SPEAKING:
                self.session.turn_state = TurnState.IDLE

    async def on_stop(self) -> None:
        await self.finalize("telephony stop")

    # AI transitions

    async def on_ai_ready(self) -> None:
        self._ai_ready = True
        await self._maybe_activate()

    async def on_response_created(self, response_id: Optional[str]) -> None:
        if self._finalized:
            return
        self._response_requested = False
        self._active_response_id = response_id
        self.session.response_active = True
        self._start_watchdog()
        logger.debug(f"Response {response_id} started for call {self.call_label}")

    async def on_audio_delta(self, chunk: str, item_id: Optional[str]) -> None:
        if self._finalized:
            return
        if item_id is not None and item_id == self._suppressed_item_id:
            logger.debug(f"Dropping audio for interrupted item {item_id}")
            return

        session = self.session
        if session.response_start_timestamp is None or (
            item_id is not None and item_id != session.last_assistant_item_id
        ):
            session.response_start_timestamp = session.latest_media_timestamp
        if item_id is not None:
            session.last_assistant_item_id = item_id

        if not await self.telephony.send_audio(chunk):
            return
        session.turn_state = TurnState.ASSISTANT_SPEAKING

        mark_name = self._next_mark_name()
        if await self.telephony.send_mark(mark_name):
            session.mark_queue.append(mark_name)

    async def on_user_transcript(self, text: str) -> None:
        if self._finalized:
            return
        logger.info(f"Caller ({self.call_label}): {text}")
        self.session.pending_user_utterance = text

    async def on_assistant_transcript(self, text: str) -> None:
        if self._finalized:
            return
        self._last_assistant_transcript = text

    async def on_response_done(self, text: str, response_id: Optional[str] = None) -> None:
        if self._finalized:
            return
        if self._is_abandoned(response_id):
            # The gate now belongs to whatever was requested after the cancel
            logger.info(f"Ignoring late completion of cancelled response {response_id} on call {self.call_label}")
            self._last_assistant_transcript = None
            return

        self.session.response_active = False
        self._response_requested = False
        self._active_response_id = None
        self._stop_watchdog()

        answer = text or self._last_assistant_transcript
        self._last_assistant_transcript = None
        if answer:
            pair = self.session.record_answer(answer)
            logger.info(f"Assistant ({self.call_label}): {pair.answer}")
            if self.settings.hangup_on_goodbye and GOODBYE_RE.search(pair.answer):
                self._schedule_hangup()

        if not self.session.mark_queue:
            if self._hangup_pending:
                await self.finalize("assistant said goodbye")
                return
            self.session.reset_playback()
            if self.session.turn_state == TurnState.ASSISTANT_SPEAKING:
                self.session.turn_state = TurnState.IDLE

        if self._turn_deferred:
            self._turn_deferred = False
            await self._request_response()

    async def on_speech_started(self) -> None:
        if self._finalized:
            return
        self._turn_deferred = False
        if self._hangup_pending:
            logger.info(f"Caller kept talking after goodbye; keeping call {self.call_label} open")
            self._cancel_hangup()
        if self.session.mark_queue:
            await self._barge_in()
        elif self.session.response_active:
            await self._cancel_response()

    async def on_speech_stopped(self) -> None:
        if self._finalized:
            return
        if self.session.turn_state == TurnState.BARGE_IN:
            self.session.turn_state = TurnState.IDLE
        if self.session.response_active or self._response_requested:
            logger.debug(f"Caller turn ended while a response is in flight; deferring for call {self.call_label}")
            self._turn_deferred = True
            return
        await self._request_response()

    async def on_ai_error(self, detail: Dict[str, Any]) -> None:
        logger.warning(f"OpenAI error for call {self.call_label}: {detail}")
        if self._response_requested and not self.session.response_active:
            self._response_requested = False
            self._stop_watchdog()

    async def on_ai_closed(self) -> None:
        if self._finalized:
            return
        logger.warning(f"OpenAI session ended for call {self.call_label}")
        await self.finalize("AI connection closed")

    # Internal steps

    async def _maybe_activate(self) -> None:
        if self.state != BridgeState.CONNECTING or self._finalized:
            return
        if not (self._telephony_started and self._ai_ready):
            return
        self.state = BridgeState.ACTIVE
        logger.info(f"Bridge active for call {self.call_label}")

        if self.settings.greeting_enabled and not self._greeting_sent:
            self._greeting_sent = True
            await self._request_response(self.settings.greeting_instructions)

    async def _barge_in(self) -> None:
        session = self.session
        elapsed = 0
        if session.response_start_timestamp is not None:
            elapsed = session.latest_media_timestamp - session.response_start_timestamp

        item_id = session.last_assistant_item_id
        if item_id:
            await self.ai.truncate_item(item_id, max(0, elapsed))
            self._suppressed_item_id = item_id

        await self.telephony.send_clear()
        await self._cancel_response()

        session.reset_playback()
        session.turn_state = TurnState.BARGE_IN
        logger.info(f"Barge-in on call {self.call_label}: truncated {item_id} at {max(0, elapsed)}ms")

    async def _request_response(self, instructions: Optional[str] = None) -> bool:
        if self.session.response_active or self._response_requested:
            logger.debug(f"Response already in flight for call {self.call_label}; not requesting another")
            return False
        self._response_requested = True
        sent = await self.ai.create_response(instructions)
        if sent:
            # Restarted by response.created; fires alone if no reply comes
            self._start_watchdog()
        else:
            self._response_requested = False
        return sent

    async def _cancel_response(self) -> bool:
        if not self.session.response_active:
            logger.debug(f"No active response to cancel for call {self.call_label}")
            return False
        return await self.ai.cancel_response()

    def _next_mark_name(self) -> str:
        self._mark_counter += 1
        return f"{MARK_NAME_PREFIX}-{self._mark_counter}"

    def _start_watchdog(self) -> None:
        self._stop_watchdog()
        self._watchdog_task = asyncio.create_task(self._response_watchdog())

    def _stop_watchdog(self) -> None:
        task = self._watchdog_task
        self._watchdog_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _response_watchdog(self) -> None:
        await asyncio.sleep(self.settings.response_timeout)
        if self._finalized:
            return
        timeout = self.settings.response_timeout
        if self.session.response_active:
            logger.warning(f"Response on call {self.call_label} active for over {timeout}s; cancelling")
            self._watchdog_task = None
            self._abandoned_responses.append(self._active_response_id)
            self._active_response_id = None
            await self.ai.cancel_response()
            self.session.response_active = False
        elif self._response_requested:
            logger.warning(f"Response request on call {self.call_label} unanswered after {timeout}s; releasing")
            self._watchdog_task = None
        else:
            return

        self._response_requested = False
        if self._turn_deferred:
            self._turn_deferred = False
            await self._request_response()

    def _is_abandoned(self, response_id: Optional[str]) -> bool:
        """Consume the record of a response the watchdog cancelled, if this is one."""
        if response_id in self._abandoned_responses:
            self._abandoned_responses.remove(response_id)
            return True
        if response_id is None and self._abandoned_responses:
            self._abandoned_responses.pop(0)
            return True
        return False

    def _schedule_hangup(self) -> None:
        if self._hangup_pending:
            return
        self._hangup_pending = True
        logger.info(f"Assistant said goodbye on call {self.call_label}; hanging up once playback drains")
        self._hangup_task = asyncio.create_task(self._hangup_after_grace())

    def _cancel_hangup(self) -> None:
        self._hangup_pending = False
        task = self._hangup_task
        self._hangup_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def _hangup_after_grace(self) -> None:
        await asyncio.sleep(self.settings.hangup_grace_seconds)
        self._hangup_task = None
        await self.finalize("assistant said goodbye")

    # Teardown

    async def finalize(self, reason: str) -> None:
        """
        End the call: close both sockets, leave the registry and hand the
        QA log to the summarizer. Only the first call does anything.
        """
        if self._finalized:
            logger.debug(f"Finalize ({reason}) ignored; call {self.call_label} already finalized")
            return
        self._finalized = True
        self.state = BridgeState.FINALIZING
        self.session.ended_at = datetime.now(timezone.utc)
        logger.info(f"Finalizing call {self.call_label}: {reason}")

        self._stop_watchdog()
        self._cancel_hangup()
        if self._connect_task and not self._connect_task.done() and self._connect_task is not asyncio.current_task():
            self._connect_task.cancel()

        if self._registered and self.session.call_id:
            self.registry.remove(self.session.call_id, self)

        pairs = self.session.summary_pairs()
        try:
            await self.ai.commit_audio()
            await self.ai.close()
            await self.telephony.close()
        finally:
            self.state = BridgeState.CLOSED
            self.summary_task = asyncio.create_task(self._summarize(pairs))

        logger.info(
            f"Call {self.call_label} closed after {self.session.duration_seconds:.1f}s "
            f"with {len(pairs)} QA pair(s)"
        )

    async def _summarize(self, pairs: List[Dict[str, Optional[str]]]) -> None:
        if self.summarizer is None:
            logger.debug(f"No summarizer configured; skipping summary for call {self.call_label}")
            return
        try:
            await self.summarizer.summarize_call(self.session.call_id, pairs, self.session.caller)
        except Exception as e:
            logger.error(f"Summarizer failed for call {self.call_label}: {e}", exc_info=True)
