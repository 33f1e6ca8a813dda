"""
Process-wide registry of live calls.

This module provides the CallRegistry class which maps each provider call
identifier to the CallBridge that is serving it. One instance is built at
process start and passed to the connection manager. Every operation runs
within a single event-loop tick, so no locking is needed.
"""

import logging
from typing import TYPE_CHECKING, Dict, Optional

from callbridge.config.constants import LOGGER_NAME

if TYPE_CHECKING:
    from callbridge.bot.bridge_controller import CallBridge

logger = logging.getLogger(LOGGER_NAME)


class DuplicateCallError(ValueError):
    """Raised when a second bridge claims a call id that is already live."""


class CallRegistry:
    """
    Manages the active CallBridge instances.

    Entries are added when a call's start frame arrives and removed when the
    bridge finalizes. The registry is not a durability layer.
    """

    def __init__(self):
        """Initialize an empty dictionary of active calls."""
        self.active_calls: Dict[str, "CallBridge"] = {}

    def register(self, call_id: str, bridge: "CallBridge") -> None:
        """
        Add a bridge for a newly started call.

        Args:
            call_id: Provider call identifier
            bridge: The bridge serving the call

        Raises:
            DuplicateCallError: If another bridge is already registered for call_id
        """
        existing = self.active_calls.get(call_id)
        if existing is not None and existing is not bridge:
            raise DuplicateCallError(f"Call already active: {call_id}")
        self.active_calls[call_id] = bridge
        logger.info(f"Call registered: {call_id} (active calls: {len(self.active_calls)})")

    def get(self, call_id: str) -> Optional["CallBridge"]:
        """Return the bridge for a call, or None if the call is not active."""
        return self.active_calls.get(call_id)

    def remove(self, call_id: str, bridge: Optional["CallBridge"] = None) -> bool:
        """
        Remove a call from the registry.

        Args:
            call_id: Provider call identifier
            bridge: When given, only remove the entry if it belongs to this bridge

        Returns:
            True if an entry was removed
        """
        existing = self.active_calls.get(call_id)
        if existing is None:
            return False
        if bridge is not None and existing is not bridge:
            return False
        del self.active_calls[call_id]
        logger.info(f"Call removed: {call_id} (active calls: {len(self.active_calls)})")
        return True

    def get_all(self) -> Dict[str, "CallBridge"]:
        """Return a snapshot of all active calls."""
        return dict(self.active_calls)

    def __contains__(self, call_id: object) -> bool:
        return call_id in self.active_calls

    def __len__(self) -> int:
        return len(self.active_calls)
