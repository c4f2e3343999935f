"""
EntryPoint nonce tracking for sequential user operations.

One tracker is created per assembly (or per redeemer), so each sender has
a single writer. The tracker reads ``EntryPoint.getNonce(sender, key)``
and layers local reservations and confirmations on top, so a nonce never
goes backwards even when the node lags behind a just-mined operation.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Optional, Set

from eth_utils import to_checksum_address

from ..accounts.capabilities import ChainReader
from ..errors import NonceConflictError
from .userop_builder import build_entrypoint_get_nonce_call


@dataclass
class NonceState:
    """Tracks nonce state for one sender."""
    sender: str
    confirmed_nonce: Optional[int] = None     # Last nonce whose receipt we saw
    pending_nonce: int = 0                    # Next available for use
    reserved_nonces: Set[int] = field(default_factory=set)
    last_updated: datetime = field(default_factory=datetime.utcnow)


class NonceTracker:
    """
    Hands out EntryPoint nonces for smart account senders.

    Guarantees for each sender:
    - ``next_nonce`` never returns a value <= the last confirmed nonce
    - concurrently reserved nonces are distinct
    - a nonce released before submission can be handed out again
    """

    def __init__(self, chain: ChainReader, entry_point: str, key: int = 0):
        self.chain = chain
        self.entry_point = to_checksum_address(entry_point)
        self.key = key
        self._states: Dict[str, NonceState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _get_key(self, sender: str) -> str:
        return sender.lower()

    def _get_lock(self, key: str) -> asyncio.Lock:
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    async def _fetch_on_chain_nonce(self, sender: str) -> int:
        result = await self.chain.call(
            self.entry_point,
            build_entrypoint_get_nonce_call(sender, self.key),
        )
        return int(result, 16) if result and result != "0x" else 0

    async def next_nonce(self, sender: str) -> int:
        """
        Reserve the next nonce for a sender.

        Args:
            sender: Smart account address

        Returns:
            The reserved nonce
        """
        key = self._get_key(sender)
        async with self._get_lock(key):
            on_chain_nonce = await self._fetch_on_chain_nonce(sender)
            state = self._states.setdefault(key, NonceState(sender=key, pending_nonce=on_chain_nonce))

            floor = on_chain_nonce
            if state.confirmed_nonce is not None:
                floor = max(floor, state.confirmed_nonce + 1)
            state.pending_nonce = max(state.pending_nonce, floor)

            nonce = state.pending_nonce
            while nonce in state.reserved_nonces:
                nonce += 1

            state.reserved_nonces.add(nonce)
            state.pending_nonce = nonce + 1
            state.last_updated = datetime.utcnow()
            return nonce

    def check(self, sender: str, nonce: int) -> None:
        """Reject an explicitly supplied nonce that is already confirmed."""
        state = self._states.get(self._get_key(sender))
        if state and state.confirmed_nonce is not None and nonce <= state.confirmed_nonce:
            raise NonceConflictError(
                f"Nonce {nonce} for {sender} is not above confirmed nonce {state.confirmed_nonce}",
                details={"nonce": nonce, "confirmed_nonce": state.confirmed_nonce},
            )

    def release(self, sender: str, nonce: int) -> None:
        """Release a reserved nonce (operation failed before reaching the relay)."""
        state = self._states.get(self._get_key(sender))
        if state is None:
            return
        state.reserved_nonces.discard(nonce)
        if nonce == state.pending_nonce - 1:
            state.pending_nonce = nonce

    def abandon(self, sender: str, nonce: int) -> None:
        """
        Forget a submitted nonce whose receipt never arrived.

        The operation may or may not land later, so the next reservation
        falls back to whatever the EntryPoint reports.
        """
        state = self._states.get(self._get_key(sender))
        if state is None:
            return
        state.reserved_nonces.discard(nonce)
        floor = 0 if state.confirmed_nonce is None else state.confirmed_nonce + 1
        state.pending_nonce = max(min(state.pending_nonce, nonce), floor)
        state.last_updated = datetime.utcnow()

    def confirm(self, sender: str, nonce: int) -> None:
        """Mark a nonce as used by an included operation."""
        key = self._get_key(sender)
        state = self._states.setdefault(key, NonceState(sender=key, pending_nonce=nonce + 1))
        state.reserved_nonces.discard(nonce)
        if state.confirmed_nonce is None or nonce > state.confirmed_nonce:
            state.confirmed_nonce = nonce
        state.pending_nonce = max(state.pending_nonce, nonce + 1)
        state.last_updated = datetime.utcnow()

    def last_confirmed(self, sender: str) -> Optional[int]:
        state = self._states.get(self._get_key(sender))
        return state.confirmed_nonce if state else None
