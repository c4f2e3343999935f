"""
Capability interfaces.

Components depend only on these narrow interfaces. Concrete
implementations live in ``providers`` (JSON-RPC) and
``core.accounts.signers`` (local keys); tests supply in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..execution.userop import FeeParams, RelayOperation, UserOpReceipt


class Signer(ABC):
    """Produces signatures for one EOA owner."""

    @property
    @abstractmethod
    def address(self) -> str:
        ...

    @abstractmethod
    async def sign_hash(self, digest: bytes) -> bytes:
        """Sign a 32-byte digest without any prefix."""

    @abstractmethod
    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        """Sign a full EIP-712 payload (types, primaryType, domain, message)."""


class ChainReader(ABC):
    """Read-only chain access."""

    @abstractmethod
    async def get_code(self, address: str) -> str:
        ...

    @abstractmethod
    async def call(self, to: str, data: str) -> str:
        """eth_call against the latest block; returns hex return data."""

    @abstractmethod
    async def chain_id(self) -> int:
        ...


class Relay(ABC):
    """Submits sponsored operations and reports their outcome."""

    @abstractmethod
    async def estimate_fee(self) -> FeeParams:
        ...

    @abstractmethod
    async def submit(self, operation: RelayOperation) -> str:
        """Submit and return the user operation hash."""

    @abstractmethod
    async def await_receipt(
        self,
        user_op_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> UserOpReceipt:
        ...
