"""
Smart account and session key models.

A session key grants a time-boxed signing right to a disposable session
account. The window is enforced client-side before any submission.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from eth_utils import is_address, to_checksum_address

from ..errors import InputValidationError, SessionExpiredError


def checksum(address: str, field_name: str = "address") -> str:
    """Checksum an address or raise InputValidationError."""
    if not isinstance(address, str) or not is_address(address):
        raise InputValidationError(f"Invalid {field_name}: {address!r}")
    return to_checksum_address(address)


@dataclass
class SmartAccountRef:
    """
    Reference to a (possibly not yet deployed) smart account.

    The address never changes. ``is_counterfactual`` starts True for derived
    accounts and flips to False once, when code is observed at the address.
    """
    address: str
    owner: str
    deploy_salt: bytes = b"\x00" * 32
    is_counterfactual: bool = True

    def __post_init__(self) -> None:
        self.address = checksum(self.address, "account address")
        self.owner = checksum(self.owner, "owner address")

    def mark_deployed(self) -> None:
        self.is_counterfactual = False


@dataclass(frozen=True)
class SessionKey:
    """
    Disposable ECDSA key with a validity window.

    Timestamps are unix seconds. ``private_key`` is never included in repr.
    """
    private_key: str = field(repr=False)
    address: str
    valid_after: int
    valid_until: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", checksum(self.address, "session key address"))
        if self.valid_after >= self.valid_until:
            raise InputValidationError(
                f"Session window is empty: validAfter={self.valid_after} validUntil={self.valid_until}"
            )

    def is_active(self, now: Optional[float] = None) -> bool:
        """Check if the key is inside its validity window."""
        now = time.time() if now is None else now
        return self.valid_after <= now < self.valid_until

    def ensure_active(self, now: Optional[float] = None) -> None:
        """Raise SessionExpiredError unless the key is inside its window."""
        now = time.time() if now is None else now
        if now >= self.valid_until:
            raise SessionExpiredError(
                f"Session key {self.address} expired at {self.valid_until}",
                details={"valid_until": self.valid_until, "now": int(now)},
            )
        if now < self.valid_after:
            raise SessionExpiredError(
                f"Session key {self.address} not valid before {self.valid_after}",
                details={"valid_after": self.valid_after, "now": int(now)},
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "privateKey": self.private_key,
            "address": self.address,
            "validAfter": self.valid_after,
            "validUntil": self.valid_until,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionKey":
        try:
            return cls(
                private_key=data["privateKey"],
                address=data["address"],
                valid_after=int(data["validAfter"]),
                valid_until=int(data["validUntil"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InputValidationError(f"Malformed session key: {exc}") from exc
