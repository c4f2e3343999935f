"""
ERC-4337 v0.7 UserOperation models and helpers.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

from eth_utils import to_checksum_address

if TYPE_CHECKING:
    from ..accounts.smart_account import HybridSmartAccount


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def _to_hex(value: int) -> str:
    return hex(value)


def parse_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16) if str(value).startswith("0x") else int(value)


def _hex_bytes(value: Optional[str]) -> bytes:
    if not value or value == "0x":
        return b""
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


@dataclass
class UserOperation:
    """
    ERC-4337 v0.7 UserOperation payload (unpacked RPC form).

    Values are raw units (wei / gas units) and are hex encoded for RPC calls.
    ``factory``/``paymaster`` and their companion fields are omitted from
    the RPC payload when unset.
    """
    sender: str
    nonce: int
    call_data: str
    call_gas_limit: int = 0
    verification_gas_limit: int = 0
    pre_verification_gas: int = 0
    max_fee_per_gas: int = 0
    max_priority_fee_per_gas: int = 0
    factory: Optional[str] = None
    factory_data: Optional[str] = None
    paymaster: Optional[str] = None
    paymaster_verification_gas_limit: int = 0
    paymaster_post_op_gas_limit: int = 0
    paymaster_data: Optional[str] = None
    signature: str = "0x"

    @property
    def init_code(self) -> bytes:
        if not self.factory:
            return b""
        return _hex_bytes(self.factory) + _hex_bytes(self.factory_data)

    @property
    def paymaster_and_data(self) -> bytes:
        if not self.paymaster:
            return b""
        return (
            _hex_bytes(self.paymaster)
            + self.paymaster_verification_gas_limit.to_bytes(16, "big")
            + self.paymaster_post_op_gas_limit.to_bytes(16, "big")
            + _hex_bytes(self.paymaster_data)
        )

    @property
    def account_gas_limits(self) -> bytes:
        return ((self.verification_gas_limit << 128) | self.call_gas_limit).to_bytes(32, "big")

    @property
    def gas_fees(self) -> bytes:
        return ((self.max_priority_fee_per_gas << 128) | self.max_fee_per_gas).to_bytes(32, "big")

    def to_rpc_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sender": self.sender,
            "nonce": _to_hex(self.nonce),
            "callData": self.call_data,
            "callGasLimit": _to_hex(self.call_gas_limit),
            "verificationGasLimit": _to_hex(self.verification_gas_limit),
            "preVerificationGas": _to_hex(self.pre_verification_gas),
            "maxFeePerGas": _to_hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": _to_hex(self.max_priority_fee_per_gas),
            "signature": self.signature,
        }
        if self.factory:
            payload["factory"] = self.factory
            payload["factoryData"] = self.factory_data or "0x"
        if self.paymaster:
            payload["paymaster"] = self.paymaster
            payload["paymasterVerificationGasLimit"] = _to_hex(self.paymaster_verification_gas_limit)
            payload["paymasterPostOpGasLimit"] = _to_hex(self.paymaster_post_op_gas_limit)
            payload["paymasterData"] = self.paymaster_data or "0x"
        return payload


@dataclass(frozen=True)
class Call:
    """A single call executed by a smart account."""

    to: str
    data: str = "0x"
    value: int = 0


NO_OP_CALL = Call(to=ZERO_ADDRESS, data="0x", value=0)


@dataclass(frozen=True)
class FeeParams:
    max_fee_per_gas: int
    max_priority_fee_per_gas: int

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "FeeParams":
        return cls(
            max_fee_per_gas=parse_int(data.get("maxFeePerGas")) or 0,
            max_priority_fee_per_gas=parse_int(data.get("maxPriorityFeePerGas")) or 0,
        )


@dataclass(frozen=True)
class RelayOperation:
    """What the runner hands to a relay: who sends, what to call, how to pay."""

    sender: "HybridSmartAccount"
    calls: Tuple[Call, ...]
    fee_params: FeeParams
    nonce: int


@dataclass
class UserOpGasEstimate:
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    paymaster_verification_gas_limit: Optional[int] = None
    paymaster_post_op_gas_limit: Optional[int] = None

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "UserOpGasEstimate":
        return cls(
            call_gas_limit=parse_int(data.get("callGasLimit")) or 0,
            verification_gas_limit=parse_int(data.get("verificationGasLimit")) or 0,
            pre_verification_gas=parse_int(data.get("preVerificationGas")) or 0,
            paymaster_verification_gas_limit=parse_int(data.get("paymasterVerificationGasLimit")),
            paymaster_post_op_gas_limit=parse_int(data.get("paymasterPostOpGasLimit")),
        )

    def apply_to(self, user_op: UserOperation) -> UserOperation:
        updated = replace(
            user_op,
            call_gas_limit=self.call_gas_limit,
            verification_gas_limit=self.verification_gas_limit,
            pre_verification_gas=self.pre_verification_gas,
        )
        if user_op.paymaster and self.paymaster_verification_gas_limit is not None:
            updated.paymaster_verification_gas_limit = self.paymaster_verification_gas_limit
        if user_op.paymaster and self.paymaster_post_op_gas_limit is not None:
            updated.paymaster_post_op_gas_limit = self.paymaster_post_op_gas_limit
        return updated


@dataclass
class UserOpReceipt:
    user_op_hash: str
    success: bool
    sender: Optional[str] = None
    nonce: Optional[int] = None
    reason: Optional[str] = None
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "UserOpReceipt":
        receipt = data.get("receipt") or {}
        sender = data.get("sender")
        return cls(
            user_op_hash=data.get("userOpHash", ""),
            success=bool(data.get("success")),
            sender=to_checksum_address(sender) if sender else None,
            nonce=parse_int(data.get("nonce")),
            reason=data.get("reason") or None,
            transaction_hash=receipt.get("transactionHash"),
            block_number=parse_int(receipt.get("blockNumber")),
            gas_used=parse_int(data.get("actualGasUsed") or receipt.get("gasUsed")),
        )
