"""
UserOperation calldata builders.

Smart accounts in this package speak ERC-7579 ``execute(bytes32,bytes)``:
the first word is the execution mode, the second the packed execution
calldata.
"""

from __future__ import annotations

from typing import Sequence

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from .userop import Call

EXECUTE_SIGNATURE = "execute(bytes32,bytes)"
GET_NONCE_SIGNATURE = "getNonce(address,uint192)"
FACTORY_DEPLOY_SIGNATURE = "deploy(bytes,bytes32)"
INITIALIZE_SIGNATURE = "initialize(address,string[],uint256[],uint256[])"

# ERC-7579 modes: callType 0x00 = single, 0x01 = batch; execType/selector/payload zero
MODE_SINGLE_DEFAULT = b"\x00" * 32
MODE_BATCH_DEFAULT = b"\x01" + b"\x00" * 31


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def _encode_uint(value: int) -> str:
    if value < 0:
        raise ValueError("Value must be non-negative")
    return hex(value)[2:].rjust(64, "0")


def _encode_address(address: str) -> str:
    addr = _strip_0x(address).lower()
    if len(addr) != 40:
        raise ValueError(f"Invalid address length: {address}")
    return addr.rjust(64, "0")


def _encode_bytes(data: str) -> str:
    hex_data = _strip_0x(data)
    if len(hex_data) % 2 != 0:
        raise ValueError("Byte data must have an even-length hex string")
    data_len = len(hex_data) // 2
    padded_len = ((data_len + 31) // 32) * 32
    padding = "0" * ((padded_len - data_len) * 2)
    return _encode_uint(data_len) + hex_data + padding


def hex_to_bytes(value: str) -> bytes:
    return bytes.fromhex(_strip_0x(value or "0x"))


def selector_from_signature(signature: str) -> str:
    """Return the 4-byte selector (``0x`` + 8 hex chars) of a canonical signature."""
    selector = keccak(text=signature)[:4].hex()
    return f"0x{selector}"


def selector_of(call_data: str) -> str:
    """Leading 4 bytes of calldata, lowercased; ``0x`` when too short."""
    body = _strip_0x(call_data or "").lower()
    if len(body) < 8:
        return "0x"
    return "0x" + body[:8]


def encode_single_execution(target: str, value: int, call_data: str) -> bytes:
    """ERC-7579 single execution: ``abi.encodePacked(target, value, callData)``."""
    return (
        hex_to_bytes(to_checksum_address(target))
        + value.to_bytes(32, "big")
        + hex_to_bytes(call_data)
    )


def encode_batch_executions(calls: Sequence[Call]) -> bytes:
    """ERC-7579 batch execution: ``abi.encode(Execution[])``."""
    return encode(
        ["(address,uint256,bytes)[]"],
        [[(to_checksum_address(c.to), c.value, hex_to_bytes(c.data)) for c in calls]],
    )


def build_execute_call_data(calls: Sequence[Call]) -> str:
    """
    Build calldata for execute(bytes32,bytes).

    One call uses the single mode, more than one the batch mode.
    """
    if not calls:
        raise ValueError("At least one call is required")
    if len(calls) == 1:
        call = calls[0]
        mode = MODE_SINGLE_DEFAULT
        execution = encode_single_execution(call.to, call.value, call.data)
    else:
        mode = MODE_BATCH_DEFAULT
        execution = encode_batch_executions(calls)

    selector = selector_from_signature(EXECUTE_SIGNATURE)
    head = mode.hex() + _encode_uint(64)  # offset to bytes data
    tail = _encode_bytes(execution.hex())
    return selector + head + tail


def build_entrypoint_get_nonce_call(sender: str, key: int = 0) -> str:
    """
    Build calldata for EntryPoint.getNonce(address,uint192).
    """
    selector = selector_from_signature(GET_NONCE_SIGNATURE)
    head = _encode_address(sender) + _encode_uint(key)
    return selector + head


def build_initialize_call(owner: str) -> bytes:
    """HybridDeleGator ``initialize(owner, [], [], [])`` with no passkeys."""
    selector = keccak(text=INITIALIZE_SIGNATURE)[:4]
    args = encode(
        ["address", "string[]", "uint256[]", "uint256[]"],
        [to_checksum_address(owner), [], [], []],
    )
    return selector + args


def build_factory_deploy_call(init_code: bytes, salt: bytes) -> str:
    """
    Build calldata for SimpleFactory.deploy(bytes,bytes32).
    """
    if len(salt) != 32:
        raise ValueError("Salt must be 32 bytes")
    selector = selector_from_signature(FACTORY_DEPLOY_SIGNATURE)
    return selector + encode(["bytes", "bytes32"], [init_code, salt]).hex()
