"""
Local private-key signer.
"""

from typing import Any, Dict

from eth_account import Account
from eth_account.messages import encode_typed_data

from ..errors import InputValidationError
from .capabilities import Signer


class LocalKeySigner(Signer):
    """Signs with an in-process secp256k1 key (session keys, tests)."""

    def __init__(self, private_key: str):
        try:
            self._account = Account.from_key(private_key)
        except (ValueError, TypeError) as exc:
            raise InputValidationError("Invalid private key") from exc

    def __repr__(self) -> str:
        return f"LocalKeySigner(address={self.address})"

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_hash(self, digest: bytes) -> bytes:
        if len(digest) != 32:
            raise InputValidationError(f"Digest must be 32 bytes, got {len(digest)}")
        signed = self._account.unsafe_sign_hash(digest)
        return bytes(signed.signature)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> bytes:
        signable = encode_typed_data(full_message=typed_data)
        signed = self._account.sign_message(signable)
        return bytes(signed.signature)
