"""
HybridDeleGator smart account handle.

Wraps a ``SmartAccountRef`` with the pieces needed to build and sign user
operations for it: factory data while counterfactual, ERC-7579 call
encoding, and EIP-712 signing through the owner's ``Signer``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence, Tuple

from eth_utils import to_checksum_address

from ..errors import DelegationError, InputValidationError, SignerUnavailableError
from ..execution.userop import Call, UserOperation
from ..execution.userop_builder import build_execute_call_data, build_factory_deploy_call
from .address import AddressDeriver
from .capabilities import Signer
from .models import SmartAccountRef

logger = logging.getLogger(__name__)

ACCOUNT_DOMAIN_NAME = "HybridDeleGator"
ACCOUNT_DOMAIN_VERSION = "1"

# Well-formed ECDSA signature used for gas estimation before the real one exists
DUMMY_SIGNATURE = (
    "0xfffffffffffffffffffffffffffffff0000000000000000000000000000000007"
    "aaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa1c"
)

PACKED_USER_OPERATION_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "PackedUserOperation": [
        {"name": "sender", "type": "address"},
        {"name": "nonce", "type": "uint256"},
        {"name": "initCode", "type": "bytes"},
        {"name": "callData", "type": "bytes"},
        {"name": "accountGasLimits", "type": "bytes32"},
        {"name": "preVerificationGas", "type": "uint256"},
        {"name": "gasFees", "type": "bytes32"},
        {"name": "paymasterAndData", "type": "bytes"},
        {"name": "entryPoint", "type": "address"},
    ],
}


class HybridSmartAccount:
    """A HybridDeleGator proxy owned by a single EOA."""

    def __init__(
        self,
        ref: SmartAccountRef,
        signer: Optional[Signer] = None,
        deriver: Optional[AddressDeriver] = None,
    ):
        if ref.is_counterfactual and deriver is None:
            raise InputValidationError("Counterfactual accounts need an AddressDeriver for factory data")
        if signer is not None and signer.address.lower() != ref.owner.lower():
            raise InputValidationError(
                f"Signer {signer.address} does not own account {ref.address} (owner {ref.owner})"
            )
        self.ref = ref
        self.signer = signer
        self.deriver = deriver

    def __repr__(self) -> str:
        return f"HybridSmartAccount(address={self.address}, counterfactual={self.is_counterfactual})"

    @property
    def address(self) -> str:
        return self.ref.address

    @property
    def owner(self) -> str:
        return self.ref.owner

    @property
    def is_counterfactual(self) -> bool:
        return self.ref.is_counterfactual

    def mark_deployed(self) -> None:
        if self.ref.is_counterfactual:
            logger.info(f"Account {self.address} is deployed")
        self.ref.mark_deployed()

    def factory_fields(self) -> Tuple[Optional[str], Optional[str]]:
        """(factory, factoryData) while counterfactual, otherwise (None, None)."""
        if not self.is_counterfactual:
            return None, None
        init_code = self.deriver.init_code(self.owner)
        return (
            self.deriver.environment.account_factory,
            build_factory_deploy_call(init_code, self.ref.deploy_salt),
        )

    def encode_calls(self, calls: Sequence[Call]) -> str:
        """
        Encode account calldata for a list of calls.

        A single zero-value call to the account itself is passed through
        unchanged so the account can call its own entry points (e.g.
        ``redeemDelegations``); anything else goes through ``execute``.
        """
        if not calls:
            raise InputValidationError("At least one call is required")
        if len(calls) == 1:
            call = calls[0]
            if call.value == 0 and to_checksum_address(call.to) == self.address:
                return call.data
        return build_execute_call_data(calls)

    def user_operation_typed_data(
        self,
        user_op: UserOperation,
        entry_point: str,
        chain_id: int,
    ) -> Dict[str, Any]:
        return {
            "types": PACKED_USER_OPERATION_TYPES,
            "primaryType": "PackedUserOperation",
            "domain": {
                "name": ACCOUNT_DOMAIN_NAME,
                "version": ACCOUNT_DOMAIN_VERSION,
                "chainId": chain_id,
                "verifyingContract": self.address,
            },
            "message": {
                "sender": to_checksum_address(user_op.sender),
                "nonce": user_op.nonce,
                "initCode": "0x" + user_op.init_code.hex(),
                "callData": user_op.call_data,
                "accountGasLimits": "0x" + user_op.account_gas_limits.hex(),
                "preVerificationGas": user_op.pre_verification_gas,
                "gasFees": "0x" + user_op.gas_fees.hex(),
                "paymasterAndData": "0x" + user_op.paymaster_and_data.hex(),
                "entryPoint": to_checksum_address(entry_point),
            },
        }

    async def sign_user_operation(self, user_op: UserOperation, entry_point: str, chain_id: int) -> str:
        typed_data = self.user_operation_typed_data(user_op, entry_point, chain_id)
        return await self.sign_typed_data(typed_data)

    async def sign_typed_data(self, typed_data: Dict[str, Any]) -> str:
        if self.signer is None:
            raise SignerUnavailableError(f"No signer attached to account {self.address}")
        try:
            signature = await self.signer.sign_typed_data(typed_data)
        except DelegationError:
            raise
        except Exception as exc:
            raise SignerUnavailableError(f"Signer for {self.address} failed: {exc}") from exc
        return "0x" + bytes(signature).hex()
