"""
EIP-712 delegation signing and verification.
"""

import logging
import secrets
from typing import Any, Dict, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import to_checksum_address

from ..accounts.smart_account import HybridSmartAccount
from ..errors import InputValidationError, SignerUnavailableError
from .models import ROOT_AUTHORITY, DelegationScope, SignedDelegation

logger = logging.getLogger(__name__)

DOMAIN_NAME = "DelegationManager"
DOMAIN_VERSION = "1"

DELEGATION_TYPES = {
    "EIP712Domain": [
        {"name": "name", "type": "string"},
        {"name": "version", "type": "string"},
        {"name": "chainId", "type": "uint256"},
        {"name": "verifyingContract", "type": "address"},
    ],
    "Delegation": [
        {"name": "delegate", "type": "address"},
        {"name": "delegator", "type": "address"},
        {"name": "authority", "type": "bytes32"},
        {"name": "caveats", "type": "Caveat[]"},
        {"name": "salt", "type": "uint256"},
    ],
    "Caveat": [
        {"name": "enforcer", "type": "address"},
        {"name": "terms", "type": "bytes"},
    ],
}


def new_delegation_salt() -> str:
    """Random 256-bit salt, hex encoded."""
    return "0x" + secrets.token_bytes(32).hex()


def delegation_typed_data(
    scope: DelegationScope,
    authority: str,
    salt: str,
    chain_id: int,
    delegation_manager: str,
) -> Dict[str, Any]:
    return {
        "types": DELEGATION_TYPES,
        "primaryType": "Delegation",
        "domain": {
            "name": DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": to_checksum_address(delegation_manager),
        },
        "message": {
            "delegate": scope.delegate,
            "delegator": scope.delegator,
            "authority": authority,
            "caveats": [{"enforcer": c.enforcer, "terms": c.terms} for c in scope.caveats],
            "salt": int(salt, 16),
        },
    }


class DelegationSigner:
    """Signs delegations on behalf of a delegator account's owner."""

    def __init__(self, chain_id: int, delegation_manager: str):
        self.chain_id = chain_id
        self.delegation_manager = to_checksum_address(delegation_manager)

    def typed_data(self, scope: DelegationScope, authority: str, salt: str) -> Dict[str, Any]:
        return delegation_typed_data(scope, authority, salt, self.chain_id, self.delegation_manager)

    async def sign(
        self,
        scope: DelegationScope,
        delegator_account: HybridSmartAccount,
        *,
        authority: str = ROOT_AUTHORITY,
        salt: Optional[str] = None,
    ) -> SignedDelegation:
        """
        Sign a scope with the delegator account's owner key.

        The account does not need to be deployed. The signature is checked
        against the account owner before it is returned.

        Raises:
            InputValidationError: scope delegator is not this account
            SignerUnavailableError: no signer, or it signed with another key
        """
        if scope.delegator != delegator_account.address:
            raise InputValidationError(
                f"Scope delegator {scope.delegator} is not account {delegator_account.address}"
            )

        salt = salt or new_delegation_salt()
        signature = await delegator_account.sign_typed_data(self.typed_data(scope, authority, salt))
        signed = SignedDelegation(scope=scope, authority=authority, salt=salt, signature=signature)

        recovered = self.recover_signer(signed)
        if recovered != delegator_account.owner:
            raise SignerUnavailableError(
                f"Delegation signed by {recovered}, expected owner {delegator_account.owner}"
            )

        logger.info(
            f"Signed delegation {scope.delegator} -> {scope.delegate} "
            f"({len(scope.targets)} targets, {len(scope.selectors)} selectors)"
        )
        return signed

    def recover_signer(self, signed: SignedDelegation) -> str:
        signable = encode_typed_data(
            full_message=self.typed_data(signed.scope, signed.authority, signed.salt)
        )
        return Account.recover_message(signable, signature=signed.signature)

    def verify(self, signed: SignedDelegation, expected_signer: str) -> bool:
        return self.recover_signer(signed) == to_checksum_address(expected_signer)
