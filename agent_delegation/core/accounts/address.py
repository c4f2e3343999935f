"""
Counterfactual smart account addresses.

Accounts are deployed by the factory with CREATE2, so their address is
fixed before deployment:

    address = keccak256(0xff ++ factory ++ salt ++ keccak256(init_code))[12:]

where ``init_code`` is the proxy creation code followed by
``abi.encode(implementation, initialize(owner, [], [], []))``.
"""

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from ...config import DelegationEnvironment
from ..errors import InputValidationError
from ..execution.userop_builder import build_initialize_call, hex_to_bytes
from .models import SmartAccountRef, checksum


def namespace_salt(name: str) -> bytes:
    """Deploy salt of an agent account: keccak256 of the UTF-8 name."""
    if not isinstance(name, str) or not name.strip():
        raise InputValidationError("Account namespace must be a non-empty string")
    return keccak(text=name)


def numeric_salt(value: int) -> bytes:
    """Deploy salt from an integer, left padded to 32 bytes."""
    if value < 0:
        raise InputValidationError(f"Deploy salt must be non-negative, got {value}")
    return value.to_bytes(32, "big")


def create2_address(deployer: str, salt: bytes, init_code_hash: bytes) -> str:
    digest = keccak(b"\xff" + hex_to_bytes(deployer) + salt + init_code_hash)
    return to_checksum_address(digest[12:])


class AddressDeriver:
    """Pure address computation for HybridDeleGator proxies."""

    def __init__(self, environment: DelegationEnvironment):
        self.environment = environment

    def init_code(self, owner: str) -> bytes:
        owner = checksum(owner, "owner address")
        constructor_args = encode(
            ["address", "bytes"],
            [self.environment.hybrid_delegator_impl, build_initialize_call(owner)],
        )
        return hex_to_bytes(self.environment.account_proxy_creation_code) + constructor_args

    def derive(self, owner: str, salt: bytes) -> str:
        """
        Compute the account address for an owner and deploy salt.

        Args:
            owner: EOA that will own the account
            salt: 32-byte deploy salt (see ``namespace_salt``/``numeric_salt``)

        Returns:
            Checksummed account address
        """
        if len(salt) != 32:
            raise InputValidationError(f"Deploy salt must be 32 bytes, got {len(salt)}")
        init_code_hash = keccak(self.init_code(owner))
        return create2_address(self.environment.account_factory, salt, init_code_hash)

    def account_ref(self, owner: str, salt: bytes) -> SmartAccountRef:
        return SmartAccountRef(
            address=self.derive(owner, salt),
            owner=owner,
            deploy_salt=salt,
            is_counterfactual=True,
        )
