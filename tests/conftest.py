"""
Shared fixtures: an in-memory chain and relay plus a fully resolved config.
"""

from typing import Dict, List, Optional, Tuple

import pytest
from eth_abi import decode, encode

from agent_delegation.config import Settings
from agent_delegation.core.accounts.capabilities import ChainReader, Relay
from agent_delegation.core.accounts.signers import LocalKeySigner
from agent_delegation.core.errors import ContractCallError, RelayTimeoutError
from agent_delegation.core.execution.userop import FeeParams, RelayOperation, UserOpReceipt
from agent_delegation.core.execution.userop_builder import hex_to_bytes, selector_from_signature
from agent_delegation.core.session.assembler import SessionPackageAssembler

CHAIN_ID = 11155111
NOW = 1_700_000_000

OWNER_KEY = "0x" + "11" * 32
VALIDATION_REGISTRY = "0x" + "22" * 20
IDENTITY_REGISTRY = "0x" + "33" * 20
TARGETS_ENFORCER = "0x" + "44" * 20
METHODS_ENFORCER = "0x" + "55" * 20
TIMESTAMP_ENFORCER = "0x" + "66" * 20
DELEGATION_MANAGER = "0x" + "8a" * 20
ACCOUNT_FACTORY = "0x" + "8b" * 20
HYBRID_DELEGATOR_IMPL = "0x" + "8c" * 20
PROXY_CREATION_CODE = "0x608060405234801561001057600080fd5b50"

GET_NONCE_SELECTOR = selector_from_signature("getNonce(address,uint192)")
GET_IDENTITY_REGISTRY_SELECTOR = selector_from_signature("getIdentityRegistry()")
OWNER_OF_SELECTOR = selector_from_signature("ownerOf(uint256)")


def encode_address_result(address: str) -> str:
    return "0x" + encode(["address"], [address]).hex()


class FakeChain(ChainReader):
    """Code, EntryPoint nonces and canned eth_call answers kept in dicts."""

    def __init__(self, chain_id: int = CHAIN_ID):
        self._chain_id = chain_id
        self.code: Dict[str, str] = {}
        self.nonces: Dict[str, int] = {}
        self.responses: Dict[Tuple[str, str], str] = {}
        self.calls: List[Tuple[str, str]] = []

    def deploy(self, address: str) -> None:
        self.code[address.lower()] = "0x6080604052"

    def respond(self, to: str, selector: str, result: str) -> None:
        self.responses[(to.lower(), selector.lower())] = result

    async def get_code(self, address: str) -> str:
        return self.code.get(address.lower(), "0x")

    async def call(self, to: str, data: str) -> str:
        self.calls.append((to, data))
        selector = data[:10].lower()
        if selector == GET_NONCE_SELECTOR:
            sender, _key = decode(["address", "uint192"], hex_to_bytes("0x" + data[10:]))
            return "0x" + encode(["uint256"], [self.nonces.get(sender.lower(), 0)]).hex()
        key = (to.lower(), selector)
        if key in self.responses:
            return self.responses[key]
        raise ContractCallError(f"execution reverted: no handler for {selector} on {to}")

    async def chain_id(self) -> int:
        return self._chain_id


class FakeRelay(Relay):
    """
    Includes every submitted operation immediately: the sender gets code
    and its EntryPoint nonce advances. ``submit_errors`` is consumed one
    entry per submission (``None`` means succeed).
    """

    def __init__(self, chain: FakeChain):
        self.chain = chain
        self.submitted: List[RelayOperation] = []
        self.call_data: List[str] = []
        self.factory_fields: List[Tuple[Optional[str], Optional[str]]] = []
        self.submit_errors: List[Optional[Exception]] = []
        self.fee_calls = 0
        self.revert_next = False
        self.never_include = False
        self._pending: Dict[str, RelayOperation] = {}

    async def estimate_fee(self) -> FeeParams:
        self.fee_calls += 1
        return FeeParams(max_fee_per_gas=2_000_000_000, max_priority_fee_per_gas=1_000_000_000)

    async def submit(self, operation: RelayOperation) -> str:
        self.submitted.append(operation)
        self.call_data.append(operation.sender.encode_calls(operation.calls))
        self.factory_fields.append(operation.sender.factory_fields())
        if self.submit_errors:
            error = self.submit_errors.pop(0)
            if error is not None:
                raise error
        user_op_hash = "0x" + f"{len(self.submitted):064x}"
        self._pending[user_op_hash] = operation
        return user_op_hash

    async def await_receipt(self, user_op_hash: str, timeout_seconds: Optional[float] = None) -> UserOpReceipt:
        operation = self._pending.pop(user_op_hash)
        if self.never_include:
            raise RelayTimeoutError(user_op_hash=user_op_hash, timeout_seconds=timeout_seconds)

        sender = operation.sender.address
        self.chain.deploy(sender)
        self.chain.nonces[sender.lower()] = operation.nonce + 1

        success = not self.revert_next
        self.revert_next = False
        return UserOpReceipt(
            user_op_hash=user_op_hash,
            success=success,
            sender=sender,
            nonce=operation.nonce,
            reason=None if success else "0x08c379a0",
            transaction_hash="0x" + "ab" * 32,
            block_number=1,
        )


def make_settings(**overrides) -> Settings:
    values = dict(
        rpc_url="https://rpc.test",
        bundler_url="https://bundler.test",
        identity_registry=IDENTITY_REGISTRY,
        validation_registry=VALIDATION_REGISTRY,
        delegation_manager=DELEGATION_MANAGER,
        account_factory=ACCOUNT_FACTORY,
        hybrid_delegator_impl=HYBRID_DELEGATOR_IMPL,
        account_proxy_creation_code=PROXY_CREATION_CODE,
        allowed_targets_enforcer=TARGETS_ENFORCER,
        allowed_methods_enforcer=METHODS_ENFORCER,
        timestamp_enforcer=TIMESTAMP_ENFORCER,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def chain_config(settings):
    return settings.resolve_chain(CHAIN_ID)


@pytest.fixture
def environment(chain_config):
    return chain_config.environment


@pytest.fixture
def owner_signer() -> LocalKeySigner:
    return LocalKeySigner(OWNER_KEY)


@pytest.fixture
def fake_chain() -> FakeChain:
    chain = FakeChain()
    chain.respond(VALIDATION_REGISTRY, GET_IDENTITY_REGISTRY_SELECTOR, encode_address_result(IDENTITY_REGISTRY))
    return chain


@pytest.fixture
def fake_relay(fake_chain) -> FakeRelay:
    return FakeRelay(fake_chain)


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def assembler(chain_config, fake_chain, fake_relay, clock) -> SessionPackageAssembler:
    return SessionPackageAssembler(chain_config, fake_chain, fake_relay, clock=clock)
