"""
Tests for EIP-712 delegation signing.
"""

import pytest

from agent_delegation.core.accounts.address import AddressDeriver, namespace_salt
from agent_delegation.core.accounts.capabilities import Signer
from agent_delegation.core.accounts.signers import LocalKeySigner
from agent_delegation.core.accounts.smart_account import HybridSmartAccount
from agent_delegation.core.delegation.builder import DelegationBuilder
from agent_delegation.core.delegation.models import ROOT_AUTHORITY, SignedDelegation
from agent_delegation.core.delegation.signer import DelegationSigner, new_delegation_salt
from agent_delegation.core.errors import InputValidationError, SignerUnavailableError
from agent_delegation.core.registries import VALIDATION_RESPONSE_SIGNATURE

from conftest import CHAIN_ID, VALIDATION_REGISTRY

DELEGATE = "0x" + "b2" * 20


class ImpostorSigner(Signer):
    """Claims the owner address but signs with a different key."""

    def __init__(self, claimed_address):
        self._claimed = claimed_address
        self._inner = LocalKeySigner("0x" + "42" * 32)

    @property
    def address(self):
        return self._claimed

    async def sign_hash(self, digest):
        return await self._inner.sign_hash(digest)

    async def sign_typed_data(self, typed_data):
        return await self._inner.sign_typed_data(typed_data)


@pytest.fixture
def delegator(environment, owner_signer):
    deriver = AddressDeriver(environment)
    return HybridSmartAccount(deriver.account_ref(owner_signer.address, namespace_salt("agent")), owner_signer, deriver)


@pytest.fixture
def scope(environment, delegator):
    return DelegationBuilder(environment).build(
        delegator.address, DELEGATE, [(VALIDATION_REGISTRY, VALIDATION_RESPONSE_SIGNATURE)]
    )


@pytest.fixture
def signer(environment):
    return DelegationSigner(CHAIN_ID, environment.delegation_manager)


class TestDelegationSigner:
    @pytest.mark.asyncio
    async def test_signature_recovers_to_owner(self, signer, scope, delegator, owner_signer):
        signed = await signer.sign(scope, delegator)

        assert signer.recover_signer(signed) == owner_signer.address
        assert signer.verify(signed, owner_signer.address.lower())
        assert signed.authority == ROOT_AUTHORITY
        assert len(signed.salt) == 66

    @pytest.mark.asyncio
    async def test_counterfactual_delegator_can_sign(self, signer, scope, delegator):
        assert delegator.is_counterfactual

        signed = await signer.sign(scope, delegator)

        assert signed.delegator == delegator.address

    @pytest.mark.asyncio
    async def test_explicit_salt_is_deterministic(self, signer, scope, delegator):
        salt = new_delegation_salt()

        first = await signer.sign(scope, delegator, salt=salt)
        second = await signer.sign(scope, delegator, salt=salt)

        assert first.signature == second.signature

    @pytest.mark.asyncio
    async def test_tampered_scope_fails_verification(self, signer, scope, delegator, owner_signer, environment):
        signed = await signer.sign(scope, delegator)
        wider = DelegationBuilder(environment).build(
            delegator.address, DELEGATE, [(DELEGATE, VALIDATION_RESPONSE_SIGNATURE)]
        )
        tampered = SignedDelegation(scope=wider, authority=signed.authority, salt=signed.salt, signature=signed.signature)

        assert not signer.verify(tampered, owner_signer.address)

    @pytest.mark.asyncio
    async def test_other_chain_fails_verification(self, scope, delegator, owner_signer, environment):
        signed = await DelegationSigner(CHAIN_ID, environment.delegation_manager).sign(scope, delegator)

        assert not DelegationSigner(1, environment.delegation_manager).verify(signed, owner_signer.address)

    @pytest.mark.asyncio
    async def test_delegator_mismatch(self, signer, environment, delegator):
        other = DelegationBuilder(environment).build(
            "0x" + "a1" * 20, DELEGATE, [(VALIDATION_REGISTRY, VALIDATION_RESPONSE_SIGNATURE)]
        )

        with pytest.raises(InputValidationError):
            await signer.sign(other, delegator)

    @pytest.mark.asyncio
    async def test_wrong_key_is_rejected(self, signer, scope, environment, owner_signer):
        deriver = AddressDeriver(environment)
        account = HybridSmartAccount(
            deriver.account_ref(owner_signer.address, namespace_salt("agent")),
            ImpostorSigner(owner_signer.address),
            deriver,
        )

        with pytest.raises(SignerUnavailableError):
            await signer.sign(scope, account)

    @pytest.mark.asyncio
    async def test_dict_round_trip_keeps_signature_valid(self, signer, scope, delegator, owner_signer):
        signed = await signer.sign(scope, delegator)

        restored = SignedDelegation.from_dict(signed.to_dict())

        assert restored == signed
        assert signer.verify(restored, owner_signer.address)
