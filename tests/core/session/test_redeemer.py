"""
Tests for delegated execution from an assembled session package.
"""

import dataclasses

import pytest
import pytest_asyncio
from eth_abi import decode

from agent_delegation.core.accounts.address import AddressDeriver, namespace_salt
from agent_delegation.core.delegation.redemption import REDEEM_DELEGATIONS_SIGNATURE, Execution
from agent_delegation.core.errors import (
    ConfigurationError,
    InputValidationError,
    OperationRevertedError,
    ScopeViolationError,
    SessionExpiredError,
)
from agent_delegation.core.execution.userop_builder import hex_to_bytes, selector_from_signature
from agent_delegation.core.registries import encode_validation_response
from agent_delegation.core.session.assembler import AssemblyRequest
from agent_delegation.core.session.redeemer import DelegatedExecutor

from conftest import IDENTITY_REGISTRY, NOW, OWNER_OF_SELECTOR, VALIDATION_REGISTRY, encode_address_result

REQUEST_HASH = b"\x01" * 32


@pytest_asyncio.fixture
async def package(assembler, fake_chain, owner_signer, environment):
    agent = AddressDeriver(environment).derive(owner_signer.address, namespace_salt("redeemer"))
    fake_chain.respond(IDENTITY_REGISTRY, OWNER_OF_SELECTOR, encode_address_result(agent))
    return await assembler.assemble(AssemblyRequest(agent_id=3, agent_name="redeemer", owner_signer=owner_signer))


def make_executor(package, chain_config, fake_chain, fake_relay, now=NOW):
    return DelegatedExecutor(package, chain_config, fake_chain, fake_relay, clock=lambda: now)


class TestDelegatedExecutor:
    @pytest.mark.asyncio
    async def test_submits_validation_response(self, package, chain_config, fake_chain, fake_relay):
        executor = make_executor(package, chain_config, fake_chain, fake_relay)
        before = len(fake_relay.submitted)

        receipt = await executor.submit_validation_response(REQUEST_HASH, 95, response_uri="ipfs://report")

        assert receipt.success
        assert len(fake_relay.submitted) == before + 1
        operation = fake_relay.submitted[-1]
        assert operation.sender.address == package.session_account_address
        assert operation.nonce == 2
        (call,) = operation.calls
        assert call.to == package.session_account_address
        assert call.data.startswith(selector_from_signature(REDEEM_DELEGATIONS_SIGNATURE))
        assert fake_relay.call_data[-1] == call.data

    @pytest.mark.asyncio
    async def test_redeemed_execution_carries_validation_calldata(self, package, chain_config, fake_chain, fake_relay):
        executor = make_executor(package, chain_config, fake_chain, fake_relay)

        await executor.submit_validation_response(REQUEST_HASH, 80, tag="custom-tag")

        data = fake_relay.submitted[-1].calls[0].data
        _, _, executions = decode(["bytes[]", "bytes32[]", "bytes[]"], hex_to_bytes("0x" + data[10:]))
        expected = encode_validation_response(REQUEST_HASH, 80, "", b"\x00" * 32, "custom-tag")
        assert executions[0][52:] == hex_to_bytes(expected)

    @pytest.mark.asyncio
    async def test_expired_session_sends_nothing(self, package, chain_config, fake_chain, fake_relay):
        executor = make_executor(package, chain_config, fake_chain, fake_relay, now=package.session_key.valid_until)
        submitted, fee_calls = len(fake_relay.submitted), fake_relay.fee_calls

        with pytest.raises(SessionExpiredError):
            await executor.submit_validation_response(REQUEST_HASH, 95)

        assert len(fake_relay.submitted) == submitted
        assert fake_relay.fee_calls == fee_calls

    @pytest.mark.asyncio
    async def test_out_of_scope_call_sends_nothing(self, package, chain_config, fake_chain, fake_relay):
        executor = make_executor(package, chain_config, fake_chain, fake_relay)
        submitted = len(fake_relay.submitted)

        with pytest.raises(ScopeViolationError):
            await executor.redeem([Execution(target=VALIDATION_REGISTRY, call_data="0xa9059cbb")])

        assert len(fake_relay.submitted) == submitted

    @pytest.mark.asyncio
    async def test_reverted_redemption(self, package, chain_config, fake_chain, fake_relay):
        executor = make_executor(package, chain_config, fake_chain, fake_relay)
        fake_relay.revert_next = True

        with pytest.raises(OperationRevertedError):
            await executor.submit_validation_response(REQUEST_HASH, 95)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("request_hash,response", [(b"\x01" * 31, 95), (REQUEST_HASH, 101)])
    async def test_invalid_response_arguments(self, package, chain_config, fake_chain, fake_relay, request_hash, response):
        executor = make_executor(package, chain_config, fake_chain, fake_relay)

        with pytest.raises(InputValidationError):
            await executor.submit_validation_response(request_hash, response)

    @pytest.mark.asyncio
    async def test_chain_mismatch(self, package, chain_config, fake_chain, fake_relay):
        with pytest.raises(ConfigurationError):
            make_executor(dataclasses.replace(package, chain_id=1), chain_config, fake_chain, fake_relay)

    @pytest.mark.asyncio
    async def test_inconsistent_package(self, package, chain_config, fake_chain, fake_relay):
        with pytest.raises(InputValidationError):
            make_executor(
                dataclasses.replace(package, session_account_address="0x" + "99" * 20),
                chain_config,
                fake_chain,
                fake_relay,
            )

    @pytest.mark.asyncio
    async def test_package_signed_for_other_enforcers(self, package, chain_config, fake_chain, fake_relay):
        environment = dataclasses.replace(chain_config.environment, allowed_methods_enforcer="0x" + "5a" * 20)
        config = dataclasses.replace(chain_config, environment=environment)
        submitted = len(fake_relay.submitted)

        with pytest.raises(InputValidationError) as excinfo:
            make_executor(package, config, fake_chain, fake_relay)

        assert "second caveat is not the configured AllowedMethods enforcer" in excinfo.value.context.details["problems"]
        assert len(fake_relay.submitted) == submitted
