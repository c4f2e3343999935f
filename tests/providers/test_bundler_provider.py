"""
Tests for the bundler, paymaster and chain JSON-RPC providers.
"""

import json

import httpx
import pytest

from agent_delegation.core.errors import (
    ContractCallError,
    DeploymentRaceError,
    NetworkError,
    NonceConflictError,
    RelayRejectedError,
)
from agent_delegation.core.execution.userop import FeeParams, UserOperation
from agent_delegation.providers.bundler import BundlerConfig, BundlerProvider
from agent_delegation.providers.chain import ChainRpcConfig, ChainRpcProvider
from agent_delegation.providers.paymaster import PaymasterConfig, PaymasterProvider

ENTRY_POINT = "0x0000000071727De22E5E9d8BAf0edAc6f37da032"
SENDER = "0x" + "12" * 20
USER_OP_HASH = "0x" + "cd" * 32


def rpc_client(handler):
    """httpx client whose transport answers JSON-RPC requests via ``handler(method, params)``."""

    requests = []

    def transport(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        status, payload = handler(body["method"], body["params"])
        payload = dict(payload, jsonrpc="2.0", id=body["id"])
        return httpx.Response(status, json=payload)

    return httpx.AsyncClient(transport=httpx.MockTransport(transport)), requests


def user_op():
    return UserOperation(sender=SENDER, nonce=1, call_data="0x", signature="0x01")


class TestBundlerProvider:
    @pytest.mark.asyncio
    async def test_gas_price_uses_requested_tier(self):
        client, _ = rpc_client(lambda method, params: (200, {"result": {
            "slow": {"maxFeePerGas": "0x1", "maxPriorityFeePerGas": "0x1"},
            "standard": {"maxFeePerGas": "0x2", "maxPriorityFeePerGas": "0x1"},
            "fast": {"maxFeePerGas": "0x3b9aca00", "maxPriorityFeePerGas": "0x5f5e100"},
        }}))
        bundler = BundlerProvider(BundlerConfig("https://bundler.test"), client=client)

        fees = await bundler.get_user_operation_gas_price()

        assert fees == FeeParams(max_fee_per_gas=1_000_000_000, max_priority_fee_per_gas=100_000_000)

    @pytest.mark.asyncio
    async def test_send_user_operation_payload(self):
        client, requests = rpc_client(lambda method, params: (200, {"result": USER_OP_HASH}))
        bundler = BundlerProvider(BundlerConfig("https://bundler.test"), client=client)

        assert await bundler.send_user_operation(user_op(), ENTRY_POINT) == USER_OP_HASH

        body = requests[0]
        assert body["method"] == "eth_sendUserOperation"
        payload, entry_point = body["params"]
        assert entry_point == ENTRY_POINT
        assert payload["nonce"] == "0x1"
        assert "factory" not in payload
        assert "paymaster" not in payload

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message,error_type", [
        ("AA25 invalid account nonce", NonceConflictError),
        ("AA10 sender already constructed", DeploymentRaceError),
        ("AA21 didn't pay prefund", RelayRejectedError),
    ])
    async def test_entry_point_errors_are_classified(self, message, error_type):
        client, _ = rpc_client(lambda method, params: (200, {"error": {"code": -32500, "message": message}}))
        bundler = BundlerProvider(BundlerConfig("https://bundler.test"), client=client)

        with pytest.raises(error_type) as excinfo:
            await bundler.send_user_operation(user_op(), ENTRY_POINT)
        assert excinfo.value.context.details["aa_code"] == message[:4]

    @pytest.mark.asyncio
    async def test_receipt_pending_then_included(self):
        answers = [None, {
            "userOpHash": USER_OP_HASH,
            "sender": SENDER,
            "nonce": "0x1",
            "success": True,
            "actualGasUsed": "0x5208",
            "receipt": {"transactionHash": "0x" + "ab" * 32, "blockNumber": "0x10"},
        }]
        client, _ = rpc_client(lambda method, params: (200, {"result": answers.pop(0)}))
        bundler = BundlerProvider(BundlerConfig("https://bundler.test"), client=client)

        assert await bundler.get_user_operation_receipt(USER_OP_HASH) is None
        receipt = await bundler.get_user_operation_receipt(USER_OP_HASH)

        assert receipt.success is True
        assert receipt.nonce == 1
        assert receipt.block_number == 16
        assert receipt.gas_used == 21000

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self):
        client, _ = rpc_client(lambda method, params: (500, {}))
        bundler = BundlerProvider(BundlerConfig("https://bundler.test"), client=client)

        with pytest.raises(NetworkError) as excinfo:
            await bundler.send_user_operation(user_op(), ENTRY_POINT)
        assert excinfo.value.context.transient is True

    @pytest.mark.asyncio
    async def test_client_error_is_fatal(self):
        client, _ = rpc_client(lambda method, params: (403, {}))
        bundler = BundlerProvider(BundlerConfig("https://bundler.test"), client=client)

        with pytest.raises(RelayRejectedError):
            await bundler.send_user_operation(user_op(), ENTRY_POINT)

    @pytest.mark.asyncio
    async def test_connection_failure_is_transient(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse))
        bundler = BundlerProvider(BundlerConfig("https://bundler.test"), client=client)

        with pytest.raises(NetworkError):
            await bundler.get_user_operation_receipt(USER_OP_HASH)

    @pytest.mark.asyncio
    async def test_health_check_reports_errors(self):
        client, _ = rpc_client(lambda method, params: (500, {}))
        bundler = BundlerProvider(BundlerConfig("https://bundler.test"), client=client)

        health = await bundler.health_check()

        assert health["status"] == "error"


class TestPaymasterProvider:
    @pytest.mark.asyncio
    async def test_sponsorship_context_and_fields(self):
        client, requests = rpc_client(lambda method, params: (200, {"result": {
            "paymaster": "0x" + "77" * 20,
            "paymasterData": "0xabcd",
            "paymasterVerificationGasLimit": "0x8000",
            "paymasterPostOpGasLimit": "0x1",
            "callGasLimit": "0x100",
            "verificationGasLimit": "0x200",
            "preVerificationGas": "0x300",
        }}))
        paymaster = PaymasterProvider(PaymasterConfig("https://paymaster.test"), client=client)

        sponsorship = await paymaster.sponsor_user_operation(user_op(), ENTRY_POINT)
        sponsored = sponsorship.apply_to(user_op())

        assert requests[0]["method"] == "pm_sponsorUserOperation"
        assert requests[0]["params"][2] == {"mode": "SPONSORED"}
        assert sponsored.paymaster_and_data[:20] == bytes.fromhex("77" * 20)
        assert sponsored.paymaster_and_data[20:36] == (0x8000).to_bytes(16, "big")
        assert sponsored.paymaster_and_data[52:] == bytes.fromhex("abcd")
        assert (sponsored.call_gas_limit, sponsored.verification_gas_limit, sponsored.pre_verification_gas) == (
            0x100, 0x200, 0x300,
        )

    @pytest.mark.asyncio
    async def test_missing_paymaster_is_rejected(self):
        client, _ = rpc_client(lambda method, params: (200, {"result": {}}))
        paymaster = PaymasterProvider(PaymasterConfig("https://paymaster.test"), client=client)

        with pytest.raises(RelayRejectedError):
            await paymaster.sponsor_user_operation(user_op(), ENTRY_POINT)


class TestChainRpcProvider:
    @pytest.mark.asyncio
    async def test_chain_id_is_cached(self):
        client, requests = rpc_client(lambda method, params: (200, {"result": "0xaa36a7"}))
        chain = ChainRpcProvider(ChainRpcConfig("https://rpc.test"), client=client)

        assert await chain.chain_id() == 11155111
        assert await chain.chain_id() == 11155111
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_empty_code(self):
        client, _ = rpc_client(lambda method, params: (200, {"result": None}))
        chain = ChainRpcProvider(ChainRpcConfig("https://rpc.test"), client=client)

        assert await chain.get_code(SENDER) == "0x"

    @pytest.mark.asyncio
    async def test_reverted_call(self):
        client, _ = rpc_client(lambda method, params: (200, {"error": {"code": 3, "message": "execution reverted"}}))
        chain = ChainRpcProvider(ChainRpcConfig("https://rpc.test"), client=client)

        with pytest.raises(ContractCallError):
            await chain.call(SENDER, "0x12345678")
