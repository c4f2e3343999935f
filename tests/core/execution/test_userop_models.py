"""
Tests for v0.7 UserOperation models.
"""

from agent_delegation.core.execution.userop import FeeParams, UserOperation, UserOpGasEstimate, UserOpReceipt

SENDER = "0x1111111111111111111111111111111111111111"
FACTORY = "0x2222222222222222222222222222222222222222"
PAYMASTER = "0x3333333333333333333333333333333333333333"


def test_rpc_dict_omits_unset_factory_and_paymaster():
    user_op = UserOperation(sender=SENDER, nonce=5, call_data="0xabcd")

    payload = user_op.to_rpc_dict()

    assert payload["nonce"] == "0x5"
    assert "factory" not in payload
    assert "paymaster" not in payload
    assert user_op.init_code == b""
    assert user_op.paymaster_and_data == b""


def test_rpc_dict_includes_factory_and_paymaster_fields():
    user_op = UserOperation(
        sender=SENDER,
        nonce=0,
        call_data="0x",
        factory=FACTORY,
        factory_data="0x1234",
        paymaster=PAYMASTER,
        paymaster_verification_gas_limit=0x100,
        paymaster_post_op_gas_limit=0x10,
        paymaster_data="0xbeef",
    )

    payload = user_op.to_rpc_dict()

    assert payload["factory"] == FACTORY
    assert payload["factoryData"] == "0x1234"
    assert payload["paymasterVerificationGasLimit"] == "0x100"
    assert payload["paymasterPostOpGasLimit"] == "0x10"
    assert payload["paymasterData"] == "0xbeef"


def test_packed_fields():
    user_op = UserOperation(
        sender=SENDER,
        nonce=0,
        call_data="0x",
        call_gas_limit=2,
        verification_gas_limit=1,
        max_fee_per_gas=4,
        max_priority_fee_per_gas=3,
        factory=FACTORY,
        factory_data="0x12",
        paymaster=PAYMASTER,
        paymaster_verification_gas_limit=7,
        paymaster_post_op_gas_limit=8,
        paymaster_data="0x99",
    )

    assert user_op.account_gas_limits == (1).to_bytes(16, "big") + (2).to_bytes(16, "big")
    assert user_op.gas_fees == (3).to_bytes(16, "big") + (4).to_bytes(16, "big")
    assert user_op.init_code == bytes.fromhex("22" * 20 + "12")
    assert user_op.paymaster_and_data == (
        bytes.fromhex("33" * 20) + (7).to_bytes(16, "big") + (8).to_bytes(16, "big") + b"\x99"
    )


def test_gas_estimate_applies_limits():
    estimate = UserOpGasEstimate.from_rpc(
        {"callGasLimit": "0x10", "verificationGasLimit": "0x20", "preVerificationGas": "0x30"}
    )
    user_op = estimate.apply_to(UserOperation(sender=SENDER, nonce=0, call_data="0x"))

    assert (user_op.call_gas_limit, user_op.verification_gas_limit, user_op.pre_verification_gas) == (16, 32, 48)


def test_fee_params_from_rpc():
    fees = FeeParams.from_rpc({"maxFeePerGas": "0x3b9aca00", "maxPriorityFeePerGas": "0x3b9aca00"})

    assert fees.max_fee_per_gas == 1_000_000_000
    assert fees.max_priority_fee_per_gas == 1_000_000_000


def test_receipt_from_rpc():
    receipt = UserOpReceipt.from_rpc(
        {
            "userOpHash": "0x" + "aa" * 32,
            "sender": SENDER,
            "nonce": "0x2",
            "success": False,
            "reason": "0x08c379a0",
            "actualGasUsed": "0x5208",
            "receipt": {"transactionHash": "0x" + "bb" * 32, "blockNumber": "0x10"},
        }
    )

    assert receipt.success is False
    assert receipt.nonce == 2
    assert receipt.reason == "0x08c379a0"
    assert receipt.gas_used == 21000
    assert receipt.block_number == 16
    assert receipt.transaction_hash == "0x" + "bb" * 32
