"""
Sponsored operation runner.

Runs one operation end to end: fee estimate, submit, wait for receipt.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from ..accounts.capabilities import Relay
from ..accounts.smart_account import HybridSmartAccount
from ..errors import InputValidationError, OperationRevertedError, RelayTimeoutError
from .nonce_manager import NonceTracker
from .userop import Call, RelayOperation, UserOpReceipt

logger = structlog.stdlib.get_logger("execution.runner")

DEFAULT_RECEIPT_TIMEOUT_SECONDS = 20.0


class SponsoredOperationRunner:
    """
    Drives a gas-sponsored operation through a relay.

    Steps run strictly in order (fee, submit, receipt); nothing is
    submitted until the previous step succeeded. Relay errors propagate
    unchanged with their transient/fatal classification.
    """

    def __init__(
        self,
        relay: Relay,
        nonces: NonceTracker,
        receipt_timeout_seconds: float = DEFAULT_RECEIPT_TIMEOUT_SECONDS,
    ):
        self.relay = relay
        self.nonces = nonces
        self.receipt_timeout_seconds = receipt_timeout_seconds

    async def run(
        self,
        sender: HybridSmartAccount,
        calls: Sequence[Call],
        *,
        nonce: Optional[int] = None,
    ) -> UserOpReceipt:
        """
        Submit ``calls`` from ``sender`` and wait for inclusion.

        Args:
            sender: Account executing the calls
            calls: Calls to execute (at least one)
            nonce: Explicit nonce; defaults to the tracker's next nonce

        Returns:
            Successful receipt

        Raises:
            OperationRevertedError: the operation was included but failed
            RelayTimeoutError: no receipt before the deadline
        """
        if not calls:
            raise InputValidationError("At least one call is required")

        log = logger.bind(sender=sender.address, calls=len(calls))

        fee_params = await self.relay.estimate_fee()

        if nonce is None:
            op_nonce = await self.nonces.next_nonce(sender.address)
        else:
            self.nonces.check(sender.address, nonce)
            op_nonce = nonce

        operation = RelayOperation(
            sender=sender,
            calls=tuple(calls),
            fee_params=fee_params,
            nonce=op_nonce,
        )
        try:
            user_op_hash = await self.relay.submit(operation)
        except Exception:
            self.nonces.release(sender.address, op_nonce)
            raise

        log = log.bind(user_op_hash=user_op_hash, nonce=op_nonce)
        log.info("user_operation_submitted", counterfactual=sender.is_counterfactual)

        try:
            receipt = await self.relay.await_receipt(
                user_op_hash,
                timeout_seconds=self.receipt_timeout_seconds,
            )
        except RelayTimeoutError:
            self.nonces.abandon(sender.address, op_nonce)
            log.warning("user_operation_receipt_timeout", timeout_seconds=self.receipt_timeout_seconds)
            raise
        self.nonces.confirm(sender.address, op_nonce)

        if not receipt.success:
            log.warning("user_operation_reverted", reason=receipt.reason)
            raise OperationRevertedError(
                f"User operation {user_op_hash} reverted",
                user_op_hash=user_op_hash,
                reason=receipt.reason,
            )

        log.info(
            "user_operation_included",
            transaction_hash=receipt.transaction_hash,
            block_number=receipt.block_number,
        )
        return receipt
