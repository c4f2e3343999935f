"""
Bundler-backed relay for sponsored user operations.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from .bundler import BundlerConfig, BundlerProvider
from .paymaster import SPONSORED_CONTEXT, PaymasterConfig, PaymasterProvider
from ..core.accounts.capabilities import Relay
from ..core.accounts.smart_account import DUMMY_SIGNATURE
from ..core.errors import RelayTimeoutError
from ..core.execution.userop import FeeParams, RelayOperation, UserOperation, UserOpReceipt

if TYPE_CHECKING:
    from ..config import ChainConfig

logger = logging.getLogger(__name__)


class BundlerRelay(Relay):
    """
    Builds, sponsors, signs and sends v0.7 user operations.

    With a paymaster the sponsorship call also returns gas limits; without
    one the bundler's estimate is used and the sender pays.
    """

    def __init__(
        self,
        bundler: BundlerProvider,
        entry_point: str,
        chain_id: int,
        paymaster: Optional[PaymasterProvider] = None,
        *,
        sponsorship_context: Optional[Dict[str, Any]] = None,
        fee_tier: str = "fast",
        receipt_timeout_seconds: float = 20.0,
        poll_interval_seconds: float = 1.0,
    ) -> None:
        self.bundler = bundler
        self.paymaster = paymaster
        self.entry_point = entry_point
        self.chain_id = chain_id
        self.sponsorship_context = sponsorship_context or dict(SPONSORED_CONTEXT)
        self.fee_tier = fee_tier
        self.receipt_timeout_seconds = receipt_timeout_seconds
        self.poll_interval_seconds = poll_interval_seconds

    @classmethod
    def from_config(cls, config: "ChainConfig") -> "BundlerRelay":
        """Relay with its own bundler and paymaster clients; close them with ``aclose``."""
        bundler = BundlerProvider(BundlerConfig(config.bundler_url, timeout_s=config.request_timeout_seconds))
        paymaster = None
        if config.paymaster_url:
            paymaster = PaymasterProvider(
                PaymasterConfig(
                    config.paymaster_url,
                    rpc_method=config.paymaster_rpc_method,
                    timeout_s=config.request_timeout_seconds,
                )
            )
        return cls(
            bundler,
            config.environment.entry_point,
            config.chain_id,
            paymaster,
            receipt_timeout_seconds=config.receipt_timeout_seconds,
            poll_interval_seconds=config.receipt_poll_interval_seconds,
        )

    async def aclose(self) -> None:
        await self.bundler.aclose()
        if self.paymaster is not None:
            await self.paymaster.aclose()

    async def estimate_fee(self) -> FeeParams:
        return await self.bundler.get_user_operation_gas_price(self.fee_tier)

    def build_user_operation(self, operation: RelayOperation) -> UserOperation:
        factory, factory_data = operation.sender.factory_fields()
        return UserOperation(
            sender=operation.sender.address,
            nonce=operation.nonce,
            call_data=operation.sender.encode_calls(operation.calls),
            max_fee_per_gas=operation.fee_params.max_fee_per_gas,
            max_priority_fee_per_gas=operation.fee_params.max_priority_fee_per_gas,
            factory=factory,
            factory_data=factory_data,
            signature=DUMMY_SIGNATURE,
        )

    async def submit(self, operation: RelayOperation) -> str:
        user_op = self.build_user_operation(operation)

        if self.paymaster is not None:
            sponsorship = await self.paymaster.sponsor_user_operation(
                user_op,
                self.entry_point,
                self.sponsorship_context,
            )
            user_op = sponsorship.apply_to(user_op)
        else:
            estimate = await self.bundler.estimate_user_operation_gas(user_op, self.entry_point)
            user_op = estimate.apply_to(user_op)

        user_op.signature = await operation.sender.sign_user_operation(
            user_op,
            self.entry_point,
            self.chain_id,
        )
        user_op_hash = await self.bundler.send_user_operation(user_op, self.entry_point)
        logger.debug(f"Sent user operation {user_op_hash} from {user_op.sender} nonce {user_op.nonce}")
        return user_op_hash

    async def await_receipt(
        self,
        user_op_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> UserOpReceipt:
        timeout = timeout_seconds if timeout_seconds is not None else self.receipt_timeout_seconds
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            receipt = await self.bundler.get_user_operation_receipt(user_op_hash)
            if receipt is not None:
                return receipt
            if loop.time() >= deadline:
                raise RelayTimeoutError(
                    f"No receipt for user operation {user_op_hash} after {timeout}s",
                    user_op_hash=user_op_hash,
                    timeout_seconds=timeout,
                )
            await asyncio.sleep(self.poll_interval_seconds)
