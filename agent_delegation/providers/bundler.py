"""
ERC-4337 Bundler Provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .base import JsonRpcProvider
from ..core.errors import DelegationError, RelayRejectedError, classify_relay_error
from ..core.execution.userop import FeeParams, UserOperation, UserOpGasEstimate, UserOpReceipt

GAS_PRICE_TIERS = ("slow", "standard", "fast")


@dataclass
class BundlerConfig:
    rpc_url: str
    timeout_s: float = 20


class BundlerProvider(JsonRpcProvider):
    name = "bundler"
    timeout_s = 20

    def __init__(self, config: BundlerConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(config.rpc_url, timeout_s=config.timeout_s, client=client)
        self._config = config

    def _map_rpc_error(self, method: str, error: Dict[str, Any]) -> DelegationError:
        return classify_relay_error(error.get("code"), str(error.get("message", "")), error.get("data"))

    async def get_user_operation_gas_price(self, tier: str = "fast") -> FeeParams:
        if tier not in GAS_PRICE_TIERS:
            raise ValueError(f"Unknown gas price tier {tier!r}")

        result = await self._rpc_call("pimlico_getUserOperationGasPrice", [])
        if not isinstance(result, dict) or not isinstance(result.get(tier), dict):
            raise RelayRejectedError("Invalid bundler response for pimlico_getUserOperationGasPrice")
        return FeeParams.from_rpc(result[tier])

    async def send_user_operation(
        self,
        user_op: UserOperation,
        entry_point: str,
    ) -> str:
        result = await self._rpc_call(
            "eth_sendUserOperation",
            [user_op.to_rpc_dict(), entry_point],
        )
        if not isinstance(result, str):
            raise RelayRejectedError("Invalid bundler response for eth_sendUserOperation")
        return result

    async def estimate_user_operation_gas(
        self,
        user_op: UserOperation,
        entry_point: str,
    ) -> UserOpGasEstimate:
        result = await self._rpc_call(
            "eth_estimateUserOperationGas",
            [user_op.to_rpc_dict(), entry_point],
        )
        if not isinstance(result, dict):
            raise RelayRejectedError("Invalid bundler response for eth_estimateUserOperationGas")
        return UserOpGasEstimate.from_rpc(result)

    async def get_user_operation_receipt(self, user_op_hash: str) -> Optional[UserOpReceipt]:
        result = await self._rpc_call(
            "eth_getUserOperationReceipt",
            [user_op_hash],
        )
        if not result:
            return None

        receipt = UserOpReceipt.from_rpc(result)
        receipt.user_op_hash = receipt.user_op_hash or user_op_hash
        return receipt
