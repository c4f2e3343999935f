"""
ERC-4337 Paymaster Provider.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

import httpx

from .base import JsonRpcProvider
from ..core.errors import DelegationError, RelayRejectedError, classify_relay_error
from ..core.execution.userop import UserOperation, parse_int

SPONSORED_CONTEXT = {"mode": "SPONSORED"}


@dataclass
class PaymasterConfig:
    rpc_url: str
    rpc_method: str = "pm_sponsorUserOperation"
    timeout_s: float = 20


@dataclass
class Sponsorship:
    """v0.7 paymaster fields plus the gas limits the paymaster re-estimated."""
    paymaster: str
    paymaster_data: str
    paymaster_verification_gas_limit: int
    paymaster_post_op_gas_limit: int
    call_gas_limit: Optional[int] = None
    verification_gas_limit: Optional[int] = None
    pre_verification_gas: Optional[int] = None

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "Sponsorship":
        return cls(
            paymaster=data["paymaster"],
            paymaster_data=data.get("paymasterData") or "0x",
            paymaster_verification_gas_limit=parse_int(data.get("paymasterVerificationGasLimit")) or 0,
            paymaster_post_op_gas_limit=parse_int(data.get("paymasterPostOpGasLimit")) or 0,
            call_gas_limit=parse_int(data.get("callGasLimit")),
            verification_gas_limit=parse_int(data.get("verificationGasLimit")),
            pre_verification_gas=parse_int(data.get("preVerificationGas")),
        )

    def apply_to(self, user_op: UserOperation) -> UserOperation:
        updated = replace(
            user_op,
            paymaster=self.paymaster,
            paymaster_data=self.paymaster_data,
            paymaster_verification_gas_limit=self.paymaster_verification_gas_limit,
            paymaster_post_op_gas_limit=self.paymaster_post_op_gas_limit,
        )
        if self.call_gas_limit is not None:
            updated.call_gas_limit = self.call_gas_limit
        if self.verification_gas_limit is not None:
            updated.verification_gas_limit = self.verification_gas_limit
        if self.pre_verification_gas is not None:
            updated.pre_verification_gas = self.pre_verification_gas
        return updated


class PaymasterProvider(JsonRpcProvider):
    name = "paymaster"
    timeout_s = 20

    def __init__(self, config: PaymasterConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(config.rpc_url, timeout_s=config.timeout_s, client=client)
        self._config = config

    def _map_rpc_error(self, method: str, error: Dict[str, Any]) -> DelegationError:
        return classify_relay_error(error.get("code"), str(error.get("message", "")), error.get("data"))

    async def sponsor_user_operation(
        self,
        user_op: UserOperation,
        entry_point: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> Sponsorship:
        params: list[Any] = [user_op.to_rpc_dict(), entry_point]
        params.append(context if context is not None else SPONSORED_CONTEXT)
        result = await self._rpc_call(self._config.rpc_method, params)
        if not isinstance(result, dict) or not result.get("paymaster"):
            raise RelayRejectedError(f"Invalid paymaster response for {self._config.rpc_method}")
        return Sponsorship.from_rpc(result)
