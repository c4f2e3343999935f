"""
Chain JSON-RPC Provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from .base import JsonRpcProvider
from ..config import ChainConfig
from ..core.accounts.capabilities import ChainReader
from ..core.errors import ContractCallError, DelegationError


@dataclass
class ChainRpcConfig:
    rpc_url: str
    timeout_s: float = 30


class ChainRpcProvider(JsonRpcProvider, ChainReader):
    """``ChainReader`` backed by a node's JSON-RPC endpoint."""

    name = "chain"
    timeout_s = 30

    def __init__(self, config: ChainRpcConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        super().__init__(config.rpc_url, timeout_s=config.timeout_s, client=client)
        self._chain_id: Optional[int] = None

    @classmethod
    def from_config(cls, config: ChainConfig) -> "ChainRpcProvider":
        return cls(ChainRpcConfig(config.rpc_url, timeout_s=config.request_timeout_seconds))

    def _map_rpc_error(self, method: str, error: Dict[str, Any]) -> DelegationError:
        return ContractCallError(
            f"chain {method} failed: {error.get('message', error)}",
            details={"code": error.get("code"), "data": error.get("data")},
        )

    async def get_code(self, address: str) -> str:
        result = await self._rpc_call("eth_getCode", [address, "latest"])
        return result or "0x"

    async def call(self, to: str, data: str) -> str:
        result = await self._rpc_call("eth_call", [{"to": to, "data": data}, "latest"])
        return result or "0x"

    async def chain_id(self) -> int:
        if self._chain_id is None:
            result = await self._rpc_call("eth_chainId", [])
            self._chain_id = int(result, 16)
        return self._chain_id
