from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..core.errors import DelegationError, NetworkError, RelayRejectedError


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: float = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class JsonRpcProvider(Provider):
    """Provider talking JSON-RPC 2.0 over HTTP with a lazily created client."""

    def __init__(
        self,
        rpc_url: str,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url
        if timeout_s is not None:
            self.timeout_s = timeout_s
        self._client = client
        self._request_id = 0

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not await self.ready():
            return {"status": "disabled", "reason": f"{self.name} not configured"}

        try:
            result = await self._rpc_call("eth_chainId", [])
            return {"status": "healthy", "chainId": result}
        except DelegationError as exc:
            return {"status": "error", "reason": exc.message}

    async def aclose(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if not self._client or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    def _map_rpc_error(self, method: str, error: Dict[str, Any]) -> DelegationError:
        return RelayRejectedError(
            f"{self.name} {method} failed: {error.get('message', error)}",
            code=error.get("code"),
        )

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        try:
            response = await self._get_client().post(
                self.rpc_url,
                json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
            )
        except httpx.HTTPError as exc:
            raise NetworkError(f"{self.name} {method} request failed: {exc}", provider=self.name) from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if isinstance(payload, dict) and payload.get("error"):
            error = payload["error"]
            if not isinstance(error, dict):
                error = {"message": str(error)}
            raise self._map_rpc_error(method, error)

        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if response.status_code < 500 and response.status_code != 429:
                raise RelayRejectedError(
                    f"{self.name} {method} returned HTTP {response.status_code}",
                    code=response.status_code,
                ) from exc
            raise NetworkError(
                f"{self.name} {method} returned HTTP {response.status_code}",
                provider=self.name,
                details={"status_code": response.status_code},
            ) from exc

        if not isinstance(payload, dict):
            raise NetworkError(f"{self.name} {method} returned a non JSON-RPC body", provider=self.name)
        return payload.get("result")
