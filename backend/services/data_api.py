"""
Polymarket Data API and Polygon RPC reads.

Feed payloads are returned raw; shape handling lives in services.normalizer.
Transport errors propagate to the caller, except for balance lookups, which
fall back to ``BALANCE_FALLBACK`` so a flaky RPC node only defers trades.
"""

from typing import Any, Optional

import httpx

from config import settings
from utils.logger import feed_logger as logger
from utils.retry import RetryableClient, RetryConfig

# keccak("balanceOf(address)")[:4]
BALANCE_OF_SELECTOR = "0x70a08231"
USDC_DECIMALS = 6


def encode_balance_of(address: str) -> str:
    """ABI-encode an ERC-20 ``balanceOf(address)`` call."""
    return BALANCE_OF_SELECTOR + address.lower().removeprefix("0x").rjust(64, "0")


class DataApiClient:
    """Reads trader activity, positions and USDC balances."""

    def __init__(
        self,
        data_url: Optional[str] = None,
        rpc_url: Optional[str] = None,
        usdc_contract: Optional[str] = None,
        balance_fallback: Optional[float] = None,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.data_url = data_url or settings.DATA_API_URL
        self.rpc_url = rpc_url or settings.POLYGON_RPC_URL
        self.usdc_contract = usdc_contract or settings.USDC_CONTRACT_ADDRESS
        self.balance_fallback = (
            settings.BALANCE_FALLBACK if balance_fallback is None else balance_fallback
        )
        self._retry_config = retry_config or RetryConfig.from_settings(settings)
        self._client: Optional[httpx.AsyncClient] = http_client
        self._http: Optional[RetryableClient] = (
            RetryableClient(http_client, self._retry_config) if http_client is not None else None
        )
        self._rpc_id = 0

    async def _get_client(self) -> RetryableClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=float(settings.API_TIMEOUT_SECONDS))
            self._http = RetryableClient(self._client, self._retry_config)
        return self._http

    async def close(self):
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ==================== DATA API ====================

    async def get_activities(self, address: str) -> Any:
        """Raw activity feed for a wallet"""
        client = await self._get_client()
        response = await client.get(f"{self.data_url}/activity", params={"user": address})
        return response.json()

    async def get_positions(self, address: str) -> Any:
        """Raw open positions for a wallet"""
        client = await self._get_client()
        response = await client.get(f"{self.data_url}/positions", params={"user": address})
        return response.json()

    # ==================== POLYGON RPC ====================

    async def get_usdc_balance(self, address: str) -> float:
        """USDC balance of ``address`` in whole dollars, or the configured fallback."""
        self._rpc_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._rpc_id,
            "method": "eth_call",
            "params": [
                {"to": self.usdc_contract, "data": encode_balance_of(address)},
                "latest",
            ],
        }

        try:
            client = await self._get_client()
            response = await client.post(self.rpc_url, json=payload)
            result = response.json()
        except Exception as e:
            logger.warning("USDC balance lookup failed", address=address, error=str(e))
            return self.balance_fallback

        if not isinstance(result, dict) or "error" in result:
            logger.warning(
                "RPC error fetching USDC balance",
                address=address,
                error=result.get("error") if isinstance(result, dict) else result,
            )
            return self.balance_fallback

        raw_balance = result.get("result")
        try:
            return int(raw_balance, 16) / 10**USDC_DECIMALS
        except (TypeError, ValueError):
            logger.warning(
                "Unexpected eth_call result",
                address=address,
                result=raw_balance,
            )
            return self.balance_fallback
