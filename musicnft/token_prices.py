"""
Price lookups for settlement: the per-operation cost in credit tokens from
the backend, and the credit token price in native units from Jupiter.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import httpx

from musicnft.config import (
    JUPITER_PRICE_URL,
    MAINNET,
    MUSICNFT_API_URL,
    NetworkConfig,
)
from musicnft.errors import MusicNFTError, PriceLookupError
from musicnft.http import BaseHTTPService
from musicnft.result import Result


def _to_decimal(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise ValueError(f"not a number: {value!r}")
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"not a number: {value!r}") from None
    if not number.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return number


class PriceOracle(BaseHTTPService):
    """
    Fetches the per-operation cost and the credit token's exchange rates.

    Nothing is cached: every settlement must see the latest price.
    """

    component = "prices"

    def __init__(
        self,
        api_base_url: str = MUSICNFT_API_URL,
        network: NetworkConfig = MAINNET,
        price_url: str = JUPITER_PRICE_URL,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Any = None,
    ):
        super().__init__(api_base_url, timeout, http_client, logger)
        self.network = network
        self.price_url = price_url

    def _lookup_failed(
        self, endpoint: str, reason: str, cause: Optional[BaseException] = None
    ) -> PriceLookupError:
        error_type = (
            cause.error_type if isinstance(cause, MusicNFTError) else "Malformed response"
        )
        self.logger.error(f"Price lookup failed at {endpoint}: {reason}")
        return PriceLookupError(
            f"Price lookup failed at {endpoint}: {reason}",
            error_type=error_type,
            cause=cause,
            details={"endpoint": endpoint},
        )

    async def get_cost(self) -> Result[Decimal, Exception]:
        """Cost of one operation, in whole credit tokens."""
        endpoint = f"{self.base_url}/payment-check"
        response = await self._request_json("GET", endpoint, operation="payment-check")
        if response.is_err():
            return Result.err(
                self._lookup_failed(endpoint, str(response.get_err()), response.get_err())
            )

        data = response.value
        if not isinstance(data, dict):
            return Result.err(self._lookup_failed(endpoint, "response is not an object"))
        raw = data.get("cost", data.get("costPerFile"))
        try:
            cost = _to_decimal(raw)
        except ValueError as e:
            return Result.err(self._lookup_failed(endpoint, f"invalid 'cost' field: {e}", e))
        if cost < 0:
            return Result.err(self._lookup_failed(endpoint, f"negative cost {cost}"))

        self.logger.debug(f"Cost per operation: {cost}")
        return Result.ok(cost)

    async def _get_token_price(
        self, vs_token: Optional[str]
    ) -> Result[Decimal, Exception]:
        token_id = self.network.token_mint
        params = {"ids": token_id}
        if vs_token:
            params["vsToken"] = vs_token
        response = await self._request_json(
            "GET", self.price_url, operation="token price", params=params
        )
        if response.is_err():
            return Result.err(
                self._lookup_failed(self.price_url, str(response.get_err()), response.get_err())
            )

        data = response.value
        entry = (data or {}).get("data", {}).get(token_id) if isinstance(data, dict) else None
        if not isinstance(entry, dict):
            return Result.err(
                self._lookup_failed(self.price_url, f"no price entry for {token_id}")
            )
        try:
            price = _to_decimal(entry.get("price"))
        except ValueError as e:
            return Result.err(
                self._lookup_failed(self.price_url, f"invalid 'price' field: {e}", e)
            )
        if price <= 0:
            return Result.err(
                self._lookup_failed(self.price_url, f"non-positive price {price}")
            )
        return Result.ok(price)

    async def get_token_price_in_usd(self) -> Result[Decimal, Exception]:
        return await self._get_token_price(None)

    async def get_token_price_in_native(self) -> Result[Decimal, Exception]:
        """Price of one credit token expressed in the native currency."""
        return await self._get_token_price(self.network.native_mint)
