"""Bulk NFT minting client."""

from __future__ import annotations

from typing import Any, List, Optional

import httpx
from pydantic import ValidationError

from musicnft.config import MUSICNFT_API_URL
from musicnft.errors import MalformedResponse, ValidationFailure
from musicnft.http import BaseHTTPService
from musicnft.result import Result
from musicnft.schemas import MintConfig, MintResponse


class MintClient(BaseHTTPService):
    """Client for the paid bulk-mint endpoint."""

    component = "mint"

    def __init__(
        self,
        api_base_url: str = MUSICNFT_API_URL,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Any = None,
    ):
        super().__init__(api_base_url, timeout, http_client, logger)

    async def mint(
        self,
        config: MintConfig,
        address: str,
        payment_hash: str,
    ) -> Result[List[str], Exception]:
        """Mint ``config.quantity`` assets; returns the new asset ids."""
        if config is None or not address or not payment_hash:
            return Result.err(ValidationFailure("Missing required parameters"))

        self.logger.info(
            f"Minting {config.quantity} x '{config.token_name}' for {config.mint_for_sol_addr}"
        )
        response = await self._request_json(
            "POST",
            f"{self.base_url}/bulk-mint",
            operation="bulk-mint",
            json=config.model_dump(by_alias=True),
            headers={
                "Content-Type": "application/json",
                "address": address,
                "payment-hash": payment_hash,
            },
        )
        if response.is_err():
            return response
        try:
            minted = MintResponse.model_validate(response.value)
        except ValidationError as e:
            return Result.err(
                MalformedResponse(f"Unexpected bulk-mint response: {e}", cause=e)
            )
        return Result.ok(minted.asset_ids)
