"""
Client for the marshal service, which encrypts and decrypts data stream
URLs on behalf of a creator wallet.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from musicnft.config import MUSICNFT_MARSHAL_URL
from musicnft.errors import MalformedResponse, ValidationFailure
from musicnft.http import BaseHTTPService
from musicnft.result import Result
from musicnft.schemas import EncryptResponse

_JSON_HEADERS = {"Content-Type": "application/json", "accept": "*/*"}


class MarshalClient(BaseHTTPService):
    """Encrypts data stream URLs and decrypts them back via the marshal service."""

    component = "marshal"

    def __init__(
        self,
        api_base_url: str = MUSICNFT_MARSHAL_URL,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Any = None,
    ):
        super().__init__(api_base_url, timeout, http_client, logger)

    async def encrypt(
        self,
        data_nft_stream_url: str,
        creator_erd_address: Optional[str] = None,
        creator_sol_address: Optional[str] = None,
    ) -> Result[EncryptResponse, Exception]:
        if not data_nft_stream_url:
            return Result.err(
                ValidationFailure("data_nft_stream_url is required for generation")
            )

        body: Dict[str, str] = {"dataNFTStreamUrl": data_nft_stream_url}
        if creator_erd_address:
            body["dataCreatorERDAddress"] = creator_erd_address
        if creator_sol_address:
            body["dataCreatorSOLAddress"] = creator_sol_address

        response = await self._request_json(
            "POST",
            f"{self.base_url}/generate_V2",
            operation="encrypt",
            json=body,
            headers=_JSON_HEADERS,
        )
        if response.is_err():
            return response
        try:
            return Result.ok(EncryptResponse.model_validate(response.value))
        except ValidationError as e:
            return Result.err(
                MalformedResponse(f"Unexpected encrypt response: {e}", cause=e)
            )

    async def decrypt(
        self, encrypted_message: str
    ) -> Result[Dict[str, Any], Exception]:
        if not encrypted_message:
            return Result.err(
                ValidationFailure("encrypted_message is required for decryption")
            )

        response = await self._request_json(
            "POST",
            f"{self.base_url}/decrypt_v2",
            operation="decrypt",
            json={"encryptedMessage": encrypted_message},
            headers=_JSON_HEADERS,
        )
        if response.is_err():
            return response
        if not isinstance(response.value, dict):
            return Result.err(MalformedResponse("decrypt response is not an object"))
        return Result.ok(response.value)
