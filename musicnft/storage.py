"""Paid file uploads and IPNS publishing against the storage backend."""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Union

import httpx
from pydantic import ValidationError

from musicnft.config import MUSICNFT_API_URL
from musicnft.errors import MalformedResponse, ValidationFailure
from musicnft.http import BaseHTTPService
from musicnft.result import Result
from musicnft.schemas import IpnsResponse, LocalFile, ManifestType, UploadedFile

UPLOAD_ORIGIN = "agent-sdk"


class StorageClient(BaseHTTPService):
    """
    Client for the paid decentralized storage backend.

    Uploads require the signature of a settled payment in the
    ``payment-hash`` header; the backend verifies it.
    """

    component = "storage"

    def __init__(
        self,
        api_base_url: str = MUSICNFT_API_URL,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Any = None,
    ):
        super().__init__(api_base_url, timeout, http_client, logger)

    async def upload(
        self,
        files: Union[LocalFile, Sequence[LocalFile]],
        category: Union[str, ManifestType],
        payment_hash: str,
        address: str,
    ) -> Result[List[UploadedFile], Exception]:
        """
        Upload one or more files.

        Args:
            files: File or files to upload.
            category: Storage category (``files``, ``staticdata`` or a manifest type).
            payment_hash: Signature of the settlement transaction paying for the upload.
            address: Wallet address owning the upload.

        Returns:
            Result holding the stored files, in the order the backend reports them.
        """
        file_list = [files] if isinstance(files, LocalFile) else list(files or [])
        if not file_list:
            return Result.err(ValidationFailure("No files provided for upload"))
        if not payment_hash:
            return Result.err(ValidationFailure("payment_hash is required for upload"))
        if not address:
            return Result.err(ValidationFailure("address is required for upload"))

        category_value = (
            category.value if isinstance(category, ManifestType) else category
        )
        multipart = [
            ("files", (f.name, f.content, f.mime_type)) for f in file_list
        ]
        self.logger.info(f"Uploading {len(file_list)} file(s) as '{category_value}'")

        response = await self._request_json(
            "POST",
            f"{self.base_url}/paymentOnTheGo/upload_v2",
            operation="upload",
            files=multipart,
            data={"category": category_value, "origin": UPLOAD_ORIGIN},
            headers={"payment-hash": payment_hash, "address": address},
        )
        if response.is_err():
            return response

        if not isinstance(response.value, list):
            return Result.err(
                MalformedResponse("upload response is not a list of files")
            )
        try:
            uploaded = [UploadedFile.model_validate(item) for item in response.value]
        except ValidationError as e:
            return Result.err(
                MalformedResponse(f"Unexpected upload response: {e}", cause=e)
            )
        return Result.ok(uploaded)

    async def pin_to_ipns(
        self, cid: str, address: str
    ) -> Result[IpnsResponse, Exception]:
        """Point the wallet's IPNS name at ``cid``."""
        if not cid:
            return Result.err(ValidationFailure("CID is required for IPNS pinning"))
        if not address:
            return Result.err(
                ValidationFailure("Address is required for IPNS pinning")
            )

        response = await self._request_json(
            "GET",
            f"{self.base_url}/ipns/publish_v2",
            operation="ipns publish",
            params={"cid": cid},
            headers={"Content-Type": "application/json", "address": address},
        )
        if response.is_err():
            return response
        try:
            return Result.ok(IpnsResponse.model_validate(response.value))
        except ValidationError as e:
            return Result.err(
                MalformedResponse(f"Unexpected IPNS response: {e}", cause=e)
            )
