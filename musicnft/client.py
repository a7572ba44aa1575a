"""
MusicNFTClient: user-facing entry point of the toolkit.

Ties the credit settlement engine to the paid backends:

1. **Playlist upload**: pay for N files, upload them, build and upload the
   playlist manifest, then pin the manifest to the wallet's IPNS name.
2. **NFT creation**: pay for one upload, store the NFT metadata JSON, and
   bulk-mint assets pointing at it.

Every call returns a :class:`musicnft.result.Result`; nothing is raised for
expected failures.
"""

from __future__ import annotations

import asyncio
from typing import Any, List, Optional, Sequence, Union

import httpx
from loguru import logger as default_logger
from solders.keypair import Keypair

from musicnft.config import (
    MUSICNFT_API_URL,
    MUSICNFT_MARSHAL_URL,
    MUSICNFT_VERBOSE,
    MUSICNFT_WALLET_PRIVATE_KEY,
    SOLANA_RPC_URL,
    ConfirmationPolicy,
    NetworkConfig,
    get_network_config,
)
from musicnft.credit_manager import CreditManager
from musicnft.errors import MusicNFTError, ValidationFailure
from musicnft.ledger import LedgerGateway
from musicnft.manifest import ManifestBuilderFactory, gateway_url
from musicnft.marshal import MarshalClient
from musicnft.mint import MintClient
from musicnft.nft_metadata import NFTMetadataBuilderFactory
from musicnft.playlist import build_playlist_config
from musicnft.result import Result
from musicnft.schemas import (
    Creator,
    LocalFile,
    ManifestType,
    MintConfig,
    MusicNFTConfig,
    MusicPlaylistConfig,
    NFTType,
    PlaylistUploadResult,
)
from musicnft.solana_utils import parse_keypair_from_string
from musicnft.storage import StorageClient
from musicnft.swap import JupiterSwapper
from musicnft.token_prices import PriceOracle

MANIFEST_FILE_NAME = "playlist-manifest.json"
METADATA_FILE_NAME = "metadata.json"


def _missing_track_files(
    files: Sequence[LocalFile], config: MusicPlaylistConfig
) -> List[str]:
    """Tracks whose audio or cover art is absent from ``files``, as ``key: reason``."""
    names = {f.name for f in files}
    missing: List[str] = []
    for key in config.files_metadata:
        mapping = config.file_names.get(key)
        if mapping is None:
            missing.append(f"{key}: no file names")
            continue
        if not mapping.audio_file_name or mapping.audio_file_name not in names:
            missing.append(f"{key}: audio '{mapping.audio_file_name}'")
        if not mapping.cover_art_file_name or mapping.cover_art_file_name not in names:
            missing.append(f"{key}: cover art '{mapping.cover_art_file_name}'")
    return missing


class MusicNFTClient:
    """
    User-facing client for paying, uploading and minting music NFTs.

    **Capabilities**

    - **Settlement**: :attr:`credits` (:class:`CreditManager`) for direct
      ``handle_credits`` / ``handle_payment`` calls
    - **Playlists**: :meth:`upload_music_files`, :meth:`upload_playlist_folder`
    - **NFTs**: :meth:`create_music_nft`
    - **Marshal**: :attr:`marshal` for data stream encryption

    **Example Usage:**

        ```python
        from musicnft import MusicNFTClient

        client = MusicNFTClient.from_env()
        result = await client.upload_playlist_folder(
            "./my-album", name="Galaxy", creator="Ben"
        )
        if result.is_ok():
            print(result.value.ipns_hash)
        else:
            print(result.get_err())
        ```

    **Attributes:**
        payer (Keypair): Wallet paying for operations and owning uploads.
        credits (CreditManager): Settlement engine.
        storage (StorageClient): Upload / IPNS client.
        minter (MintClient): Bulk-mint client.
        marshal (MarshalClient): Encryption client.
    """

    def __init__(
        self,
        payer: Keypair,
        api_url: str = MUSICNFT_API_URL,
        marshal_url: str = MUSICNFT_MARSHAL_URL,
        gateway: Optional[LedgerGateway] = None,
        network: Optional[NetworkConfig] = None,
        policy: Optional[ConfirmationPolicy] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        verbose: bool = MUSICNFT_VERBOSE,
        logger: Any = None,
    ):
        """
        Args:
            payer: Wallet keypair.
            api_url: Base URL of the pricing, storage and mint backend.
            marshal_url: Base URL of the marshal (encryption) service.
            gateway: Solana RPC gateway; defaults to one on ``SOLANA_RPC_URL``.
            network: Network identifiers and settlement parameters.
            policy: Confirmation poll timing.
            http_client: Shared httpx client; a client per call is used otherwise.
            verbose: Log component wiring at INFO level.
        """
        self.payer = payer
        self.network = network or get_network_config()
        self.gateway = gateway or LedgerGateway(SOLANA_RPC_URL)
        self.logger = logger or default_logger.bind(component="client")
        self.verbose = verbose

        self.oracle = PriceOracle(
            api_url, network=self.network, http_client=http_client, logger=logger
        )
        self.swapper = JupiterSwapper(
            self.gateway,
            payer,
            network=self.network,
            policy=policy,
            http_client=http_client,
            logger=logger,
        )
        self.credits = CreditManager(
            self.gateway,
            payer,
            self.oracle,
            swapper=self.swapper,
            network=self.network,
            policy=policy,
            logger=logger,
        )
        self.storage = StorageClient(api_url, http_client=http_client, logger=logger)
        self.minter = MintClient(api_url, http_client=http_client, logger=logger)
        self.marshal = MarshalClient(marshal_url, http_client=http_client, logger=logger)

        if self.verbose:
            self.logger.info(
                f"MusicNFTClient initialized with wallet={self.address}, api_url={api_url}, network={self.network.name}"
            )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "MusicNFTClient":
        """Build a client from ``MUSICNFT_WALLET_PRIVATE_KEY`` and the other env settings."""
        if not MUSICNFT_WALLET_PRIVATE_KEY:
            raise ValueError("MUSICNFT_WALLET_PRIVATE_KEY is not set")
        payer = parse_keypair_from_string(MUSICNFT_WALLET_PRIVATE_KEY)
        return cls(payer, **kwargs)

    @property
    def address(self) -> str:
        return str(self.payer.pubkey())

    async def close(self) -> None:
        await self.gateway.close()

    async def __aenter__(self) -> "MusicNFTClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _failed(self, step: str, error: BaseException) -> Result[Any, Exception]:
        self.logger.error(f"Error in {step}: {error}")
        return Result.err(error)

    async def upload_music_files(
        self,
        files: Union[LocalFile, Sequence[LocalFile]],
        config: MusicPlaylistConfig,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Result[PlaylistUploadResult, Exception]:
        """
        Pay for and upload music files, then publish their playlist manifest.

        The payment covers one operation per file; the manifest upload reuses
        the same payment signature.
        """
        file_list = [files] if isinstance(files, LocalFile) else list(files or [])
        if not file_list:
            return Result.err(ValidationFailure("No files provided for upload"))
        missing = _missing_track_files(file_list, config)
        if missing:
            return self._failed(
                "playlist check",
                ValidationFailure(
                    "Playlist references files that are not being uploaded",
                    details={"missing": missing},
                ),
            )
        self.logger.info(f"Processing {len(file_list)} music files for upload")

        paid = await self.credits.handle_payment(len(file_list), cancel_event=cancel_event)
        if paid.is_err():
            return self._failed("payment", paid.get_err())
        payment_signature = paid.value
        self.logger.info(f"Payment processed with signature: {payment_signature}")

        uploaded = await self.storage.upload(
            file_list, ManifestType.MUSIC_PLAYLIST, payment_signature, self.address
        )
        if uploaded.is_err():
            return self._failed("file upload", uploaded.get_err())
        self.logger.info("Files uploaded successfully")

        try:
            manifest = ManifestBuilderFactory.get_builder(
                ManifestType.MUSIC_PLAYLIST
            ).build_manifest(ManifestType.MUSIC_PLAYLIST, uploaded.value, config)
        except MusicNFTError as e:
            return self._failed("manifest build", e)
        self.logger.info("Manifest built successfully")

        manifest_file = LocalFile(
            name=MANIFEST_FILE_NAME,
            content=manifest.model_dump_json(by_alias=True).encode("utf-8"),
            mime_type="application/json",
        )
        manifest_upload = await self.storage.upload(
            manifest_file,
            ManifestType.MUSIC_PLAYLIST,
            payment_signature,
            self.address,
        )
        if manifest_upload.is_err():
            return self._failed("manifest upload", manifest_upload.get_err())
        if not manifest_upload.value:
            return self._failed(
                "manifest upload",
                ValidationFailure("Storage returned no entry for the manifest"),
            )

        # The manifest is the first entry of the response
        manifest_hash = manifest_upload.value[0].hash
        pinned = await self.storage.pin_to_ipns(manifest_hash, self.address)
        if pinned.is_err():
            return self._failed("IPNS pinning", pinned.get_err())

        return Result.ok(
            PlaylistUploadResult(
                success=True,
                ipns_hash=pinned.value.hash,
                pointing_hash=pinned.value.pointing_hash,
                payment_signature=payment_signature,
            )
        )

    async def upload_playlist_folder(
        self,
        folder_path: str,
        name: str,
        creator: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Result[PlaylistUploadResult, Exception]:
        """Scan a playlist folder (see :mod:`musicnft.playlist`) and upload it."""
        try:
            folder = build_playlist_config(folder_path, name, creator, logger=self.logger)
        except (OSError, ValueError, MusicNFTError) as e:
            return self._failed("playlist scan", e)
        return await self.upload_music_files(
            folder.all_files, folder.config, cancel_event=cancel_event
        )

    async def create_music_nft(
        self,
        nft_config: MusicNFTConfig,
        quantity: int = 1,
        seller_fee_basis_points: int = 500,
        creators: Optional[List[Creator]] = None,
        mint_for: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Result[List[str], Exception]:
        """
        Store the NFT metadata and mint ``quantity`` assets pointing at it.

        Returns:
            Result holding the minted asset ids.
        """
        if quantity < 1:
            return self._failed(
                "mint config", ValidationFailure(f"quantity must be >= 1, got {quantity}")
            )
        if not 0 <= seller_fee_basis_points <= 10_000:
            return self._failed(
                "mint config",
                ValidationFailure(
                    f"seller_fee_basis_points must be within 0..10000, got {seller_fee_basis_points}"
                ),
            )

        try:
            metadata = NFTMetadataBuilderFactory.get_builder(NFTType.MUSIC).build_metadata(
                nft_config
            )
            mint_for_addr = mint_for or self.address
            mint_creators = creators or [Creator(address=self.address, share=100)]
        except MusicNFTError as e:
            return self._failed("metadata build", e)

        paid = await self.credits.handle_payment(1, cancel_event=cancel_event)
        if paid.is_err():
            return self._failed("payment", paid.get_err())
        payment_signature = paid.value

        metadata_file = LocalFile(
            name=METADATA_FILE_NAME,
            content=metadata.model_dump_json().encode("utf-8"),
            mime_type="application/json",
        )
        stored = await self.storage.upload(
            metadata_file, "staticdata", payment_signature, self.address
        )
        if stored.is_err():
            return self._failed("metadata upload", stored.get_err())
        if not stored.value:
            return self._failed(
                "metadata upload",
                ValidationFailure("Storage returned no entry for the metadata"),
            )

        try:
            mint_config = MintConfig(
                mint_for_sol_addr=mint_for_addr,
                token_name=nft_config.token_code,
                metadata_on_ipfs_url=gateway_url(stored.value[0].hash),
                seller_fee_basis_points=seller_fee_basis_points,
                creators=mint_creators,
                quantity=quantity,
            )
        except ValueError as e:
            return self._failed("mint config", ValidationFailure(str(e), cause=e))

        minted = await self.minter.mint(mint_config, self.address, payment_signature)
        if minted.is_err():
            return self._failed("mint", minted.get_err())
        self.logger.success(f"Minted {len(minted.value)} asset(s)")
        return minted
