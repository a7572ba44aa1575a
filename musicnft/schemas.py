"""Pydantic models for toolkit configuration and backend payloads."""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    """Base for payloads exchanged with the backends in camelCase."""

    model_config = ConfigDict(populate_by_name=True)


# --- SETTLEMENT ---


class CreditRequirement(BaseModel):
    """Outcome of a credit check for a batch of priced operations."""

    model_config = ConfigDict(frozen=True)

    required_amount: Decimal = Field(
        ...,
        description="Total tokens owed, including the settlement buffer, in whole-token units",
    )
    needs_token_purchase: bool = Field(
        ..., description="True when the wallet balance does not cover the requirement"
    )
    amount_to_purchase: Decimal = Field(
        ..., description="Shortfall in whole-token units (0 when covered)"
    )


# --- STORAGE ---


class LocalFile(BaseModel):
    """An in-memory file ready to be uploaded."""

    name: str = Field(..., description="File name sent to the storage backend")
    content: bytes = Field(..., description="Raw file content")
    mime_type: str = Field(
        default="application/octet-stream", description="MIME type of the content"
    )


class UploadedFile(_CamelModel):
    """A file stored on the decentralized storage backend."""

    hash: str
    file_name: str = Field(..., alias="fileName")
    mime_type: str = Field(..., alias="mimeType")
    folder_hash: Optional[str] = Field(default=None, alias="folderHash")
    category: str


class IpnsResponse(_CamelModel):
    """Result of publishing a CID under the wallet's IPNS key."""

    key: str
    hash: str
    address: str
    pointing_hash: str = Field(..., alias="pointingHash")
    last_updated: int = Field(..., alias="lastUpdated")


# --- MANIFESTS ---


class ManifestType(str, Enum):
    """Available manifest types."""

    MUSIC_PLAYLIST = "musicplaylist"


class FileMetadata(BaseModel):
    """Descriptive metadata of one track."""

    artist: str
    title: str
    album: Optional[str] = None
    category: Optional[str] = None


class FileNames(_CamelModel):
    """File names of a track's audio and cover art, as uploaded."""

    audio_file_name: str = Field(..., alias="audioFileName")
    cover_art_file_name: str = Field(..., alias="coverArtFileName")


class DefaultMetadata(BaseModel):
    """Fallbacks applied when a track's own metadata is missing a field."""

    album: Optional[str] = None
    category: Optional[str] = None


class MusicPlaylistConfig(_CamelModel):
    """Configuration for a music playlist manifest."""

    name: str
    creator: str
    files_metadata: Dict[str, FileMetadata] = Field(
        default_factory=dict, alias="filesMetadata"
    )
    file_names: Dict[str, FileNames] = Field(
        default_factory=dict, alias="fileNames"
    )
    default_metadata: Optional[DefaultMetadata] = Field(
        default=None, alias="defaultMetadata"
    )


class MarshalManifest(_CamelModel):
    total_items: int = Field(..., alias="totalItems")
    nested_stream: bool = Field(..., alias="nestedStream")


class DataStream(_CamelModel):
    """Header of a data stream manifest."""

    category: str
    name: str
    creator: str
    created_on: str
    last_modified_on: str
    marshal_manifest: MarshalManifest = Field(..., alias="marshalManifest")


class MusicTrackData(BaseModel):
    """One entry of a playlist manifest."""

    idx: int
    date: str
    category: str
    artist: str
    album: str
    src: str
    cover_art_url: str
    title: str


class MusicPlaylistManifest(BaseModel):
    data_stream: DataStream
    data: List[MusicTrackData]


class PlaylistUploadResult(BaseModel):
    """Outcome of a paid playlist upload."""

    success: bool
    ipns_hash: str
    pointing_hash: str
    payment_signature: str


# --- NFT METADATA ---


class NFTType(str, Enum):
    """Available NFT types."""

    MUSIC = "music"


class NFTAttribute(BaseModel):
    trait_type: str
    value: str


class NFTFile(BaseModel):
    type: str
    uri: str


class NFTProperties(BaseModel):
    category: str
    files: List[NFTFile]


class MusicNFTMetadata(BaseModel):
    """Off-chain metadata JSON of a music NFT."""

    animation_url: str
    attributes: List[NFTAttribute]
    description: str
    external_url: str
    image: str
    name: str
    properties: NFTProperties
    symbol: str = ""


class MusicNFTConfig(BaseModel):
    """Inputs for building music NFT metadata."""

    animation_url: Optional[str] = Field(
        default=None, description="URL of the audio content"
    )
    creator: Optional[str] = Field(
        default=None, description="Creator wallet address"
    )
    data_stream_url: Optional[str] = Field(
        default=None, description="Encrypted data stream URL"
    )
    image_url: Optional[str] = Field(default=None, description="Cover image URL")
    name: Optional[str] = None
    description: Optional[str] = None
    token_code: Optional[str] = Field(
        default=None, description="Token identifier code, e.g. 'MUSG2'"
    )
    drop: Optional[str] = Field(default=None, description="Drop identifier")
    preview_music_url: Optional[str] = None
    rarity: Optional[str] = None
    additional_traits: List[NFTAttribute] = Field(default_factory=list)


# --- MINT ---


class Creator(BaseModel):
    address: str
    share: int = Field(..., ge=0, le=100)


class MintConfig(_CamelModel):
    """Body of a bulk-mint request."""

    mint_for_sol_addr: str = Field(..., alias="mintForSolAddr")
    token_name: str = Field(..., alias="tokenName")
    metadata_on_ipfs_url: str = Field(..., alias="metadataOnIpfsUrl")
    seller_fee_basis_points: int = Field(
        ..., ge=0, le=10_000, alias="sellerFeeBasisPoints"
    )
    creators: List[Creator]
    quantity: int = Field(..., ge=1)


class MintResponse(_CamelModel):
    asset_ids: List[str] = Field(..., alias="assetIds")


# --- MARSHAL ---


class EncryptResponse(_CamelModel):
    encrypted_message: str = Field(..., alias="encryptedMessage")
    message_hash: str = Field(..., alias="messageHash")
