"""Builders for the NFT metadata JSON stored before minting."""

from __future__ import annotations

from typing import List, Union

from musicnft.errors import ValidationFailure
from musicnft.schemas import (
    MusicNFTConfig,
    MusicNFTMetadata,
    NFTAttribute,
    NFTFile,
    NFTProperties,
    NFTType,
)

MUSIC_APP_URL = "https://itheum.io/music"
DEFAULT_DROP = "20"
DEFAULT_RARITY = "Common"

REQUIRED_FIELDS = (
    "animation_url",
    "creator",
    "data_stream_url",
    "token_code",
    "description",
    "image_url",
    "name",
)


class MusicNFTMetadataBuilder:
    """Builds the off-chain metadata JSON of a music NFT."""

    def build_metadata(self, config: MusicNFTConfig) -> MusicNFTMetadata:
        self.validate_config(config)

        attributes: List[NFTAttribute] = [
            NFTAttribute(trait_type="App", value="itheum.io/music"),
            NFTAttribute(trait_type="ItheumDrop", value=config.drop or DEFAULT_DROP),
            NFTAttribute(trait_type="Type", value="Music"),
            NFTAttribute(trait_type="itheum_creator", value=config.creator),
            NFTAttribute(
                trait_type="itheum_data_stream_url", value=config.data_stream_url
            ),
            NFTAttribute(trait_type="Rarity", value=config.rarity or DEFAULT_RARITY),
            NFTAttribute(trait_type="TokenCode", value=config.token_code),
        ]
        attributes.extend(config.additional_traits)

        return MusicNFTMetadata(
            animation_url=config.animation_url,
            attributes=attributes,
            description=config.description,
            external_url=MUSIC_APP_URL,
            image=config.image_url,
            name=config.name,
            properties=NFTProperties(
                category="audio",
                files=[
                    NFTFile(type="image/gif", uri=config.image_url),
                    NFTFile(type="audio/mpeg", uri=config.animation_url),
                ],
            ),
            symbol="",
        )

    @staticmethod
    def validate_config(config: MusicNFTConfig) -> None:
        for field in REQUIRED_FIELDS:
            if not getattr(config, field):
                raise ValidationFailure(f"Missing required field: {field}")


class NFTMetadataBuilderFactory:
    @staticmethod
    def get_builder(nft_type: Union[str, NFTType]) -> MusicNFTMetadataBuilder:
        try:
            resolved = NFTType(nft_type)
        except ValueError:
            raise ValidationFailure(f"No builder found for NFT type: {nft_type}") from None
        if resolved is NFTType.MUSIC:
            return MusicNFTMetadataBuilder()
        raise ValidationFailure(f"No builder found for NFT type: {nft_type}")
