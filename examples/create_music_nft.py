import asyncio

from musicnft import MusicNFTClient
from musicnft.schemas import MusicNFTConfig, NFTAttribute


async def main():
    async with MusicNFTClient.from_env() as client:
        encrypted = await client.marshal.encrypt(
            "https://gateway.lighthouse.storage/ipns/k51-your-playlist",
            creator_sol_address=client.address,
        )
        if encrypted.is_err():
            print(encrypted.get_err())
            return

        config = MusicNFTConfig(
            animation_url="https://gateway.lighthouse.storage/ipfs/QmYourPreviewTrack",
            image_url="https://gateway.lighthouse.storage/ipfs/QmYourCoverArt",
            creator=client.address,
            data_stream_url=encrypted.value.encrypted_message,
            name="Galaxy Tour #1",
            description="Full album access",
            token_code="MUSG1",
            additional_traits=[NFTAttribute(trait_type="Genre", value="Synthwave")],
        )
        result = await client.create_music_nft(config, quantity=5)
        print(result.value if result.is_ok() else result.get_err())


asyncio.run(main())
