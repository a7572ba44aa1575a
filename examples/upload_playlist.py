import asyncio
import os

from musicnft import MusicNFTClient

folder = os.getenv("PLAYLIST_FOLDER", "./my-album")


async def main():
    async with MusicNFTClient.from_env() as client:
        result = await client.upload_playlist_folder(
            folder, name="Galaxy Tour", creator="Ben"
        )
        if result.is_ok():
            print(f"IPNS: {result.value.ipns_hash}")
            print(f"Manifest: {result.value.pointing_hash}")
        else:
            print(result.get_err())


asyncio.run(main())
