import asyncio

from musicnft import MusicNFTClient


async def main():
    async with MusicNFTClient.from_env(verbose=True) as client:
        result = await client.credits.handle_payment(1)
        if result.is_err():
            print(result.get_err().to_dict())
            return
        print(f"Payment signature: {result.value}")


asyncio.run(main())
