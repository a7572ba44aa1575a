import asyncio

from musicnft import MusicNFTClient

client = MusicNFTClient.from_env()

result = asyncio.run(client.credits.handle_credits(3))
if result.is_ok():
    requirement = result.value
    print(f"Required: {requirement.required_amount} tokens")
    print(f"Needs purchase: {requirement.needs_token_purchase} ({requirement.amount_to_purchase})")
else:
    print(result.get_err().to_dict())
