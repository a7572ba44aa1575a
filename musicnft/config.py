"""
Configuration for the music NFT toolkit.

Values are read from the environment (a ``.env`` file is honoured). Network
identifiers live in named :class:`NetworkConfig` instances so the settlement
logic never embeds addresses.
"""

from __future__ import annotations

import os
from decimal import Decimal
from typing import Dict, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from solders.pubkey import Pubkey

load_dotenv()


def _bool_env(name: str, default: bool = False) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}


# --- ENDPOINTS ---
MUSICNFT_API_URL = os.getenv("MUSICNFT_API_URL", "http://localhost:4000")
MUSICNFT_MARSHAL_URL = os.getenv("MUSICNFT_MARSHAL_URL") or MUSICNFT_API_URL
SOLANA_RPC_URL = os.getenv(
    "SOLANA_RPC_URL", "https://api.mainnet-beta.solana.com"
)
JUPITER_PRICE_URL = os.getenv(
    "JUPITER_PRICE_URL", "https://api.jup.ag/price/v2"
)
JUPITER_QUOTE_URL = os.getenv(
    "JUPITER_QUOTE_URL", "https://quote-api.jup.ag/v6/quote"
)
JUPITER_SWAP_INSTRUCTIONS_URL = os.getenv(
    "JUPITER_SWAP_INSTRUCTIONS_URL",
    "https://quote-api.jup.ag/v6/swap-instructions",
)
IPFS_GATEWAY_URL = os.getenv(
    "IPFS_GATEWAY_URL", "https://gateway.lighthouse.storage/ipfs"
)
SOLSCAN_TX_URL = "https://solscan.io/tx"

# --- RUNTIME ---
MUSICNFT_NETWORK = os.getenv("MUSICNFT_NETWORK", "mainnet").strip().lower()
MUSICNFT_WALLET_PRIVATE_KEY = os.getenv("MUSICNFT_WALLET_PRIVATE_KEY")
MUSICNFT_HTTP_TIMEOUT = float(os.getenv("MUSICNFT_HTTP_TIMEOUT", "30.0"))
MUSICNFT_VERBOSE = _bool_env("MUSICNFT_VERBOSE")

# Wrapped SOL mint, used by Jupiter as the native currency identifier
NATIVE_MINT_ADDRESS = "So11111111111111111111111111111111111111112"
DEFAULT_PRIORITY_FEE = 50_000  # micro-lamports per compute unit


class ConfirmationPolicy(BaseModel):
    """Timing of the confirmation poll loop after a transaction is sent."""

    initial_delay: float = Field(
        default=5.0,
        ge=0,
        description="Seconds to wait after submission before the first status poll",
    )
    poll_interval: float = Field(
        default=2.0, ge=0, description="Seconds between status polls"
    )
    max_retries: int = Field(
        default=4, ge=1, description="Maximum number of status polls"
    )


class NetworkConfig(BaseModel):
    """Deployment-scoped identifiers and settlement parameters."""

    name: str = Field(..., description="Network label, e.g. 'mainnet'")
    token_mint: str = Field(
        ..., description="Mint of the credit token paid for operations"
    )
    collection_address: str = Field(
        ..., description="Wallet that receives settled payments"
    )
    native_mint: str = Field(
        default=NATIVE_MINT_ADDRESS,
        description="Identifier of the native currency on the swap aggregator",
    )
    token_decimals: int = Field(default=9, ge=0)
    native_decimals: int = Field(default=9, ge=0)
    settlement_buffer: Decimal = Field(
        default=Decimal("0.01"),
        ge=0,
        description="Fraction added on top of the raw cost of a settlement",
    )
    swap_input_buffer: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        description="Fraction added to the native amount spent on a swap",
    )
    slippage_bps: int = Field(default=50, ge=0)
    priority_fee: int = Field(
        default=DEFAULT_PRIORITY_FEE,
        ge=0,
        description="Compute unit price in micro-lamports; 0 disables it",
    )

    @field_validator("token_mint", "collection_address", "native_mint")
    @classmethod
    def _check_pubkey(cls, value: str) -> str:
        try:
            Pubkey.from_string(value)
        except ValueError as e:
            raise ValueError(f"Invalid base58 public key: {value!r}") from e
        return value

    @property
    def token_mint_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.token_mint)

    @property
    def collection_pubkey(self) -> Pubkey:
        return Pubkey.from_string(self.collection_address)


MAINNET = NetworkConfig(
    name="mainnet",
    token_mint="iTHSaXjdqFtcnLK4EFEs7mqYQbJb6B7GostqWbBQwaV",
    collection_address="ETRT3kRcn5k4yigqj7Q2j9Zvi7vkKhwD4tzw8H3GPJuc",
)

NETWORKS: Dict[str, NetworkConfig] = {
    "mainnet": MAINNET,
}


def get_network_config(name: Optional[str] = None) -> NetworkConfig:
    """
    Resolve the network configuration, applying environment overrides.

    Recognised overrides: ``MUSICNFT_TOKEN_MINT``,
    ``MUSICNFT_COLLECTION_ADDRESS``, ``MUSICNFT_PRIORITY_FEE``,
    ``MUSICNFT_SETTLEMENT_BUFFER``, ``MUSICNFT_SWAP_INPUT_BUFFER``,
    ``MUSICNFT_SLIPPAGE_BPS``.

    Raises:
        ValueError: Unknown network, or an override that fails validation
            (pydantic's ``ValidationError`` is a ``ValueError``).
    """
    key = (name or MUSICNFT_NETWORK).strip().lower()
    if key not in NETWORKS:
        raise ValueError(
            f"Unknown network: {key}. Known networks: {sorted(NETWORKS)}"
        )

    overrides: Dict[str, str] = {}
    env_map = {
        "MUSICNFT_TOKEN_MINT": "token_mint",
        "MUSICNFT_COLLECTION_ADDRESS": "collection_address",
        "MUSICNFT_PRIORITY_FEE": "priority_fee",
        "MUSICNFT_SETTLEMENT_BUFFER": "settlement_buffer",
        "MUSICNFT_SWAP_INPUT_BUFFER": "swap_input_buffer",
        "MUSICNFT_SLIPPAGE_BPS": "slippage_bps",
    }
    for env_name, field in env_map.items():
        raw = os.getenv(env_name)
        if raw:
            overrides[field] = raw.strip()

    # Overrides go through the same field validation as the registered networks
    return NetworkConfig.model_validate(
        {**NETWORKS[key].model_dump(), **overrides}
    )
