from musicnft.client import MusicNFTClient
from musicnft.config import ConfirmationPolicy, NetworkConfig, get_network_config
from musicnft.credit_manager import CreditManager
from musicnft.errors import MusicNFTError
from musicnft.ledger import LedgerGateway
from musicnft.result import Result
from musicnft.swap import JupiterSwapper
from musicnft.token_prices import PriceOracle

__all__ = [
    "MusicNFTClient",
    "ConfirmationPolicy",
    "NetworkConfig",
    "get_network_config",
    "CreditManager",
    "MusicNFTError",
    "LedgerGateway",
    "Result",
    "JupiterSwapper",
    "PriceOracle",
]
