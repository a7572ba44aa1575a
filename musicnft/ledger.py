"""
Thin gateway over the Solana JSON-RPC client.

The gateway exposes only the calls the settlement flow needs and normalises
solana-py response objects into plain values. RPC failures are raised as-is;
callers turn them into ``Result`` values.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Optional, Sequence

from solana.rpc.async_api import AsyncClient as SolanaClient
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction_status import TransactionConfirmationStatus

from musicnft.config import SOLANA_RPC_URL

_CONFIRMATION_STATUS_NAMES = (
    (TransactionConfirmationStatus.Processed, "processed"),
    (TransactionConfirmationStatus.Confirmed, "confirmed"),
    (TransactionConfirmationStatus.Finalized, "finalized"),
)


def _status_name(status: Optional[TransactionConfirmationStatus]) -> Optional[str]:
    for value, name in _CONFIRMATION_STATUS_NAMES:
        if status == value:
            return name
    return None


@dataclass(frozen=True)
class SignatureStatus:
    """Confirmation state of a submitted transaction."""

    confirmation_status: Optional[str]
    err: Optional[Any] = None


class LedgerGateway:
    """Narrow async interface to a Solana RPC node."""

    def __init__(
        self,
        rpc_url: str = SOLANA_RPC_URL,
        client: Optional[SolanaClient] = None,
    ):
        self.rpc_url = rpc_url
        self._client = client or SolanaClient(rpc_url)

    async def __aenter__(self) -> "LedgerGateway":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.close()

    async def get_latest_blockhash(self) -> Hash:
        resp = await self._client.get_latest_blockhash()
        return resp.value.blockhash

    async def get_token_account_balance(self, account: Pubkey) -> Optional[str]:
        """Return the raw sub-unit amount string of an SPL token account."""
        resp = await self._client.get_token_account_balance(account)
        return resp.value.amount

    async def send_raw_transaction(
        self, raw: bytes, skip_preflight: bool = True
    ) -> str:
        resp = await self._client.send_raw_transaction(
            raw, opts=TxOpts(skip_preflight=skip_preflight)
        )
        return str(resp.value)

    async def get_signature_status(
        self, signature: str
    ) -> Optional[SignatureStatus]:
        """Return the status of ``signature``, or None if the node has not seen it."""
        resp = await self._client.get_signature_statuses(
            [Signature.from_string(signature)]
        )
        if not resp.value or resp.value[0] is None:
            return None
        status = resp.value[0]
        return SignatureStatus(
            confirmation_status=_status_name(status.confirmation_status),
            err=status.err,
        )

    async def get_multiple_accounts_info(
        self, keys: Sequence[Pubkey]
    ) -> List[Optional[bytes]]:
        """Return the raw data of each account, None for accounts that do not exist."""
        if not keys:
            return []
        resp = await self._client.get_multiple_accounts(list(keys))
        return [
            bytes(account.data) if account is not None else None
            for account in resp.value
        ]
