"""
Solana transaction helpers: keypair parsing and the build/sign/send/confirm
primitive shared by swaps and payments.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, List, Optional, Sequence

from loguru import logger as default_logger
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.compute_budget import set_compute_unit_price
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.transaction import VersionedTransaction

from musicnft.config import ConfirmationPolicy
from musicnft.errors import (
    ConfirmationTimeout,
    NetworkFailure,
    SettlementCancelled,
    SubmissionRejected,
    TransactionFailed,
)
from musicnft.ledger import LedgerGateway, SignatureStatus
from musicnft.result import Result


def parse_keypair_from_string(private_key_str: str) -> Keypair:
    """Parse a Solana keypair from a string, without logging secrets."""
    s = (private_key_str or "").strip()
    if not s:
        raise ValueError("Empty private_key")

    # Format 1: JSON array of ints
    if s.startswith("["):
        arr = json.loads(s)
        if not isinstance(arr, list) or not all(isinstance(x, int) for x in arr):
            raise ValueError("Invalid JSON private key; expected a list of ints")
        return Keypair.from_bytes(bytes(arr))

    # Format 2: base58 string
    return Keypair.from_base58_string(s)


def is_settled(status: Optional[SignatureStatus]) -> bool:
    """True when the status reached ``confirmed`` or ``finalized``."""
    if status is None:
        return False
    return (
        status.confirmation_status == "finalized"
        or status.confirmation_status == "confirmed"
    )


def _cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    return cancel_event is not None and cancel_event.is_set()


async def sign_send_and_confirm_transaction(
    *,
    gateway: LedgerGateway,
    payer: Keypair,
    instructions: Sequence[Instruction],
    priority_fee: int = 0,
    address_lookup_table_accounts: Optional[
        Sequence[AddressLookupTableAccount]
    ] = None,
    policy: Optional[ConfirmationPolicy] = None,
    cancel_event: Optional[asyncio.Event] = None,
    logger: Any = None,
) -> Result[str, Exception]:
    """
    Build, sign, send and confirm a v0 transaction.

    Preflight simulation is skipped. After submission the status is polled
    ``policy.max_retries`` times; only ``confirmed`` or ``finalized`` count as
    settled. A send-time rejection is returned without polling.

    Args:
        gateway: RPC gateway.
        payer: Fee payer and sole signer.
        instructions: Ordered instructions; not mutated.
        priority_fee: Compute unit price in micro-lamports; 0 adds no fee instruction.
        address_lookup_table_accounts: Lookup tables used to compress the message.
        policy: Confirmation timing; defaults to 5s initial delay, 2s interval, 4 polls.
        cancel_event: When set, polling stops with :class:`SettlementCancelled`.

    Returns:
        Result holding the transaction signature.
    """
    log = logger or default_logger.bind(component="transactions")
    policy = policy or ConfirmationPolicy()

    try:
        blockhash = await gateway.get_latest_blockhash()
    except Exception as e:
        log.error(f"Failed to fetch latest blockhash: {e}")
        return Result.err(
            NetworkFailure(
                f"Failed to fetch latest blockhash: {e}",
                error_type="Blockhash fetch failed",
                cause=e,
            )
        )

    ixs: List[Instruction] = list(instructions)
    if priority_fee > 0:
        ixs.insert(0, set_compute_unit_price(priority_fee))

    message = MessageV0.try_compile(
        payer.pubkey(),
        ixs,
        list(address_lookup_table_accounts or []),
        blockhash,
    )
    tx = VersionedTransaction(message, [payer])

    try:
        signature = await gateway.send_raw_transaction(
            bytes(tx), skip_preflight=True
        )
    except Exception as e:
        log.error(f"Transaction rejected at submission: {e}")
        return Result.err(
            SubmissionRejected(
                f"Transaction rejected at submission: {e}", cause=e
            )
        )

    log.debug(f"Transaction {signature} submitted, awaiting confirmation")
    await asyncio.sleep(policy.initial_delay)

    last_error: Optional[BaseException] = None
    last_status: Optional[str] = None
    for attempt in range(1, policy.max_retries + 1):
        if _cancelled(cancel_event):
            log.warning(f"Confirmation of {signature} cancelled")
            return Result.err(
                SettlementCancelled(
                    f"Confirmation of {signature} cancelled",
                    details={"signature": signature},
                )
            )
        try:
            status = await gateway.get_signature_status(signature)
        except Exception as e:
            last_error = e
            log.warning(
                f"Status query for {signature} failed (attempt {attempt}/{policy.max_retries}): {e}"
            )
        else:
            if status is not None and status.err is not None:
                log.error(f"Transaction {signature} failed on-chain: {status.err}")
                return Result.err(
                    TransactionFailed(
                        f"Transaction {signature} failed on-chain: {status.err}",
                        details={"signature": signature},
                    )
                )
            if is_settled(status):
                log.debug(
                    f"Transaction {signature} reached {status.confirmation_status}"
                )
                return Result.ok(signature)
            last_status = status.confirmation_status if status else None

        if attempt < policy.max_retries:
            await asyncio.sleep(policy.poll_interval)

    log.error(
        f"Transaction {signature} not confirmed after {policy.max_retries} attempts"
    )
    return Result.err(
        ConfirmationTimeout(
            f"Transaction {signature} not confirmed after {policy.max_retries} attempts",
            cause=last_error,
            details={"signature": signature, "last_status": last_status},
        )
    )
