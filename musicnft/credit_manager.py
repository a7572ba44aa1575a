"""
Credit settlement engine.

Decides whether the wallet holds enough credit tokens for a batch of priced
operations, buys the shortfall with the native currency when it does not, and
transfers the full amount owed to the collection address. The resulting
transfer signature is the payment proof attached to paid backend requests.

Calls on one ``CreditManager`` are serialised. Two managers (or two
processes) sharing a wallet are not coordinated and can both observe a stale
balance; run at most one settlement per wallet at a time.
"""

from __future__ import annotations

import asyncio
from decimal import ROUND_CEILING, Decimal
from enum import Enum
from typing import Any, List, Optional

from loguru import logger as default_logger
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID
from spl.token.instructions import (
    TransferCheckedParams,
    create_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from musicnft.config import (
    MAINNET,
    SOLSCAN_TX_URL,
    ConfirmationPolicy,
    NetworkConfig,
)
from musicnft.errors import (
    MalformedResponse,
    NetworkFailure,
    SettlementCancelled,
    SwapError,
    ValidationFailure,
)
from musicnft.ledger import LedgerGateway
from musicnft.result import Result
from musicnft.schemas import CreditRequirement
from musicnft.solana_utils import sign_send_and_confirm_transaction
from musicnft.swap import JupiterSwapper
from musicnft.token_prices import PriceOracle

_MISSING_ACCOUNT_MARKERS = (
    "could not find account",
    "account does not exist",
    "account not found",
)


class SettlementState(str, Enum):
    IDLE = "idle"
    SYNCING = "syncing"
    COST_CHECK = "cost_check"
    PRICING = "pricing"
    SWAPPING = "swapping"
    RESYNCING = "resyncing"
    PAYING = "paying"
    DONE = "done"
    FAILED = "failed"


def _is_missing_account_error(error: BaseException) -> bool:
    text = str(error).lower()
    return any(marker in text for marker in _MISSING_ACCOUNT_MARKERS)


class CreditManager:
    """
    Pays for operations in credit tokens, swapping native currency when short.

    **Attributes:**
        balance (int): Last observed balance, in token sub-units. Re-synced
            before each settlement decision and after every swap.
        network (NetworkConfig): Token mint, collection address, buffers and
            priority fee.
    """

    def __init__(
        self,
        gateway: LedgerGateway,
        payer: Keypair,
        oracle: PriceOracle,
        swapper: Optional[JupiterSwapper] = None,
        network: NetworkConfig = MAINNET,
        policy: Optional[ConfirmationPolicy] = None,
        logger: Any = None,
    ):
        self.gateway = gateway
        self.payer = payer
        self.oracle = oracle
        self.network = network
        self.policy = policy
        self.logger = logger or default_logger.bind(component="credits")
        self.swapper = swapper or JupiterSwapper(
            gateway, payer, network=network, policy=policy, logger=self.logger
        )
        self.balance = 0
        self.state = SettlementState.IDLE
        self._payment_lock = asyncio.Lock()

    @property
    def token_account(self) -> Pubkey:
        """The payer's associated token account for the credit token."""
        return get_associated_token_address(
            self.payer.pubkey(), self.network.token_mint_pubkey
        )

    def _to_base_units(self, amount: Decimal) -> int:
        scaled = amount * (Decimal(10) ** self.network.token_decimals)
        return int(scaled.to_integral_value(rounding=ROUND_CEILING))

    def _transition(self, state: SettlementState) -> None:
        self.logger.debug(f"Settlement {self.state.value} -> {state.value}")
        self.state = state

    async def fetch_balance(self) -> Result[int, Exception]:
        """
        Read the payer's credit token balance in sub-units.

        A token account that does not exist reads as 0. Other lookup errors
        and unparseable amounts are returned as failures.
        """
        account = self.token_account
        try:
            amount = await self.gateway.get_token_account_balance(account)
        except Exception as e:
            if _is_missing_account_error(e):
                self.logger.debug(f"Token account {account} does not exist; balance is 0")
                return Result.ok(0)
            self.logger.error(f"Failed to fetch balance of {account}: {e}")
            return Result.err(
                NetworkFailure(
                    f"Failed to fetch balance of {account}: {e}",
                    cause=e,
                    details={"account": str(account)},
                )
            )

        if amount is None or str(amount).strip() == "":
            return Result.ok(0)
        try:
            balance = int(str(amount).strip())
        except ValueError as e:
            return Result.err(
                MalformedResponse(
                    f"Unparseable token amount {amount!r} for {account}",
                    cause=e,
                    details={"account": str(account)},
                )
            )
        if balance < 0:
            return Result.err(
                MalformedResponse(f"Negative token amount {balance} for {account}")
            )
        return Result.ok(balance)

    async def sync_balance(self) -> Result[int, Exception]:
        """Overwrite the cached balance with the ledger's current value."""
        fetched = await self.fetch_balance()
        if fetched.is_ok():
            self.balance = fetched.value
            self.logger.debug(f"Balance synced: {self.balance} sub-units")
        return fetched

    async def handle_credits(
        self, operation_count: int
    ) -> Result[CreditRequirement, Exception]:
        """
        Work out what ``operation_count`` operations cost and how much of it
        the wallet is missing.

        ``required_amount = cost * operation_count * (1 + settlement_buffer)``,
        compared against the freshly synced balance in whole tokens. A
        shortfall is a normal outcome, not a failure.
        """
        if (
            isinstance(operation_count, bool)
            or not isinstance(operation_count, int)
            or operation_count < 1
        ):
            return Result.err(
                ValidationFailure(
                    f"operation_count must be a positive integer, got {operation_count!r}"
                )
            )

        synced = await self.sync_balance()
        if synced.is_err():
            return Result.err(synced.get_err())

        self._transition(SettlementState.COST_CHECK)
        cost = await self.oracle.get_cost()
        if cost.is_err():
            return Result.err(cost.get_err())

        total_cost = cost.value * operation_count
        required = total_cost * (Decimal(1) + self.network.settlement_buffer)
        current = Decimal(self.balance) / (Decimal(10) ** self.network.token_decimals)
        shortfall = max(Decimal(0), required - current)

        self.logger.info(
            f"{operation_count} operation(s) cost {required} tokens; balance {current}, shortfall {shortfall}"
        )
        return Result.ok(
            CreditRequirement(
                required_amount=required,
                needs_token_purchase=shortfall > 0,
                amount_to_purchase=shortfall,
            )
        )

    async def _build_transfer_instructions(
        self, amount_base_units: int
    ) -> Result[List[Instruction], Exception]:
        mint = self.network.token_mint_pubkey
        collection = self.network.collection_pubkey
        destination = get_associated_token_address(collection, mint)

        try:
            infos = await self.gateway.get_multiple_accounts_info([destination])
        except Exception as e:
            return Result.err(
                NetworkFailure(
                    f"Failed to look up collection token account {destination}: {e}",
                    cause=e,
                )
            )

        instructions: List[Instruction] = []
        if not infos or infos[0] is None:
            self.logger.info(
                f"Collection token account {destination} missing; creating it"
            )
            instructions.append(
                create_associated_token_account(
                    payer=self.payer.pubkey(), owner=collection, mint=mint
                )
            )

        instructions.append(
            transfer_checked(
                TransferCheckedParams(
                    program_id=TOKEN_PROGRAM_ID,
                    source=self.token_account,
                    mint=mint,
                    dest=destination,
                    owner=self.payer.pubkey(),
                    amount=amount_base_units,
                    decimals=self.network.token_decimals,
                )
            )
        )
        return Result.ok(instructions)

    async def send_tokens_to_collection(
        self,
        amount: Decimal,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Result[str, Exception]:
        """Transfer ``amount`` whole tokens (rounded up to a sub-unit) to the collection address."""
        amount_base_units = self._to_base_units(amount)
        if amount_base_units <= 0:
            return Result.err(
                ValidationFailure(f"Transfer amount must be positive, got {amount}")
            )

        instructions = await self._build_transfer_instructions(amount_base_units)
        if instructions.is_err():
            return Result.err(instructions.get_err())

        return await sign_send_and_confirm_transaction(
            gateway=self.gateway,
            payer=self.payer,
            instructions=instructions.value,
            priority_fee=self.network.priority_fee,
            policy=self.policy,
            cancel_event=cancel_event,
            logger=self.logger,
        )

    def _fail(self, error: BaseException) -> Result[str, Exception]:
        self._transition(SettlementState.FAILED)
        self.logger.error(f"Error buying credits: {error}")
        return Result.err(error)

    def _check_cancelled(
        self, cancel_event: Optional[asyncio.Event]
    ) -> Optional[SettlementCancelled]:
        if cancel_event is not None and cancel_event.is_set():
            return SettlementCancelled(
                f"Settlement cancelled while {self.state.value}",
                details={"state": self.state.value},
            )
        return None

    async def handle_payment(
        self,
        operation_count: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Result[str, Exception]:
        """
        Settle payment for ``operation_count`` operations.

        Flow: sync balance, check cost, and when short: price the token in
        native currency, swap, re-sync. Then transfer the full required amount
        (not only the purchased part) to the collection address.

        Args:
            operation_count: Number of priced operations (e.g. files to upload).
            cancel_event: Checked between steps and between confirmation polls.

        Returns:
            Result holding the payment transfer signature. Any failure aborts
            the whole flow; callers should re-run it from the start.
        """
        async with self._payment_lock:
            self.state = SettlementState.IDLE
            self._transition(SettlementState.SYNCING)

            credits = await self.handle_credits(operation_count)
            if credits.is_err():
                return self._fail(credits.get_err())
            requirement = credits.value

            if requirement.needs_token_purchase:
                cancelled = self._check_cancelled(cancel_event)
                if cancelled:
                    return self._fail(cancelled)

                self._transition(SettlementState.PRICING)
                price = await self.oracle.get_token_price_in_native()
                if price.is_err():
                    return self._fail(price.get_err())
                native_amount = requirement.amount_to_purchase * price.value

                cancelled = self._check_cancelled(cancel_event)
                if cancelled:
                    return self._fail(cancelled)

                self._transition(SettlementState.SWAPPING)
                swapped = await self.swapper.swap_native_for_token(
                    native_amount, cancel_event=cancel_event
                )
                if swapped.is_err():
                    return self._fail(swapped.get_err())

                self._transition(SettlementState.RESYNCING)
                resynced = await self.sync_balance()
                if resynced.is_err():
                    return self._fail(resynced.get_err())
                if self._to_base_units(requirement.required_amount) > self.balance:
                    return self._fail(
                        SwapError(
                            f"Balance after swap ({self.balance} sub-units) still below "
                            f"the required {requirement.required_amount} tokens",
                            error_type="Insufficient balance after swap",
                            details={"swap_signature": swapped.value},
                        )
                    )

            cancelled = self._check_cancelled(cancel_event)
            if cancelled:
                return self._fail(cancelled)

            self._transition(SettlementState.PAYING)
            paid = await self.send_tokens_to_collection(
                requirement.required_amount, cancel_event=cancel_event
            )
            if paid.is_err():
                return self._fail(paid.get_err())

            self._transition(SettlementState.DONE)
            self.logger.success(
                f"Credits sent to collection wallet. {SOLSCAN_TX_URL}/{paid.value}"
            )
            return paid
