"""
Native-currency to credit-token swaps through the Jupiter aggregator.

The aggregator is asked for a quote, then for the raw instructions that
execute it. The instructions are decoded into ``solders`` instructions in the
order Jupiter returns them and submitted as a single v0 transaction.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, List, Optional

import httpx
from solders.address_lookup_table_account import (
    AddressLookupTable,
    AddressLookupTableAccount,
)
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from musicnft.config import (
    JUPITER_QUOTE_URL,
    JUPITER_SWAP_INSTRUCTIONS_URL,
    MAINNET,
    SOLSCAN_TX_URL,
    ConfirmationPolicy,
    NetworkConfig,
)
from musicnft.errors import (
    MalformedResponse,
    NetworkFailure,
    NoInstructionsError,
    SwapError,
    ValidationFailure,
)
from musicnft.http import BaseHTTPService
from musicnft.ledger import LedgerGateway
from musicnft.result import Result
from musicnft.solana_utils import sign_send_and_confirm_transaction


def deserialize_instruction(descriptor: Dict[str, Any]) -> Instruction:
    """
    Decode one Jupiter instruction descriptor.

    Expects ``programId``, ``accounts`` (``pubkey``, ``isSigner``,
    ``isWritable``) and base64 ``data``. Raises ``ValueError`` on bad input.
    """
    try:
        program_id = Pubkey.from_string(descriptor["programId"])
        accounts = [
            AccountMeta(
                pubkey=Pubkey.from_string(account["pubkey"]),
                is_signer=bool(account["isSigner"]),
                is_writable=bool(account["isWritable"]),
            )
            for account in descriptor.get("accounts") or []
        ]
        data = base64.b64decode(descriptor.get("data") or "", validate=True)
    except (KeyError, TypeError, binascii.Error) as e:
        raise ValueError(f"invalid instruction descriptor: {e!r}") from e
    return Instruction(program_id, data, accounts)


class JupiterSwapper(BaseHTTPService):
    """Swaps the native currency into the configured credit token."""

    component = "swap"

    def __init__(
        self,
        gateway: LedgerGateway,
        payer: Keypair,
        network: NetworkConfig = MAINNET,
        policy: Optional[ConfirmationPolicy] = None,
        quote_url: str = JUPITER_QUOTE_URL,
        swap_instructions_url: str = JUPITER_SWAP_INSTRUCTIONS_URL,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        logger: Any = None,
    ):
        super().__init__("", timeout, http_client, logger)
        self.gateway = gateway
        self.payer = payer
        self.network = network
        self.policy = policy
        self.quote_url = quote_url
        self.swap_instructions_url = swap_instructions_url

    def native_to_base_units(self, amount_native: Decimal) -> int:
        """Native amount → smallest units, inflated by the swap input buffer, floored."""
        scaled = (
            Decimal(amount_native)
            * (Decimal(10) ** self.network.native_decimals)
            * (Decimal(1) + self.network.swap_input_buffer)
        )
        return int(scaled.to_integral_value(rounding=ROUND_FLOOR))

    async def get_quote(self, amount_base_units: int) -> Result[Any, Exception]:
        params = {
            "inputMint": self.network.native_mint,
            "outputMint": self.network.token_mint,
            "amount": str(amount_base_units),
            "slippageBps": str(self.network.slippage_bps),
        }
        return await self._request_json(
            "GET", self.quote_url, operation="swap quote", params=params
        )

    async def get_swap_instructions(self, quote: Any) -> Result[Any, Exception]:
        body = {
            "quoteResponse": quote,
            "userPublicKey": str(self.payer.pubkey()),
        }
        return await self._request_json(
            "POST",
            self.swap_instructions_url,
            operation="swap instructions",
            json=body,
        )

    def build_instructions(self, payload: Any) -> Result[List[Instruction], Exception]:
        """
        Decode the aggregator payload in execution order: compute budget,
        setup, swap, then the optional cleanup instruction.
        """
        if isinstance(payload, dict) and payload.get("error"):
            return Result.err(
                NoInstructionsError(f"Aggregator error: {payload['error']}")
            )
        if not isinstance(payload, dict) or not payload.get("swapInstruction"):
            return Result.err(
                NoInstructionsError("Aggregator returned no swap instructions")
            )

        descriptors: List[Dict[str, Any]] = [
            *(payload.get("computeBudgetInstructions") or []),
            *(payload.get("setupInstructions") or []),
            payload["swapInstruction"],
        ]
        if payload.get("cleanupInstruction"):
            descriptors.append(payload["cleanupInstruction"])

        instructions: List[Instruction] = []
        for position, descriptor in enumerate(descriptors):
            try:
                instructions.append(deserialize_instruction(descriptor))
            except ValueError as e:
                return Result.err(
                    MalformedResponse(
                        f"Could not decode swap instruction #{position}: {e}",
                        cause=e,
                    )
                )
        return Result.ok(instructions)

    async def resolve_lookup_tables(
        self, addresses: List[str]
    ) -> Result[List[AddressLookupTableAccount], Exception]:
        """
        Fetch and decode address lookup tables.

        Addresses with no account on chain are dropped; an account that exists
        but cannot be decoded is an error.
        """
        if not addresses:
            return Result.ok([])
        try:
            keys = [Pubkey.from_string(address) for address in addresses]
        except ValueError as e:
            return Result.err(
                MalformedResponse(f"Invalid lookup table address: {e}", cause=e)
            )

        try:
            infos = await self.gateway.get_multiple_accounts_info(keys)
        except Exception as e:
            return Result.err(
                NetworkFailure(f"Failed to fetch lookup tables: {e}", cause=e)
            )

        tables: List[AddressLookupTableAccount] = []
        for key, data in zip(keys, infos):
            if data is None:
                self.logger.warning(f"Lookup table {key} not found; skipping")
                continue
            try:
                table = AddressLookupTable.deserialize(data)
            except Exception as e:
                return Result.err(
                    MalformedResponse(
                        f"Could not decode lookup table {key}: {e}", cause=e
                    )
                )
            tables.append(AddressLookupTableAccount(key, table.addresses))
        return Result.ok(tables)

    def _swap_failed(self, step: str, error: BaseException) -> SwapError:
        self.logger.error(f"Swap failed during {step}: {error}")
        return SwapError(
            f"Swap failed during {step}: {error}",
            error_type=getattr(error, "error_type", None),
            cause=error,
            details={"step": step},
        )

    async def swap_native_for_token(
        self,
        amount_native: Decimal,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> Result[str, Exception]:
        """
        Spend ``amount_native`` (plus the input buffer) on the credit token.

        Returns:
            Result holding the confirmed swap transaction signature.
        """
        if amount_native <= 0:
            return Result.err(
                self._swap_failed(
                    "validation",
                    ValidationFailure(f"Swap amount must be positive, got {amount_native}"),
                )
            )

        # A positive amount below one base unit still buys the smallest quotable amount
        base_units = max(self.native_to_base_units(amount_native), 1)
        self.logger.info(
            f"Swapping {amount_native} native ({base_units} base units) for {self.network.token_mint}"
        )

        quote = await self.get_quote(base_units)
        if quote.is_err():
            return Result.err(self._swap_failed("quote", quote.get_err()))

        payload = await self.get_swap_instructions(quote.value)
        if payload.is_err():
            return Result.err(self._swap_failed("instructions", payload.get_err()))

        instructions = self.build_instructions(payload.value)
        if instructions.is_err():
            return Result.err(self._swap_failed("decode", instructions.get_err()))

        tables = await self.resolve_lookup_tables(
            payload.value.get("addressLookupTableAddresses") or []
        )
        if tables.is_err():
            return Result.err(self._swap_failed("lookup tables", tables.get_err()))

        submitted = await sign_send_and_confirm_transaction(
            gateway=self.gateway,
            payer=self.payer,
            instructions=instructions.value,
            priority_fee=self.network.priority_fee,
            address_lookup_table_accounts=tables.value,
            policy=self.policy,
            cancel_event=cancel_event,
            logger=self.logger,
        )
        if submitted.is_err():
            return Result.err(self._swap_failed("submission", submitted.get_err()))

        self.logger.success(
            f"Swapped native for credit tokens. {SOLSCAN_TX_URL}/{submitted.value}"
        )
        return submitted
