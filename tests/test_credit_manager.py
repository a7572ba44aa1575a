import asyncio
from decimal import Decimal

import pytest
from solders.transaction import VersionedTransaction
from spl.token.constants import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

from musicnft.config import MAINNET
from musicnft.credit_manager import CreditManager, SettlementState
from musicnft.errors import (
    MalformedResponse,
    NetworkFailure,
    PriceLookupError,
    SettlementCancelled,
    SwapError,
    ValidationFailure,
)
from musicnft.swap import JupiterSwapper
from musicnft.token_prices import PriceOracle

from .conftest import FakeBackend, default_routes

API_URL = "http://backend.test"
ONE_TOKEN = 10**9


def make_manager(gateway, payer, policy, backend: FakeBackend) -> CreditManager:
    http_client = backend.client()
    oracle = PriceOracle(API_URL, network=MAINNET, http_client=http_client)
    swapper = JupiterSwapper(
        gateway, payer, network=MAINNET, policy=policy, http_client=http_client
    )
    return CreditManager(
        gateway, payer, oracle, swapper=swapper, network=MAINNET, policy=policy
    )


def sent_messages(gateway):
    return [
        VersionedTransaction.from_bytes(call.args[0]).message
        for call in gateway.send_raw_transaction.await_args_list
    ]


def transferred_amount(message) -> int:
    """Amount of the single TransferChecked instruction in ``message``."""
    for ix in message.instructions:
        if message.account_keys[ix.program_id_index] == TOKEN_PROGRAM_ID:
            data = bytes(ix.data)
            assert data[0] == 12
            return int.from_bytes(data[1:9], "little")
    raise AssertionError("no token transfer in message")


class TestFetchBalance:
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "outcome",
        [Exception("could not find account"), "0", None, ""],
        ids=["missing-account", "zero", "no-amount", "empty-amount"],
    )
    async def test_reads_as_zero(self, gateway, payer, policy, backend_factory, outcome):
        if isinstance(outcome, Exception):
            gateway.get_token_account_balance.side_effect = outcome
        else:
            gateway.get_token_account_balance.return_value = outcome
        manager = make_manager(gateway, payer, policy, backend_factory())

        assert (await manager.fetch_balance()).unwrap() == 0

    @pytest.mark.asyncio
    async def test_reads_amount(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.return_value = "1500000000"
        manager = make_manager(gateway, payer, policy, backend_factory())

        assert (await manager.fetch_balance()).unwrap() == 1_500_000_000
        gateway.get_token_account_balance.assert_awaited_once_with(manager.token_account)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["abc", "1.5", "-3"])
    async def test_malformed_amount(self, gateway, payer, policy, backend_factory, amount):
        gateway.get_token_account_balance.return_value = amount
        manager = make_manager(gateway, payer, policy, backend_factory())

        assert isinstance((await manager.fetch_balance()).get_err(), MalformedResponse)

    @pytest.mark.asyncio
    async def test_network_error_is_not_zero(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.side_effect = ConnectionError("rpc unreachable")
        manager = make_manager(gateway, payer, policy, backend_factory())
        manager.balance = 7

        result = await manager.sync_balance()

        assert isinstance(result.get_err(), NetworkFailure)
        assert manager.balance == 7


class TestHandleCredits:
    @pytest.mark.asyncio
    async def test_required_includes_buffer(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.return_value = str(100 * ONE_TOKEN)
        manager = make_manager(gateway, payer, policy, backend_factory(default_routes(cost=3)))

        requirement = (await manager.handle_credits(4)).unwrap()

        assert requirement.required_amount == Decimal("12.12")
        assert requirement.needs_token_purchase is False
        assert requirement.amount_to_purchase == 0

    @pytest.mark.asyncio
    async def test_covered_balance(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.return_value = str(20 * ONE_TOKEN)
        manager = make_manager(gateway, payer, policy, backend_factory(default_routes(cost=10)))

        requirement = (await manager.handle_credits(1)).unwrap()

        assert requirement.required_amount == Decimal("10.1")
        assert requirement.needs_token_purchase is False
        assert requirement.amount_to_purchase == 0

    @pytest.mark.asyncio
    async def test_shortfall(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.return_value = str(5 * ONE_TOKEN)
        manager = make_manager(gateway, payer, policy, backend_factory(default_routes(cost=10)))

        requirement = (await manager.handle_credits(1)).unwrap()

        assert requirement.needs_token_purchase is True
        assert requirement.amount_to_purchase == Decimal("5.1")

    @pytest.mark.asyncio
    async def test_zero_cost_needs_nothing(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.return_value = "0"
        manager = make_manager(gateway, payer, policy, backend_factory(default_routes(cost=0)))

        requirement = (await manager.handle_credits(3)).unwrap()

        assert requirement.required_amount == 0
        assert requirement.needs_token_purchase is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("count", [0, -1, 1.5, True, "2"])
    async def test_rejects_bad_counts(self, gateway, payer, policy, backend_factory, count):
        backend = backend_factory()
        manager = make_manager(gateway, payer, policy, backend)

        result = await manager.handle_credits(count)

        assert isinstance(result.get_err(), ValidationFailure)
        assert backend.requests == []
        gateway.get_token_account_balance.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_balance_failure_skips_cost_lookup(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.side_effect = ConnectionError("rpc unreachable")
        backend = backend_factory()
        manager = make_manager(gateway, payer, policy, backend)

        result = await manager.handle_credits(1)

        assert isinstance(result.get_err(), NetworkFailure)
        assert not backend.called("payment-check")


class TestHandlePayment:
    @pytest.mark.asyncio
    async def test_sufficient_balance_skips_swap(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.return_value = str(20 * ONE_TOKEN)
        gateway.send_raw_transaction.return_value = "transferSignature"
        backend = backend_factory(default_routes(cost=10))
        manager = make_manager(gateway, payer, policy, backend)

        result = await manager.handle_payment(1)

        assert result.unwrap() == "transferSignature"
        assert not backend.called("v6/quote")
        assert not backend.called("price/v2")
        [message] = sent_messages(gateway)
        assert transferred_amount(message) == 10_100_000_000
        assert manager.state == SettlementState.DONE

    @pytest.mark.asyncio
    async def test_swaps_then_transfers_full_amount(self, gateway, payer, policy, backend_factory):
        events = []

        async def balance(_account):
            events.append("balance")
            return "0" if events.count("balance") == 1 else str(20 * ONE_TOKEN)

        signatures = iter(["swapSignature", "transferSignature"])

        async def send(_raw, skip_preflight=True):
            events.append("send")
            return next(signatures)

        gateway.get_token_account_balance.side_effect = balance
        gateway.send_raw_transaction.side_effect = send
        backend = backend_factory(default_routes(cost=10, price=0.5), events)
        manager = make_manager(gateway, payer, policy, backend)

        result = await manager.handle_payment(1)

        assert result.unwrap() == "transferSignature"
        assert events == [
            "balance",
            "payment-check",
            "price/v2",
            "v6/quote",
            "swap-instructions",
            "send",
            "balance",
            "send",
        ]
        # shortfall 10.1 tokens * 0.5 native, plus the 10% swap buffer
        quote = next(r for r in backend.requests if "v6/quote" in str(r.url))
        assert quote.url.params["amount"] == "5555000000"
        # the transfer covers the full requirement, not only the purchased part
        assert transferred_amount(sent_messages(gateway)[1]) == 10_100_000_000
        assert manager.balance == 20 * ONE_TOKEN

    @pytest.mark.asyncio
    async def test_balance_still_short_after_swap(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.side_effect = ["0", str(5 * ONE_TOKEN)]
        gateway.send_raw_transaction.return_value = "swapSignature"
        manager = make_manager(gateway, payer, policy, backend_factory(default_routes(cost=10)))

        result = await manager.handle_payment(1)

        error = result.get_err()
        assert isinstance(error, SwapError)
        assert error.error_type == "Insufficient balance after swap"
        assert error.details["swap_signature"] == "swapSignature"
        assert gateway.send_raw_transaction.await_count == 1
        assert manager.state == SettlementState.FAILED

    @pytest.mark.asyncio
    async def test_missing_account_triggers_purchase(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.side_effect = [
            Exception("Invalid param: could not find account"),
            str(20 * ONE_TOKEN),
        ]
        backend = backend_factory(default_routes(cost=10))
        manager = make_manager(gateway, payer, policy, backend)

        result = await manager.handle_payment(1)

        assert result.is_ok()
        assert backend.called("v6/quote")
        assert gateway.send_raw_transaction.await_count == 2

    @pytest.mark.asyncio
    async def test_price_failure_aborts_before_swap(self, gateway, payer, policy, backend_factory):
        gateway.get_token_account_balance.return_value = "0"
        routes = default_routes(cost=10)
        routes["price/v2"] = {"data": {}}
        backend = backend_factory(routes)
        manager = make_manager(gateway, payer, policy, backend)

        result = await manager.handle_payment(1)

        assert isinstance(result.get_err(), PriceLookupError)
        assert not backend.called("v6/quote")
        gateway.send_raw_transaction.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_creates_missing_collection_account(self, gateway, payer, policy, backend_factory):
        gateway.get_multiple_accounts_info.return_value = [None]
        manager = make_manager(gateway, payer, policy, backend_factory(default_routes(cost=1)))

        assert (await manager.handle_payment(1)).is_ok()

        [message] = sent_messages(gateway)
        programs = [message.account_keys[ix.program_id_index] for ix in message.instructions]
        assert ASSOCIATED_TOKEN_PROGRAM_ID in programs
        assert programs.index(ASSOCIATED_TOKEN_PROGRAM_ID) < programs.index(TOKEN_PROGRAM_ID)

    @pytest.mark.asyncio
    async def test_cancelled_before_transfer(self, gateway, payer, policy, backend_factory):
        cancel = asyncio.Event()
        cancel.set()
        manager = make_manager(gateway, payer, policy, backend_factory())

        result = await manager.handle_payment(1, cancel_event=cancel)

        assert isinstance(result.get_err(), SettlementCancelled)
        gateway.send_raw_transaction.assert_not_awaited()
        assert manager.state == SettlementState.FAILED

    @pytest.mark.asyncio
    async def test_concurrent_payments_are_serialized(self, gateway, payer, policy, backend_factory):
        in_flight = []
        overlaps = []

        async def balance(_account):
            in_flight.append(1)
            if len(in_flight) > 1:
                overlaps.append(True)
            await asyncio.sleep(0)
            in_flight.pop()
            return str(20 * ONE_TOKEN)

        gateway.get_token_account_balance.side_effect = balance
        manager = make_manager(gateway, payer, policy, backend_factory())

        first, second = await asyncio.gather(manager.handle_payment(1), manager.handle_payment(1))

        assert first.is_ok() and second.is_ok()
        assert overlaps == []
        assert gateway.send_raw_transaction.await_count == 2
