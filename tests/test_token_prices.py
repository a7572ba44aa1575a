from decimal import Decimal

import httpx
import pytest

from musicnft.config import MAINNET, NATIVE_MINT_ADDRESS
from musicnft.errors import PriceLookupError
from musicnft.token_prices import PriceOracle

from .conftest import TOKEN_MINT, FakeBackend, default_routes

API_URL = "http://backend.test"


def make_oracle(backend: FakeBackend) -> PriceOracle:
    return PriceOracle(API_URL, network=MAINNET, http_client=backend.client())


class TestGetCost:
    @pytest.mark.asyncio
    async def test_reads_cost(self, backend_factory):
        backend = backend_factory(default_routes(cost=12.5))

        result = await make_oracle(backend).get_cost()

        assert result.unwrap() == Decimal("12.5")
        assert str(backend.requests[0].url) == f"{API_URL}/payment-check"

    @pytest.mark.asyncio
    async def test_falls_back_to_cost_per_file(self, backend_factory):
        backend = backend_factory({"payment-check": {"costPerFile": "3"}})

        result = await make_oracle(backend).get_cost()

        assert result.unwrap() == Decimal("3")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [{}, {"cost": None}, {"cost": "abc"}, {"cost": True}, ["x"]])
    async def test_rejects_missing_or_invalid_cost(self, backend_factory, body):
        backend = backend_factory({"payment-check": body})

        result = await make_oracle(backend).get_cost()

        error = result.get_err()
        assert isinstance(error, PriceLookupError)
        assert error.details["endpoint"] == f"{API_URL}/payment-check"

    @pytest.mark.asyncio
    async def test_rejects_negative_cost(self, backend_factory):
        backend = backend_factory(default_routes(cost=-1))

        result = await make_oracle(backend).get_cost()

        assert isinstance(result.get_err(), PriceLookupError)

    @pytest.mark.asyncio
    async def test_server_error_is_classified(self, backend_factory):
        backend = backend_factory(
            {"payment-check": httpx.Response(503, json={"detail": "maintenance"})}
        )

        result = await make_oracle(backend).get_cost()

        error = result.get_err()
        assert isinstance(error, PriceLookupError)
        assert error.error_type == "Server error"
        assert "maintenance" in str(error)

    @pytest.mark.asyncio
    async def test_non_json_body(self, backend_factory):
        backend = backend_factory({"payment-check": httpx.Response(200, text="<html>")})

        result = await make_oracle(backend).get_cost()

        assert result.get_err().error_type == "Decode error"


class TestTokenPrice:
    @pytest.mark.asyncio
    async def test_price_in_native_uses_native_mint(self, backend_factory):
        backend = backend_factory(default_routes(price="0.0021"))

        result = await make_oracle(backend).get_token_price_in_native()

        assert result.unwrap() == Decimal("0.0021")
        params = backend.requests[0].url.params
        assert params["ids"] == TOKEN_MINT
        assert params["vsToken"] == NATIVE_MINT_ADDRESS

    @pytest.mark.asyncio
    async def test_price_in_usd_has_no_vs_token(self, backend_factory):
        backend = backend_factory(default_routes(price=0.35))

        result = await make_oracle(backend).get_token_price_in_usd()

        assert result.unwrap() == Decimal("0.35")
        assert "vsToken" not in backend.requests[0].url.params

    @pytest.mark.asyncio
    async def test_missing_entry(self, backend_factory):
        backend = backend_factory({"price/v2": {"data": {}}})

        result = await make_oracle(backend).get_token_price_in_native()

        assert isinstance(result.get_err(), PriceLookupError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("price", [0, -2, None, "nan"])
    async def test_rejects_unusable_price(self, backend_factory, price):
        backend = backend_factory(default_routes(price=price))

        result = await make_oracle(backend).get_token_price_in_native()

        assert isinstance(result.get_err(), PriceLookupError)

    @pytest.mark.asyncio
    async def test_prices_are_never_cached(self, backend_factory):
        backend = backend_factory()
        oracle = make_oracle(backend)

        await oracle.get_token_price_in_native()
        await oracle.get_token_price_in_native()

        assert len(backend.requests) == 2
