from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from solders.hash import Hash
from solders.keypair import Keypair

from musicnft.config import MAINNET, ConfirmationPolicy, NetworkConfig
from musicnft.ledger import LedgerGateway, SignatureStatus

TOKEN_MINT = MAINNET.token_mint
SWAP_PROGRAM_ID = "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4"
COMPUTE_BUDGET_PROGRAM_ID = "ComputeBudget111111111111111111111111111111"


def json_response(payload: Any, status_code: int = 200) -> httpx.Response:
    return httpx.Response(status_code, content=json.dumps(payload).encode())


class FakeBackend:
    """
    Routes requests by URL path fragment and records every request seen.

    ``routes`` maps a path fragment to a payload, an ``httpx.Response`` or a
    callable taking the request.
    """

    def __init__(self, routes: Dict[str, Any], events: Optional[List[str]] = None):
        self.routes = routes
        self.requests: List[httpx.Request] = []
        self.events = events if events is not None else []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for fragment, responder in self.routes.items():
            if fragment in str(request.url):
                self.events.append(fragment)
                if callable(responder):
                    return responder(request)
                if isinstance(responder, httpx.Response):
                    return responder
                return json_response(responder)
        return httpx.Response(404, json={"detail": f"no route for {request.url}"})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))

    def called(self, fragment: str) -> bool:
        return any(fragment in str(r.url) for r in self.requests)


def swap_instructions_payload(**overrides: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "computeBudgetInstructions": [
            {"programId": COMPUTE_BUDGET_PROGRAM_ID, "accounts": [], "data": "AsBcFQA="}
        ],
        "setupInstructions": [],
        "swapInstruction": {
            "programId": SWAP_PROGRAM_ID,
            "accounts": [],
            "data": "",
        },
        "cleanupInstruction": None,
        "addressLookupTableAddresses": [],
    }
    payload.update(overrides)
    return payload


def default_routes(cost: Any = 10, price: Any = 0.5) -> Dict[str, Any]:
    return {
        "payment-check": {"cost": cost},
        "price/v2": {"data": {TOKEN_MINT: {"id": TOKEN_MINT, "price": price}}},
        "v6/quote": {"inAmount": "1", "outAmount": "1"},
        "swap-instructions": swap_instructions_payload(),
    }


@pytest.fixture
def payer() -> Keypair:
    return Keypair()


@pytest.fixture
def network() -> NetworkConfig:
    return MAINNET


@pytest.fixture
def policy() -> ConfirmationPolicy:
    return ConfirmationPolicy(initial_delay=0, poll_interval=0, max_retries=4)


@pytest.fixture
def mock_logger() -> MagicMock:
    return MagicMock()


@pytest.fixture
def gateway() -> AsyncMock:
    gw = AsyncMock(spec=LedgerGateway)
    gw.get_latest_blockhash.return_value = Hash.default()
    gw.get_token_account_balance.return_value = "20000000000"
    gw.send_raw_transaction.return_value = "mockSignature"
    gw.get_signature_status.return_value = SignatureStatus("finalized")
    # Collection token account already exists unless a test says otherwise
    gw.get_multiple_accounts_info.return_value = [b"\x01"]
    return gw


@pytest.fixture
def backend_factory() -> Callable[..., FakeBackend]:
    def _make(routes: Optional[Dict[str, Any]] = None, events: Optional[List[str]] = None) -> FakeBackend:
        return FakeBackend(routes if routes is not None else default_routes(), events)

    return _make
