"""Shared test fixtures."""

from collections.abc import AsyncGenerator, Callable
from typing import Any
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from src.main import app
from src.pm_common.database import get_db_session
from src.pm_custody.infrastructure.insurance import InMemoryInsuranceFund
from src.pm_custody.infrastructure.stack import CustodyStack
from src.pm_custody.infrastructure.vault import InMemoryVault
from src.pm_gateway.auth.verifier import JoseSignatureVerifier
from src.pm_market.api.router import get_market_service
from src.pm_market.application.service import MarketApplicationService
from src.pm_market.domain.models import MarketConfig
from src.pm_market.engine.engine import MarketEngine
from tests.market_harness import (
    AUTHORITY,
    SIGNERS,
    FakeClock,
    MarketFactory,
    MarketHarness,
    ext,
)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def verifier() -> JoseSignatureVerifier:
    return JoseSignatureVerifier({name: f"secret-{name}" for name in SIGNERS})


@pytest.fixture
def make_market(clock: FakeClock, verifier: JoseSignatureVerifier) -> MarketFactory:
    """Build an initialized market on a fresh custody stack.

    Default: threshold 50,000 external units, curve k = 1e14 (price 1e-4 per share
    of supply), 0.5% protocol fee, 5x max leverage, 1,000,000 lendable and a
    100,000 insurance fund.
    """

    def _make(
        threshold: int = ext(50_000),
        lending_liquidity: int = ext(1_000_000),
        insurance_seed: int = ext(100_000),
        insurance_factory: Callable[[InMemoryVault], InMemoryInsuranceFund] | None = None,
        market_id: str = "mkt-1",
        **config_overrides: Any,
    ) -> MarketHarness:
        vault = InMemoryVault()
        custody = CustodyStack(
            vault=vault,
            insurance=insurance_factory(vault) if insurance_factory else None,
        )
        assert custody.lending is not None and custody.insurance is not None
        if lending_liquidity:
            vault.mint_external("lender", lending_liquidity)
            custody.lending.supply("lender", lending_liquidity)
        if insurance_seed:
            vault.mint_external(custody.insurance.address, insurance_seed)

        config_values: dict[str, Any] = {
            "curve_k": 10**14,
            "curve_scale": 10**18,
            "protocol_fee_bps": 50,
            "curve_dust_tolerance": 10**6,
            "max_leverage": 5,
            "min_collateral": ext(10),
            "liquidation_penalty_bps": 500,
            "keeper_reward_bps": 200,
            "claim_cooloff_seconds": 90 * 24 * 3600,
            "base_yield_bps": 500,
        }
        config_values.update(config_overrides)
        engine = MarketEngine(
            market_id, custody.collaborators_for_market(), verifier, clock=clock
        )
        engine.initialize(MarketConfig(**config_values), AUTHORITY, threshold)
        return MarketHarness(engine, verifier, custody, clock)

    return _make


@pytest.fixture
def market(make_market: MarketFactory) -> MarketHarness:
    return make_market()


@pytest.fixture
def migrated_market(market: MarketHarness) -> MarketHarness:
    market.migrate()
    return market


@pytest.fixture
def api_service(clock: FakeClock, verifier: JoseSignatureVerifier) -> MarketApplicationService:
    service = MarketApplicationService(
        verifier=verifier, clock=clock, event_writer=AsyncMock()
    )
    assert service.custody.lending is not None
    service.custody.vault.mint_external("lender", ext(1_000_000))
    service.custody.lending.supply("lender", ext(1_000_000))
    return service


@pytest.fixture
async def client(api_service: MarketApplicationService) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for testing FastAPI endpoints (DB session mocked)."""

    async def _db() -> AsyncGenerator[AsyncMock, None]:
        yield AsyncMock()

    app.dependency_overrides[get_db_session] = _db
    app.dependency_overrides[get_market_service] = lambda: api_service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
