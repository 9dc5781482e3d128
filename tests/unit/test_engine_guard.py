"""Engine lifecycle, authority rotation and all-or-nothing execution."""

import pytest

from src.pm_common.enums import EventType, MessageType, Side
from src.pm_common.errors import (
    InvalidAmountError,
    InvalidSignatureError,
    MarketAlreadyInitializedError,
    MarketAlreadyResolvedError,
    MarketNotInitializedError,
    ReentrantCallError,
    UnauthorizedCallerError,
)
from src.pm_custody.infrastructure.insurance import InMemoryInsuranceFund
from src.pm_custody.infrastructure.stack import CustodyStack
from src.pm_custody.infrastructure.vault import InMemoryVault
from src.pm_gateway.auth.verifier import JoseSignatureVerifier
from src.pm_market.domain.models import MarketConfig
from src.pm_market.engine import messages
from src.pm_market.engine.engine import MarketEngine
from tests.market_harness import AUTHORITY, FakeClock, MarketFactory, MarketHarness, ext, shares


class ReentrantInsuranceFund(InMemoryInsuranceFund):
    """Calls back into the engine while a fee deposit is in flight."""

    def __init__(self, vault: InMemoryVault) -> None:
        super().__init__(vault)
        self.engine: MarketEngine | None = None

    def deposit_fee(self, market: str, internal_amount: int) -> None:
        if self.engine is not None:
            self.engine.liquidate("mallory", "alice", Side.YES)
        super().deposit_fee(market, internal_amount)


class TestLifecycle:
    def test_initialize_once(self, market: MarketHarness) -> None:
        with pytest.raises(MarketAlreadyInitializedError):
            market.engine.initialize(MarketConfig(), AUTHORITY, ext(1))

    def test_initialize_event(self, market: MarketHarness) -> None:
        event = market.engine.events[0]
        assert event.event_type is EventType.MARKET_INITIALIZED
        assert event.payload["migration_threshold"] == 50_000 * 10**18
        assert event.payload["authority"] == AUTHORITY

    def test_threshold_must_be_positive(
        self, clock: FakeClock, verifier: JoseSignatureVerifier
    ) -> None:
        engine = MarketEngine("m", CustodyStack().collaborators_for_market(), verifier, clock)
        with pytest.raises(InvalidAmountError):
            engine.initialize(MarketConfig(), AUTHORITY, 0)
        assert engine.state.initialized is False
        assert engine.events == []

    def test_uninitialized_market_rejects_calls(
        self, clock: FakeClock, verifier: JoseSignatureVerifier
    ) -> None:
        engine = MarketEngine("m", CustodyStack().collaborators_for_market(), verifier, clock)
        with pytest.raises(MarketNotInitializedError):
            engine.liquidate("keeper", "alice", Side.YES)
        with pytest.raises(MarketNotInitializedError):
            engine.resolve_market(AUTHORITY, Side.YES)

    def test_buy_after_resolution(self, market: MarketHarness) -> None:
        market.engine.resolve_market(AUTHORITY, Side.NO)
        market.fund("alice", ext(1_000))
        with pytest.raises(MarketAlreadyResolvedError):
            market.buy("alice", Side.YES, shares(100))


class TestAuthorityRotation:
    def test_rotate(self, market: MarketHarness) -> None:
        market.engine.rotate_authority(AUTHORITY, "carol")
        assert market.engine.state.authority == "carol"
        assert market.engine.events[-1].event_type is EventType.AUTHORITY_ROTATED

    def test_only_current_authority(self, market: MarketHarness) -> None:
        with pytest.raises(UnauthorizedCallerError):
            market.engine.rotate_authority("alice", "alice")

    def test_old_authority_signatures_stop_working(self, market: MarketHarness) -> None:
        market.engine.rotate_authority(AUTHORITY, "carol")
        market.fund("alice", ext(1_000))
        with pytest.raises(InvalidSignatureError, match="authority"):
            market.buy("alice", Side.YES, shares(100))

        amount = shares(100)
        fields = messages.buy_fields("alice", Side.YES, amount)
        deadline = market.deadline()
        market.engine.buy_shares(
            "alice",
            Side.YES,
            amount,
            deadline,
            market.sign(MessageType.BUY_SHARES, "alice", fields, deadline),
            market.sign(MessageType.BUY_SHARES, "alice", fields, deadline, "carol"),
        )
        assert market.engine.state.current_supply == amount


class TestAtomicity:
    def test_reentrant_call_rejected_and_rolled_back(self, make_market: MarketFactory) -> None:
        market = make_market(insurance_factory=ReentrantInsuranceFund)
        insurance = market.custody.insurance
        assert isinstance(insurance, ReentrantInsuranceFund)
        insurance.engine = market.engine
        market.fund("alice", ext(1_000))
        event_count = len(market.engine.events)

        with pytest.raises(ReentrantCallError):
            market.buy("alice", Side.YES, shares(100))

        engine = market.engine
        assert engine.state.current_supply == 0
        assert len(engine.events) == event_count
        assert engine.nonce_of("alice") == 0
        assert market.custody.vault.balance_of("alice") == 1_000 * 10**18
        assert engine.collaborators.yes_token.total_supply() == 0

    def test_guard_released_after_failure(self, market: MarketHarness) -> None:
        market.fund("alice", ext(1_000))
        with pytest.raises(InvalidAmountError):
            market.buy("alice", Side.YES, 1)
        result = market.buy("alice", Side.YES, shares(100))
        assert result.shares == shares(100)

    def test_checkpoint_restore_round_trip(self, market: MarketHarness) -> None:
        engine = market.engine
        checkpoint = engine.checkpoint()
        market.fund("alice", ext(1_000))
        market.buy("alice", Side.YES, shares(100))
        assert len(engine.events_since(checkpoint)) == 1

        engine.restore(checkpoint)
        assert engine.state.current_supply == 0
        assert engine.events_since(checkpoint) == []
        assert engine.collaborators.yes_token.balance_of("alice") == 0
