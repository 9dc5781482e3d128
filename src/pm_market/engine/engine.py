"""MarketEngine — the single serialization point for one market instance.

Every mutating entry point runs under AtomicGuard: re-entry is rejected and any
failure restores state, events and collaborators to the pre-call checkpoint.
Co-signed operations check the deadline, verify signatures over the domain-bound
typed message and consume the initiator's nonce before doing anything else.
"""

import logging
from collections.abc import Callable
from typing import Any

from src.pm_common.datetime_utils import unix_now
from src.pm_common.enums import EventType, MarketPhase, MessageType, Side, UserTier
from src.pm_common.errors import (
    ArrayLengthMismatchError,
    InvalidAmountError,
    InvalidSignatureError,
    MarketAlreadyInitializedError,
    MarketNotInitializedError,
    Phase2NotActiveError,
    SignatureExpiredError,
    UnauthorizedCallerError,
)
from src.pm_common.units import to_internal
from src.pm_gateway.auth.typed_data import build_typed_message
from src.pm_market.domain.collaborators import Collaborators, SignatureVerifier
from src.pm_market.domain.events import MarketEvent
from src.pm_market.domain.models import MarketConfig, MarketState, Position, PositionKey
from src.pm_market.engine import messages
from src.pm_market.engine.bonding_curve import BondingCurveLedger, BuyResult
from src.pm_market.engine.context import EngineContext
from src.pm_market.engine.guard import (
    AtomicGuard,
    EngineCheckpoint,
    restore_checkpoint,
    take_checkpoint,
)
from src.pm_market.engine.positions import CloseResult, LiquidationResult, PositionLedger
from src.pm_market.engine.settlement import ClaimResult, SettlementGuardian
from src.pm_market.engine.vamm import VirtualAmm
from src.pm_math.curve import CurveQuote
from src.pm_math.risk import LeveragePreview, preview_leverage

logger = logging.getLogger(__name__)


class MarketEngine:
    def __init__(
        self,
        market_id: str,
        collaborators: Collaborators,
        verifier: SignatureVerifier,
        clock: Callable[[], int] = unix_now,
    ) -> None:
        self._ctx = EngineContext(
            state=MarketState(market_id=market_id),
            collaborators=collaborators,
            clock=clock,
        )
        self._verifier = verifier
        self._guard = AtomicGuard(self._ctx)
        self._curve = BondingCurveLedger(self._ctx)
        self._amm = VirtualAmm(self._ctx)
        self._positions = PositionLedger(self._ctx, self._amm)
        self._settlement = SettlementGuardian(self._ctx, self._curve, self._positions)

    @property
    def market_id(self) -> str:
        return self._ctx.market_id

    @property
    def state(self) -> MarketState:
        return self._ctx.state

    @property
    def events(self) -> list[MarketEvent]:
        return list(self._ctx.events)

    @property
    def collaborators(self) -> Collaborators:
        return self._ctx.collaborators

    # ------------------------------------------------------------------
    # Checkpoints (used by the application service around persistence)
    # ------------------------------------------------------------------

    def checkpoint(self) -> EngineCheckpoint:
        return take_checkpoint(self._ctx)

    def restore(self, checkpoint: EngineCheckpoint) -> None:
        restore_checkpoint(self._ctx, checkpoint)

    def events_since(self, checkpoint: EngineCheckpoint) -> list[MarketEvent]:
        return list(self._ctx.events[checkpoint.event_count:])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(self, config: MarketConfig, authority: str, threshold_external: int) -> None:
        with self._guard.atomic():
            s = self._ctx.state
            if s.initialized:
                raise MarketAlreadyInitializedError(self.market_id)
            if threshold_external <= 0:
                raise InvalidAmountError(f"threshold must be positive, got {threshold_external}")
            s.initialized = True
            s.config = config
            s.authority = authority
            s.migration_threshold = to_internal(threshold_external)
            self._ctx.emit(
                EventType.MARKET_INITIALIZED,
                config_version=config.version,
                authority=authority,
                migration_threshold=s.migration_threshold,
            )
            logger.info("Market %s initialized (threshold=%d, authority=%s)",
                        self.market_id, threshold_external, authority)

    def rotate_authority(self, caller: str, new_authority: str) -> None:
        with self._guard.atomic():
            self._require_initialized()
            self._require_authority(caller)
            previous = self._ctx.state.authority
            self._ctx.state.authority = new_authority
            self._ctx.emit(EventType.AUTHORITY_ROTATED, previous=previous, current=new_authority)
            logger.info("Market %s authority rotated %s -> %s",
                        self.market_id, previous, new_authority)

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def buy_shares(
        self,
        buyer: str,
        side: Side,
        share_amount: int,
        deadline: int,
        user_sig: str,
        authority_sig: str,
    ) -> BuyResult:
        with self._guard.atomic():
            self._require_initialized()
            self._authorize(
                MessageType.BUY_SHARES,
                buyer,
                messages.buy_fields(buyer, side, share_amount),
                deadline,
                authority_sig,
                user_sig,
            )
            return self._curve.buy(buyer, side, share_amount)

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def open_position(
        self,
        trader: str,
        side: Side,
        collateral: int,
        leverage: int,
        min_shares: int,
        deadline: int,
        user_sig: str,
        authority_sig: str,
    ) -> Position:
        with self._guard.atomic():
            self._require_initialized()
            self._authorize(
                MessageType.OPEN_POSITION,
                trader,
                messages.open_fields(trader, side, collateral, leverage, min_shares),
                deadline,
                authority_sig,
                user_sig,
            )
            return self._positions.open(trader, side, collateral, leverage, min_shares)

    def close_position(
        self,
        trader: str,
        side: Side,
        min_proceeds: int,
        deadline: int,
        user_sig: str,
        authority_sig: str,
    ) -> CloseResult:
        with self._guard.atomic():
            self._require_initialized()
            self._authorize(
                MessageType.CLOSE_POSITION,
                trader,
                messages.close_fields(trader, side, min_proceeds),
                deadline,
                authority_sig,
                user_sig,
            )
            return self._positions.close(trader, side, min_proceeds)

    def liquidate(self, keeper: str, trader: str, side: Side) -> LiquidationResult:
        """Permissionless: anyone may liquidate an unhealthy position."""
        with self._guard.atomic():
            self._require_initialized()
            return self._positions.liquidate(keeper, trader, side)

    def bulk_liquidate(
        self,
        keeper: str,
        traders: list[str],
        sides: list[Side],
        deadline: int,
        authority_sig: str,
    ) -> int:
        """Liquidate every unhealthy (trader, side) pair; inactive or healthy ones are skipped."""
        with self._guard.atomic():
            self._require_initialized()
            if len(traders) != len(sides):
                raise ArrayLengthMismatchError(len(traders), len(sides))
            self._authorize(
                MessageType.BULK_LIQUIDATE,
                keeper,
                messages.bulk_liquidate_fields(keeper, traders, sides),
                deadline,
                authority_sig,
            )
            if self._ctx.state.phase is not MarketPhase.PHASE2_ACTIVE:
                raise Phase2NotActiveError()
            count = 0
            for trader, side in zip(traders, sides):
                if self._positions.is_liquidatable(trader, side):
                    self._positions.liquidate(keeper, trader, side)
                    count += 1
            return count

    # ------------------------------------------------------------------
    # Phase 3
    # ------------------------------------------------------------------

    def resolve_market(self, caller: str, winning_outcome: Side) -> int:
        with self._guard.atomic():
            self._require_initialized()
            self._require_authority(caller)
            return self._settlement.resolve(winning_outcome)

    def claim_winnings(
        self,
        user: str,
        phase1: bool,
        tier: UserTier,
        deadline: int,
        authority_sig: str,
    ) -> ClaimResult:
        with self._guard.atomic():
            self._require_initialized()
            self._authorize(
                MessageType.CLAIM_TIER,
                user,
                messages.claim_fields(user, phase1, tier),
                deadline,
                authority_sig,
            )
            return self._settlement.claim(user, phase1, tier)

    def sweep_unclaimed(self, caller: str, user: str, phase1: bool) -> ClaimResult:
        with self._guard.atomic():
            self._require_initialized()
            self._require_authority(caller)
            return self._settlement.sweep(user, phase1)

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def price(self, side: Side) -> int:
        return self._amm.price(side)

    def position(self, trader: str, side: Side) -> Position | None:
        """Latest record for (trader, side), active or not."""
        return self._ctx.state.positions.get(PositionKey(trader, side))

    def health_factor(self, trader: str, side: Side) -> int:
        return self._positions.health_factor(trader, side)

    def quote_buy(self, share_amount: int) -> CurveQuote:
        return self._curve.quote(share_amount)

    def preview_open(self, side: Side, collateral: int, leverage: int) -> LeveragePreview:
        s = self._ctx.state
        if s.phase is not MarketPhase.PHASE2_ACTIVE:
            raise Phase2NotActiveError()
        return preview_leverage(collateral, leverage, s.reserve_stable, s.reserve_of(side))

    def nonce_of(self, address: str) -> int:
        return self._ctx.state.nonces.get(address, 0)

    def typed_message(
        self, primary_type: MessageType, initiator: str, fields: dict[str, Any], deadline: int
    ) -> dict[str, Any]:
        """The message signers must sign for the initiator's next call."""
        return build_typed_message(
            self.market_id, primary_type, fields, self.nonce_of(initiator), deadline
        )

    def snapshot(self) -> dict[str, Any]:
        s = self._ctx.state
        collab = self._ctx.collaborators
        data: dict[str, Any] = {
            "market_id": s.market_id,
            "initialized": s.initialized,
            "config_version": s.config.version,
            "authority": s.authority,
            "phase": s.phase.value,
            "current_supply": s.current_supply,
            "total_capital_raised": s.total_capital_raised,
            "migration_threshold": s.migration_threshold,
            "reserve_stable": s.reserve_stable,
            "reserve_yes": s.reserve_yes,
            "reserve_no": s.reserve_no,
            "invariant_k": s.invariant_k,
            "total_borrowed": s.total_borrowed,
            "open_interest_yes": s.open_interest_yes,
            "open_interest_no": s.open_interest_no,
            "yes_token_supply": collab.yes_token.total_supply(),
            "no_token_supply": collab.no_token.total_supply(),
            "price_yes": None,
            "price_no": None,
            "resolved": s.resolved,
            "winning_outcome": s.winning_outcome.value if s.winning_outcome else None,
            "settlement_price": s.settlement_price,
            "resolved_at": s.resolved_at,
            "outstanding_liabilities": s.outstanding_liabilities,
        }
        if s.migrated:
            data["price_yes"] = self._amm.price(Side.YES)
            data["price_no"] = self._amm.price(Side.NO)
        return data

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self._ctx.state.initialized:
            raise MarketNotInitializedError()

    def _require_authority(self, caller: str) -> None:
        if caller != self._ctx.state.authority:
            raise UnauthorizedCallerError(caller)

    def _authorize(
        self,
        primary_type: MessageType,
        initiator: str,
        fields: dict[str, Any],
        deadline: int,
        authority_sig: str,
        user_sig: str | None = None,
    ) -> None:
        now = self._ctx.now()
        if now > deadline:
            raise SignatureExpiredError(deadline, now)
        s = self._ctx.state
        nonce = s.nonces.get(initiator, 0)
        message = build_typed_message(self.market_id, primary_type, fields, nonce, deadline)
        if user_sig is not None and not self._verifier.verify(message, user_sig, initiator):
            raise InvalidSignatureError("user")
        if not self._verifier.verify(message, authority_sig, s.authority):
            raise InvalidSignatureError("authority")
        s.nonces[initiator] = nonce + 1
