"""Leveraged position ledger: open, close, liquidate, health monitoring."""

import logging
from dataclasses import dataclass

from src.pm_common.enums import EventType, MarketPhase, Side
from src.pm_common.errors import (
    CollateralTooLowError,
    LeverageOutOfRangeError,
    NoActivePositionError,
    Phase2NotActiveError,
    PositionAlreadyActiveError,
    PositionHealthyError,
    SlippageExceededError,
)
from src.pm_common.units import to_external, to_internal
from src.pm_market.domain.models import Position
from src.pm_market.engine.context import EngineContext
from src.pm_market.engine.vamm import VirtualAmm
from src.pm_math.risk import (
    DebtSettlement,
    accrued_interest,
    entry_price,
    health_factor,
    is_liquidatable,
    settle_debt,
    split_liquidation_surplus,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CloseResult:
    trader: str
    side: Side
    shares: int
    proceeds: int  # external
    interest: int
    shortfall: int
    payout: int
    pnl: int  # payout - collateral, signed


@dataclass(frozen=True)
class LiquidationResult:
    keeper: str
    trader: str
    side: Side
    shares: int
    proceeds: int
    interest: int
    shortfall: int
    insurance_fee: int
    keeper_reward: int
    trader_refund: int


class PositionLedger:
    def __init__(self, ctx: EngineContext, amm: VirtualAmm) -> None:
        self._ctx = ctx
        self._amm = amm

    # --- views ---

    def require_active(self, owner: str, side: Side) -> Position:
        position = self._ctx.state.active_position(owner, side)
        if position is None:
            raise NoActivePositionError(owner, side.value)
        return position

    def interest_of(self, position: Position, until: int | None = None) -> int:
        end = self._ctx.now() if until is None else until
        return accrued_interest(
            position.loan_amount,
            self._ctx.collaborators.lending.borrow_rate_bps,
            end - position.opened_at,
        )

    def health_factor(self, owner: str, side: Side) -> int:
        position = self.require_active(owner, side)
        return health_factor(
            position.shares,
            self._amm.price(side),
            position.loan_amount,
            self.interest_of(position),
        )

    def is_liquidatable(self, owner: str, side: Side) -> bool:
        if self._ctx.state.active_position(owner, side) is None:
            return False
        return is_liquidatable(self.health_factor(owner, side))

    # --- mutations ---

    def open(
        self, trader: str, side: Side, collateral: int, leverage: int, min_shares: int
    ) -> Position:
        s = self._ctx.state
        cfg = s.config
        if s.phase is not MarketPhase.PHASE2_ACTIVE:
            raise Phase2NotActiveError()
        if s.active_position(trader, side) is not None:
            raise PositionAlreadyActiveError(trader, side.value)
        if collateral < cfg.min_collateral:
            raise CollateralTooLowError(collateral, cfg.min_collateral)
        if not 1 <= leverage <= cfg.max_leverage:
            raise LeverageOutOfRangeError(leverage, cfg.max_leverage)

        market = self._ctx.market_id
        collab = self._ctx.collaborators
        notional = collateral * leverage
        loan = collateral * (leverage - 1)

        collab.vault.transfer(trader, market, to_internal(collateral))
        collab.vault.redeem(market, to_internal(collateral))
        if loan:
            collab.lending.fund_loan(market, loan)
            s.total_borrowed += loan
            self._ctx.emit(
                EventType.LEVERAGE_ACTIVATED,
                trader=trader,
                side=side.value,
                collateral=collateral,
                loan=loan,
                leverage=leverage,
            )

        shares = self._amm.buy(side, to_internal(notional))
        if shares < min_shares:
            raise SlippageExceededError(shares, min_shares)

        position = Position(
            owner=trader,
            side=side,
            collateral=collateral,
            loan_amount=loan,
            shares=shares,
            entry_price=entry_price(to_internal(notional), shares),
            opened_at=self._ctx.now(),
        )
        # replaces any deactivated record for the same key
        s.positions[position.key] = position
        s.add_open_interest(side, shares)

        self._ctx.emit(
            EventType.POSITION_OPENED,
            trader=trader,
            side=side.value,
            collateral=collateral,
            loan=loan,
            leverage=leverage,
            shares=shares,
            entry_price=position.entry_price,
        )
        return position

    def close(self, trader: str, side: Side, min_proceeds: int) -> CloseResult:
        self._require_trading()
        position = self.require_active(trader, side)
        proceeds, settlement = self._unwind(position)
        if proceeds < min_proceeds:
            raise SlippageExceededError(proceeds, min_proceeds)

        payout = settlement.surplus
        self._ctx.pay_out(trader, payout)
        result = CloseResult(
            trader=trader,
            side=side,
            shares=position.shares,
            proceeds=proceeds,
            interest=settlement.interest,
            shortfall=settlement.shortfall,
            payout=payout,
            pnl=payout - position.collateral,
        )
        self._ctx.emit(
            EventType.POSITION_CLOSED,
            trader=trader,
            side=side.value,
            shares=result.shares,
            proceeds=proceeds,
            interest=result.interest,
            shortfall=result.shortfall,
            payout=payout,
            pnl=result.pnl,
        )
        return result

    def liquidate(self, keeper: str, trader: str, side: Side) -> LiquidationResult:
        self._require_trading()
        position = self.require_active(trader, side)
        factor = self.health_factor(trader, side)
        if not is_liquidatable(factor):
            raise PositionHealthyError(factor)

        proceeds, settlement = self._unwind(position)
        cfg = self._ctx.state.config
        fee, reward, refund = split_liquidation_surplus(
            settlement.surplus, cfg.liquidation_penalty_bps, cfg.keeper_reward_bps
        )
        self._ctx.pay_to_insurance(fee)
        self._ctx.pay_out(keeper, reward)
        self._ctx.pay_out(trader, refund)

        result = LiquidationResult(
            keeper=keeper,
            trader=trader,
            side=side,
            shares=position.shares,
            proceeds=proceeds,
            interest=settlement.interest,
            shortfall=settlement.shortfall,
            insurance_fee=fee,
            keeper_reward=reward,
            trader_refund=refund,
        )
        self._ctx.emit(
            EventType.POSITION_LIQUIDATED,
            keeper=keeper,
            trader=trader,
            side=side.value,
            shares=result.shares,
            health_factor=factor,
            proceeds=proceeds,
            interest=result.interest,
            shortfall=result.shortfall,
            insurance_fee=fee,
            keeper_reward=reward,
            trader_refund=refund,
        )
        logger.info(
            "Liquidated %s %s on %s (hf=%d, shortfall=%d)",
            trader, side.value, self._ctx.market_id, factor, settlement.shortfall,
        )
        return result

    def retire(self, position: Position) -> None:
        """Deactivate a position and drop it from open interest and the loan mirror."""
        s = self._ctx.state
        position.active = False
        s.add_open_interest(position.side, -position.shares)
        s.total_borrowed -= position.loan_amount

    def settle_with_lender(self, settlement: DebtSettlement) -> None:
        """Shortfall is covered by insurance first, then the lender is repaid in full."""
        collab = self._ctx.collaborators
        market = self._ctx.market_id
        if settlement.shortfall:
            collab.insurance.cover_bad_debt(market, settlement.shortfall)
        if settlement.principal or settlement.interest:
            collab.lending.repay_loan(market, settlement.principal, settlement.interest)

    def _unwind(self, position: Position) -> tuple[int, DebtSettlement]:
        proceeds = to_external(self._amm.sell(position.side, position.shares))
        settlement = settle_debt(proceeds, position.loan_amount, self.interest_of(position))
        self.retire(position)
        self.settle_with_lender(settlement)
        return proceeds, settlement

    def _require_trading(self) -> None:
        if self._ctx.state.phase is not MarketPhase.PHASE2_ACTIVE:
            raise Phase2NotActiveError()
