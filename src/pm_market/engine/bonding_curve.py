"""Phase-1 bonding-curve ledger and the one-shot migration into the vAMM."""

import logging
from dataclasses import dataclass

from src.pm_common.enums import EventType, MarketPhase, Side
from src.pm_common.errors import (
    InvalidAmountError,
    MarketAlreadyMigratedError,
    MarketAlreadyResolvedError,
)
from src.pm_common.units import units_to_display
from src.pm_market.engine.context import EngineContext
from src.pm_math.amm import bootstrap_reserves
from src.pm_math.curve import CurveQuote, quote_buy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuyResult:
    buyer: str
    side: Side
    shares: int
    raw_cost: int
    fee: int
    capped: bool
    migrated: bool


class BondingCurveLedger:
    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx

    def quote(self, share_amount: int) -> CurveQuote:
        if share_amount <= 0:
            raise InvalidAmountError(f"share amount must be positive, got {share_amount}")
        s = self._ctx.state
        cfg = s.config
        return quote_buy(
            supply=s.current_supply,
            capital_raised=s.total_capital_raised,
            threshold=s.migration_threshold,
            requested=share_amount,
            k=cfg.curve_k,
            scale=cfg.curve_scale,
            fee_bps=cfg.protocol_fee_bps,
            dust_tolerance=cfg.curve_dust_tolerance,
        )

    def buy(self, buyer: str, side: Side, share_amount: int) -> BuyResult:
        s = self._ctx.state
        if s.migrated:
            raise MarketAlreadyMigratedError()
        if s.resolved:
            raise MarketAlreadyResolvedError()
        quote = self.quote(share_amount)
        if quote.raw_cost == 0:
            # a zero-cost fill would mint shares for free
            raise InvalidAmountError(f"{share_amount} shares round to zero cost")

        s.current_supply += quote.shares
        s.total_capital_raised += quote.raw_cost

        collab = self._ctx.collaborators
        collab.vault.transfer(buyer, self._ctx.market_id, quote.raw_cost + quote.fee)
        collab.insurance.deposit_fee(self._ctx.market_id, quote.fee)
        if quote.shares:
            collab.token(side).mint(buyer, quote.shares)

        self._ctx.emit(
            EventType.BUY_EXECUTED,
            buyer=buyer,
            side=side.value,
            shares=quote.shares,
            raw_cost=quote.raw_cost,
            fee=quote.fee,
            capped=quote.capped,
            current_supply=s.current_supply,
            total_capital_raised=s.total_capital_raised,
        )

        migrated = False
        if s.total_capital_raised >= s.migration_threshold:
            self.migrate()
            migrated = True
        return BuyResult(
            buyer, side, quote.shares, quote.raw_cost, quote.fee, quote.capped, migrated
        )

    def migrate(self) -> None:
        s = self._ctx.state
        if s.migrated:
            raise MarketAlreadyMigratedError()
        capital = s.total_capital_raised
        stable, yes, no, invariant_k = bootstrap_reserves(capital)
        s.reserve_stable = stable
        s.reserve_yes = yes
        s.reserve_no = no
        s.invariant_k = invariant_k
        s.migrated = True
        s.phase = MarketPhase.PHASE2_ACTIVE

        self._ctx.collaborators.vault.transfer_to_market_once(self._ctx.market_id, capital)

        self._ctx.emit(
            EventType.MIGRATED,
            capital=capital,
            reserve_stable=stable,
            reserve_yes=yes,
            reserve_no=no,
            invariant_k=invariant_k,
        )
        logger.info(
            "Market %s migrated to vAMM with capital %s",
            self._ctx.market_id,
            units_to_display(capital),
        )

    def release_capital(self) -> int:
        """Move un-migrated phase-1 capital into the market's external holdings."""
        capital = self._ctx.state.total_capital_raised
        if capital == 0:
            return 0
        self._ctx.collaborators.vault.transfer_to_market_once(self._ctx.market_id, capital)
        return capital
