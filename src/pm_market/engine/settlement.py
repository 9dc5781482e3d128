"""Resolution and settlement.

Resolution fixes one settlement price for every winning claimant:

    settlement_price = min(1.0, backing / liabilities)

where liabilities are the winning outcome-token supply plus the winning side's
open interest. Under-collateralisation becomes a uniform pro-rata haircut rather
than first-come-first-served payouts.
"""

import logging
from dataclasses import dataclass

from src.pm_common.enums import EventType, MarketPhase, Side, UserTier
from src.pm_common.errors import (
    ClaimCooloffActiveError,
    MarketAlreadyResolvedError,
    MarketNotResolvedError,
    NoWinningPhase1BalanceError,
    NoWinningPhase2PositionError,
)
from src.pm_common.units import PAR, mul_price, to_external
from src.pm_market.domain.models import MarketState
from src.pm_market.engine.bonding_curve import BondingCurveLedger
from src.pm_market.engine.context import EngineContext
from src.pm_market.engine.positions import PositionLedger
from src.pm_math.risk import settle_debt, settlement_price, tier_bonus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimResult:
    user: str
    phase1: bool
    shares: int
    payout: int  # external, excluding bonus
    bonus: int = 0
    shortfall: int = 0

    @property
    def total(self) -> int:
        return self.payout + self.bonus


class SettlementGuardian:
    def __init__(
        self, ctx: EngineContext, curve: BondingCurveLedger, positions: PositionLedger
    ) -> None:
        self._ctx = ctx
        self._curve = curve
        self._positions = positions

    def resolve(self, winning: Side) -> int:
        s = self._ctx.state
        if s.resolved:
            raise MarketAlreadyResolvedError()
        if not s.migrated:
            self._curve.release_capital()

        s.resolved = True
        s.phase = MarketPhase.RESOLVED
        s.winning_outcome = winning
        s.resolved_at = self._ctx.now()

        liabilities = (
            self._ctx.collaborators.token(winning).total_supply() + s.open_interest(winning)
        )
        backing = self._ctx.backing()
        s.settlement_price = settlement_price(backing, liabilities)
        s.outstanding_liabilities = liabilities

        self._ctx.emit(
            EventType.MARKET_RESOLVED,
            winning_outcome=winning.value,
            settlement_price=s.settlement_price,
            liabilities=liabilities,
            backing=backing,
        )
        if s.settlement_price < PAR:
            logger.warning(
                "Market %s resolved under-collateralised: backing %d < liabilities %d",
                self._ctx.market_id, backing, liabilities,
            )
        logger.info(
            "Market %s resolved %s at settlement price %d",
            self._ctx.market_id, winning.value, s.settlement_price,
        )
        return s.settlement_price

    def claim(self, user: str, phase1: bool, tier: UserTier) -> ClaimResult:
        self._require_resolved()
        result = self._claim_phase1(user) if phase1 else self._claim_phase2(user, tier)
        self._ctx.pay_out(user, result.total)
        self._ctx.emit(
            EventType.WINNINGS_CLAIMED,
            user=user,
            phase1=phase1,
            tier=tier.value,
            shares=result.shares,
            payout=result.payout,
            bonus=result.bonus,
        )
        return result

    def sweep(self, user: str, phase1: bool) -> ClaimResult:
        """Force-claim a dormant winner after the cool-off; proceeds go to insurance."""
        s = self._require_resolved()
        if s.resolved_at is None:
            raise MarketNotResolvedError()
        available_at = s.resolved_at + s.config.claim_cooloff_seconds
        if self._ctx.now() < available_at:
            raise ClaimCooloffActiveError(available_at)

        result = self._claim_phase1(user) if phase1 else self._claim_phase2(user, None)
        self._ctx.pay_to_insurance(result.payout)
        self._ctx.emit(
            EventType.UNCLAIMED_SWEPT,
            user=user,
            phase1=phase1,
            shares=result.shares,
            amount=result.payout,
        )
        logger.info("Swept %d from dormant claim of %s on %s",
                    result.payout, user, self._ctx.market_id)
        return result

    def _claim_phase1(self, user: str) -> ClaimResult:
        s = self._ctx.state
        if s.winning_outcome is None:
            raise MarketNotResolvedError()
        token = self._ctx.collaborators.token(s.winning_outcome)
        balance = token.balance_of(user)
        if balance == 0:
            raise NoWinningPhase1BalanceError(user)
        payout = to_external(mul_price(balance, s.settlement_price))
        s.outstanding_liabilities -= balance
        token.burn(user, balance)
        return ClaimResult(user=user, phase1=True, shares=balance, payout=payout)

    def _claim_phase2(self, user: str, tier: UserTier | None) -> ClaimResult:
        s = self._ctx.state
        if s.winning_outcome is None:
            raise MarketNotResolvedError()
        position = s.active_position(user, s.winning_outcome)
        if position is None:
            raise NoWinningPhase2PositionError(user)

        gross = to_external(mul_price(position.shares, s.settlement_price))
        # interest stops accruing at resolution
        interest = self._positions.interest_of(position, until=s.resolved_at)
        settlement = settle_debt(gross, position.loan_amount, interest)

        self._positions.retire(position)
        s.outstanding_liabilities -= position.shares
        self._positions.settle_with_lender(settlement)

        bonus = 0
        if tier is not None and settlement.shortfall == 0 and s.settlement_price == PAR:
            cfg = s.config
            bonus = min(
                tier_bonus(position.collateral, cfg.base_yield_bps, cfg.tier_multiplier(tier)),
                self._bonus_headroom(settlement.surplus),
            )
        return ClaimResult(
            user=user,
            phase1=False,
            shares=position.shares,
            payout=settlement.surplus,
            bonus=bonus,
            shortfall=settlement.shortfall,
        )

    def _bonus_headroom(self, net_payout: int) -> int:
        """External backing left after this payout and every claim still outstanding."""
        s = self._ctx.state
        reserved = to_external(mul_price(s.outstanding_liabilities, s.settlement_price))
        held = self._ctx.collaborators.vault.external_balance_of(self._ctx.market_id)
        return max(0, held - net_payout - reserved)

    def _require_resolved(self) -> MarketState:
        s = self._ctx.state
        if not s.resolved:
            raise MarketNotResolvedError()
        return s
