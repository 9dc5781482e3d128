"""Leverage, interest, health-factor and settlement arithmetic.

Collateral, loans and debts are external units (6 dp); shares are 18 dp and
prices PRICE_SCALE fixed point.
"""

from dataclasses import dataclass

from src.pm_common.units import (
    BPS,
    LIQUIDATION_THRESHOLD_BPS,
    MAX_HEALTH_FACTOR,
    PAR,
    PRICE_SCALE,
    SECONDS_PER_YEAR,
    mul_price,
    to_external,
    to_internal,
)
from src.pm_math.amm import buy_from_pool


@dataclass(frozen=True)
class LeveragePreview:
    notional: int  # external
    loan: int  # external
    shares_out: int
    entry_price: int


@dataclass(frozen=True)
class DebtSettlement:
    principal: int
    interest: int
    shortfall: int  # debt not covered by proceeds -> insurance
    surplus: int  # proceeds left after debt


def accrued_interest(principal: int, rate_bps: int, elapsed_seconds: int) -> int:
    """Simple interest: principal * rate * elapsed / (BPS * year)."""
    if principal == 0 or elapsed_seconds <= 0:
        return 0
    return principal * rate_bps * elapsed_seconds // (BPS * SECONDS_PER_YEAR)


def position_value(shares: int, price: int) -> int:
    """Mark-to-market value of shares, in external units."""
    return to_external(mul_price(shares, price))


def health_factor(shares: int, price: int, loan: int, interest: int) -> int:
    """value * BPS / (debt * 120%). Below BPS the position is liquidatable.

    A position without a loan has nothing to liquidate against: MAX_HEALTH_FACTOR.
    """
    if loan == 0:
        return MAX_HEALTH_FACTOR
    debt = loan + interest
    required = debt * LIQUIDATION_THRESHOLD_BPS // BPS
    return position_value(shares, price) * BPS // required


def is_liquidatable(factor: int) -> bool:
    return factor < BPS


def entry_price(stable_in: int, shares_out: int) -> int:
    return stable_in * PRICE_SCALE // shares_out


def preview_leverage(
    collateral: int,
    leverage: int,
    reserve_stable: int,
    reserve_side: int,
) -> LeveragePreview:
    notional = collateral * leverage
    trade = buy_from_pool(reserve_stable, reserve_side, to_internal(notional))
    return LeveragePreview(
        notional=notional,
        loan=collateral * (leverage - 1),
        shares_out=trade.amount_out,
        entry_price=entry_price(to_internal(notional), trade.amount_out),
    )


def settle_debt(proceeds: int, principal: int, interest: int) -> DebtSettlement:
    debt = principal + interest
    if proceeds >= debt:
        return DebtSettlement(principal, interest, shortfall=0, surplus=proceeds - debt)
    return DebtSettlement(principal, interest, shortfall=debt - proceeds, surplus=0)


def split_liquidation_surplus(
    surplus: int, penalty_bps: int, reward_bps: int
) -> tuple[int, int, int]:
    """(insurance fee, keeper reward, trader refund); the three always sum to surplus."""
    fee = surplus * penalty_bps // BPS
    reward = surplus * reward_bps // BPS
    return fee, reward, surplus - fee - reward


def settlement_price(backing: int, liabilities: int) -> int:
    """min(par, backing / liabilities). Backing is internal units, liabilities shares."""
    if liabilities == 0 or backing >= liabilities:
        return PAR
    return backing * PRICE_SCALE // liabilities


def tier_bonus(collateral: int, base_yield_bps: int, multiplier_bps: int) -> int:
    return collateral * base_yield_bps * multiplier_bps // (BPS * BPS)
