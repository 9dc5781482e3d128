"""Linear bonding-curve pricing for the phase-1 sale.

Spot price is linear in cumulative supply:  price(s) = k * s / scale.
The cost of moving supply from s0 to s1 is the closed-form integral
k * (s1² − s0²) / (2 * scale²). Every function is stateless and floors with //.
"""

import math
from dataclasses import dataclass

from src.pm_common.units import BPS


@dataclass(frozen=True)
class CurveQuote:
    """Result of quoting a phase-1 buy."""

    shares: int
    raw_cost: int
    fee: int
    capped: bool  # True when the fill was cut down to land on the threshold


def integer_sqrt(n: int) -> int:
    """floor(sqrt(n)) for non-negative ints."""
    if n < 0:
        raise ValueError(f"integer_sqrt of negative number: {n}")
    return math.isqrt(n)


def spot_price(supply: int, k: int, scale: int) -> int:
    return k * supply // scale


def curve_cost(s_start: int, s_end: int, k: int, scale: int) -> int:
    if s_end < s_start:
        raise ValueError(f"s_end {s_end} < s_start {s_start}")
    return k * (s_end * s_end - s_start * s_start) // (2 * scale * scale)


def curve_fee(raw_cost: int, fee_bps: int) -> int:
    return raw_cost * fee_bps // BPS


def shares_for_capital(s_start: int, capital: int, k: int, scale: int) -> int:
    """Largest share amount whose curve cost from s_start does not exceed capital.

    Inverse of curve_cost: s_end = isqrt(s_start² + 2 * scale² * capital / k).
    Both floors push s_end down, so curve_cost(s_start, s_start + result) <= capital.
    """
    s_end = integer_sqrt(s_start * s_start + 2 * scale * scale * capital // k)
    return s_end - s_start


def quote_buy(
    supply: int,
    capital_raised: int,
    threshold: int,
    requested: int,
    k: int,
    scale: int,
    fee_bps: int,
    dust_tolerance: int,
) -> CurveQuote:
    """Quote a buy of `requested` shares, capping it at the migration threshold.

    When the full request would push capital past the threshold, only the shares
    that land capital on the threshold are sold, and the capped fill is always
    charged exactly the remaining room. The floored inverse can fall short of the
    room by up to one share unit's cost. Within `dust_tolerance` that residue is
    absorbed; beyond it the fill is rounded up by one share unit, so capital still
    lands on the threshold and migration cannot stall.
    """
    raw_cost = curve_cost(supply, supply + requested, k, scale)
    if capital_raised + raw_cost <= threshold:
        return CurveQuote(requested, raw_cost, curve_fee(raw_cost, fee_bps), capped=False)

    room = threshold - capital_raised
    shares = min(requested, shares_for_capital(supply, room, k, scale))
    if room - curve_cost(supply, supply + shares, k, scale) > dust_tolerance:
        shares = min(requested, shares + 1)
    return CurveQuote(shares, room, curve_fee(room, fee_bps), capped=True)
