"""Virtual constant-product pool math.

One stable reserve is shared by the YES and NO sides. A trade runs one side at a
time along the constant product of (reserve_stable, reserve_side); afterwards the
untouched side is re-derived so that price_yes + price_no ≈ 1. The bootstrap
product (invariant_k) is what the first trade on either side moves along.

Division results that feed back into reserves are rounded up (in the pool's favour).
"""

from dataclasses import dataclass

from src.pm_common.errors import ZeroProceedsError, ZeroSharesOutError
from src.pm_common.units import PRICE_CAP, PRICE_SCALE


@dataclass(frozen=True)
class PoolTrade:
    amount_out: int
    reserve_stable: int
    reserve_side: int


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def price_of(reserve_stable: int, reserve_side: int) -> int:
    """Side price = reserve_stable / reserve_side, PRICE_SCALE fixed point."""
    if reserve_side <= 0:
        raise ValueError(f"reserve_side must be positive, got {reserve_side}")
    return reserve_stable * PRICE_SCALE // reserve_side


def bootstrap_reserves(capital: int) -> tuple[int, int, int, int]:
    """Initial (stable, yes, no, invariant_k) for a 0.5 / 0.5 start.

    Two side tokens per stable unit is what puts each side at exactly 0.5.
    """
    if capital <= 0:
        raise ValueError(f"capital must be positive, got {capital}")
    reserve_side = 2 * capital
    return capital, reserve_side, reserve_side, capital * reserve_side


def buy_from_pool(reserve_stable: int, reserve_side: int, stable_in: int) -> PoolTrade:
    """newStable = S + in;  newSide = k / newStable;  out = R − newSide."""
    product = reserve_stable * reserve_side
    new_stable = reserve_stable + stable_in
    new_side = _ceil_div(product, new_stable)
    shares_out = reserve_side - new_side
    if shares_out <= 0:
        raise ZeroSharesOutError()
    return PoolTrade(shares_out, new_stable, new_side)


def sell_to_pool(reserve_stable: int, reserve_side: int, shares_in: int) -> PoolTrade:
    """newSide = R + in;  newStable = k / newSide;  out = S − newStable."""
    product = reserve_stable * reserve_side
    new_side = reserve_side + shares_in
    new_stable = _ceil_div(product, new_side)
    stable_out = reserve_stable - new_stable
    if stable_out <= 0:
        raise ZeroProceedsError()
    return PoolTrade(stable_out, new_stable, new_side)


def rebalanced_reserve(reserve_stable: int, traded_reserve: int) -> int:
    """Reserve for the untouched side so that its price is 1 − price(traded side).

    The traded side's price is clamped at PRICE_CAP (0.99) first; without the clamp
    the complement goes to zero as a side nears exhaustion.
    """
    traded_price = min(price_of(reserve_stable, traded_reserve), PRICE_CAP)
    return reserve_stable * PRICE_SCALE // (PRICE_SCALE - traded_price)
