"""Fixed-point units for the synthetic market.

All amounts are int. No float, no Decimal.

  external asset      6 decimals   (collateral, loans, insurance cover, payouts)
  internal unit      18 decimals   (curve capital, AMM reserves, vault balances)
  outcome shares     18 decimals
  prices             PRICE_SCALE   (1.0 == par, internal units per whole share)
"""

EXTERNAL_DECIMALS = 6
INTERNAL_DECIMALS = 18
WAD = 10**INTERNAL_DECIMALS
SCALE_FACTOR = 10 ** (INTERNAL_DECIMALS - EXTERNAL_DECIMALS)

PRICE_SCALE = WAD
PAR = PRICE_SCALE
PRICE_CAP = PRICE_SCALE * 99 // 100

BPS = 10_000
LIQUIDATION_THRESHOLD_BPS = 12_000
SECONDS_PER_YEAR = 365 * 24 * 3600

MAX_HEALTH_FACTOR = 2**256 - 1


def to_internal(external_amount: int) -> int:
    """6-decimal external amount -> 18-decimal internal amount (exact)."""
    return external_amount * SCALE_FACTOR


def to_external(internal_amount: int) -> int:
    """18-decimal internal amount -> 6-decimal external amount (floor)."""
    return internal_amount // SCALE_FACTOR


def bps_of(amount: int, bps: int) -> int:
    """Floor of amount * bps / 10000."""
    return amount * bps // BPS


def mul_price(shares: int, price: int) -> int:
    """Value of `shares` at a PRICE_SCALE price, in internal units (floor)."""
    return shares * price // PRICE_SCALE


def units_to_display(amount: int, decimals: int = INTERNAL_DECIMALS) -> str:
    """Render a fixed-point amount for logs: 1500000 (6 dp) -> '1.500000'."""
    sign = "-" if amount < 0 else ""
    whole, frac = divmod(abs(amount), 10**decimals)
    return f"{sign}{whole:,}.{frac:0{decimals}d}"
