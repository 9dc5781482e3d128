"""Domain models for pm_market — plain dataclasses.

MarketState and Position are owned by one MarketEngine and mutated only through
its entry points.
"""

from dataclasses import dataclass, field
from typing import Any, NamedTuple

from config.settings import Settings, settings
from src.pm_common.enums import MarketPhase, Side, UserTier
from src.pm_common.errors import InvalidMarketConfigError
from src.pm_common.units import BPS


@dataclass(frozen=True)
class MarketConfig:
    """Versioned per-market parameters, fixed at initialize()."""

    version: int = 1
    curve_k: int = settings.CURVE_K
    curve_scale: int = settings.CURVE_SCALE
    protocol_fee_bps: int = settings.PROTOCOL_FEE_BPS
    curve_dust_tolerance: int = settings.CURVE_DUST_TOLERANCE
    max_leverage: int = settings.MAX_LEVERAGE
    min_collateral: int = settings.MIN_COLLATERAL  # external
    liquidation_penalty_bps: int = settings.LIQUIDATION_PENALTY_BPS
    keeper_reward_bps: int = settings.KEEPER_REWARD_BPS
    claim_cooloff_seconds: int = settings.CLAIM_COOLOFF_SECONDS
    base_yield_bps: int = settings.BASE_YIELD_BPS
    tier_multipliers_bps: dict[UserTier, int] = field(
        default_factory=lambda: {
            UserTier.STANDARD: settings.TIER_STANDARD_MULTIPLIER_BPS,
            UserTier.EARLY: settings.TIER_EARLY_MULTIPLIER_BPS,
            UserTier.FAN_TOKEN: settings.TIER_FAN_TOKEN_MULTIPLIER_BPS,
        }
    )

    def __post_init__(self) -> None:
        # the liquidation fee and keeper reward are both carved out of the same surplus
        if self.liquidation_penalty_bps < 0 or self.keeper_reward_bps < 0:
            raise InvalidMarketConfigError("liquidation bps must be non-negative")
        if self.liquidation_penalty_bps + self.keeper_reward_bps > BPS:
            raise InvalidMarketConfigError(
                f"liquidation penalty {self.liquidation_penalty_bps} + keeper reward "
                f"{self.keeper_reward_bps} exceeds {BPS} bps"
            )

    @classmethod
    def from_settings(cls, source: Settings = settings, **overrides: Any) -> "MarketConfig":
        values: dict[str, Any] = {
            "curve_k": source.CURVE_K,
            "curve_scale": source.CURVE_SCALE,
            "protocol_fee_bps": source.PROTOCOL_FEE_BPS,
            "curve_dust_tolerance": source.CURVE_DUST_TOLERANCE,
            "max_leverage": source.MAX_LEVERAGE,
            "min_collateral": source.MIN_COLLATERAL,
            "liquidation_penalty_bps": source.LIQUIDATION_PENALTY_BPS,
            "keeper_reward_bps": source.KEEPER_REWARD_BPS,
            "claim_cooloff_seconds": source.CLAIM_COOLOFF_SECONDS,
            "base_yield_bps": source.BASE_YIELD_BPS,
            "tier_multipliers_bps": {
                UserTier.STANDARD: source.TIER_STANDARD_MULTIPLIER_BPS,
                UserTier.EARLY: source.TIER_EARLY_MULTIPLIER_BPS,
                UserTier.FAN_TOKEN: source.TIER_FAN_TOKEN_MULTIPLIER_BPS,
            },
        }
        values.update(overrides)
        return cls(**values)

    def tier_multiplier(self, tier: UserTier) -> int:
        return self.tier_multipliers_bps[tier]


class PositionKey(NamedTuple):
    owner: str
    side: Side


@dataclass
class Position:
    owner: str
    side: Side
    collateral: int  # external
    loan_amount: int  # external
    shares: int
    entry_price: int
    opened_at: int
    active: bool = True

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.owner, self.side)


@dataclass
class MarketState:
    market_id: str
    initialized: bool = False
    config: MarketConfig = field(default_factory=MarketConfig)
    authority: str = ""
    phase: MarketPhase = MarketPhase.PRE_MIGRATION

    # bonding curve (internal units)
    current_supply: int = 0
    total_capital_raised: int = 0
    migration_threshold: int = 0
    migrated: bool = False

    # vAMM (internal units)
    reserve_stable: int = 0
    reserve_yes: int = 0
    reserve_no: int = 0
    invariant_k: int = 0

    total_borrowed: int = 0  # external, mirrors the lending pool
    open_interest_yes: int = 0
    open_interest_no: int = 0

    # resolution
    resolved: bool = False
    winning_outcome: Side | None = None
    settlement_price: int = 0
    resolved_at: int | None = None
    outstanding_liabilities: int = 0

    nonces: dict[str, int] = field(default_factory=dict)
    positions: dict[PositionKey, Position] = field(default_factory=dict)

    def reserve_of(self, side: Side) -> int:
        return self.reserve_yes if side is Side.YES else self.reserve_no

    def set_reserve(self, side: Side, value: int) -> None:
        if side is Side.YES:
            self.reserve_yes = value
        else:
            self.reserve_no = value

    def open_interest(self, side: Side) -> int:
        return self.open_interest_yes if side is Side.YES else self.open_interest_no

    def add_open_interest(self, side: Side, delta: int) -> None:
        if side is Side.YES:
            self.open_interest_yes += delta
        else:
            self.open_interest_no += delta

    def active_position(self, owner: str, side: Side) -> Position | None:
        position = self.positions.get(PositionKey(owner, side))
        if position is None or not position.active:
            return None
        return position
