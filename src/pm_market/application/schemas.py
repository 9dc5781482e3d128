"""Pydantic schemas for pm_market API requests and responses.

Amounts travel as JSON integers in their native units:
  external (6 dp): collateral, loans, proceeds, payouts, migration_threshold
  internal (18 dp): shares, reserves, capital, prices (PRICE_SCALE = 1e18)
"""

from pydantic import BaseModel, Field

from config.settings import settings
from src.pm_common.enums import Side, UserTier
from src.pm_market.domain.models import MarketConfig, Position
from src.pm_market.engine.bonding_curve import BuyResult
from src.pm_market.engine.positions import CloseResult, LiquidationResult
from src.pm_market.engine.settlement import ClaimResult

# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class CreateMarketRequest(BaseModel):
    market_id: str = Field(..., min_length=1, max_length=64)
    migration_threshold: int = Field(..., gt=0, description="External units (6 dp)")
    authority: str = Field(default_factory=lambda: settings.AUTHORITY_ADDRESS)
    curve_k: int | None = Field(None, gt=0)
    curve_scale: int | None = Field(None, gt=0)
    protocol_fee_bps: int | None = Field(None, ge=0, le=10_000)
    max_leverage: int | None = Field(None, ge=1)
    min_collateral: int | None = Field(None, ge=0)

    def to_config(self) -> MarketConfig:
        overrides = {
            name: value
            for name, value in (
                ("curve_k", self.curve_k),
                ("curve_scale", self.curve_scale),
                ("protocol_fee_bps", self.protocol_fee_bps),
                ("max_leverage", self.max_leverage),
                ("min_collateral", self.min_collateral),
            )
            if value is not None
        }
        return MarketConfig.from_settings(**overrides)


class SignedRequest(BaseModel):
    deadline: int
    authority_signature: str


class BuySharesRequest(SignedRequest):
    buyer: str
    side: Side
    share_amount: int = Field(..., gt=0)
    user_signature: str


class OpenPositionRequest(SignedRequest):
    trader: str
    side: Side
    collateral: int = Field(..., gt=0)
    leverage: int = Field(..., ge=1)
    min_shares: int = Field(0, ge=0)
    user_signature: str


class ClosePositionRequest(SignedRequest):
    trader: str
    side: Side
    min_proceeds: int = Field(0, ge=0)
    user_signature: str


class LiquidateRequest(BaseModel):
    keeper: str
    trader: str
    side: Side


class BulkLiquidateRequest(SignedRequest):
    keeper: str
    traders: list[str]
    sides: list[Side]


class ResolveRequest(BaseModel):
    caller: str
    winning_outcome: Side


class ClaimRequest(SignedRequest):
    user: str
    phase1: bool
    tier: UserTier = UserTier.STANDARD


class SweepRequest(BaseModel):
    caller: str
    user: str
    phase1: bool


class RotateAuthorityRequest(BaseModel):
    caller: str
    new_authority: str = Field(..., min_length=1)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class PositionOut(BaseModel):
    owner: str
    side: Side
    collateral: int
    loan_amount: int
    shares: int
    entry_price: int
    opened_at: int
    active: bool
    health_factor: int | None = None

    @classmethod
    def from_domain(cls, position: Position, health_factor: int | None = None) -> "PositionOut":
        return cls(
            owner=position.owner,
            side=position.side,
            collateral=position.collateral,
            loan_amount=position.loan_amount,
            shares=position.shares,
            entry_price=position.entry_price,
            opened_at=position.opened_at,
            active=position.active,
            health_factor=health_factor,
        )


class BuyOut(BaseModel):
    buyer: str
    side: Side
    shares: int
    raw_cost: int
    fee: int
    capped: bool
    migrated: bool

    @classmethod
    def from_result(cls, result: BuyResult) -> "BuyOut":
        return cls(
            buyer=result.buyer,
            side=result.side,
            shares=result.shares,
            raw_cost=result.raw_cost,
            fee=result.fee,
            capped=result.capped,
            migrated=result.migrated,
        )


class CloseOut(BaseModel):
    trader: str
    side: Side
    shares: int
    proceeds: int
    interest: int
    shortfall: int
    payout: int
    pnl: int

    @classmethod
    def from_result(cls, result: CloseResult) -> "CloseOut":
        return cls(**{name: getattr(result, name) for name in cls.model_fields})


class LiquidationOut(BaseModel):
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

    @classmethod
    def from_result(cls, result: LiquidationResult) -> "LiquidationOut":
        return cls(**{name: getattr(result, name) for name in cls.model_fields})


class ClaimOut(BaseModel):
    user: str
    phase1: bool
    shares: int
    payout: int
    bonus: int
    shortfall: int
    total: int

    @classmethod
    def from_result(cls, result: ClaimResult) -> "ClaimOut":
        return cls(**{name: getattr(result, name) for name in cls.model_fields})
