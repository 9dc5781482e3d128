"""Global enums — values double as JSON / event-store strings."""

from enum import Enum


class MarketPhase(str, Enum):
    PRE_MIGRATION = "PRE_MIGRATION"
    PHASE2_ACTIVE = "PHASE2_ACTIVE"
    RESOLVED = "RESOLVED"


class Side(str, Enum):
    YES = "YES"
    NO = "NO"

    @property
    def opposite(self) -> "Side":
        return Side.NO if self is Side.YES else Side.YES


class UserTier(str, Enum):
    """Bonus-yield tier attested by the authority at claim time."""
    STANDARD = "STANDARD"
    EARLY = "EARLY"
    FAN_TOKEN = "FAN_TOKEN"


class EventType(str, Enum):
    MARKET_INITIALIZED = "MARKET_INITIALIZED"
    BUY_EXECUTED = "BUY_EXECUTED"
    MIGRATED = "MIGRATED"
    LEVERAGE_ACTIVATED = "LEVERAGE_ACTIVATED"
    POSITION_OPENED = "POSITION_OPENED"
    POSITION_CLOSED = "POSITION_CLOSED"
    POSITION_LIQUIDATED = "POSITION_LIQUIDATED"
    REBALANCED = "REBALANCED"
    MARKET_RESOLVED = "MARKET_RESOLVED"
    WINNINGS_CLAIMED = "WINNINGS_CLAIMED"
    UNCLAIMED_SWEPT = "UNCLAIMED_SWEPT"
    AUTHORITY_ROTATED = "AUTHORITY_ROTATED"


class MessageType(str, Enum):
    """Primary types of signed typed messages."""
    BUY_SHARES = "BuyShares"
    OPEN_POSITION = "OpenPosition"
    CLOSE_POSITION = "ClosePosition"
    BULK_LIQUIDATE = "BulkLiquidate"
    CLAIM_TIER = "ClaimTier"
