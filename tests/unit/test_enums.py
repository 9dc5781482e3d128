"""Tests for pm_common.enums — event types must match the market_events CHECK constraint."""

from src.pm_common.enums import EventType, MarketPhase, MessageType, Side, UserTier


class TestAllEnumsAreStr:
    """All enums inherit from (str, Enum) for JSON serialization."""

    def test_side_is_str(self) -> None:
        assert isinstance(Side.YES, str)
        assert Side.YES == "YES"

    def test_phase_is_str(self) -> None:
        assert MarketPhase.PHASE2_ACTIVE == "PHASE2_ACTIVE"

    def test_message_type_values(self) -> None:
        assert MessageType.BUY_SHARES == "BuyShares"
        assert MessageType.CLAIM_TIER == "ClaimTier"


class TestSide:
    def test_opposite(self) -> None:
        assert Side.YES.opposite is Side.NO
        assert Side.NO.opposite is Side.YES


class TestEventType:
    def test_event_type_values(self) -> None:
        assert {e.value for e in EventType} == {
            "MARKET_INITIALIZED",
            "BUY_EXECUTED",
            "MIGRATED",
            "LEVERAGE_ACTIVATED",
            "POSITION_OPENED",
            "POSITION_CLOSED",
            "POSITION_LIQUIDATED",
            "REBALANCED",
            "MARKET_RESOLVED",
            "WINNINGS_CLAIMED",
            "UNCLAIMED_SWEPT",
            "AUTHORITY_ROTATED",
        }


class TestUserTier:
    def test_tiers(self) -> None:
        assert [t.value for t in UserTier] == ["STANDARD", "EARLY", "FAN_TOKEN"]
