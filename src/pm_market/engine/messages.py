"""Field sets signed for each co-signed operation.

The engine rebuilds these from the call arguments, so a signature only verifies
for exactly the amounts the signers approved.
"""

from typing import Any

from src.pm_common.enums import Side, UserTier


def buy_fields(buyer: str, side: Side, share_amount: int) -> dict[str, Any]:
    return {"buyer": buyer, "side": side.value, "share_amount": share_amount}


def open_fields(
    trader: str, side: Side, collateral: int, leverage: int, min_shares: int
) -> dict[str, Any]:
    return {
        "trader": trader,
        "side": side.value,
        "collateral": collateral,
        "leverage": leverage,
        "min_shares": min_shares,
    }


def close_fields(trader: str, side: Side, min_proceeds: int) -> dict[str, Any]:
    return {"trader": trader, "side": side.value, "min_proceeds": min_proceeds}


def bulk_liquidate_fields(keeper: str, traders: list[str], sides: list[Side]) -> dict[str, Any]:
    return {"keeper": keeper, "traders": list(traders), "sides": [s.value for s in sides]}


def claim_fields(user: str, phase1: bool, tier: UserTier) -> dict[str, Any]:
    return {"user": user, "phase1": phase1, "tier": tier.value}
