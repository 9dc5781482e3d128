"""Domain-bound typed messages for co-signed market operations.

Shape:
    {
        "domain":  {"name": ..., "version": ..., "market_id": ...},
        "type":    "<primary type>",
        "message": {..., "nonce": int, "deadline": int}
    }

Binding the market id into the domain means a signature for one market can never
be replayed against another; the nonce prevents replay on the same market.
"""

from typing import Any

from config.settings import settings
from src.pm_common.enums import MessageType


def signing_domain(market_id: str) -> dict[str, str]:
    return {
        "name": settings.SIGNING_DOMAIN_NAME,
        "version": settings.SIGNING_DOMAIN_VERSION,
        "market_id": market_id,
    }


def build_typed_message(
    market_id: str,
    primary_type: MessageType,
    fields: dict[str, Any],
    nonce: int,
    deadline: int,
) -> dict[str, Any]:
    return {
        "domain": signing_domain(market_id),
        "type": primary_type.value,
        "message": {**fields, "nonce": nonce, "deadline": deadline},
    }
