"""Observable market events.

Payload values are JSON-native (int, str, bool, list) so events can be written to
the event store and returned over the API unchanged.
"""

from dataclasses import dataclass, field
from typing import Any

from src.pm_common.enums import EventType


@dataclass(frozen=True)
class MarketEvent:
    seq: int
    market_id: str
    event_type: EventType
    at: int
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "seq": self.seq,
            "market_id": self.market_id,
            "event_type": self.event_type.value,
            "at": self.at,
            "payload": dict(self.payload),
        }
