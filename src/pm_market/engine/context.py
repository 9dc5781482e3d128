"""Mutable context shared by the engine's components.

Components hold the context, never the state itself: a rollback swaps
``context.state`` for the checkpointed copy and every component sees it.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from src.pm_common.enums import EventType
from src.pm_common.units import to_internal
from src.pm_market.domain.collaborators import Collaborators
from src.pm_market.domain.events import MarketEvent
from src.pm_market.domain.models import MarketState

logger = logging.getLogger(__name__)


@dataclass
class EngineContext:
    state: MarketState
    collaborators: Collaborators
    clock: Callable[[], int]
    events: list[MarketEvent] = field(default_factory=list)

    @property
    def market_id(self) -> str:
        return self.state.market_id

    def now(self) -> int:
        return self.clock()

    def emit(self, event_type: EventType, **payload: Any) -> MarketEvent:
        event = MarketEvent(
            seq=len(self.events) + 1,
            market_id=self.market_id,
            event_type=event_type,
            at=self.clock(),
            payload=payload,
        )
        self.events.append(event)
        logger.debug("market=%s seq=%d %s %s", self.market_id, event.seq,
                     event_type.value, payload)
        return event

    def backing(self) -> int:
        """External asset held by the market, in internal units."""
        return to_internal(self.collaborators.vault.external_balance_of(self.market_id))

    def pay_out(self, recipient: str, external_amount: int) -> None:
        """Two hops: market's external asset -> internal units -> recipient."""
        if external_amount == 0:
            return
        vault = self.collaborators.vault
        vault.deposit(self.market_id, external_amount)
        vault.transfer(self.market_id, recipient, to_internal(external_amount))

    def pay_to_insurance(self, external_amount: int) -> None:
        if external_amount == 0:
            return
        self.collaborators.vault.deposit(self.market_id, external_amount)
        self.collaborators.insurance.deposit_fee(self.market_id, to_internal(external_amount))
