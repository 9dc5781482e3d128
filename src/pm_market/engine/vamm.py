"""Virtual AMM: one-sided trades plus the complementary-price rebalance."""

from src.pm_common.enums import EventType, Side
from src.pm_common.errors import Phase2NotActiveError
from src.pm_market.engine.context import EngineContext
from src.pm_math.amm import buy_from_pool, price_of, rebalanced_reserve, sell_to_pool


class VirtualAmm:
    def __init__(self, ctx: EngineContext) -> None:
        self._ctx = ctx

    def price(self, side: Side) -> int:
        s = self._ctx.state
        if not s.migrated:
            raise Phase2NotActiveError()
        return price_of(s.reserve_stable, s.reserve_of(side))

    def buy(self, side: Side, stable_in: int) -> int:
        s = self._ctx.state
        trade = buy_from_pool(s.reserve_stable, s.reserve_of(side), stable_in)
        s.reserve_stable = trade.reserve_stable
        s.set_reserve(side, trade.reserve_side)
        self._rebalance(side)
        return trade.amount_out

    def sell(self, side: Side, shares_in: int) -> int:
        s = self._ctx.state
        trade = sell_to_pool(s.reserve_stable, s.reserve_of(side), shares_in)
        s.reserve_stable = trade.reserve_stable
        s.set_reserve(side, trade.reserve_side)
        self._rebalance(side)
        return trade.amount_out

    def _rebalance(self, traded: Side) -> None:
        s = self._ctx.state
        s.set_reserve(traded.opposite, rebalanced_reserve(s.reserve_stable, s.reserve_of(traded)))
        self._ctx.emit(
            EventType.REBALANCED,
            traded_side=traded.value,
            price_yes=price_of(s.reserve_stable, s.reserve_yes),
            price_no=price_of(s.reserve_stable, s.reserve_no),
            reserve_stable=s.reserve_stable,
            reserve_yes=s.reserve_yes,
            reserve_no=s.reserve_no,
        )
