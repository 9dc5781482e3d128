"""Non-transferable outcome token: balances move only by mint and burn."""

import copy
from collections import defaultdict
from typing import Any

from src.pm_common.enums import Side
from src.pm_common.errors import InsufficientBalanceError, TransferNotAllowedError


class InMemoryOutcomeToken:
    def __init__(self, side: Side) -> None:
        self.side = side
        self._balances: dict[str, int] = defaultdict(int)
        self._supply = 0

    def checkpoint(self) -> Any:
        return copy.deepcopy(self._balances), self._supply

    def restore(self, snapshot: Any) -> None:
        balances, self._supply = snapshot
        self._balances = copy.deepcopy(balances)

    def balance_of(self, holder: str) -> int:
        return self._balances.get(holder, 0)

    def total_supply(self) -> int:
        return self._supply

    def mint(self, holder: str, amount: int) -> None:
        self._balances[holder] += amount
        self._supply += amount

    def burn(self, holder: str, amount: int) -> None:
        available = self._balances.get(holder, 0)
        if available < amount:
            raise InsufficientBalanceError(holder, amount, available)
        self._balances[holder] = available - amount
        self._supply -= amount

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        raise TransferNotAllowedError()
