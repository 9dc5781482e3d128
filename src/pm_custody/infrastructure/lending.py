"""In-memory lending pool that funds leverage loans.

All amounts are external units. Lenders supply liquidity; markets draw loans up to
a utilization cap and repay principal plus interest.
"""

import copy
import logging
from collections import defaultdict
from typing import Any

from config.settings import settings
from src.pm_common.errors import InvalidAmountError, LendingCapacityExceededError
from src.pm_common.units import BPS
from src.pm_custody.infrastructure.vault import InMemoryVault

logger = logging.getLogger(__name__)


class InMemoryLendingPool:
    def __init__(
        self,
        vault: InMemoryVault,
        address: str = "lending-pool",
        borrow_rate_bps: int = settings.LENDING_BORROW_RATE_BPS,
        max_utilization_bps: int = settings.LENDING_MAX_UTILIZATION_BPS,
    ) -> None:
        self._vault = vault
        self.address = address
        self.borrow_rate_bps = borrow_rate_bps
        self.max_utilization_bps = max_utilization_bps
        self.total_supplied = 0
        self.total_borrowed = 0
        self.interest_earned = 0
        self._borrowed: dict[str, int] = defaultdict(int)

    def checkpoint(self) -> Any:
        return (
            self.total_supplied,
            self.total_borrowed,
            self.interest_earned,
            copy.deepcopy(self._borrowed),
        )

    def restore(self, snapshot: Any) -> None:
        self.total_supplied, self.total_borrowed, self.interest_earned, borrowed = snapshot
        self._borrowed = copy.deepcopy(borrowed)

    def outstanding(self, market: str) -> int:
        return self._borrowed.get(market, 0)

    def utilization_bps(self) -> int:
        if self.total_supplied == 0:
            return 0
        return self.total_borrowed * BPS // self.total_supplied

    def supply(self, lender: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmountError(f"supply amount must be positive, got {amount}")
        self._vault.transfer_external(lender, self.address, amount)
        self.total_supplied += amount

    def fund_loan(self, market: str, amount: int) -> None:
        if amount <= 0:
            raise InvalidAmountError(f"loan amount must be positive, got {amount}")
        borrowed_after = self.total_borrowed + amount
        if borrowed_after * BPS > self.total_supplied * self.max_utilization_bps:
            raise LendingCapacityExceededError(
                amount, f"utilization cap {self.max_utilization_bps} bps"
            )
        self._vault.transfer_external(self.address, market, amount)
        self._borrowed[market] += amount
        self.total_borrowed = borrowed_after
        logger.debug("Loan %d funded for %s (utilization %d bps)", amount, market,
                     self.utilization_bps())

    def repay_loan(self, market: str, principal: int, interest: int) -> None:
        self._vault.transfer_external(market, self.address, principal + interest)
        self._borrowed[market] -= principal
        self.total_borrowed -= principal
        self.interest_earned += interest
