"""In-memory insurance fund: collects fees, absorbs bad debt."""

import logging
from typing import Any

from src.pm_common.errors import InsuranceFundInsufficientError
from src.pm_common.units import to_external, to_internal
from src.pm_custody.infrastructure.vault import InMemoryVault

logger = logging.getLogger(__name__)


class InMemoryInsuranceFund:
    def __init__(self, vault: InMemoryVault, address: str = "insurance-fund") -> None:
        self._vault = vault
        self.address = address
        self.fees_collected = 0  # internal
        self.bad_debt_covered = 0  # external

    def checkpoint(self) -> Any:
        return self.fees_collected, self.bad_debt_covered

    def restore(self, snapshot: Any) -> None:
        self.fees_collected, self.bad_debt_covered = snapshot

    def total_assets(self) -> int:
        """Everything the fund can pay out, in external units."""
        return self._vault.external_balance_of(self.address) + to_external(
            self._vault.balance_of(self.address)
        )

    def deposit_fee(self, market: str, internal_amount: int) -> None:
        if internal_amount == 0:
            return
        self._vault.transfer(market, self.address, internal_amount)
        self.fees_collected += internal_amount

    def cover_bad_debt(self, market: str, shortfall: int) -> None:
        available = self.total_assets()
        if shortfall > available:
            logger.error(
                "Insurance fund cannot cover shortfall %d for %s (assets %d)",
                shortfall, market, available,
            )
            raise InsuranceFundInsufficientError(shortfall, available)
        liquid = self._vault.external_balance_of(self.address)
        if liquid < shortfall:
            self._vault.redeem(self.address, to_internal(shortfall - liquid))
        self._vault.transfer_external(self.address, market, shortfall)
        self.bad_debt_covered += shortfall
        logger.warning("Insurance covered bad debt %d for %s", shortfall, market)
