"""In-memory custody vault.

Two ledgers per holder: external asset (6 dp) and internal accounting units
(18 dp). deposit/redeem convert between them at SCALE_FACTOR; the external side
of every deposit is held in the vault reserve until redeemed.
"""

import copy
import logging
from collections import defaultdict
from typing import Any

from src.pm_common.errors import (
    InsufficientBalanceError,
    InvalidAmountError,
    MigrationTransferUsedError,
)
from src.pm_common.units import to_external, to_internal

logger = logging.getLogger(__name__)


class InMemoryVault:
    def __init__(self) -> None:
        self._internal: dict[str, int] = defaultdict(int)
        self._external: dict[str, int] = defaultdict(int)
        self._reserve = 0
        self._migrated: set[str] = set()

    # --- Transactional ---

    def checkpoint(self) -> Any:
        return copy.deepcopy((self._internal, self._external, self._reserve, self._migrated))

    def restore(self, snapshot: Any) -> None:
        self._internal, self._external, self._reserve, self._migrated = copy.deepcopy(snapshot)

    # --- views ---

    def balance_of(self, holder: str) -> int:
        return self._internal.get(holder, 0)

    def external_balance_of(self, holder: str) -> int:
        return self._external.get(holder, 0)

    @property
    def reserve(self) -> int:
        return self._reserve

    # --- mutations ---

    def mint_external(self, holder: str, external_amount: int) -> None:
        """Faucet for local runs and tests: credit external asset out of thin air."""
        _require_non_negative(external_amount)
        self._external[holder] += external_amount

    def deposit(self, holder: str, external_amount: int) -> int:
        _require_non_negative(external_amount)
        self._debit(self._external, holder, external_amount)
        self._reserve += external_amount
        minted = to_internal(external_amount)
        self._internal[holder] += minted
        return minted

    def redeem(self, holder: str, internal_amount: int) -> int:
        _require_non_negative(internal_amount)
        self._debit(self._internal, holder, internal_amount)
        # sub-unit dust stays in the reserve
        released = to_external(internal_amount)
        self._reserve -= released
        self._external[holder] += released
        return released

    def transfer(self, sender: str, recipient: str, internal_amount: int) -> None:
        _require_non_negative(internal_amount)
        self._debit(self._internal, sender, internal_amount)
        self._internal[recipient] += internal_amount

    def transfer_external(self, sender: str, recipient: str, external_amount: int) -> None:
        _require_non_negative(external_amount)
        self._debit(self._external, sender, external_amount)
        self._external[recipient] += external_amount

    def transfer_to_market_once(self, market: str, internal_amount: int) -> None:
        """Move a market's raised capital out of custody into its own control. One-shot."""
        if market in self._migrated:
            raise MigrationTransferUsedError(market)
        self._migrated.add(market)
        released = self.redeem(market, internal_amount)
        logger.info("Custody released %d external units to market %s", released, market)

    @staticmethod
    def _debit(ledger: dict[str, int], holder: str, amount: int) -> None:
        available = ledger.get(holder, 0)
        if available < amount:
            raise InsufficientBalanceError(holder, amount, available)
        ledger[holder] = available - amount


def _require_non_negative(amount: int) -> None:
    if amount < 0:
        raise InvalidAmountError(f"negative amount {amount}")
