# src/pm_market/domain/collaborators.py
"""Collaborator Protocols: the engine's only view of the outside world.

The reference in-memory implementations live in src/pm_custody/infrastructure.
Any collaborator that also satisfies Transactional is checkpointed by the engine
before a call and restored if the call fails.
"""

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from src.pm_common.enums import Side


@runtime_checkable
class Transactional(Protocol):
    def checkpoint(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...


class CustodyVault(Protocol):
    """External asset (6 dp) <-> internal unit (18 dp) custody."""

    def deposit(self, holder: str, external_amount: int) -> int: ...

    def redeem(self, holder: str, internal_amount: int) -> int: ...

    def transfer(self, sender: str, recipient: str, internal_amount: int) -> None: ...

    def transfer_to_market_once(self, market: str, internal_amount: int) -> None: ...

    def balance_of(self, holder: str) -> int: ...

    def external_balance_of(self, holder: str) -> int: ...


class LendingPool(Protocol):
    borrow_rate_bps: int

    def fund_loan(self, market: str, amount: int) -> None: ...

    def repay_loan(self, market: str, principal: int, interest: int) -> None: ...


class InsuranceFund(Protocol):
    def deposit_fee(self, market: str, internal_amount: int) -> None: ...

    def cover_bad_debt(self, market: str, shortfall: int) -> None: ...


class OutcomeToken(Protocol):
    def mint(self, holder: str, amount: int) -> None: ...

    def burn(self, holder: str, amount: int) -> None: ...

    def balance_of(self, holder: str) -> int: ...

    def total_supply(self) -> int: ...

    def transfer(self, sender: str, recipient: str, amount: int) -> None: ...


class SignatureVerifier(Protocol):
    def verify(self, message: dict[str, Any], signature: str, signer: str) -> bool: ...


@dataclass
class Collaborators:
    vault: CustodyVault
    lending: LendingPool
    insurance: InsuranceFund
    yes_token: OutcomeToken
    no_token: OutcomeToken

    def token(self, side: Side) -> OutcomeToken:
        return self.yes_token if side is Side.YES else self.no_token

    def transactional(self) -> list[Transactional]:
        members = [self.vault, self.lending, self.insurance, self.yes_token, self.no_token]
        return [m for m in members if isinstance(m, Transactional)]
