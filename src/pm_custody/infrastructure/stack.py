"""Reference custody stack shared by every market in one process."""

from dataclasses import dataclass, field

from src.pm_common.enums import Side
from src.pm_common.errors import InternalError
from src.pm_custody.infrastructure.insurance import InMemoryInsuranceFund
from src.pm_custody.infrastructure.lending import InMemoryLendingPool
from src.pm_custody.infrastructure.outcome_token import InMemoryOutcomeToken
from src.pm_custody.infrastructure.vault import InMemoryVault
from src.pm_market.domain.collaborators import Collaborators


@dataclass
class CustodyStack:
    vault: InMemoryVault = field(default_factory=InMemoryVault)
    lending: InMemoryLendingPool | None = None
    insurance: InMemoryInsuranceFund | None = None

    def __post_init__(self) -> None:
        if self.lending is None:
            self.lending = InMemoryLendingPool(self.vault)
        if self.insurance is None:
            self.insurance = InMemoryInsuranceFund(self.vault)

    def collaborators_for_market(self) -> Collaborators:
        """Shared vault, pool and fund; a fresh pair of outcome tokens per market."""
        if self.lending is None or self.insurance is None:
            raise InternalError("custody stack is missing its lending pool or insurance fund")
        return Collaborators(
            vault=self.vault,
            lending=self.lending,
            insurance=self.insurance,
            yes_token=InMemoryOutcomeToken(Side.YES),
            no_token=InMemoryOutcomeToken(Side.NO),
        )
