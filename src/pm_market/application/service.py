"""MarketApplicationService — async composition layer over MarketEngine.

One engine per market, held in memory. Write calls are serialized per market
with an asyncio.Lock; the engine call runs synchronously inside the lock, its
events are written in the caller's DB transaction, and the engine is restored
to its pre-call checkpoint if the write or commit fails.

Custody (vault, lending pool, insurance fund) is shared by every market, so the
write path also holds the custody lock: restoring one market's checkpoint must
never roll back another market's custody effects.
"""

import asyncio
import logging
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.pm_common.datetime_utils import unix_now
from src.pm_common.enums import Side
from src.pm_common.errors import (
    MarketAlreadyInitializedError,
    MarketNotFoundError,
    NoActivePositionError,
)
from src.pm_custody.infrastructure.stack import CustodyStack
from src.pm_gateway.auth.verifier import JoseSignatureVerifier
from src.pm_market.application.schemas import (
    BulkLiquidateRequest,
    BuyOut,
    BuySharesRequest,
    ClaimOut,
    ClaimRequest,
    CloseOut,
    ClosePositionRequest,
    CreateMarketRequest,
    LiquidateRequest,
    LiquidationOut,
    OpenPositionRequest,
    PositionOut,
    ResolveRequest,
    RotateAuthorityRequest,
    SweepRequest,
)
from src.pm_market.domain.collaborators import SignatureVerifier
from src.pm_market.domain.events import MarketEvent
from src.pm_market.engine.engine import MarketEngine
from src.pm_market.infrastructure.event_store import read_market_events, write_market_events

logger = logging.getLogger(__name__)

T = TypeVar("T")

EventWriter = Callable[[Sequence[MarketEvent], AsyncSession], Awaitable[None]]


class MarketApplicationService:
    def __init__(
        self,
        custody: CustodyStack | None = None,
        verifier: SignatureVerifier | None = None,
        clock: Callable[[], int] = unix_now,
        event_writer: EventWriter = write_market_events,
    ) -> None:
        self.custody = custody or CustodyStack()
        self.verifier: SignatureVerifier = verifier or JoseSignatureVerifier()
        self._clock = clock
        self._write_events = event_writer
        self._engines: dict[str, MarketEngine] = {}
        self._market_locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._custody_lock = asyncio.Lock()

    def get_engine(self, market_id: str) -> MarketEngine:
        engine = self._engines.get(market_id)
        if engine is None:
            raise MarketNotFoundError(market_id)
        return engine

    async def _execute(
        self, db: AsyncSession, market_id: str, op: Callable[[MarketEngine], T]
    ) -> T:
        engine = self.get_engine(market_id)
        async with self._market_locks[market_id], self._custody_lock:
            checkpoint = engine.checkpoint()
            try:
                result = op(engine)
                await self._write_events(engine.events_since(checkpoint), db)
                await db.commit()
            except Exception:
                engine.restore(checkpoint)
                await db.rollback()
                raise
            return result

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_market(
        self, db: AsyncSession, req: CreateMarketRequest
    ) -> dict[str, Any]:
        if req.market_id in self._engines:
            raise MarketAlreadyInitializedError(req.market_id)
        engine = MarketEngine(
            req.market_id,
            self.custody.collaborators_for_market(),
            self.verifier,
            clock=self._clock,
        )
        self._engines[req.market_id] = engine
        try:
            await self._execute(
                db,
                req.market_id,
                lambda e: e.initialize(req.to_config(), req.authority, req.migration_threshold),
            )
        except Exception:
            self._engines.pop(req.market_id, None)
            raise
        return engine.snapshot()

    async def rotate_authority(
        self, db: AsyncSession, market_id: str, req: RotateAuthorityRequest
    ) -> dict[str, Any]:
        engine = self.get_engine(market_id)
        await self._execute(db, market_id, lambda e: e.rotate_authority(req.caller, req.new_authority))
        return engine.snapshot()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_market(self, market_id: str) -> dict[str, Any]:
        return self.get_engine(market_id).snapshot()

    async def get_position(self, market_id: str, trader: str, side: Side) -> PositionOut:
        engine = self.get_engine(market_id)
        position = engine.position(trader, side)
        if position is None:
            raise NoActivePositionError(trader, side.value)
        factor = engine.health_factor(trader, side) if position.active else None
        return PositionOut.from_domain(position, factor)

    async def list_events(
        self, db: AsyncSession, market_id: str, after_seq: int, limit: int
    ) -> list[dict[str, Any]]:
        self.get_engine(market_id)
        return await read_market_events(db, market_id, after_seq, limit)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def buy_shares(self, db: AsyncSession, market_id: str, req: BuySharesRequest) -> BuyOut:
        result = await self._execute(
            db,
            market_id,
            lambda e: e.buy_shares(
                req.buyer, req.side, req.share_amount, req.deadline,
                req.user_signature, req.authority_signature,
            ),
        )
        return BuyOut.from_result(result)

    async def open_position(
        self, db: AsyncSession, market_id: str, req: OpenPositionRequest
    ) -> PositionOut:
        position = await self._execute(
            db,
            market_id,
            lambda e: e.open_position(
                req.trader, req.side, req.collateral, req.leverage, req.min_shares,
                req.deadline, req.user_signature, req.authority_signature,
            ),
        )
        return PositionOut.from_domain(position)

    async def close_position(
        self, db: AsyncSession, market_id: str, req: ClosePositionRequest
    ) -> CloseOut:
        result = await self._execute(
            db,
            market_id,
            lambda e: e.close_position(
                req.trader, req.side, req.min_proceeds, req.deadline,
                req.user_signature, req.authority_signature,
            ),
        )
        return CloseOut.from_result(result)

    async def liquidate(
        self, db: AsyncSession, market_id: str, req: LiquidateRequest
    ) -> LiquidationOut:
        result = await self._execute(
            db, market_id, lambda e: e.liquidate(req.keeper, req.trader, req.side)
        )
        return LiquidationOut.from_result(result)

    async def bulk_liquidate(
        self, db: AsyncSession, market_id: str, req: BulkLiquidateRequest
    ) -> int:
        return await self._execute(
            db,
            market_id,
            lambda e: e.bulk_liquidate(
                req.keeper, req.traders, req.sides, req.deadline, req.authority_signature
            ),
        )

    async def resolve(self, db: AsyncSession, market_id: str, req: ResolveRequest) -> int:
        price = await self._execute(
            db, market_id, lambda e: e.resolve_market(req.caller, req.winning_outcome)
        )
        logger.info("Resolution of %s committed", market_id)
        return price

    async def claim(self, db: AsyncSession, market_id: str, req: ClaimRequest) -> ClaimOut:
        result = await self._execute(
            db,
            market_id,
            lambda e: e.claim_winnings(
                req.user, req.phase1, req.tier, req.deadline, req.authority_signature
            ),
        )
        return ClaimOut.from_result(result)

    async def sweep(self, db: AsyncSession, market_id: str, req: SweepRequest) -> ClaimOut:
        result = await self._execute(
            db, market_id, lambda e: e.sweep_unclaimed(req.caller, req.user, req.phase1)
        )
        return ClaimOut.from_result(result)


def build_default_service() -> MarketApplicationService:
    """Process-wide service wired from settings."""
    return MarketApplicationService(verifier=JoseSignatureVerifier(settings.SIGNER_KEYS))
