"""pm_market REST endpoints.

POST /markets                                       — create + initialize a market
GET  /markets/{market_id}                           — state snapshot
GET  /markets/{market_id}/events                    — persisted event log
GET  /markets/{market_id}/positions/{trader}/{side} — position + health factor
POST /markets/{market_id}/buy                       — phase-1 bonding-curve buy
POST /markets/{market_id}/open | /close             — leveraged positions
POST /markets/{market_id}/liquidate | /bulk-liquidate
POST /markets/{market_id}/resolve | /claim | /sweep
POST /markets/{market_id}/authority                 — rotate the co-signing authority

Authorization lives in the signed request bodies, not in HTTP auth.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.pm_common.database import get_db_session
from src.pm_common.enums import Side
from src.pm_common.response import ApiResponse, success_response
from src.pm_market.application.schemas import (
    BulkLiquidateRequest,
    BuySharesRequest,
    ClaimRequest,
    ClosePositionRequest,
    CreateMarketRequest,
    LiquidateRequest,
    OpenPositionRequest,
    ResolveRequest,
    RotateAuthorityRequest,
    SweepRequest,
)
from src.pm_market.application.service import MarketApplicationService, build_default_service

router = APIRouter(prefix="/markets", tags=["markets"])

_service = build_default_service()


def get_market_service() -> MarketApplicationService:
    return _service


Service = Annotated[MarketApplicationService, Depends(get_market_service)]
Db = Annotated[AsyncSession, Depends(get_db_session)]


def _ok(request: Request, data: object) -> ApiResponse:
    return success_response(data, request_id=getattr(request.state, "request_id", None))


@router.post("", status_code=201)
async def create_market(
    body: CreateMarketRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    return _ok(request, await service.create_market(db, body))


@router.get("/{market_id}")
async def get_market(market_id: str, request: Request, service: Service) -> ApiResponse:
    return _ok(request, await service.get_market(market_id))


@router.get("/{market_id}/events")
async def list_events(
    market_id: str,
    request: Request,
    service: Service,
    db: Db,
    after_seq: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
) -> ApiResponse:
    return _ok(request, await service.list_events(db, market_id, after_seq, limit))


@router.get("/{market_id}/positions/{trader}/{side}")
async def get_position(
    market_id: str, trader: str, side: Side, request: Request, service: Service
) -> ApiResponse:
    result = await service.get_position(market_id, trader, side)
    return _ok(request, result.model_dump(mode="json"))


@router.post("/{market_id}/buy")
async def buy_shares(
    market_id: str, body: BuySharesRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.buy_shares(db, market_id, body)
    return _ok(request, result.model_dump(mode="json"))


@router.post("/{market_id}/open")
async def open_position(
    market_id: str, body: OpenPositionRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.open_position(db, market_id, body)
    return _ok(request, result.model_dump(mode="json"))


@router.post("/{market_id}/close")
async def close_position(
    market_id: str, body: ClosePositionRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.close_position(db, market_id, body)
    return _ok(request, result.model_dump(mode="json"))


@router.post("/{market_id}/liquidate")
async def liquidate(
    market_id: str, body: LiquidateRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.liquidate(db, market_id, body)
    return _ok(request, result.model_dump(mode="json"))


@router.post("/{market_id}/bulk-liquidate")
async def bulk_liquidate(
    market_id: str, body: BulkLiquidateRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    count = await service.bulk_liquidate(db, market_id, body)
    return _ok(request, {"liquidated": count})


@router.post("/{market_id}/resolve")
async def resolve_market(
    market_id: str, body: ResolveRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    price = await service.resolve(db, market_id, body)
    return _ok(request, {"settlement_price": price})


@router.post("/{market_id}/claim")
async def claim_winnings(
    market_id: str, body: ClaimRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.claim(db, market_id, body)
    return _ok(request, result.model_dump(mode="json"))


@router.post("/{market_id}/sweep")
async def sweep_unclaimed(
    market_id: str, body: SweepRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    result = await service.sweep(db, market_id, body)
    return _ok(request, result.model_dump(mode="json"))


@router.post("/{market_id}/authority")
async def rotate_authority(
    market_id: str, body: RotateAuthorityRequest, request: Request, service: Service, db: Db
) -> ApiResponse:
    return _ok(request, await service.rotate_authority(db, market_id, body))
