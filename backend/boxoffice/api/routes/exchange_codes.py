"""
Exchange code endpoints: buyer-side validation and admin management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from boxoffice.db.session import get_db
from boxoffice.schemas.exchange_code import (
    BatchGenerateRequest,
    BatchGenerateResponse,
    CodeCheckResponse,
    CodeStatsResponse,
    ExchangeCodeCreate,
    ExchangeCodeResponse,
    ValidateCodesRequest,
    ValidateCodesResponse,
)
from boxoffice.services import exchange_code_service

router = APIRouter(prefix="/exchange-codes", tags=["Exchange codes"])


@router.post("/validate", response_model=ValidateCodesResponse)
async def validate_codes(request: ValidateCodesRequest, db: AsyncSession = Depends(get_db)):
    """Check codes before checkout. Nothing is redeemed."""
    checks = await exchange_code_service.validate_batch(db, request.codes)
    results = [CodeCheckResponse.model_validate(check) for check in checks]
    return ValidateCodesResponse(
        all_valid=all(r.valid and not r.already_used for r in results),
        results=results,
    )


@router.post("/", response_model=ExchangeCodeResponse, status_code=status.HTTP_201_CREATED)
async def create_code_endpoint(code_data: ExchangeCodeCreate, db: AsyncSession = Depends(get_db)):
    return await exchange_code_service.create_code(db, **code_data.model_dump())


@router.post("/batch", response_model=BatchGenerateResponse, status_code=status.HTTP_201_CREATED)
async def generate_batch_endpoint(request: BatchGenerateRequest, db: AsyncSession = Depends(get_db)):
    codes = await exchange_code_service.generate_batch(
        db,
        performer_name=request.performer_name,
        codes_per_session=request.codes_per_session,
        volume=request.volume,
    )
    return BatchGenerateResponse(count=len(codes), codes=[c.code for c in codes])


@router.get("/", response_model=list[ExchangeCodeResponse])
async def list_codes_endpoint(
    is_used: Optional[bool] = Query(None),
    performer_name: Optional[str] = Query(None),
    session_id: Optional[int] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await exchange_code_service.list_codes(
        db, is_used=is_used, performer_name=performer_name, session_id=session_id
    )


@router.get("/stats", response_model=CodeStatsResponse)
async def code_stats_endpoint(db: AsyncSession = Depends(get_db)):
    return await exchange_code_service.code_stats(db)


@router.get("/performers", response_model=list[str])
async def list_performers_endpoint(db: AsyncSession = Depends(get_db)):
    return await exchange_code_service.list_performers(db)


@router.post("/{code}/release", response_model=ExchangeCodeResponse)
async def release_code_endpoint(code: str, db: AsyncSession = Depends(get_db)):
    """Un-bind a code whose order was cancelled or expired."""
    return await exchange_code_service.release_code(db, code)
