"""v1 cause catalog endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from donatehub.core.dependencies import require_admin
from donatehub.database import get_db
from donatehub.models import Cause, User
from donatehub.schemas import CauseCreateRequest, CauseListResponse, CauseResponse, CauseUpdateRequest

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=CauseListResponse)
async def list_causes(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Cause)
        .where(Cause.is_active == True)  # noqa: E712
        .order_by(Cause.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return CauseListResponse(items=[CauseResponse.model_validate(c) for c in result.scalars().all()])


@router.get("/{cause_id}", response_model=CauseResponse)
async def get_cause(
    cause_id: int,
    db: AsyncSession = Depends(get_db),
):
    cause = await db.get(Cause, cause_id)
    if not cause:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cause not found")
    return cause


@router.post("", response_model=CauseResponse, status_code=status.HTTP_201_CREATED)
async def create_cause(
    payload: CauseCreateRequest,
    admin_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    cause = Cause(
        title=payload.title,
        description=payload.description,
        image_url=payload.image_url,
        goal_amount=payload.goal_amount,
        raised_amount=0,
        is_active=True,
        created_by=admin_user.id,
    )
    db.add(cause)
    await db.flush()
    await db.refresh(cause)
    logger.info("Cause %s created by %s", cause.id, admin_user.id)
    return cause


@router.patch("/{cause_id}", response_model=CauseResponse)
async def update_cause(
    cause_id: int,
    payload: CauseUpdateRequest,
    _: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    cause = await db.get(Cause, cause_id)
    if not cause:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cause not found")

    # raised_amount is not part of the update schema
    for field, value in payload.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(cause, field, value)
    await db.flush()
    await db.refresh(cause)
    return cause
