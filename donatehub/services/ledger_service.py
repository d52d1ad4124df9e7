"""Donation ledger operations.

Status changes are conditional updates (``WHERE status = 'PENDING'``) so a
donation leaves PENDING at most once no matter how many callers race on it.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy import distinct, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from donatehub.models import Cause, Donation, DonationStatus, PaymentEvent

logger = logging.getLogger(__name__)

# Column attributes reloaded after a conditional update; relationships stay as loaded.
STATUS_ATTRS = ["status", "completed_at", "provider_transaction_id", "updated_at"]


async def get_donation(db: AsyncSession, donation_id: str) -> Optional[Donation]:
    result = await db.execute(
        select(Donation)
        .options(selectinload(Donation.cause), selectinload(Donation.user))
        .where(Donation.id == donation_id)
    )
    return result.scalar_one_or_none()


async def get_donation_by_reference(db: AsyncSession, reference: str) -> Optional[Donation]:
    result = await db.execute(
        select(Donation)
        .options(selectinload(Donation.cause), selectinload(Donation.user))
        .where(Donation.payment_id == reference)
    )
    return result.scalar_one_or_none()


async def complete_donation(
    db: AsyncSession,
    donation: Donation,
    provider_transaction_id: Optional[str] = None,
) -> bool:
    """PENDING -> COMPLETED and credit the cause, in one transaction.

    Returns False when another caller already moved the donation out of
    PENDING; in that case nothing is written.
    """
    now = datetime.utcnow()
    values = {
        "status": DonationStatus.COMPLETED.value,
        "completed_at": now,
        "updated_at": now,
    }
    if provider_transaction_id:
        values["provider_transaction_id"] = provider_transaction_id

    try:
        result = await db.execute(
            update(Donation)
            .where(Donation.id == donation.id, Donation.status == DonationStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.commit()
            await db.refresh(donation, STATUS_ATTRS)
            return False

        await db.execute(
            update(Cause)
            .where(Cause.id == donation.cause_id)
            .values(raised_amount=Cause.raised_amount + donation.amount, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(donation, STATUS_ATTRS)
    if donation.cause is not None:
        await db.refresh(donation.cause, ["raised_amount", "updated_at"])
    logger.info(
        "Donation %s completed; cause %s credited %s",
        donation.id, donation.cause_id, donation.amount,
    )
    return True


async def fail_donation(db: AsyncSession, donation: Donation) -> bool:
    """PENDING -> FAILED. Returns False if the donation was no longer PENDING."""
    try:
        result = await db.execute(
            update(Donation)
            .where(Donation.id == donation.id, Donation.status == DonationStatus.PENDING.value)
            .values(status=DonationStatus.FAILED.value, updated_at=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(donation, STATUS_ATTRS)
    if result.rowcount != 1:
        return False
    logger.info("Donation %s marked failed", donation.id)
    return True


async def record_payment_event(
    db: AsyncSession,
    provider: str,
    event_type: str,
    reference: Optional[str] = None,
    donation_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> PaymentEvent:
    event = PaymentEvent(
        provider=provider,
        event_type=event_type,
        reference=reference,
        donation_id=donation_id,
        payload=payload,
    )
    db.add(event)
    await db.commit()
    return event


async def list_user_donations(
    db: AsyncSession,
    user_id: int,
    limit: int = 50,
    offset: int = 0,
) -> List[Donation]:
    result = await db.execute(
        select(Donation)
        .options(selectinload(Donation.cause))
        .where(Donation.user_id == user_id, Donation.status == DonationStatus.COMPLETED.value)
        .order_by(Donation.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all())


async def donor_summary(db: AsyncSession, user_id: int) -> Dict[str, Any]:
    result = await db.execute(
        select(
            func.coalesce(func.sum(Donation.amount), 0),
            func.count(Donation.id),
            func.count(distinct(Donation.cause_id)),
        ).where(Donation.user_id == user_id, Donation.status == DonationStatus.COMPLETED.value)
    )
    total, count, causes = result.one()
    return {
        "total_donated": Decimal(str(total or 0)),
        "total_donations": int(count or 0),
        "causes_supported": int(causes or 0),
    }
