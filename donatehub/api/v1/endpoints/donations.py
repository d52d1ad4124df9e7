"""v1 donation history and receipt endpoints."""

from io import BytesIO
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from donatehub.core.dependencies import get_current_user, get_optional_user
from donatehub.database import get_db
from donatehub.models import Donation, DonationStatus, User
from donatehub.schemas import DonationHistoryResponse, DonationResponse, DonorSummary
from donatehub.services.ledger_service import donor_summary, get_donation, list_user_donations
from donatehub.services.receipt_service import ReceiptData, render_receipt_pdf, verify_receipt_signature

router = APIRouter()


def _donation_response(d: Donation) -> DonationResponse:
    return DonationResponse(
        id=d.id,
        amount=d.amount,
        currency=d.currency,
        payment_id=d.payment_id,
        payment_method=d.payment_method,
        status=d.status,
        is_anonymous=bool(d.is_anonymous),
        cause_id=d.cause_id,
        cause_title=d.cause.title if d.cause is not None else None,
        created_at=d.created_at,
        completed_at=d.completed_at,
    )


@router.get("/me", response_model=DonationHistoryResponse)
async def my_donations(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_user_donations(db, current_user.id, limit=limit, offset=offset)
    summary = await donor_summary(db, current_user.id)
    return DonationHistoryResponse(
        summary=DonorSummary(**summary),
        items=[_donation_response(d) for d in rows],
    )


@router.get("/receipt/{donation_id}/pdf")
async def download_receipt(
    donation_id: str,
    exp: Optional[int] = Query(default=None),
    sig: Optional[str] = Query(default=None),
    current_user: Optional[User] = Depends(get_optional_user),
    db: AsyncSession = Depends(get_db),
):
    signed = exp is not None and sig is not None and verify_receipt_signature(donation_id, exp, sig)
    if not signed and current_user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    donation = await get_donation(db, donation_id)
    if donation is None or donation.status != DonationStatus.COMPLETED.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donation not found")
    if not signed and current_user.role != "admin" and donation.user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Donation not found")

    pdf_bytes = render_receipt_pdf(ReceiptData.from_donation(donation))
    return StreamingResponse(
        BytesIO(pdf_bytes),
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="donation-receipt-{donation.id}.pdf"'},
    )
