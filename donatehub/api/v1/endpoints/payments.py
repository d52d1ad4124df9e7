"""v1 payment endpoints: initialize, gateway callback, webhooks."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from donatehub.core.dependencies import get_optional_user, get_provider_factory
from donatehub.core.rate_limit import limit_donation_initiation
from donatehub.database import get_db
from donatehub.models import User
from donatehub.schemas import InitializePaymentRequest, InitializePaymentResponse, WebhookAckResponse
from donatehub.services.donation_service import (
    MISSING_REFERENCE,
    DonationRequest,
    ProviderFactory,
    error_redirect_url,
    handle_webhook,
    initiate_donation,
    outcome_redirect_url,
    reconcile_donation,
)

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/initialize",
    response_model=InitializePaymentResponse,
    dependencies=[Depends(limit_donation_initiation)],
)
async def initialize_payment(
    payload: InitializePaymentRequest,
    current_user: Optional[User] = Depends(get_optional_user),
    get_provider: ProviderFactory = Depends(get_provider_factory),
    db: AsyncSession = Depends(get_db),
):
    initiated = await initiate_donation(
        db,
        DonationRequest(
            amount=payload.amount,
            cause_id=payload.cause_id,
            payment_method=payload.payment_method,
            donor_name=payload.donor_name,
            donor_email=str(payload.donor_email) if payload.donor_email else None,
            is_anonymous=payload.is_anonymous,
            cause_name=payload.cause_name,
        ),
        user=current_user,
        get_provider=get_provider,
    )
    return InitializePaymentResponse(payment_url=initiated.payment_url, reference=initiated.reference)


@router.get("/verify")
async def verify_payment(
    tx_ref: Optional[str] = Query(default=None),
    reference: Optional[str] = Query(default=None),
    trxref: Optional[str] = Query(default=None),
    transaction_id: Optional[str] = Query(default=None),
    status: Optional[str] = Query(default=None),
    get_provider: ProviderFactory = Depends(get_provider_factory),
    db: AsyncSession = Depends(get_db),
):
    """Gateway return URL. Always answers with a redirect to the frontend."""
    ref = tx_ref or reference or trxref
    if not ref:
        return RedirectResponse(error_redirect_url(MISSING_REFERENCE), status_code=302)

    # The gateway's own query status is informational; verification decides.
    logger.info("Payment callback for %s (status=%s, transaction_id=%s)", ref, status, transaction_id)
    try:
        outcome = await reconcile_donation(db, ref, transaction_id, get_provider)
    except Exception:
        logger.exception("Payment verification error for %s", ref)
        return RedirectResponse(error_redirect_url("internal_error"), status_code=302)
    return RedirectResponse(outcome_redirect_url(outcome), status_code=302)


@router.post("/webhook/{provider}", response_model=WebhookAckResponse)
async def payment_webhook(
    provider: str,
    request: Request,
    get_provider: ProviderFactory = Depends(get_provider_factory),
    db: AsyncSession = Depends(get_db),
):
    raw_body = await request.body()
    outcome = await handle_webhook(db, provider, raw_body, request.headers, get_provider)
    if outcome is not None and not outcome.ok:
        logger.info("Webhook reconcile for %s ended with %s", provider, outcome.error)
    return WebhookAckResponse()
