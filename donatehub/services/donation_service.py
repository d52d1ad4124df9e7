"""Donation initiation and payment reconciliation.

Flow: ``initiate_donation`` asks the chosen gateway for a checkout URL and
records a PENDING donation under a reference we generate. The gateway later
sends the donor back (or posts a webhook) and ``reconcile_donation`` asks the
same gateway for the authoritative outcome, moving the donation to COMPLETED
(crediting the cause once) or FAILED.
"""

import json
import logging
import secrets
import time
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Callable, Mapping, Optional
from urllib.parse import urlencode

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from donatehub.config import get_settings
from donatehub.errors import (
    CauseNotFound,
    DonationError,
    DonationNotFound,
    GatewayError,
    InvalidAmount,
    UnsupportedMethod,
    VerificationFailed,
)
from donatehub.models import Cause, Donation, DonationStatus, PaymentMethod, User
from donatehub.services import ledger_service, webhook_service
from donatehub.services.payment_service import (
    InitializeRequest,
    PaymentProvider,
    VerificationResult,
    get_payment_provider,
)
from donatehub.services.receipt_service import sign_receipt_url

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str], PaymentProvider]

PAYMENT_FAILED = "payment_failed"
MISSING_REFERENCE = "missing_reference"

FALLBACK_EMAIL = "anonymous@donation.com"
FALLBACK_NAME = "Anonymous Donor"


@dataclass
class DonationRequest:
    amount: Decimal
    cause_id: int
    payment_method: str
    donor_name: Optional[str] = None
    donor_email: Optional[str] = None
    is_anonymous: bool = False
    cause_name: Optional[str] = None


@dataclass
class InitiatedDonation:
    donation_id: str
    reference: str
    payment_url: str


@dataclass
class ReconcileOutcome:
    donation: Optional[Donation]
    error: Optional[str] = None
    credited: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


def generate_reference() -> str:
    return f"donate_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


def build_callback_url(method: str, reference: str) -> str:
    settings = get_settings()
    # Flutterwave appends tx_ref/transaction_id itself; Paystack appends reference/trxref.
    key = "tx_ref" if method == PaymentMethod.FLUTTERWAVE.value else "reference"
    return f"{settings.API_BASE_URL.rstrip('/')}/v1/payments/verify?{urlencode({key: reference})}"


def _normalize_amount(value) -> Decimal:
    """Validate the amount as given, then round it to cents."""
    settings = get_settings()
    try:
        raw = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmount("Amount must be a number")
    if not raw.is_finite():
        raise InvalidAmount("Amount must be a number")
    if raw < settings.MIN_DONATION_AMOUNT:
        raise InvalidAmount(f"Minimum donation amount is {settings.MIN_DONATION_AMOUNT}")
    if raw > settings.MAX_DONATION_AMOUNT:
        raise InvalidAmount(f"Maximum donation amount is {settings.MAX_DONATION_AMOUNT}")
    return raw.quantize(Decimal("0.01"))


async def initiate_donation(
    db: AsyncSession,
    request: DonationRequest,
    user: Optional[User] = None,
    get_provider: ProviderFactory = get_payment_provider,
) -> InitiatedDonation:
    settings = get_settings()

    amount = _normalize_amount(request.amount)

    result = await db.execute(
        select(Cause).where(Cause.id == request.cause_id, Cause.is_active == True)  # noqa: E712
    )
    cause = result.scalar_one_or_none()
    if cause is None:
        raise CauseNotFound()

    method = (request.payment_method or "").strip().upper()
    if method not in {m.value for m in PaymentMethod}:
        raise UnsupportedMethod()
    provider = get_provider(method)

    reference = generate_reference()
    gateway_email = request.donor_email or (user.email if user else None) or FALLBACK_EMAIL
    gateway_name = request.donor_name or (user.name if user else None) or FALLBACK_NAME

    intent = await provider.initialize(
        InitializeRequest(
            reference=reference,
            amount=amount,
            email=gateway_email,
            name=gateway_name,
            cause_title=request.cause_name or cause.title,
            callback_url=build_callback_url(method, reference),
            currency=settings.PAYMENT_CURRENCY,
        )
    )

    if request.is_anonymous:
        user_id, donor_name, donor_email = None, None, None
    elif user is not None:
        user_id, donor_name, donor_email = user.id, None, None
    else:
        user_id, donor_name, donor_email = None, request.donor_name, request.donor_email

    donation = Donation(
        amount=amount,
        currency=settings.PAYMENT_CURRENCY,
        payment_id=reference,
        payment_method=method,
        status=DonationStatus.PENDING.value,
        user_id=user_id,
        donor_name=donor_name,
        donor_email=donor_email,
        is_anonymous=bool(request.is_anonymous),
        cause_id=cause.id,
    )
    db.add(donation)
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        # The gateway already holds a checkout session for this reference.
        logger.error(
            "Orphaned %s transaction %s: donation row could not be stored",
            method, reference, exc_info=True,
        )
        raise

    logger.info("Donation %s pending via %s (ref %s, amount %s)", donation.id, method, reference, amount)
    return InitiatedDonation(donation_id=donation.id, reference=reference, payment_url=intent.redirect_url)


def _verification_problem(
    provider: PaymentProvider,
    donation: Donation,
    result: VerificationResult,
) -> Optional[str]:
    if not provider.is_successful(result.status):
        return f"gateway status {result.status or 'unknown'}"
    # a success without these fields cannot be tied to this donation
    if result.reference != donation.payment_id:
        return f"reference mismatch ({result.reference or 'missing'})"
    if result.amount is None or result.amount < Decimal(donation.amount):
        return f"amount mismatch ({result.amount if result.amount is not None else 'missing'} < {donation.amount})"
    if not result.currency or result.currency.upper() != donation.currency.upper():
        return f"currency mismatch ({result.currency or 'missing'})"
    return None


def _settled(donation: Donation, error: Optional[str], credited: bool = False) -> ReconcileOutcome:
    # After losing a race the donation shows whatever the winner wrote.
    if donation.status == DonationStatus.COMPLETED.value:
        return ReconcileOutcome(donation=donation, credited=credited)
    return ReconcileOutcome(donation=donation, error=error or PAYMENT_FAILED)


async def reconcile_donation(
    db: AsyncSession,
    reference: str,
    transaction_id: Optional[str] = None,
    get_provider: ProviderFactory = get_payment_provider,
) -> ReconcileOutcome:
    donation = await ledger_service.get_donation_by_reference(db, reference)
    if donation is None:
        logger.warning("Reconcile for unknown reference %s", reference)
        return ReconcileOutcome(donation=None, error=DonationNotFound.code)

    if donation.status == DonationStatus.COMPLETED.value:
        return ReconcileOutcome(donation=donation)
    if donation.status == DonationStatus.FAILED.value:
        return ReconcileOutcome(donation=donation, error=PAYMENT_FAILED)

    provider = get_provider(donation.payment_method)
    try:
        result = await provider.verify(reference, transaction_id)
    except GatewayError as exc:
        logger.warning("Verification of %s via %s failed: %s", reference, provider.name, exc.reason)
        await ledger_service.record_payment_event(
            db, provider.name, "verification.error", reference, donation.id, {"reason": exc.reason}
        )
        await ledger_service.fail_donation(db, donation)
        return _settled(donation, VerificationFailed.code)

    problem = _verification_problem(provider, donation, result)
    if problem:
        logger.info("Payment %s not accepted: %s", reference, problem)
        await ledger_service.record_payment_event(
            db, provider.name, "verification.rejected", reference, donation.id,
            {"reason": problem, "gateway": result.raw},
        )
        await ledger_service.fail_donation(db, donation)
        return _settled(donation, PAYMENT_FAILED)

    credited = await ledger_service.complete_donation(db, donation, result.transaction_id)
    await ledger_service.record_payment_event(
        db, provider.name, "verification.success", reference, donation.id,
        {"credited": credited, "gateway": result.raw},
    )
    return _settled(donation, PAYMENT_FAILED, credited=credited)


async def handle_webhook(
    db: AsyncSession,
    provider: str,
    raw_body: bytes,
    headers: Mapping[str, str],
    get_provider: ProviderFactory = get_payment_provider,
) -> Optional[ReconcileOutcome]:
    """Authenticate a gateway webhook, log it, and reconcile on completion events.

    The webhook body is never trusted for the outcome itself; reconciliation
    asks the gateway again.
    """
    provider = webhook_service.normalize_provider(provider)
    webhook_service.verify_signature(provider, raw_body, headers)

    try:
        payload = json.loads(raw_body or b"{}")
    except ValueError:
        raise DonationError("Invalid webhook payload")
    if not isinstance(payload, dict):
        raise DonationError("Invalid webhook payload")

    event = webhook_service.parse_event(provider, payload)
    donation = None
    if event.reference:
        donation = await ledger_service.get_donation_by_reference(db, event.reference)
    await ledger_service.record_payment_event(
        db,
        provider,
        f"webhook.{event.event_type or 'unknown'}",
        event.reference,
        donation.id if donation is not None else None,
        payload,
    )

    if not event.is_completion or donation is None:
        return None
    return await reconcile_donation(db, event.reference, event.transaction_id, get_provider)


def outcome_redirect_url(outcome: ReconcileOutcome) -> str:
    settings = get_settings()
    base = settings.FRONTEND_URL.rstrip("/")
    if outcome.ok and outcome.donation is not None:
        _, exp, sig = sign_receipt_url(outcome.donation.id)
        return f"{base}/profile/receipt/{outcome.donation.id}?{urlencode({'exp': exp, 'sig': sig})}"
    return error_redirect_url(outcome.error or PAYMENT_FAILED)


def error_redirect_url(code: str) -> str:
    settings = get_settings()
    return f"{settings.FRONTEND_URL.rstrip('/')}/?{urlencode({'error': code})}"
