"""Donation receipt PDF generator and signed receipt download links."""

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from io import BytesIO
from typing import Optional, Tuple

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from donatehub.config import get_settings
from donatehub.errors import GenerationFailed
from donatehub.models import Donation, DonationStatus

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class ReceiptData:
    receipt_id: str
    created_at: datetime
    donor_name: Optional[str]
    donor_email: Optional[str]
    cause_title: str
    amount: Decimal
    currency: str
    payment_method: str
    payment_reference: str
    status: str

    @classmethod
    def from_donation(cls, donation: Donation) -> "ReceiptData":
        name, email = donation.donor_name, donation.donor_email
        if donation.user is not None and not donation.is_anonymous:
            name, email = donation.user.name, donation.user.email
        return cls(
            receipt_id=donation.id,
            created_at=donation.created_at,
            donor_name=name,
            donor_email=email,
            cause_title=donation.cause.title if donation.cause is not None else "-",
            amount=Decimal(donation.amount),
            currency=donation.currency,
            payment_method=donation.payment_method,
            payment_reference=donation.payment_id,
            status=donation.status,
        )

    def rows(self):
        return [
            ("Receipt #:", self.receipt_id),
            ("Date:", self.created_at.strftime("%B %d, %Y")),
            ("Donor Name:", self.donor_name or "Anonymous"),
            ("Email:", self.donor_email or "N/A"),
            ("Cause:", self.cause_title),
            ("Amount:", f"{self.currency} {Decimal(self.amount):.2f}"),
            ("Payment Method:", self.payment_method),
            ("Payment ID:", self.payment_reference),
            ("Status:", self.status),
        ]


def render_receipt_pdf(data: ReceiptData) -> bytes:
    """Single-page receipt. Same input gives the same bytes."""
    if data.status != DonationStatus.COMPLETED.value:
        raise GenerationFailed("Receipts are only issued for completed donations")

    try:
        buffer = BytesIO()
        # invariant=1 pins the creation date and document id
        c = canvas.Canvas(buffer, pagesize=A4, invariant=1, pageCompression=0)
        width, height = A4
        c.setTitle(f"Donation receipt {data.receipt_id}")

        c.setFont("Times-Bold", 20)
        c.drawCentredString(width / 2, height - 50, "DONATION RECEIPT")

        y = height - 120
        for label, value in data.rows():
            c.setFont("Times-Bold", 12)
            c.drawString(50, y, label)
            c.setFont("Times-Roman", 12)
            c.drawString(200, y, str(value))
            y -= 25

        c.setFont("Times-Bold", 14)
        c.drawCentredString(width / 2, 100, "Thank you for your generous donation!")
        c.setFont("Times-Roman", 12)
        c.drawCentredString(width / 2, 80, "This receipt is for your records.")

        c.showPage()
        c.save()
    except Exception as exc:
        logger.exception("Receipt generation failed for %s", data.receipt_id)
        raise GenerationFailed() from exc
    return buffer.getvalue()


def _receipt_secret() -> bytes:
    return (settings.RECEIPT_URL_SECRET or settings.SECRET_KEY).encode("utf-8")


def make_receipt_signature(donation_id: str, exp: int) -> str:
    payload = f"receipt:{donation_id}:{exp}".encode("utf-8")
    return hmac.new(_receipt_secret(), payload, hashlib.sha256).hexdigest()


def sign_receipt_url(donation_id: str, expires_in: Optional[int] = None) -> Tuple[str, int, str]:
    exp = int(time.time()) + int(expires_in or settings.RECEIPT_URL_EXPIRE_SECONDS)
    sig = make_receipt_signature(donation_id, exp)
    url = f"/v1/donations/receipt/{donation_id}/pdf?exp={exp}&sig={sig}"
    return url, exp, sig


def verify_receipt_signature(donation_id: str, exp: int, sig: str) -> bool:
    if exp < int(time.time()):
        return False
    expected = make_receipt_signature(donation_id, exp)
    return hmac.compare_digest(expected.encode("utf-8"), sig.encode("utf-8", "surrogateescape"))
