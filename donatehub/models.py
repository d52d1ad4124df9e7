"""SQLAlchemy database models for DonateHub."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from donatehub.database import Base

JSONPayload = JSON().with_variant(JSONB(), "postgresql")


class DonationStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class PaymentMethod(str, Enum):
    FLUTTERWAVE = "FLUTTERWAVE"
    PAYSTACK = "PAYSTACK"


def _new_donation_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Registered donor or administrator."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), default="donor")  # donor | admin
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    donations = relationship("Donation", back_populates="user")
    causes = relationship("Cause", back_populates="creator")


class Cause(Base):
    """Fundraising target with a goal and a running raised total."""

    __tablename__ = "causes"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    image_url = Column(String(500), nullable=True)
    goal_amount = Column(Numeric(12, 2), nullable=False)
    # Only the reconcile success path changes this column.
    raised_amount = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    creator = relationship("User", back_populates="causes")
    donations = relationship("Donation", back_populates="cause")

    __table_args__ = (
        CheckConstraint("goal_amount > 0", name="ck_cause_goal_positive"),
        CheckConstraint("raised_amount >= 0", name="ck_cause_raised_non_negative"),
    )


class Donation(Base):
    """Ledger entry for one attempted contribution. Never deleted."""

    __tablename__ = "donations"

    id = Column(String(32), primary_key=True, default=_new_donation_id)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False)
    payment_id = Column(String(100), unique=True, index=True, nullable=False)
    payment_method = Column(String(20), nullable=False)
    provider_transaction_id = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default=DonationStatus.PENDING.value)

    # Donor: authenticated user, guest name/email, or fully anonymous.
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    donor_name = Column(String(255), nullable=True)
    donor_email = Column(String(255), nullable=True)
    is_anonymous = Column(Boolean, nullable=False, default=False)

    cause_id = Column(Integer, ForeignKey("causes.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("User", back_populates="donations")
    cause = relationship("Cause", back_populates="donations")
    events = relationship("PaymentEvent", back_populates="donation")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_donation_amount_positive"),
        CheckConstraint(
            "status IN ('PENDING', 'COMPLETED', 'FAILED')",
            name="ck_donation_status",
        ),
        CheckConstraint(
            "user_id IS NULL OR (donor_name IS NULL AND donor_email IS NULL)",
            name="ck_donation_single_donor_shape",
        ),
        CheckConstraint(
            "NOT is_anonymous OR (user_id IS NULL AND donor_name IS NULL AND donor_email IS NULL)",
            name="ck_donation_anonymous_has_no_identity",
        ),
        Index("idx_donation_user_created", "user_id", "created_at"),
        Index("idx_donation_cause_status", "cause_id", "status"),
    )

    @property
    def donor_shape(self) -> str:
        if self.is_anonymous:
            return "anonymous"
        if self.user_id is not None:
            return "user"
        return "guest"


class PaymentEvent(Base):
    """Append-only audit of gateway interactions (webhooks, verifications)."""

    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, index=True)
    donation_id = Column(String(32), ForeignKey("donations.id"), nullable=True)
    provider = Column(String(20), nullable=False)
    event_type = Column(String(100), nullable=False)
    reference = Column(String(100), nullable=True)
    payload = Column(JSONPayload, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    donation = relationship("Donation", back_populates="events")

    __table_args__ = (
        Index("idx_payment_event_reference", "reference", "created_at"),
    )
