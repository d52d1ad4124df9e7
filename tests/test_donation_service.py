import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from donatehub.database import AsyncSessionLocal
from donatehub.errors import CauseNotFound, GatewayError, InvalidAmount, UnsupportedMethod
from donatehub.models import Donation, DonationStatus, PaymentEvent
from donatehub.services.donation_service import (
    DonationRequest,
    initiate_donation,
    outcome_redirect_url,
    reconcile_donation,
)
from donatehub.services.ledger_service import get_donation_by_reference
from donatehub.services.receipt_service import ReceiptData
from helpers import StubProvider, create_cause, create_user, get_cause


def _factory(provider):
    return lambda method: provider


async def _count(model):
    async with AsyncSessionLocal() as db:
        return (await db.execute(select(func.count()).select_from(model))).scalar_one()


async def _initiate(provider, cause_id, amount="50", method="PAYSTACK", user=None, **donor):
    async with AsyncSessionLocal() as db:
        return await initiate_donation(
            db,
            DonationRequest(amount=Decimal(amount), cause_id=cause_id, payment_method=method, **donor),
            user=user,
            get_provider=_factory(provider),
        )


async def _reconcile(provider, reference, transaction_id=None):
    async with AsyncSessionLocal() as db:
        return await reconcile_donation(db, reference, transaction_id, get_provider=_factory(provider))


async def _load(reference):
    async with AsyncSessionLocal() as db:
        return await get_donation_by_reference(db, reference)


@pytest.mark.parametrize("amount", ["0", "0.5", "0.99", "0.995", "0.999", "-10"])
def test_initiate_rejects_amounts_below_minimum(stub, amount):
    async def scenario():
        cause_id = await create_cause()
        with pytest.raises(InvalidAmount):
            await _initiate(stub, cause_id, amount=amount)
        assert await _count(Donation) == 0

    asyncio.run(scenario())
    assert stub.initialized == []


def test_initiate_rejects_missing_and_inactive_causes(stub):
    async def scenario():
        inactive_id = await create_cause(is_active=False)
        with pytest.raises(CauseNotFound):
            await _initiate(stub, 9999)
        with pytest.raises(CauseNotFound):
            await _initiate(stub, inactive_id)
        assert await _count(Donation) == 0

    asyncio.run(scenario())


def test_initiate_rejects_unknown_payment_method(stub):
    async def scenario():
        cause_id = await create_cause()
        with pytest.raises(UnsupportedMethod):
            await _initiate(stub, cause_id, method="PAYPAL")

    asyncio.run(scenario())


def test_initiate_records_one_pending_donation_under_gateway_reference(stub):
    async def scenario():
        cause_id = await create_cause()
        initiated = await _initiate(stub, cause_id, donor_name="Kofi", donor_email="kofi@example.com")
        assert await _count(Donation) == 1
        return initiated, await _load(initiated.reference)

    initiated, donation = asyncio.run(scenario())

    assert len(stub.initialized) == 1
    sent = stub.initialized[0]
    assert sent.reference == initiated.reference == donation.payment_id
    assert sent.amount == Decimal("50.00")
    assert sent.email == "kofi@example.com"
    assert sent.cause_title == "Clean Water"
    assert sent.callback_url == f"http://api.test/v1/payments/verify?reference={initiated.reference}"
    assert initiated.payment_url == f"https://checkout.test/{initiated.reference}"
    assert donation.status == DonationStatus.PENDING.value
    assert donation.donor_name == "Kofi"
    assert donation.donor_email == "kofi@example.com"
    assert donation.currency == "GHS"
    assert donation.donor_shape == "guest"


def test_flutterwave_callback_uses_tx_ref():
    provider = StubProvider(name="FLUTTERWAVE")

    async def scenario():
        cause_id = await create_cause()
        return await _initiate(provider, cause_id, method="flutterwave")

    initiated = asyncio.run(scenario())
    assert provider.initialized[0].callback_url.endswith(f"?tx_ref={initiated.reference}")


def test_initiate_gateway_failure_writes_nothing():
    provider = StubProvider(init_error="Invalid key")

    async def scenario():
        cause_id = await create_cause()
        with pytest.raises(GatewayError) as exc_info:
            await _initiate(provider, cause_id)
        assert exc_info.value.reason == "Invalid key"
        assert await _count(Donation) == 0

    asyncio.run(scenario())


def test_authenticated_donor_is_stored_by_reference_only(stub):
    async def scenario():
        cause_id = await create_cause()
        user = await create_user()
        initiated = await _initiate(stub, cause_id, user=user)
        return user, await _load(initiated.reference)

    user, donation = asyncio.run(scenario())
    assert donation.user_id == user.id
    assert donation.donor_name is None and donation.donor_email is None
    assert donation.donor_shape == "user"
    assert stub.initialized[0].email == user.email


def test_anonymous_donation_drops_identity_and_renders_anonymous(stub):
    async def scenario():
        cause_id = await create_cause()
        user = await create_user()
        initiated = await _initiate(
            stub, cause_id, user=user, donor_name="Kofi", donor_email="kofi@example.com", is_anonymous=True,
        )
        await _reconcile(stub, initiated.reference)
        return await _load(initiated.reference)

    donation = asyncio.run(scenario())
    assert donation.is_anonymous
    assert donation.user_id is None
    assert donation.donor_name is None
    assert donation.donor_email is None
    assert donation.donor_shape == "anonymous"

    rows = dict(ReceiptData.from_donation(donation).rows())
    assert rows["Donor Name:"] == "Anonymous"
    assert rows["Email:"] == "N/A"


def test_reconcile_unknown_reference_mutates_nothing(stub):
    async def scenario():
        await create_cause()
        outcome = await _reconcile(stub, "donate_missing")
        assert await _count(PaymentEvent) == 0
        return outcome

    outcome = asyncio.run(scenario())
    assert outcome.error == "donation_not_found"
    assert outcome.donation is None
    assert stub.verified == []
    assert outcome_redirect_url(outcome) == "http://frontend.test/?error=donation_not_found"


def test_successful_reconcile_credits_cause_exactly_once(stub):
    async def scenario():
        cause_id = await create_cause(goal=Decimal("1000"))
        initiated = await _initiate(stub, cause_id, amount="50")
        assert (await _load(initiated.reference)).status == DonationStatus.PENDING.value

        first = await _reconcile(stub, initiated.reference)
        raised_after_first = (await get_cause(cause_id)).raised_amount
        second = await _reconcile(stub, initiated.reference)
        cause = await get_cause(cause_id)
        return first, second, raised_after_first, cause, await _load(initiated.reference)

    first, second, raised_after_first, cause, donation = asyncio.run(scenario())

    assert first.ok and first.credited
    assert second.ok and not second.credited
    assert raised_after_first == Decimal("50")
    assert cause.raised_amount == Decimal("50")
    assert donation.status == DonationStatus.COMPLETED.value
    assert donation.completed_at is not None
    assert donation.provider_transaction_id == "tx-1001"
    # the second callback short-circuits without asking the gateway again
    assert len(stub.verified) == 1

    redirect = outcome_redirect_url(second)
    assert redirect.startswith(f"http://frontend.test/profile/receipt/{donation.id}?exp=")
    assert "sig=" in redirect


def test_non_success_status_marks_failed_and_leaves_total():
    provider = StubProvider(status="abandoned")

    async def scenario():
        cause_id = await create_cause()
        initiated = await _initiate(provider, cause_id)
        outcome = await _reconcile(provider, initiated.reference)
        return outcome, await get_cause(cause_id), await _load(initiated.reference)

    outcome, cause, donation = asyncio.run(scenario())
    assert outcome.error == "payment_failed"
    assert donation.status == DonationStatus.FAILED.value
    assert cause.raised_amount == Decimal("0")
    assert outcome_redirect_url(outcome) == "http://frontend.test/?error=payment_failed"


def test_verification_call_failure_marks_failed():
    provider = StubProvider(verify_error="Payment gateway timed out")

    async def scenario():
        cause_id = await create_cause()
        initiated = await _initiate(provider, cause_id)
        outcome = await _reconcile(provider, initiated.reference)
        return outcome, await get_cause(cause_id), await _load(initiated.reference)

    outcome, cause, donation = asyncio.run(scenario())
    assert outcome.error == "verification_failed"
    assert donation.status == DonationStatus.FAILED.value
    assert cause.raised_amount == Decimal("0")


def test_underpaid_verification_is_rejected():
    provider = StubProvider(amount=Decimal("10"), currency="GHS")

    async def scenario():
        cause_id = await create_cause()
        initiated = await _initiate(provider, cause_id, amount="50")
        outcome = await _reconcile(provider, initiated.reference)
        return outcome, await get_cause(cause_id)

    outcome, cause = asyncio.run(scenario())
    assert outcome.error == "payment_failed"
    assert cause.raised_amount == Decimal("0")


def test_failed_donation_never_completes():
    provider = StubProvider(status="failed")

    async def scenario():
        cause_id = await create_cause()
        initiated = await _initiate(provider, cause_id)
        await _reconcile(provider, initiated.reference)
        provider.status = "success"
        outcome = await _reconcile(provider, initiated.reference)
        return outcome, await get_cause(cause_id), await _load(initiated.reference)

    outcome, cause, donation = asyncio.run(scenario())
    assert outcome.error == "payment_failed"
    assert donation.status == DonationStatus.FAILED.value
    assert cause.raised_amount == Decimal("0")
    assert len(provider.verified) == 1


def test_racing_reconciles_credit_cause_once(stub):
    async def scenario():
        cause_id = await create_cause()
        initiated = await _initiate(stub, cause_id, amount="50")
        inner = {}

        async def duplicate_delivery():
            # second callback arrives while the first is still waiting on the gateway
            inner["outcome"] = await _reconcile(stub, initiated.reference)

        stub.before_verify = duplicate_delivery
        outer = await _reconcile(stub, initiated.reference)
        return outer, inner["outcome"], await get_cause(cause_id)

    outer, inner, cause = asyncio.run(scenario())
    assert len(stub.verified) == 2
    assert inner.ok and inner.credited
    assert outer.ok and not outer.credited
    assert cause.raised_amount == Decimal("50")


@pytest.mark.parametrize("amount", ["10000000000", "9999999999.999", "1e30"])
def test_initiate_rejects_amounts_the_ledger_cannot_hold(stub, amount):
    async def scenario():
        cause_id = await create_cause()
        with pytest.raises(InvalidAmount):
            await _initiate(stub, cause_id, amount=amount)
        assert await _count(Donation) == 0

    asyncio.run(scenario())
    assert stub.initialized == []


def test_initiate_accepts_sub_cent_amount_at_minimum(stub):
    async def scenario():
        cause_id = await create_cause()
        initiated = await _initiate(stub, cause_id, amount="1.004")
        return await _load(initiated.reference)

    donation = asyncio.run(scenario())
    assert donation.amount == Decimal("1.00")


@pytest.mark.parametrize("field", ["reference", "amount", "currency"])
def test_success_missing_identifying_field_is_rejected(field):
    provider = StubProvider(omit=[field])

    async def scenario():
        cause_id = await create_cause()
        initiated = await _initiate(provider, cause_id)
        outcome = await _reconcile(provider, initiated.reference)
        return outcome, await get_cause(cause_id), await _load(initiated.reference)

    outcome, cause, donation = asyncio.run(scenario())
    assert outcome.error == "payment_failed"
    assert donation.status == DonationStatus.FAILED.value
    assert cause.raised_amount == Decimal("0")
