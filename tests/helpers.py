from decimal import Decimal

from donatehub.database import AsyncSessionLocal
from donatehub.errors import GatewayError
from donatehub.models import Cause, User
from donatehub.services.payment_service import PaymentIntent, PaymentProvider, VerificationResult


class StubProvider(PaymentProvider):
    """Scripted gateway: records calls, answers with a fixed status.

    Verification reports the amount and currency the checkout was opened with
    unless overridden; fields named in ``omit`` come back empty.
    """

    def __init__(
        self, name="PAYSTACK", status=None, verify_error=None, init_error=None, amount=None, currency=None, omit=(),
    ):
        super().__init__(secret_key="sk_stub", base_url="http://gateway.test")
        self.name = name
        self.success_status = "successful" if name == "FLUTTERWAVE" else "success"
        self.status = status or self.success_status
        self.verify_error = verify_error
        self.init_error = init_error
        self.amount = amount
        self.currency = currency
        self.omit = set(omit)
        self.charged = {}
        self.initialized = []
        self.verified = []
        self.before_verify = None

    async def initialize(self, request):
        self.initialized.append(request)
        self.charged[request.reference] = (request.amount, request.currency)
        if self.init_error:
            raise GatewayError(self.init_error, provider=self.name)
        return PaymentIntent(
            provider=self.name,
            reference=request.reference,
            redirect_url=f"https://checkout.test/{request.reference}",
        )

    async def verify(self, reference, transaction_id=None):
        self.verified.append((reference, transaction_id))
        if self.before_verify is not None:
            hook, self.before_verify = self.before_verify, None
            await hook()
        if self.verify_error:
            raise GatewayError(self.verify_error, provider=self.name)
        charged_amount, charged_currency = self.charged.get(reference, (None, None))
        reported = {
            "reference": reference,
            "amount": self.amount if self.amount is not None else charged_amount,
            "currency": self.currency or charged_currency,
        }
        for field in self.omit:
            reported[field] = None
        return VerificationResult(
            provider=self.name,
            status=self.status,
            transaction_id="tx-1001",
            **reported,
            raw={"status": "success", "data": {"status": self.status, "reference": reference}},
        )


async def create_cause(goal=Decimal("1000"), is_active=True, title="Clean Water"):
    async with AsyncSessionLocal() as db:
        cause = Cause(
            title=title,
            description="Wells for rural schools",
            goal_amount=goal,
            raised_amount=Decimal("0"),
            is_active=is_active,
        )
        db.add(cause)
        await db.commit()
        return cause.id


async def get_cause(cause_id):
    async with AsyncSessionLocal() as db:
        return await db.get(Cause, cause_id)


async def create_user(email="ama@example.com", name="Ama Mensah", role="donor"):
    async with AsyncSessionLocal() as db:
        user = User(name=name, email=email, hashed_password="x", role=role)
        db.add(user)
        await db.commit()
        return user
