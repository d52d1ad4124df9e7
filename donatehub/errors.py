"""Domain errors raised by the donation flow.

Each error carries a stable ``code`` (used in JSON bodies and redirect query
strings) and the HTTP status the API layer answers with.
"""

from typing import Optional

from fastapi import status


class DonationError(Exception):
    code = "donation_error"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Donation request failed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class InvalidAmount(DonationError):
    code = "invalid_amount"
    message = "Minimum donation amount is 1"


class CauseNotFound(DonationError):
    code = "cause_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Cause not found or inactive"


class UnsupportedMethod(DonationError):
    code = "unsupported_method"
    message = "Invalid payment method"


class GatewayError(DonationError):
    code = "gateway_error"
    status_code = status.HTTP_502_BAD_GATEWAY
    message = "Payment gateway request failed"

    def __init__(self, reason: Optional[str] = None, provider: Optional[str] = None):
        self.reason = reason or self.message
        self.provider = provider
        super().__init__(self.reason)


class DonationNotFound(DonationError):
    code = "donation_not_found"
    status_code = status.HTTP_404_NOT_FOUND
    message = "Donation not found"


class VerificationFailed(DonationError):
    code = "verification_failed"
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    message = "Payment verification failed"


class GenerationFailed(DonationError):
    code = "generation_failed"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "PDF generation failed"


class InvalidWebhookSignature(DonationError):
    code = "invalid_signature"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid webhook signature"
