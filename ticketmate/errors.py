"""
API error types. Each maps to an HTTP status and is rendered by the app's
error handlers as ``{"success": false, "message": ..., "errors": [...]}``.
"""
from typing import List, Optional


class ApiError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[str]] = None,
                 data: Optional[dict] = None):
        self.message = message or self.default_message
        self.errors = errors
        self.data = data
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "message": self.message}
        if self.errors:
            body["errors"] = self.errors
        if self.data:
            body.update(self.data)
        return body


class ValidationError(ApiError):
    status_code = 400
    default_message = "Validation failed"


class InvalidRequest(ValidationError):
    default_message = "Invalid request"


class TicketTypeNotFound(ValidationError):
    def __init__(self, requested: str, available: List[str]):
        self.requested = requested
        self.available = available
        listed = ", ".join(available) if available else "none"
        super().__init__(
            f'Ticket type "{requested}" not found for this event. Available types: {listed}'
        )


class InvalidSignature(ApiError):
    status_code = 400
    default_message = "Invalid webhook signature"


class PaymentFailed(ApiError):
    status_code = 400
    default_message = "Payment failed"


class TooManyAttempts(ApiError):
    status_code = 400
    default_message = "Too many failed attempts. Please request a new OTP"


class InvalidOtp(ApiError):
    status_code = 400
    default_message = "Invalid OTP"

    def __init__(self, remaining_attempts: int):
        self.remaining_attempts = remaining_attempts
        super().__init__(data={"remainingAttempts": remaining_attempts})


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Insufficient permissions"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class EventNotFound(NotFound):
    default_message = "Event not found"


class BookingNotFound(NotFound):
    default_message = "Booking not found"


class OtpNotFound(NotFound):
    default_message = "Invalid or expired OTP"


class Conflict(ApiError):
    status_code = 409
    default_message = "Resource already exists"


class UpstreamUnavailable(ApiError):
    status_code = 500
    default_message = "Upstream service unavailable"


class PaymentGatewayUnavailable(UpstreamUnavailable):
    default_message = "Payment gateway unavailable"


class SmsDeliveryError(UpstreamUnavailable):
    default_message = "Failed to send SMS"
