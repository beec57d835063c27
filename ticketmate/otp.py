import hmac
import secrets
from typing import Dict

from botocore.exceptions import ClientError

from .app_logger import get_logger
from .config import OTP_MAX_ATTEMPTS, OTP_TTL_SECONDS
from .errors import InvalidOtp, OtpNotFound, SmsDeliveryError, TooManyAttempts
from .models import OtpRecord

logger = get_logger(__name__)


def generate_otp() -> str:
    """Six digits, never with a leading zero."""
    return str(100000 + secrets.randbelow(900000))


class OtpService:
    def __init__(self, storage, sms_sender=None, ttl_seconds: int = OTP_TTL_SECONDS,
                 max_attempts: int = OTP_MAX_ATTEMPTS):
        self.storage = storage
        self.sms_sender = sms_sender
        self.ttl_seconds = ttl_seconds
        self.max_attempts = max_attempts

    @property
    def expires_in(self) -> str:
        return f"{self.ttl_seconds // 60} minutes"

    def send(self, phone_number: str, purpose: str = "signup") -> Dict:
        """
        Issue a fresh code for (phone, purpose), replacing any earlier one.

        When the SMS cannot be delivered the code stays valid and is handed
        back in the result (``otp`` key) so sign-up can still be completed.
        """
        code = generate_otp()
        self.storage.otps.replace(OtpRecord.new(phone_number, code, purpose, self.ttl_seconds))

        if self.sms_sender is None:
            logger.warning("SMS sender not configured, returning OTP in response")
            return {"delivered": False, "otp": code, "expiresIn": self.expires_in}

        try:
            result = self.sms_sender.send_otp(phone_number, code, purpose)
        except SmsDeliveryError as e:
            logger.warning("SMS sending failed, returning OTP in response: %s", e.message)
            return {"delivered": False, "otp": code, "expiresIn": self.expires_in}
        return {"delivered": True, "messageId": result.get("messageId"), "expiresIn": self.expires_in}

    def verify(self, phone_number: str, code: str, purpose: str = "signup") -> None:
        record = self.storage.otps.get_active(phone_number, purpose)
        if record is None:
            raise OtpNotFound()

        if record.attempts >= self.max_attempts:
            self.storage.otps.delete(phone_number, purpose)
            raise TooManyAttempts()

        if not hmac.compare_digest(record.code.encode(), str(code).encode()):
            attempts = self.storage.otps.record_failed_attempt(record)
            if attempts is None:
                raise OtpNotFound()
            if attempts >= self.max_attempts:
                self.storage.otps.delete(phone_number, purpose)
                raise TooManyAttempts()
            raise InvalidOtp(self.max_attempts - attempts)

        if not self.storage.otps.mark_verified(record):
            raise OtpNotFound()

        if purpose == "signup":
            self._mark_user_verified(phone_number)

    def _mark_user_verified(self, phone_number: str) -> None:
        # A failure here must not undo a successful OTP check
        try:
            user = self.storage.users.find_by_phone(phone_number)
            if user and not user.is_verified:
                user.is_verified = True
                self.storage.users.save(user)
                logger.info("User %s marked as verified after OTP verification", user.user_id)
        except ClientError as e:
            logger.error("Error updating user verification status: %s", e)
