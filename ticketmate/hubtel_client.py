import re
import time
from typing import Dict, Optional, Protocol

import requests

from .app_logger import get_logger
from .config import (
    HUBTEL_BASE_URL, HUBTEL_CLIENT_ID, HUBTEL_CLIENT_SECRET, HUBTEL_SENDER_ID,
    OTP_TTL_SECONDS, REQUEST_TIMEOUT,
)
from .errors import SmsDeliveryError

logger = get_logger(__name__)

COUNTRY_CODE = "+233"
_PHONE_NOISE = re.compile(r"[\s\-()]")


class SmsSender(Protocol):
    def send_otp(self, phone_number: str, code: str, purpose: str = "signup") -> Dict: ...


def format_phone_number(phone_number: str) -> str:
    """
    Normalise a Ghanaian number to +233 form: "024 123 4567" and
    "241234567" both become "+233241234567".
    """
    clean = _PHONE_NOISE.sub("", phone_number)
    if clean.startswith("0"):
        return COUNTRY_CODE + clean[1:]
    if not clean.startswith(COUNTRY_CODE):
        return COUNTRY_CODE + clean
    return clean


def otp_message(code: str, purpose: str) -> str:
    minutes = OTP_TTL_SECONDS // 60
    if purpose == "password_reset":
        lead = "Your TicketMate password reset code is"
    elif purpose == "login":
        lead = "Your TicketMate login code is"
    else:
        lead = "Welcome to TicketMate! Your verification code is"
    return (f"{lead}: {code}. This code expires in {minutes} minutes. "
            "Don't share this code with anyone.")


class HubtelClient:
    def __init__(self, client_id: str, client_secret: str, sender_id: str,
                 base_url: str = HUBTEL_BASE_URL, timeout: float = REQUEST_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.sender_id = sender_id
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.auth = (client_id, client_secret)

    def send_otp(self, phone_number: str, code: str, purpose: str = "signup") -> Dict:
        formatted = format_phone_number(phone_number)
        payload = {
            "From": self.sender_id,
            "To": formatted,
            "Content": otp_message(code, purpose),
            "ClientReference": f"{purpose.upper()}_OTP_{int(time.time() * 1000)}",
            "RegisteredDelivery": True,
        }
        logger.info("Sending %s OTP to %s****", purpose, formatted[:7])

        try:
            response = self.session.post(
                f"{self.base_url}/messages/send",
                json=payload,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.error("Hubtel request failed: %s", e)
            raise SmsDeliveryError(f"Failed to send OTP: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code == 200 and body.get("Status") == 0:
            return {"success": True, "messageId": body.get("MessageId"), "data": body}

        message = body.get("Message") or f"SMS sending failed (HTTP {response.status_code})"
        logger.error("Hubtel rejected message: %s", message)
        raise SmsDeliveryError(message)


def build_hubtel_client() -> Optional[HubtelClient]:
    if not (HUBTEL_CLIENT_ID and HUBTEL_CLIENT_SECRET and HUBTEL_SENDER_ID):
        return None
    return HubtelClient(HUBTEL_CLIENT_ID, HUBTEL_CLIENT_SECRET, HUBTEL_SENDER_ID)
