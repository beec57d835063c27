import re

from flask import Blueprint

from .extensions import get_otp_service
from .models import OTP_PURPOSES
from .responses import success
from .validation import Validator, json_body

bp = Blueprint("otp", __name__, url_prefix="/api/otp")

FALLBACK_MESSAGE = "SMS service temporarily unavailable. For testing, use this OTP"
FALLBACK_NOTE = "This is for testing purposes only. In production, OTP will be sent via SMS."

OTP_RE = re.compile(r"[0-9]{6}")


def _read_phone_and_purpose(data: dict):
    (Validator(data)
        .required("phoneNumber", "Phone number is required")
        .phone("phoneNumber")
        .one_of("purpose", OTP_PURPOSES, "Invalid OTP purpose")
        .raise_if_invalid())
    return data["phoneNumber"].strip(), data.get("purpose") or "signup"


def _issue(sent_message: str):
    phone_number, purpose = _read_phone_and_purpose(json_body())
    result = get_otp_service().send(phone_number, purpose)

    if result["delivered"]:
        return success({"messageId": result["messageId"], "expiresIn": result["expiresIn"]}, sent_message)

    return success({
        "otp": result["otp"],
        "expiresIn": result["expiresIn"],
        "note": FALLBACK_NOTE,
    }, FALLBACK_MESSAGE)


# -------------------------
# API: Send / resend OTP
# POST /api/otp/send {phoneNumber, purpose?}
# -------------------------
@bp.route("/send", methods=["POST"])
def send_otp():
    return _issue("OTP sent successfully")


@bp.route("/resend", methods=["POST"])
def resend_otp():
    return _issue("New OTP sent successfully")


# -------------------------
# API: Verify OTP
# POST /api/otp/verify {phoneNumber, otp, purpose?}
# -------------------------
@bp.route("/verify", methods=["POST"])
def verify_otp():
    data = json_body()
    (Validator(data)
        .required("phoneNumber", "Phone number is required")
        .phone("phoneNumber")
        .required("otp", "OTP is required")
        .check(data.get("otp") is None or OTP_RE.fullmatch(str(data["otp"])) is not None,
               "OTP must be 6 digits")
        .one_of("purpose", OTP_PURPOSES, "Invalid OTP purpose")
        .raise_if_invalid())

    purpose = data.get("purpose") or "signup"
    get_otp_service().verify(str(data["phoneNumber"]).strip(), str(data["otp"]), purpose)
    return success({"verified": True, "purpose": purpose}, "OTP verified successfully")
