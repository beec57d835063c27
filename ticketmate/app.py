from datetime import datetime, UTC
from typing import Optional

from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from . import config
from .app_logger import get_logger, setup_logging
from .booking import BookingService
from .errors import ApiError
from .extensions import EXTENSION_KEY
from .hubtel_client import build_hubtel_client
from .otp import OtpService
from .paystack_client import build_paystack_client
from .store import build_storage
from . import events_api, otp_api, payments_api, users_api

logger = get_logger(__name__)


def create_app(storage=None, payment_gateway=None, sms_sender=None,
               settings: Optional[dict] = None) -> Flask:
    """
    Build the API. Storage and the outbound adapters are injected; any left
    as None are built from the environment (the gateway and SMS sender stay
    None when their credentials are missing).
    """
    setup_logging()

    app = Flask(__name__)
    CORS(app)
    app.config.update(
        APP_ENV=config.APP_ENV,
        FRONTEND_URL=config.FRONTEND_URL,
        JWT_SECRET=config.JWT_SECRET,
        JWT_ALGORITHM=config.JWT_ALGORITHM,
        JWT_EXPIRES_DAYS=config.JWT_EXPIRES_DAYS,
        RESET_TOKEN_TTL_SECONDS=config.RESET_TOKEN_TTL_SECONDS,
        OTP_TTL_SECONDS=config.OTP_TTL_SECONDS,
        OTP_MAX_ATTEMPTS=config.OTP_MAX_ATTEMPTS,
    )
    if settings:
        app.config.update(settings)

    if storage is None:
        storage = build_storage()
    if payment_gateway is None:
        payment_gateway = build_paystack_client()
    if sms_sender is None:
        sms_sender = build_hubtel_client()
    if payment_gateway is None:
        logger.warning("Paystack not configured, paid bookings are disabled")
    if sms_sender is None:
        logger.warning("Hubtel not configured, OTP codes will be returned in responses")

    app.extensions[EXTENSION_KEY] = {
        "storage": storage,
        "payment_gateway": payment_gateway,
        "sms_sender": sms_sender,
        "booking_service": BookingService(storage, payment_gateway),
        "otp_service": OtpService(
            storage, sms_sender,
            ttl_seconds=app.config["OTP_TTL_SECONDS"],
            max_attempts=app.config["OTP_MAX_ATTEMPTS"],
        ),
    }

    for module in (users_api, events_api, otp_api, payments_api):
        app.register_blueprint(module.bp)
    _register_error_handlers(app)

    # -------------------------
    # Health
    # -------------------------
    @app.route("/health", methods=["GET"])
    def health():
        return jsonify({
            "success": True,
            "status": "ok",
            "service": "ticketmate-api",
            "time": datetime.now(UTC).isoformat(),
            "paymentsEnabled": payment_gateway is not None,
            "smsEnabled": sms_sender is not None,
        }), 200

    return app


def _register_error_handlers(app: Flask):
    @app.errorhandler(ApiError)
    def handle_api_error(e: ApiError):
        if e.status_code >= 500:
            logger.error("%s: %s", type(e).__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        message = "Route not found" if e.code == 404 else e.description
        return jsonify({"success": False, "message": message}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("Unhandled error")
        body = {"success": False, "message": "Internal server error"}
        if app.config.get("APP_ENV") == "development":
            body["error"] = str(e)
        return jsonify(body), 500
