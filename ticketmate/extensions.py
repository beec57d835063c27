"""Accessors for the per-app dependencies wired up by ``create_app``."""
from flask import current_app

EXTENSION_KEY = "ticketmate"


def _deps() -> dict:
    return current_app.extensions[EXTENSION_KEY]


def get_storage():
    return _deps()["storage"]


def get_booking_service():
    return _deps()["booking_service"]


def get_otp_service():
    return _deps()["otp_service"]
