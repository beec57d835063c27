import re
from typing import Iterable, List, Optional

from flask import request

from .errors import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
PHONE_RE = re.compile(r"^\+?[\d\s\-()]+$")
STRONG_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def json_body() -> dict:
    data = request.get_json(force=True, silent=True)
    return data if isinstance(data, dict) else {}


def is_email(value) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Validator:
    """Collects every problem with a payload, then raises once."""

    def __init__(self, data: dict):
        self.data = data
        self.errors: List[str] = []

    def _present(self, field: str) -> bool:
        value = self.data.get(field)
        return value is not None and not (isinstance(value, str) and not value.strip())

    def required(self, field: str, message: str) -> "Validator":
        if not self._present(field):
            self.errors.append(message)
        return self

    def length(self, field: str, min_len: int, max_len: Optional[int], message: str) -> "Validator":
        value = self.data.get(field)
        if value is not None and not isinstance(value, str):
            self.errors.append(message)
        elif isinstance(value, str) and value.strip():
            size = len(value.strip())
            if size < min_len or (max_len is not None and size > max_len):
                self.errors.append(message)
        return self

    def email(self, field: str, message: str = "Please provide a valid email") -> "Validator":
        if not is_email(self.data.get(field)):
            self.errors.append(message)
        return self

    def password(self, field: str) -> "Validator":
        value = self.data.get(field)
        if not isinstance(value, str) or len(value) < 6:
            self.errors.append("Password must be at least 6 characters long")
        elif not STRONG_PASSWORD_RE.match(value):
            self.errors.append("Password must contain at least one lowercase letter, "
                               "one uppercase letter, and one number")
        return self

    def phone(self, field: str, message: str = "Please provide a valid phone number") -> "Validator":
        value = self.data.get(field)
        if value is not None and (not isinstance(value, str) or not PHONE_RE.match(value)):
            self.errors.append(message)
        return self

    def one_of(self, field: str, choices: Iterable[str], message: str) -> "Validator":
        value = self.data.get(field)
        if value is not None and value not in choices:
            self.errors.append(message)
        return self

    def check(self, ok: bool, message: str) -> "Validator":
        if not ok:
            self.errors.append(message)
        return self

    def raise_if_invalid(self):
        if self.errors:
            raise ValidationError("Validation failed", errors=self.errors)
