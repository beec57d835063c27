import hashlib
import secrets
import time
from urllib.parse import quote

from flask import Blueprint, current_app, g
from werkzeug.security import check_password_hash, generate_password_hash

from .app_logger import get_logger
from .auth import make_jwt, require_auth
from .errors import Conflict, NotFound, Unauthorized, ValidationError
from .extensions import get_storage
from .models import (
    AGE_RANGES, GENDERS, PERSONALITIES, PREFERENCE_CATEGORIES, PREFERENCE_ROLES, User,
)
from .responses import success
from .validation import Validator, is_email, is_number, json_body

logger = get_logger(__name__)

bp = Blueprint("users", __name__, url_prefix="/api/auth")


def _hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _validate_preferences(data: dict) -> dict:
    v = Validator(data)
    categories = data.get("categories")
    if categories is not None:
        v.check(isinstance(categories, list), "Categories must be an array")
        if isinstance(categories, list):
            v.check(all(c in PREFERENCE_CATEGORIES for c in categories), "Invalid category selected")
    v.one_of("ageRange", AGE_RANGES, "Invalid age range selected")
    v.one_of("personality", PERSONALITIES, "Invalid personality type selected")
    v.one_of("role", PREFERENCE_ROLES, "Invalid role selected")

    price_range = data.get("priceRange")
    if price_range is not None:
        if not isinstance(price_range, dict):
            v.check(False, "Price range must be an object")
        else:
            low, high = price_range.get("min"), price_range.get("max")
            v.check(low is None or is_number(low), "Minimum price must be a number")
            v.check(high is None or is_number(high), "Maximum price must be a number")
            if is_number(low) and is_number(high):
                v.check(high >= low, "Maximum price must be greater than minimum price")
    v.raise_if_invalid()

    return {
        key: data[key]
        for key in ("categories", "ageRange", "personality", "role", "priceRange")
        if key in data
    }


# -------------------------
# API: Register new user
# POST /api/auth/register {firstName, lastName, username, email, password, phoneNumber?, gender?}
# -------------------------
@bp.route("/register", methods=["POST"])
def register():
    data = json_body()
    (Validator(data)
        .required("firstName", "First name is required")
        .length("firstName", 2, 50, "First name must be between 2 and 50 characters")
        .required("lastName", "Last name is required")
        .length("lastName", 2, 50, "Last name must be between 2 and 50 characters")
        .required("username", "Username is required")
        .length("username", 3, 30, "Username must be between 3 and 30 characters")
        .email("email")
        .password("password")
        .phone("phoneNumber")
        .one_of("gender", GENDERS, "Please select a valid gender option")
        .raise_if_invalid())

    storage = get_storage()
    email = data["email"].strip().lower()
    if storage.users.find_by_email(email):
        raise Conflict("User with this email already exists")
    if storage.users.find_by_username(data["username"]):
        raise Conflict("Username is already taken")

    user = User.new(
        first_name=data["firstName"],
        last_name=data["lastName"],
        username=data["username"],
        email=email,
        password_hash=generate_password_hash(data["password"]),
        phone_number=data.get("phoneNumber"),
        gender=data.get("gender"),
    )
    storage.users.create(user)
    logger.info("Registered user %s", user.user_id)
    return success({"user": user.to_public(), "token": make_jwt(user)},
                   "User registered successfully", 201)


# -------------------------
# API: Authenticate user (JWT)
# POST /api/auth/login {emailOrUsername, password}
# -------------------------
@bp.route("/login", methods=["POST"])
def login():
    data = json_body()
    login_id = data.get("emailOrUsername")
    v = Validator(data).required("emailOrUsername", "Email or username is required")
    if isinstance(login_id, str) and "@" in login_id:
        v.check(is_email(login_id), "Please provide a valid email")
    v.required("password", "Password is required").raise_if_invalid()

    storage = get_storage()
    login_id = str(login_id).strip()
    user = storage.users.find_by_email(login_id) or storage.users.find_by_username(login_id)
    if not user or not check_password_hash(user.password_hash, str(data["password"])):
        raise Unauthorized("Invalid email or password")

    return success({"user": user.to_public(), "token": make_jwt(user)}, "Login successful")


# -------------------------
# API: Get / update profile
# -------------------------
@bp.route("/profile", methods=["GET"])
@require_auth
def get_profile():
    return success({"user": g.user.to_public()}, "Profile retrieved successfully")


@bp.route("/profile", methods=["PATCH"])
@require_auth
def update_profile():
    data = json_body()
    (Validator(data)
        .length("firstName", 2, 50, "First name must be between 2 and 50 characters")
        .length("lastName", 2, 50, "Last name must be between 2 and 50 characters")
        .phone("phoneNumber")
        .check("isOnline" not in data or isinstance(data["isOnline"], bool), "isOnline must be a boolean")
        .raise_if_invalid())

    user = g.user
    if data.get("firstName"):
        user.first_name = data["firstName"].strip()
    if data.get("lastName"):
        user.last_name = data["lastName"].strip()
    if "phoneNumber" in data:
        user.phone_number = data["phoneNumber"].strip() if data["phoneNumber"] else None
    if "location" in data:
        user.location = data["location"]
    if "isOnline" in data:
        user.is_online = data["isOnline"]
    if "preferences" in data:
        if not isinstance(data["preferences"], dict):
            raise ValidationError("Validation failed", errors=["Preferences must be an object"])
        user.preferences = _validate_preferences(data["preferences"])

    get_storage().users.save(user)
    return success({"user": user.to_public()}, "Profile updated successfully")


@bp.route("/preferences", methods=["PATCH"])
@require_auth
def update_preferences():
    changes = _validate_preferences(json_body())
    user = g.user
    preferences = dict(user.preferences or {})
    preferences.update(changes)
    user.preferences = preferences
    get_storage().users.save(user)
    return success({"user": user.to_public()}, "Preferences updated successfully")


@bp.route("/logout", methods=["POST"])
@require_auth
def logout():
    # Tokens are stateless; the client discards its copy
    return success(message="Logout successful")


# -------------------------
# API: Password reset
# POST /api/auth/forgot-password {email}
# POST /api/auth/reset-password {token, newPassword}
# -------------------------
@bp.route("/forgot-password", methods=["POST"])
def forgot_password():
    data = json_body()
    Validator(data).email("email").raise_if_invalid()

    storage = get_storage()
    user = storage.users.find_by_email(data["email"])
    if not user:
        raise NotFound("User with this email does not exist")

    reset_token = secrets.token_hex(32)
    ttl = current_app.config["RESET_TOKEN_TTL_SECONDS"]
    user.reset_password_token = _hash_reset_token(reset_token)
    user.reset_password_expires = int(time.time()) + ttl
    storage.users.save(user)

    reset_url = f"{current_app.config['FRONTEND_URL']}/reset-password?token={reset_token}"
    subject = "Password Reset Request - TicketMate"
    body = (
        f"Hi {user.first_name},\n\n"
        "We received a request to reset your password for your TicketMate account.\n\n"
        f"To reset your password, click this link: {reset_url}\n\n"
        f"This link will expire in {ttl // 60} minutes for security reasons.\n\n"
        "If you didn't request this password reset, you can safely ignore this email.\n\n"
        "Best regards,\nThe TicketMate Team"
    )
    mailto = f"mailto:{user.email}?subject={quote(subject)}&body={quote(body)}"

    return success({
        "resetToken": reset_token,
        "resetUrl": reset_url,
        "mailtoLink": mailto,
        "email": user.email,
        "expiresIn": f"{ttl // 60} minutes",
    }, "Password reset token generated successfully")


@bp.route("/reset-password", methods=["POST"])
def reset_password():
    data = json_body()
    (Validator(data)
        .required("token", "Reset token is required")
        .length("token", 10, None, "Invalid reset token format")
        .password("newPassword")
        .raise_if_invalid())

    storage = get_storage()
    user = storage.users.find_by_reset_token(_hash_reset_token(data["token"]))
    if not user or not user.reset_password_expires or user.reset_password_expires <= int(time.time()):
        raise ValidationError("Token is invalid or has expired")

    user.password_hash = generate_password_hash(data["newPassword"])
    user.reset_password_token = None
    user.reset_password_expires = None
    storage.users.save(user)

    return success({"user": user.to_public(), "token": make_jwt(user)}, "Password reset successful")
