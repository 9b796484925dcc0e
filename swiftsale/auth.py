import logging
import secrets
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict

from werkzeug.security import check_password_hash, generate_password_hash

from swiftsale import config, db
from swiftsale.errors import AuthError, ConflictError, ValidationError
from swiftsale.utils import clean_text, now_iso

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def _normalize_email(email) -> str:
    return clean_text(email).lower()


def signup(email, password, confirm_password) -> Dict[str, Any]:
    """
    Register a shop owner.

    The owner's id doubles as the shop id; the shop document and its
    settings are seeded from DEFAULT_SETTINGS.
    """
    email = _normalize_email(email)
    password = password or ""
    if not email or "@" not in email:
        raise ValidationError("A valid email is required.")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")
    if password != (confirm_password or ""):
        raise ValidationError("Passwords do not match.")

    users = db.collection("users")
    if users.find_one({"email": email}):
        raise ConflictError("An account with this email already exists.")

    user_id = uuid.uuid4().hex
    created_at = now_iso()
    users.insert_one(
        {
            "user_id": user_id,
            "email": email,
            "password_hash": generate_password_hash(password),
            "shop_id": user_id,
            "created_at": created_at,
        }
    )

    defaults = config.DEFAULT_SETTINGS
    db.collection("shops").insert_one(
        {
            "shop_id": user_id,
            "name": defaults["shop_name"],
            "address": defaults["shop_address"],
            "phone": defaults["shop_phone"],
            "gstin": defaults["shop_gstin"],
            "default_tax_rate": defaults["default_tax"],
            "created_at": created_at,
        }
    )
    db.collection("settings").insert_one(dict(defaults, shop_id=user_id))

    logger.info("Created shop %s for %s", user_id, email)
    return {"user_id": user_id, "shop_id": user_id, "email": email}


def login(email, password) -> Dict[str, Any]:
    email = _normalize_email(email)
    user = db.collection("users").find_one({"email": email})
    if not user or not check_password_hash(user.get("password_hash", ""), password or ""):
        logger.warning("Failed login for %s", email or "<blank>")
        raise AuthError("Invalid credentials.")

    token = secrets.token_urlsafe(32)
    expires_at = datetime.now() + timedelta(hours=config.session_hours())
    db.collection("sessions").insert_one(
        {
            "token": token,
            "user_id": user["user_id"],
            "shop_id": user["shop_id"],
            "email": email,
            "created_at": now_iso(),
            "expires_at": expires_at.isoformat(timespec="seconds"),
        }
    )
    return {"token": token, "shop_id": user["shop_id"], "email": email, "expires_at": expires_at.isoformat(timespec="seconds")}


def logout(token) -> None:
    db.collection("sessions").delete_one({"token": clean_text(token)})


def resolve_session(token) -> Dict[str, Any]:
    token = clean_text(token)
    if not token:
        raise AuthError("Authentication required.")
    session = db.collection("sessions").find_one({"token": token})
    if not session:
        raise AuthError("Invalid or expired session.")
    if session.get("expires_at", "") <= now_iso():
        db.collection("sessions").delete_one({"token": token})
        raise AuthError("Invalid or expired session.")
    return {"user_id": session["user_id"], "shop_id": session["shop_id"], "email": session["email"]}
