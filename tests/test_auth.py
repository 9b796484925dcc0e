import pytest

from swiftsale import auth, db
from swiftsale.errors import AuthError, ConflictError, ValidationError
from swiftsale.shop_settings import get_settings


def test_signup_creates_shop_and_default_settings(mongo):
    user = auth.signup("Owner@Example.com ", "secret123", "secret123")

    assert user["email"] == "owner@example.com"
    shop = db.collection("shops").find_one({"shop_id": user["shop_id"]})
    assert shop["name"] == "My SwiftSale Shop"
    assert shop["default_tax_rate"] == 5.0
    settings = get_settings(user["shop_id"])
    assert settings["shop_gstin"] == "YOUR_GSTIN_HERE"


def test_password_is_not_stored_in_plain_text(mongo):
    auth.signup("owner@example.com", "secret123", "secret123")
    row = db.collection("users").find_one({"email": "owner@example.com"})
    assert "secret123" not in row["password_hash"]


@pytest.mark.parametrize(
    "email,password,confirm",
    [
        ("", "secret123", "secret123"),
        ("not-an-email", "secret123", "secret123"),
        ("a@b.com", "short", "short"),
        ("a@b.com", "secret123", "secret124"),
    ],
)
def test_signup_rejects_bad_input(mongo, email, password, confirm):
    with pytest.raises(ValidationError):
        auth.signup(email, password, confirm)


def test_duplicate_email_rejected(mongo):
    auth.signup("owner@example.com", "secret123", "secret123")
    with pytest.raises(ConflictError):
        auth.signup("OWNER@example.com", "another1", "another1")


def test_login_and_resolve_session(shop_id):
    session = auth.login("owner@example.com", "secret123")
    resolved = auth.resolve_session(session["token"])
    assert resolved["shop_id"] == shop_id
    assert resolved["email"] == "owner@example.com"


def test_login_wrong_password(shop_id):
    with pytest.raises(AuthError):
        auth.login("owner@example.com", "wrong-password")


def test_logout_invalidates_token(shop_id):
    token = auth.login("owner@example.com", "secret123")["token"]
    auth.logout(token)
    with pytest.raises(AuthError):
        auth.resolve_session(token)


def test_expired_session_rejected(shop_id):
    token = auth.login("owner@example.com", "secret123")["token"]
    db.collection("sessions").update_one({"token": token}, {"$set": {"expires_at": "2000-01-01T00:00:00"}})
    with pytest.raises(AuthError):
        auth.resolve_session(token)
    assert db.collection("sessions").find_one({"token": token}) is None


def test_missing_token(mongo):
    with pytest.raises(AuthError):
        auth.resolve_session(None)
