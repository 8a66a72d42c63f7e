"""
security helpers (token service):
- Argon2 password hashing via argon2-cffi
- JWT creation/verification via PyJWT
- access-token revocation and single-use refresh-token rotation
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, NamedTuple, Optional

import jwt
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from flask import current_app

from models import storage
from models.user import User
from utils.revocation import RevocationSet

logger = logging.getLogger(__name__)

ph = PasswordHasher()

# process-wide; see utils.revocation
revoked_tokens = RevocationSet()


class TokenError(Exception):
    """Base class for every token verification failure."""


class TokenInvalidError(TokenError):
    """Bad signature, malformed, wrong type or wrong issuer."""


class TokenExpiredError(TokenError):
    """Signature fine but past its exp claim."""


class TokenRevokedError(TokenInvalidError):
    """Access token was explicitly logged out."""


class RefreshTokenNotFoundError(Exception):
    """No user currently holds this refresh token (never issued, rotated away or logged out)."""


class Identity(NamedTuple):
    user_id: str
    email: str


class TokenPair(NamedTuple):
    access_token: str
    refresh_token: str

    def to_response(self) -> Dict[str, Any]:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "token_type": "bearer",
            "expires_in": int(current_app.config["ACCESS_TOKEN_EXPIRES"].total_seconds()),
        }


def hash_password(password: str) -> str:
    """Hash a plaintext password using Argon2
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """ Verify a plaintext password using argon2
    """
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def generate_jti() -> str:
    """Generate a unique JTI (JWT ID).
    """
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _encode(claims: Dict[str, Any], token_type: str, lifetime) -> str:
    now = _now()
    payload = {
        "iss": current_app.config.get("JWT_ISSUER", "filestore-api"),
        "iat": int(now.timestamp()),
        "exp": int((now + lifetime).timestamp()),
        "type": token_type,
        # jti keeps two tokens minted in the same second distinct
        "jti": generate_jti(),
        **claims,
    }
    return jwt.encode(payload, current_app.config["JWT_SECRET"], algorithm=current_app.config["JWT_ALGORITHM"])


def create_access_token(user_id: str, email: str) -> str:
    return _encode(
        {"sub": str(user_id), "email": email},
        "access",
        current_app.config["ACCESS_TOKEN_EXPIRES"],
    )


def create_refresh_token(user_id: str) -> str:
    return _encode({"sub": str(user_id)}, "refresh", current_app.config["REFRESH_TOKEN_EXPIRES"])


def issue_tokens(user_id: str, email: str) -> TokenPair:
    """Mint a fresh access/refresh pair. Persisting the refresh token is up to the caller."""
    return TokenPair(create_access_token(user_id, email), create_refresh_token(user_id))


def decode_token(token: str, expected_type: str = "access") -> Dict[str, Any]:
    """
    Decode and validate a JWT. Raises TokenExpiredError or TokenInvalidError.
    expected_type must be "access" or "refresh".
    """
    try:
        decoded = jwt.decode(
            token,
            current_app.config["JWT_SECRET"],
            algorithms=[current_app.config["JWT_ALGORITHM"]],
            issuer=current_app.config.get("JWT_ISSUER", "filestore-api"),
            options={"require": ["exp", "sub", "type"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpiredError("Token expired")
    except jwt.InvalidTokenError as exc:
        raise TokenInvalidError(f"Invalid token: {exc}")

    if decoded.get("type") != expected_type:
        raise TokenInvalidError("Wrong token type")
    return decoded


def verify_access_token(token: str) -> Identity:
    """Signature, expiry and revocation check for a bearer token."""
    decoded = decode_token(token, expected_type="access")
    if token in revoked_tokens:
        raise TokenRevokedError("Token has been revoked")
    return Identity(user_id=decoded["sub"], email=decoded.get("email", ""))


def revoke_access_token(token: str, expires_at: Optional[int] = None) -> None:
    """Add token to the revocation set. Idempotent."""
    if expires_at is None:
        try:
            expires_at = jwt.decode(token, options={"verify_signature": False}).get("exp")
        except jwt.InvalidTokenError:
            expires_at = None
    revoked_tokens.add(token, expires_at)


def rotate_refresh_token(old_token: str) -> TokenPair:
    """
    Exchange a refresh token for a new pair. Single use: the stored value is
    swapped with a compare-and-swap UPDATE, so of two concurrent rotations with
    the same token only one matches a row.

    Raises RefreshTokenNotFoundError when no user holds old_token, TokenError
    when it does but the token fails verification.
    """
    session = storage.get_session()
    user = session.query(User).filter(User.refresh_token == old_token).first()
    if not user:
        raise RefreshTokenNotFoundError("Refresh token not recognised")

    decoded = decode_token(old_token, expected_type="refresh")
    if decoded["sub"] != user.id:
        raise TokenInvalidError("Refresh token subject mismatch")

    pair = issue_tokens(user.id, user.email)
    updated = (
        session.query(User)
        .filter(User.id == user.id, User.refresh_token == old_token)
        .update({User.refresh_token: pair.refresh_token}, synchronize_session=False)
    )
    if updated != 1:
        session.rollback()
        raise RefreshTokenNotFoundError("Refresh token already rotated")
    storage.save()
    session.expire(user)
    return pair
