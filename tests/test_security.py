"""Tests for token issuing, verification, revocation and refresh rotation."""

from datetime import timedelta

import jwt
import pytest

from models import storage
from models.user import User
from utils.security import (
    RefreshTokenNotFoundError,
    TokenExpiredError,
    TokenInvalidError,
    TokenRevokedError,
    decode_token,
    hash_password,
    issue_tokens,
    revoke_access_token,
    rotate_refresh_token,
    verify_access_token,
    verify_password,
)


def _make_user(email="carol@example.com", with_refresh=True):
    user = User(email=email, password_hash=hash_password("pw"))
    pair = issue_tokens(user.id, user.email)
    if with_refresh:
        user.refresh_token = pair.refresh_token
    storage.new(user)
    storage.save()
    return user, pair


def test_password_hash_roundtrip(app_ctx):
    """Hash verifies only against the original password."""
    hashed = hash_password("correct horse")

    assert hashed != "correct horse"
    assert verify_password("correct horse", hashed)
    assert not verify_password("wrong horse", hashed)
    assert not verify_password("anything", "not-an-argon2-hash")


def test_issue_tokens_claims(app_ctx):
    """Access carries id and email; refresh carries id only."""
    pair = issue_tokens("user-1", "dave@example.com")

    access = decode_token(pair.access_token, expected_type="access")
    refresh = decode_token(pair.refresh_token, expected_type="refresh")

    assert access["sub"] == "user-1"
    assert access["email"] == "dave@example.com"
    assert access["exp"] - access["iat"] == 600
    assert refresh["sub"] == "user-1"
    assert "email" not in refresh
    assert refresh["exp"] - refresh["iat"] == 7 * 24 * 3600


def test_tokens_issued_back_to_back_differ(app_ctx):
    first = issue_tokens("user-1", "dave@example.com")
    second = issue_tokens("user-1", "dave@example.com")

    assert first.access_token != second.access_token
    assert first.refresh_token != second.refresh_token


def test_verify_access_token(app_ctx):
    pair = issue_tokens("user-1", "dave@example.com")

    identity = verify_access_token(pair.access_token)

    assert identity.user_id == "user-1"
    assert identity.email == "dave@example.com"


def test_verify_rejects_expired(app_ctx):
    app_ctx.config["ACCESS_TOKEN_EXPIRES"] = timedelta(seconds=-5)
    pair = issue_tokens("user-1", "dave@example.com")

    with pytest.raises(TokenExpiredError):
        verify_access_token(pair.access_token)


def test_verify_rejects_foreign_signature(app_ctx):
    forged = jwt.encode(
        {"sub": "user-1", "email": "x@example.com", "type": "access", "exp": 9999999999, "iss": "filestore-api"},
        "some-other-secret",
        algorithm="HS256",
    )

    with pytest.raises(TokenInvalidError):
        verify_access_token(forged)


def test_verify_rejects_garbage_and_wrong_type(app_ctx):
    pair = issue_tokens("user-1", "dave@example.com")

    with pytest.raises(TokenInvalidError):
        verify_access_token("not.a.jwt")
    with pytest.raises(TokenInvalidError):
        verify_access_token(pair.refresh_token)


def test_revoke_is_idempotent_and_scoped(app_ctx):
    """Revoking one token leaves other tokens valid."""
    mine = issue_tokens("user-1", "dave@example.com")
    theirs = issue_tokens("user-2", "erin@example.com")

    revoke_access_token(mine.access_token)
    revoke_access_token(mine.access_token)

    with pytest.raises(TokenRevokedError):
        verify_access_token(mine.access_token)
    assert verify_access_token(theirs.access_token).user_id == "user-2"


def test_revoked_counts_as_invalid(app_ctx):
    pair = issue_tokens("user-1", "dave@example.com")
    revoke_access_token(pair.access_token)

    with pytest.raises(TokenInvalidError):
        verify_access_token(pair.access_token)


def test_rotate_refresh_once(app_ctx):
    """A refresh token rotates exactly once; the replay fails NotFound."""
    user, pair = _make_user()

    new_pair = rotate_refresh_token(pair.refresh_token)

    assert new_pair.refresh_token != pair.refresh_token
    assert storage.get(User, user.id).refresh_token == new_pair.refresh_token
    assert verify_access_token(new_pair.access_token).email == user.email

    with pytest.raises(RefreshTokenNotFoundError):
        rotate_refresh_token(pair.refresh_token)

    # the new one still works
    rotate_refresh_token(new_pair.refresh_token)


def test_rotate_unknown_token(app_ctx):
    _make_user()
    stranger = issue_tokens("nobody", "nobody@example.com")

    with pytest.raises(RefreshTokenNotFoundError):
        rotate_refresh_token(stranger.refresh_token)


def test_rotate_expired_stored_token(app_ctx):
    """Token matches the stored value but fails verification."""
    app_ctx.config["REFRESH_TOKEN_EXPIRES"] = timedelta(seconds=-5)
    user, pair = _make_user()

    with pytest.raises(TokenExpiredError):
        rotate_refresh_token(pair.refresh_token)
    assert storage.get(User, user.id).refresh_token == pair.refresh_token


def test_rotate_rejects_access_token_stored_as_refresh(app_ctx):
    user, pair = _make_user()
    user.refresh_token = pair.access_token
    storage.save()

    with pytest.raises(TokenInvalidError):
        rotate_refresh_token(pair.access_token)


def test_rotate_loses_compare_and_swap(app_ctx, monkeypatch):
    """If another rotation swaps the stored token first, this one fails NotFound."""
    user, pair = _make_user()

    import utils.security as security

    real_issue = security.issue_tokens

    def racing_issue(user_id, email):
        # a concurrent rotation commits between our lookup and our update
        session = storage.get_session()
        session.query(User).filter(User.id == user_id).update(
            {User.refresh_token: "superseded"}, synchronize_session=False
        )
        return real_issue(user_id, email)

    monkeypatch.setattr(security, "issue_tokens", racing_issue)

    with pytest.raises(RefreshTokenNotFoundError):
        rotate_refresh_token(pair.refresh_token)
