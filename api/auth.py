"""
Authentication blueprint:
- POST /auth/signup
- POST /auth/signin
- POST /auth/signin/new_token
- POST /auth/logout
- GET  /auth/me
- GET  /auth/info

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens and longer-lived refresh tokens (JWTs signed with HS256)
- Keeps exactly one live refresh token per user on the users row, so a new
  signin or rotation invalidates the previous one
- Logout revokes the presented access token and clears the stored refresh token
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort
from marshmallow import ValidationError
from sqlalchemy.exc import IntegrityError

from models import storage
from models.user import User
from models.schemas.user import CredentialsSchema, RefreshRequestSchema, UserOutSchema, IdentityOutSchema

from utils.decorators import jwt_required
from utils.security import (
    RefreshTokenNotFoundError,
    TokenError,
    hash_password,
    issue_tokens,
    revoke_access_token,
    rotate_refresh_token,
    verify_password,
)

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__, url_prefix="/auth")

credentials_schema = CredentialsSchema()
refresh_request_schema = RefreshRequestSchema()
user_out_schema = UserOutSchema()
identity_out_schema = IdentityOutSchema()


@bp.post("/signup")
def signup():
    """
    Register a new user and return a token pair.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password]
          properties:
            email: { type: string }
            password: { type: string }
    responses:
      201:
        description: Created (user plus access and refresh tokens)
      400:
        description: Missing fields or email already registered
    """
    payload = request.get_json(silent=True) or {}
    data = credentials_schema.load(payload)

    session = storage.get_session()
    if session.query(User).filter(User.email == data["email"]).first():
        abort(400, description="Email already registered")

    user = User(email=data["email"], password_hash=hash_password(data["password"]))
    tokens = issue_tokens(user.id, user.email)
    # same policy as signin: the issued refresh token is the user's live one
    user.refresh_token = tokens.refresh_token

    storage.new(user)
    try:
        storage.save()
    except IntegrityError:
        # a concurrent signup for the same email committed first
        logger.info("Signup raced on existing email: %s", user.email)
        abort(400, description="Email already registered")
    logger.info("User signed up: %s", user.email)

    return jsonify(
        {
            "data": user_out_schema.dump(user),
            **tokens.to_response(),
        }
    ), 201


@bp.post("/signin")
def signin():
    """
    Sign in: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      401:
        description: Invalid credentials
    """
    payload = request.get_json(silent=True) or {}
    try:
        data = credentials_schema.load(payload)
    except ValidationError:
        # same answer as a wrong password: do not reveal what was wrong
        abort(401, description="Invalid credentials")

    session = storage.get_session()
    user: User = session.query(User).filter(User.email == data["email"]).first()
    if not user or not verify_password(data["password"], user.password_hash):
        logger.info("Failed signin for %s", data["email"])
        abort(401, description="Invalid credentials")

    tokens = issue_tokens(user.id, user.email)
    user.refresh_token = tokens.refresh_token
    storage.new(user)
    storage.save()
    logger.info("User signed in: %s", user.email)

    return jsonify(tokens.to_response()), 200


@bp.post("/signin/new_token")
def new_token():
    """
    Use a refresh token to obtain new access and refresh tokens (rotation).
    The presented refresh token stops working once this succeeds.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [token]
           properties:
             token: { type: string }
    responses:
      200:
        description: OK (returns new tokens)
      400:
        description: token missing
      403:
        description: Unknown, superseded, expired or invalid refresh token
    """
    payload = request.get_json(silent=True) or {}
    data = refresh_request_schema.load(payload)

    try:
        tokens = rotate_refresh_token(data["token"])
    except (RefreshTokenNotFoundError, TokenError) as e:
        logger.info("Refresh rejected: %s", e)
        abort(403, description="Invalid refresh token")

    return jsonify(tokens.to_response()), 200


@bp.post("/logout")
@jwt_required()
def logout():
    """
    Logout: revokes the presented access token and the stored refresh token
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out
      401:
        description: Unauthorized
      404:
        description: User not found
    """
    revoke_access_token(g.current_token)

    user = storage.get(User, g.current_user_id)
    if not user:
        abort(404, description="User not found")

    user.refresh_token = None
    storage.new(user)
    storage.save()
    logger.info("User logged out: %s", user.email)

    return jsonify({"message": "Logged out, tokens revoked"}), 200


@bp.get("/me")
@jwt_required()
def me():
    """
    Identity carried by the access token.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    return jsonify({"data": identity_out_schema.dump(g.identity)}), 200


@bp.get("/info")
@jwt_required()
def info():
    """
    Current user info.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    user = storage.get(User, g.current_user_id)
    if not user:
        abort(401, description="User not found")
    return jsonify({"data": user_out_schema.dump(user)}), 200
