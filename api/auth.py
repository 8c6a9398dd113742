"""
Authentication blueprint:
- POST   /auth/signup
- POST   /auth/login
- POST   /auth/refresh
- POST   /auth/logout
- GET    /auth/me
- GET    /auth/status                 (optional auth)
- GET    /auth/sessions               (caller's live sessions)
- DELETE /auth/sessions/<session_id>  (sign out one device)

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues short-lived access tokens (JWT, HS256) bound to a server-side session
- Hands out opaque refresh tokens, stores only their hash, rotates them on every refresh
- Carries both tokens in HTTP-only cookies; bearer headers are accepted too
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort, current_app, make_response
from sqlalchemy.exc import SQLAlchemyError

from models.schemas.user import LoginSchema, RefreshSchema, SessionOutSchema, SignupSchema, UserOutSchema
from utils.decorators import check_account_status, login_required, optional_auth
from utils.exceptions import InvalidCredentials, InvalidRefreshToken
from utils.request import device_context
from utils.security import hash_password, needs_rehash, verify_password
from utils.sessions import cookie_options

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

signup_schema = SignupSchema()
login_schema = LoginSchema()
refresh_schema = RefreshSchema()
user_out_schema = UserOutSchema()


def _ext(name):
    return current_app.extensions[name]


def set_auth_cookies(response, issued):
    cfg = current_app.config
    response.set_cookie(cfg["SESSION_COOKIE_NAME"], issued.access_token, **cookie_options(cfg, "session"))
    response.set_cookie(cfg["REFRESH_COOKIE_NAME"], issued.refresh_token, **cookie_options(cfg, "refresh"))
    return response


def clear_auth_cookies(response):
    cfg = current_app.config
    for name, kind in ((cfg["SESSION_COOKIE_NAME"], "session"), (cfg["REFRESH_COOKIE_NAME"], "refresh")):
        opts = cookie_options(cfg, kind)
        response.delete_cookie(
            name,
            path=opts["path"],
            domain=opts["domain"],
            secure=opts["secure"],
            httponly=opts["httponly"],
            samesite=opts["samesite"],
        )
    return response


def user_response(user, status: int, issued=None):
    response = make_response(jsonify({"data": user_out_schema.dump(user)}), status)
    if issued is not None:
        set_auth_cookies(response, issued)
    return response


@bp.post("/signup")
def signup():
    """
    Register a new account and sign it in.
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
            name: { type: string }
    responses:
      201:
        description: Created; session and refresh cookies set when the account is active
      409:
        description: Email already registered
      422:
        description: Validation error
    """
    payload = request.get_json(silent=True) or {}
    data = signup_schema.load(payload)

    cfg = current_app.config
    user = _ext("users").create(
        email=data["email"],
        password_hash=hash_password(_ext("password_hasher"), data["password"]),
        name=data.get("name"),
        role=cfg["DEFAULT_ROLE"],
        status=cfg["DEFAULT_ACCOUNT_STATUS"],
    )
    logger.info("user signed up id=%s status=%s", user.id, user.status)

    if not user.is_active:
        # awaiting approval: the account exists but cannot hold a session yet
        return user_response(user, 201)

    issued = _ext("sessions").create_session(user, device_context())
    return user_response(user, 201, issued)


@bp.post("/login")
def login():
    """
    Login with email and password; sets session and refresh cookies.
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
        description: OK
      401:
        description: Invalid credentials
      403:
        description: Account suspended or pending approval
    """
    payload = request.get_json(silent=True) or {}
    data = login_schema.load(payload)

    hasher = _ext("password_hasher")
    user = _ext("users").get_by_email(data["email"])
    if user is None:
        # same work as a real check so response timing does not reveal unknown emails
        verify_password(hasher, data["password"], _ext("dummy_password_hash"))
        raise InvalidCredentials()
    if not verify_password(hasher, data["password"], user.password_hash):
        raise InvalidCredentials()

    check_account_status(user)

    if needs_rehash(hasher, user.password_hash):
        _ext("users").update(user, password_hash=hash_password(hasher, data["password"]))

    issued = _ext("sessions").create_session(user, device_context())
    logger.info("user logged in id=%s sid=%s", user.id, issued.session.session_id)
    return user_response(user, 200, issued)


@bp.post("/refresh")
def refresh():
    """
    Exchange the refresh token (cookie, or `refresh_token` in the body) for
    new session and refresh cookies. The presented refresh token becomes invalid.
    ---
    tags:
      - Auth
    parameters:
      -  in: body
         name: body
         required: false
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK, cookies rotated
      400:
        description: Missing refresh token
      401:
        description: Invalid, expired, revoked or mismatched refresh token
      403:
        description: Account suspended or pending approval
    """
    payload = request.get_json(silent=True)
    body = refresh_schema.load(payload if isinstance(payload, dict) else {})
    token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"]) or body.get("refresh_token")
    if not token:
        abort(400, description="Missing refresh token")

    sessions = _ext("sessions")
    context = device_context()
    auth_session = sessions.find_session_by_refresh_token(token, context)
    if auth_session is None:
        raise InvalidRefreshToken()

    user = _ext("users").get(auth_session.user_id)
    if user is None:
        sessions.revoke_session(auth_session)
        raise InvalidRefreshToken()

    check_account_status(user)

    issued = sessions.rotate_session(auth_session, user, context)
    if issued is None:
        raise InvalidRefreshToken()
    return user_response(user, 200, issued)


@bp.post("/logout")
@optional_auth()
def logout():
    """
    Logout: revoke the current session (if any) and clear both cookies.
    Always answers 204.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      204:
        description: Logged out
    """
    sessions = _ext("sessions")
    try:
        if g.auth_session is not None:
            sessions.revoke_session(g.auth_session)
        else:
            token = request.cookies.get(current_app.config["REFRESH_COOKIE_NAME"])
            if token:
                sessions.revoke_session(sessions.find_session_by_refresh_token(token, device_context()))
    except SQLAlchemyError:
        logger.exception("logout: could not revoke session")
        _ext("storage").rollback()

    return clear_auth_cookies(make_response("", 204))


@bp.get("/me")
@login_required()
def me():
    """
    Current caller identity.
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
      403:
        description: Account suspended or pending approval
    """
    identity = g.identity.to_dict()
    identity.pop("session_id", None)
    return jsonify({"data": identity}), 200


@bp.get("/status")
@optional_auth()
def status():
    """
    Anonymous-friendly probe: reports whether the caller is signed in.
    ---
    tags:
      - Auth
    responses:
      200:
        description: OK
    """
    identity = g.identity
    if identity is None:
        return jsonify({"authenticated": False, "data": None}), 200
    data = identity.to_dict()
    data.pop("session_id", None)
    return jsonify({"authenticated": True, "data": data}), 200


@bp.get("/sessions")
@login_required()
def list_sessions():
    """
    Live sessions of the caller, most recently used first.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
    """
    rows = _ext("sessions").list_sessions(g.identity.id)
    schema = SessionOutSchema(many=True, current_session_id=g.identity.session_id)
    return jsonify({"data": schema.dump(rows)}), 200


@bp.delete("/sessions/<session_id>")
@login_required()
def revoke_session(session_id: str):
    """
    Sign out one of the caller's sessions. Unknown or already revoked ids are a no-op.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      - in: path
        name: session_id
        type: string
        required: true
    responses:
      204:
        description: Revoked
    """
    sessions = _ext("sessions")
    target = sessions.find_live_session(session_id, g.identity.id)
    if target is not None:
        sessions.revoke_session(target)

    response = make_response("", 204)
    if session_id == g.identity.session_id:
        clear_auth_cookies(response)
    return response
