from __future__ import annotations

import logging
from typing import Tuple

from flask import Blueprint, request, jsonify, g, abort, current_app

from models.schemas.user import UserAdminOutSchema, UserCreateSchema, UserUpdateSchema
from models.user import ROLES, STATUSES
from utils.decorators import login_required, roles_required
from utils.security import hash_password

MAX_LIMIT = 100

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__)

user_create_schema = UserCreateSchema()
user_update_schema = UserUpdateSchema()
user_out_schema = UserAdminOutSchema()
user_list_out_schema = UserAdminOutSchema(many=True)


def parse_pagination() -> Tuple[int, int]:
    try:
        page = int(request.args.get("page", "1"))
        limit = int(request.args.get("limit", "20"))
        page = max(page, 1)
        limit = max(1, min(limit, MAX_LIMIT))
        return page, limit
    except ValueError:
        abort(400, description="page and limit must be integers")


def parse_choice(name: str, allowed) -> str | None:
    value = request.args.get(name)
    if value and value not in allowed:
        abort(400, description=f"{name} must be one of {', '.join(allowed)}")
    return value or None


def check_role_allowed(role: str | None) -> None:
    allowed = current_app.config.get("ALLOWED_ROLES", list(ROLES))
    if role is not None and role not in allowed:
        abort(422, description=f"role must be one of {', '.join(allowed)}")


def get_user_or_404(user_id: str):
    user = current_app.extensions["users"].get(user_id)
    if not user:
        abort(404)
    return user


@bp.get("/users")
@roles_required(["admin"])
def list_users():
    """
    List users - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: query, name: page, type: integer }
      - { in: query, name: limit, type: integer }
      - { in: query, name: role, type: string, enum: [admin, inbound, outbound] }
      - { in: query, name: status, type: string, enum: [active, suspended, pending_approval] }
      - { in: query, name: search, type: string }
    responses:
      200: { description: OK }
      403: { description: Forbidden }
    """
    page, limit = parse_pagination()
    role = parse_choice("role", ROLES)
    status = parse_choice("status", STATUSES)
    search = (request.args.get("search") or "").strip()[:100] or None

    rows, total = current_app.extensions["users"].list(page, limit, role=role, status=status, search=search)
    return jsonify(
        {
            "data": user_list_out_schema.dump(rows),
            "meta": {"page": page, "limit": limit, "total": total}
        }
    )


@bp.post("/users")
@roles_required(["admin"])
def create_user():
    """
    Create a user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
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
            role: { type: string }
            status: { type: string }
    responses:
      201: { description: Created }
      409: { description: Email already registered }
      422: { description: Validation error }
    """
    payload = request.get_json(silent=True) or {}
    data = user_create_schema.load(payload)
    cfg = current_app.config
    check_role_allowed(data.get("role"))
    user = current_app.extensions["users"].create(
        email=data["email"],
        password_hash=hash_password(current_app.extensions["password_hasher"], data["password"]),
        name=data.get("name"),
        role=data.get("role", cfg["DEFAULT_ROLE"]),
        status=data.get("status", "active"),
    )
    logger.info("admin %s created user %s", g.identity.id, user.id)
    return jsonify({"data": user_out_schema.dump(user)}), 201


@bp.get("/users/<user_id>")
@roles_required(["admin"])
def get_user(user_id: str):
    """
    Get one user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - { in: path, name: user_id, type: string, required: true }
    responses:
      200: { description: OK }
      404: { description: Not found }
    """
    return jsonify({"data": user_out_schema.dump(get_user_or_404(user_id))}), 200


@bp.patch("/users/<user_id>")
@roles_required(["admin"])
def update_user(user_id: str):
    """
    Update name, role, status or password - admin.
    A password change signs the user out everywhere.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      - { in: path, name: user_id, type: string, required: true }
      - in: body
        name: body
        schema:
          type: object
          properties:
            name: { type: string }
            role: { type: string }
            status: { type: string }
            password: { type: string }
    responses:
      200: { description: OK }
      404: { description: Not found }
      422: { description: Validation error }
    """
    payload = request.get_json(silent=True) or {}
    data = user_update_schema.load(payload)
    if not data:
        abort(422, description="At least one field (name, role, status, password) must be provided")
    check_role_allowed(data.get("role"))

    user = get_user_or_404(user_id)
    password = data.pop("password", None)
    if password is not None:
        data["password_hash"] = hash_password(current_app.extensions["password_hasher"], password)

    current_app.extensions["users"].update(user, **data)
    if password is not None:
        current_app.extensions["sessions"].revoke_all_for_user(user.id)
    logger.info("admin %s updated user %s fields=%s", g.identity.id, user.id, sorted(data))
    return jsonify({"data": user_out_schema.dump(user)}), 200


@bp.get("/whoami")
@login_required()
def whoami():
    """
    Identity attached by the auth middleware.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
    """
    return jsonify({"data": g.identity.to_dict()}), 200
