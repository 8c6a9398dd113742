from marshmallow import EXCLUDE, Schema, fields, pre_load, validate, validates, ValidationError

from models.user import ROLES, STATUSES


def _norm_email(v):
    return v.strip().lower() if isinstance(v, str) else v


def _check_password(value):
    if len(value) < 8:
        raise ValidationError("Password must be at least 8 characters long.")


class SignupSchema(Schema):
    name = fields.String(allow_none=True, validate=validate.Length(max=200))
    email = fields.Email(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = _norm_email(data["email"])
        return data

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class LoginSchema(Schema):
    email = fields.String(required=True)
    password = fields.String(required=True, load_only=True)

    @pre_load
    def normalize(self, data, **kwargs):
        if isinstance(data, dict) and "email" in data:
            data["email"] = _norm_email(data["email"])
        return data


class RefreshSchema(Schema):
    class Meta:
        unknown = EXCLUDE

    refresh_token = fields.String(allow_none=True)


class UserCreateSchema(SignupSchema):
    """Admin-initiated creation: role and status may be chosen explicitly."""
    role = fields.String(validate=validate.OneOf(ROLES))
    status = fields.String(validate=validate.OneOf(STATUSES))


class UserUpdateSchema(Schema):
    name = fields.String(allow_none=True, validate=validate.Length(max=200))
    role = fields.String(validate=validate.OneOf(ROLES))
    status = fields.String(validate=validate.OneOf(STATUSES))
    password = fields.String(load_only=True)

    @validates("password")
    def validate_password(self, value, **kwargs):
        _check_password(value)


class UserOutSchema(Schema):
    id = fields.String(allow_none=False)
    email = fields.String(allow_none=False)
    name = fields.String(allow_none=True)
    role = fields.String()
    status = fields.String()


class UserAdminOutSchema(UserOutSchema):
    subscription = fields.Raw(allow_none=True)
    created_at = fields.DateTime()
    updated_at = fields.DateTime()


class SessionOutSchema(Schema):
    session_id = fields.String()
    created_at = fields.DateTime()
    last_used_at = fields.DateTime(allow_none=True)
    expires_at = fields.DateTime()
    current = fields.Method("is_current")

    def is_current(self, obj):
        return obj.session_id == self.context_session_id

    def __init__(self, *args, current_session_id=None, **kwargs):
        super().__init__(*args, **kwargs)
        self.context_session_id = current_session_id
