from flask import Flask
from flasgger import Swagger
from flask_cors import CORS
import click
import logging
import secrets

from .config import get_config, validate_config
from .errors import register_error_handlers
from models.db_storage import DBStorage
from models.session_store import SessionStore
from models.user_store import UserStore
from utils.decorators import AuthGate, ValidationPolicy
from utils.security import TokenSigner, build_password_hasher, hash_password
from utils.sessions import SessionManager

logger = logging.getLogger(__name__)

# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0.0",
    "info": {
        "title": "Voice BFF Auth API",
        "version": "1.0.0",
        "description": "Session and token authentication for the voice-agent dashboard backend.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def init_auth(app: Flask, storage: DBStorage) -> None:
    """Wire storage -> stores -> session manager -> auth gate onto app.extensions."""
    cfg = app.config
    hasher = build_password_hasher(
        time_cost=cfg["ARGON2_TIME_COST"],
        memory_cost=cfg["ARGON2_MEMORY_COST"],
        parallelism=cfg["ARGON2_PARALLELISM"],
    )
    signer = TokenSigner(cfg.get("JWT_SECRET"), cfg["JWT_ALGORITHM"], cfg["JWT_ISSUER"])
    users = UserStore(storage)
    sessions = SessionManager(
        SessionStore(storage),
        signer,
        access_ttl_ms=cfg["ACCESS_TOKEN_TTL_MS"],
        refresh_ttl_ms=cfg["REFRESH_TOKEN_TTL_MS"],
    )
    gate = AuthGate(
        users,
        sessions,
        policy=ValidationPolicy(cfg["SESSION_VALIDATION"]),
        session_cookie_name=cfg["SESSION_COOKIE_NAME"],
    )
    app.extensions.update(
        {
            "storage": storage,
            "password_hasher": hasher,
            # verified against when an email is unknown, see api.auth.login
            "dummy_password_hash": hasher.hash(secrets.token_urlsafe(16)),
            "users": users,
            "sessions": sessions,
            "auth_gate": gate,
        }
    )


def register_commands(app: Flask) -> None:
    @app.cli.command("purge-sessions")
    def purge_sessions():
        """Delete expired sessions and sessions revoked longer than the grace period."""
        count = app.extensions["sessions"].purge_expired(app.config["SESSION_PURGE_GRACE_MS"])
        click.echo(f"purged {count} session(s)")

    @app.cli.command("create-admin")
    @click.argument("email")
    @click.argument("password")
    @click.option("--name", default=None, help="Display name")
    def create_admin(email, password, name):
        """Create an active admin account."""
        if len(password) < 8:
            raise click.BadParameter("password must be at least 8 characters", param_hint="PASSWORD")
        users = app.extensions["users"]
        user = users.create(
            email=email,
            password_hash=hash_password(app.extensions["password_hasher"], password),
            name=name,
            role="admin",
            status="active",
        )
        click.echo(f"created admin {user.email} ({user.id})")


def create_app(config_name: str | None = None, storage: DBStorage | None = None, **overrides) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    `overrides` are applied on top of the selected config class (tests use
    this to flip validation policy, TTLs and so on). A pre-built `storage`
    can be injected; otherwise one is created from DATABASE_URL.
    """
    app = Flask(__name__)

    app.config.from_object(get_config(config_name))
    app.config.update(overrides)
    validate_config(app.config)

    logging.getLogger().setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Cross-Origin Resource Sharing: the SPA authenticates with cookies
    CORS(
        app,
        resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}},
        supports_credentials=True,
    )

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Global error handlers returning the uniform error envelope
    register_error_handlers(app)

    if storage is None:
        storage = DBStorage(app.config["DATABASE_URL"], echo=bool(app.config.get("SQL_ECHO")))
    storage.reload()
    init_auth(app, storage)
    register_commands(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.route("/")
    def root():
        return {
            "message": "Voice BFF Auth API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    logger.info("app created env=%s validation=%s", app.config.get("APP_ENV"), app.config["SESSION_VALIDATION"])
    return app
