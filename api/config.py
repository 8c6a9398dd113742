"""
Environment-aware configuration.
Values come from the process environment (and .env when present); TTLs are
expressed in milliseconds so operators can tune them without code changes.
"""
import logging
import os

from dotenv import load_dotenv

from utils.exceptions import ConfigurationError

load_dotenv()  # Read .env if present

logger = logging.getLogger(__name__)

MINUTE_MS = 60 * 1000
DAY_MS = 24 * 60 * MINUTE_MS

VALIDATION_MODES = ("strict", "relaxed")
SAMESITE_POLICIES = ("None", "Lax", "Strict")


def _env_bool(name: str, default: bool | None = None) -> bool | None:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(name: str, default: str) -> list[str]:
    return [s.strip() for s in os.getenv(name, default).split(",") if s.strip()]


class BaseConfig:
    APP_ENV = os.getenv("APP_ENV", "dev")
    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    # CORS: the SPA sends cookies, so origins must be explicit in production
    CORS_ORIGINS = _env_list("CORS_ORIGINS", "*")
    TRUST_PROXY = _env_bool("TRUST_PROXY", False)

    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///voice-bff.db")
    SQL_ECHO = _env_bool("SQL_ECHO", False)

    # Signing secret has no default: signing fails without it
    JWT_SECRET = os.getenv("JWT_SECRET")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_ISSUER = os.getenv("JWT_ISSUER", "voice-bff")
    ACCESS_TOKEN_TTL_MS = int(os.getenv("ACCESS_TOKEN_TTL_MS", str(30 * MINUTE_MS)))
    REFRESH_TOKEN_TTL_MS = int(os.getenv("REFRESH_TOKEN_TTL_MS", str(7 * DAY_MS)))

    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
    REFRESH_COOKIE_NAME = os.getenv("REFRESH_COOKIE_NAME", "refresh_token")
    COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "None")
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", False)
    COOKIE_DOMAIN = os.getenv("COOKIE_DOMAIN") or None

    SESSION_VALIDATION = os.getenv("SESSION_VALIDATION", "relaxed")
    # Revoked/expired sessions older than this are removed by purge-sessions
    SESSION_PURGE_GRACE_MS = int(os.getenv("SESSION_PURGE_GRACE_MS", str(DAY_MS)))

    ARGON2_TIME_COST = int(os.getenv("ARGON2_TIME_COST", "3"))
    ARGON2_MEMORY_COST = int(os.getenv("ARGON2_MEMORY_COST", "65536"))
    ARGON2_PARALLELISM = int(os.getenv("ARGON2_PARALLELISM", "4"))

    ALLOWED_ROLES = _env_list("ALLOWED_ROLES", "admin,inbound,outbound")
    DEFAULT_ROLE = os.getenv("DEFAULT_ROLE", "outbound")
    DEFAULT_ACCOUNT_STATUS = os.getenv("DEFAULT_ACCOUNT_STATUS", "active")


class DevelopmentConfig(BaseConfig):
    APP_ENV = "dev"
    DEBUG = True
    SQL_ECHO = _env_bool("SQL_ECHO", True)


class TestingConfig(BaseConfig):
    APP_ENV = "test"
    TESTING = True
    DATABASE_URL = "sqlite://"
    SQL_ECHO = False
    JWT_SECRET = os.getenv("JWT_SECRET", "test-secret-key-for-testing-only-0123456789")
    SESSION_VALIDATION = "relaxed"
    SESSION_COOKIE_NAME = "session"
    REFRESH_COOKIE_NAME = "refresh_token"
    COOKIE_SAMESITE = "None"
    COOKIE_SECURE = False
    TRUST_PROXY = False
    ALLOWED_ROLES = ["admin", "inbound", "outbound"]
    DEFAULT_ROLE = "outbound"
    DEFAULT_ACCOUNT_STATUS = "active"
    ACCESS_TOKEN_TTL_MS = 30 * MINUTE_MS
    REFRESH_TOKEN_TTL_MS = 7 * DAY_MS
    # Cheap hashing keeps the suite fast; still a valid argon2 configuration
    ARGON2_TIME_COST = 1
    ARGON2_MEMORY_COST = 1024
    ARGON2_PARALLELISM = 1


class ProductionConfig(BaseConfig):
    APP_ENV = "prod"
    DEBUG = False
    COOKIE_SECURE = _env_bool("COOKIE_SECURE", True)
    SESSION_VALIDATION = os.getenv("SESSION_VALIDATION", "strict")
    DATABASE_URL = os.getenv("DATABASE_URL")


def get_config(name: str | None):
    """
    Select config class.
    - If name is provided, choose by name.
    - Else choose based on APP_ENV (dev/test/prod).
    """
    env = (name or os.getenv("APP_ENV", "dev")).lower()
    if env in ["prod", "production"]:
        return ProductionConfig
    if env in ["test", "testing"]:
        return TestingConfig
    return DevelopmentConfig


def validate_config(config) -> None:
    """
    Fail fast on settings that would otherwise only break at request time.
    `config` is a mapping (flask.Config).
    """
    production = str(config.get("APP_ENV", "")).lower() in ("prod", "production")

    if not config.get("JWT_SECRET"):
        if production:
            raise ConfigurationError("JWT_SECRET must be set in production")
        logger.warning("JWT_SECRET is not set; every token signing call will fail")
    elif len(config["JWT_SECRET"]) < 32:
        logger.warning("JWT_SECRET is shorter than 32 characters")

    if not config.get("DATABASE_URL"):
        raise ConfigurationError("DATABASE_URL must be set")

    access_ttl = config.get("ACCESS_TOKEN_TTL_MS")
    refresh_ttl = config.get("REFRESH_TOKEN_TTL_MS")
    if not isinstance(access_ttl, int) or access_ttl <= 0:
        raise ConfigurationError("ACCESS_TOKEN_TTL_MS must be a positive integer")
    if not isinstance(refresh_ttl, int) or refresh_ttl <= 0:
        raise ConfigurationError("REFRESH_TOKEN_TTL_MS must be a positive integer")
    if refresh_ttl <= access_ttl:
        raise ConfigurationError("REFRESH_TOKEN_TTL_MS must be longer than ACCESS_TOKEN_TTL_MS")

    if config.get("SESSION_VALIDATION") not in VALIDATION_MODES:
        raise ConfigurationError(f"SESSION_VALIDATION must be one of {VALIDATION_MODES}")
    if config.get("COOKIE_SAMESITE") not in SAMESITE_POLICIES:
        raise ConfigurationError(f"COOKIE_SAMESITE must be one of {SAMESITE_POLICIES}")

    roles = config.get("ALLOWED_ROLES") or []
    if config.get("DEFAULT_ROLE") not in roles:
        raise ConfigurationError("DEFAULT_ROLE must be one of ALLOWED_ROLES")
    if config.get("DEFAULT_ACCOUNT_STATUS") not in ("active", "pending_approval"):
        raise ConfigurationError("DEFAULT_ACCOUNT_STATUS must be active or pending_approval")
