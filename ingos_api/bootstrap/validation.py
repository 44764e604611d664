from __future__ import annotations

from ingos_api.config import AUTH_MODE_LOCAL, AUTH_MODE_REMOTE, Config

AUTH_SECRET_MIN_BYTES = 32


def validate_startup_config(config: Config) -> None:
    if config.APP_CORS_ORIGINS is None:
        raise RuntimeError("APP_CORS_ORIGINS must be set.")
    if config.auth_mode not in {AUTH_MODE_LOCAL, AUTH_MODE_REMOTE}:
        raise RuntimeError("AUTH_SERVER_MODE must be one of: local, remote.")
    if config.auth_mode == AUTH_MODE_LOCAL:
        secret = (config.AUTH_SERVER_SECRET or "").strip()
        if not secret:
            raise RuntimeError("AUTH_SERVER_MODE=local requires AUTH_SERVER_SECRET to be set.")
        if len(secret.encode("utf-8")) < AUTH_SECRET_MIN_BYTES:
            raise RuntimeError(f"AUTH_SERVER_SECRET must be at least {AUTH_SECRET_MIN_BYTES} bytes.")
        if not (config.AUTH_SERVER_ISSUER or "").strip():
            raise RuntimeError("AUTH_SERVER_MODE=local requires AUTH_SERVER_ISSUER to be set.")
        if not (config.AUTH_SERVER_AUDIENCE or "").strip():
            raise RuntimeError("AUTH_SERVER_MODE=local requires AUTH_SERVER_AUDIENCE to be set.")
    if config.auth_mode == AUTH_MODE_REMOTE:
        authority = (config.AUTH_SERVER_AUTHORITY or "").strip()
        if not authority:
            raise RuntimeError("AUTH_SERVER_MODE=remote requires AUTH_SERVER_AUTHORITY to be set.")
        if config.AUTH_SERVER_REQUIRE_HTTPS_METADATA and not authority.lower().startswith("https://"):
            raise RuntimeError("AUTH_SERVER_AUTHORITY must use https when AUTH_SERVER_REQUIRE_HTTPS_METADATA=true.")
    if config.AUTH_SERVER_EXPIRATION < 0:
        raise RuntimeError("AUTH_SERVER_EXPIRATION must be greater than or equal to 0.")
    if not config.is_development and not config.redis_configuration:
        raise RuntimeError("REDIS_CONFIGURATION must be set outside development.")
    if config.CACHE_DEFAULT_TTL_SECONDS < 0:
        raise RuntimeError("CACHE_DEFAULT_TTL_SECONDS must be greater than or equal to 0.")
    if config.DB_POOL_SIZE <= 0:
        raise RuntimeError("DB_POOL_SIZE must be greater than 0.")
    if config.DB_MAX_OVERFLOW < 0:
        raise RuntimeError("DB_MAX_OVERFLOW must be greater than or equal to 0.")
    if config.DB_POOL_TIMEOUT_SECONDS <= 0:
        raise RuntimeError("DB_POOL_TIMEOUT_SECONDS must be greater than 0.")
    if config.DB_POOL_RECYCLE_SECONDS <= 0:
        raise RuntimeError("DB_POOL_RECYCLE_SECONDS must be greater than 0.")
