from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

import httpx
import jwt

from ingos_api.config import AUTH_MODE_LOCAL, AUTH_MODE_REMOTE, Config

logger = logging.getLogger("ingos.security")

TOKEN_EXPIRED_HEADER = "Token-Expired"
REMOTE_AUDIENCE = "Ingos"
LOCAL_ALGORITHM = "HS256"
DISCOVERY_PATH = "/.well-known/openid-configuration"


class AuthFailureKind(str, Enum):
    TOKEN_EXPIRED = "token_expired"
    INVALID_TOKEN = "invalid_token"


@dataclass(frozen=True)
class AuthenticationResult:
    claims: dict[str, Any] | None = None
    failure: AuthFailureKind | None = None
    failure_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.claims is not None

    @property
    def token_expired(self) -> bool:
        return self.failure is AuthFailureKind.TOKEN_EXPIRED

    @classmethod
    def success(cls, claims: dict[str, Any]) -> "AuthenticationResult":
        return cls(claims=claims)

    @classmethod
    def fail(cls, kind: AuthFailureKind, message: str) -> "AuthenticationResult":
        return cls(failure=kind, failure_message=message)

    @classmethod
    def no_result(cls) -> "AuthenticationResult":
        return cls()


class TokenValidator(Protocol):
    def validate(self, token: str) -> dict[str, Any]: ...


class LocalIssuerTokenValidator:
    def __init__(self, *, secret: str, issuer: str, audience: str, clock_skew_seconds: int) -> None:
        self.secret = secret
        self.issuer = issuer
        self.audience = audience
        self.clock_skew_seconds = max(0, int(clock_skew_seconds))

    def validate(self, token: str) -> dict[str, Any]:
        return jwt.decode(
            token,
            key=self.secret,
            algorithms=[LOCAL_ALGORITHM],
            audience=self.audience,
            issuer=self.issuer,
            leeway=self.clock_skew_seconds,
            options={"require": ["exp", "iss", "aud"], "verify_signature": True},
        )


class RemoteIssuerTokenValidator:
    """Validates tokens signed by an external authority.

    The discovery document and signing keys are fetched on first use and
    then reused for the lifetime of the validator.
    """

    def __init__(
        self,
        *,
        authority: str,
        audience: str = REMOTE_AUDIENCE,
        require_https_metadata: bool = True,
        timeout_seconds: float = 5.0,
        http_get: Callable[..., Any] = httpx.get,
        jwk_client_factory: Callable[[str], Any] = jwt.PyJWKClient,
    ) -> None:
        if require_https_metadata and not authority.lower().startswith("https://"):
            raise RuntimeError("The authority must use HTTPS unless AUTH_SERVER_REQUIRE_HTTPS_METADATA=false.")
        self.authority = authority.rstrip("/")
        self.audience = audience
        self.timeout_seconds = timeout_seconds
        self._http_get = http_get
        self._jwk_client_factory = jwk_client_factory
        self._lock = threading.Lock()
        self._configuration: dict[str, Any] | None = None
        self._jwk_client: Any = None

    @property
    def metadata_address(self) -> str:
        return f"{self.authority}{DISCOVERY_PATH}"

    def configuration(self) -> dict[str, Any]:
        with self._lock:
            if self._configuration is None:
                response = self._http_get(self.metadata_address, timeout=self.timeout_seconds)
                response.raise_for_status()
                try:
                    document = response.json()
                except ValueError as exc:
                    raise jwt.InvalidTokenError("openid-configuration is not valid JSON") from exc
                if not isinstance(document, dict) or not document.get("jwks_uri"):
                    raise jwt.InvalidTokenError("jwks_uri not found in openid-configuration")
                self._configuration = document
                self._jwk_client = self._jwk_client_factory(document["jwks_uri"])
            return self._configuration

    def validate(self, token: str) -> dict[str, Any]:
        document = self.configuration()
        signing_key = self._jwk_client.get_signing_key_from_jwt(token)
        algorithms = document.get("id_token_signing_alg_values_supported") or ["RS256"]
        return jwt.decode(
            token,
            key=signing_key.key,
            algorithms=list(algorithms),
            audience=self.audience,
            issuer=document.get("issuer") or self.authority,
            options={"require": ["exp"]},
        )


def build_token_validator(config: Config) -> TokenValidator:
    if config.auth_mode == AUTH_MODE_REMOTE:
        return RemoteIssuerTokenValidator(
            authority=config.AUTH_SERVER_AUTHORITY or "",
            audience=REMOTE_AUDIENCE,
            require_https_metadata=config.AUTH_SERVER_REQUIRE_HTTPS_METADATA,
            timeout_seconds=config.AUTH_SERVER_DISCOVERY_TIMEOUT_SECONDS,
        )
    if config.auth_mode == AUTH_MODE_LOCAL:
        return LocalIssuerTokenValidator(
            secret=config.AUTH_SERVER_SECRET or "",
            issuer=config.AUTH_SERVER_ISSUER or "",
            audience=config.AUTH_SERVER_AUDIENCE,
            clock_skew_seconds=config.AUTH_SERVER_EXPIRATION,
        )
    raise RuntimeError(f"Unsupported AUTH_SERVER_MODE: {config.auth_mode}")


class JwtBearerHandler:
    def __init__(self, validator: TokenValidator) -> None:
        self.validator = validator

    def authenticate(self, authorization: str | None) -> AuthenticationResult:
        if not authorization:
            return AuthenticationResult.no_result()
        scheme, _, value = authorization.partition(" ")
        token = value.strip()
        if scheme.lower() != "bearer" or not token:
            return AuthenticationResult.no_result()

        try:
            claims = self.validator.validate(token)
        except jwt.ExpiredSignatureError as exc:
            return AuthenticationResult.fail(AuthFailureKind.TOKEN_EXPIRED, str(exc))
        except jwt.PyJWTError as exc:
            return AuthenticationResult.fail(AuthFailureKind.INVALID_TOKEN, str(exc))
        except httpx.HTTPError as exc:
            logger.warning("auth_discovery_failed", extra={"error": str(exc)})
            return AuthenticationResult.fail(AuthFailureKind.INVALID_TOKEN, "Unable to obtain configuration")

        if not isinstance(claims, dict):
            return AuthenticationResult.fail(AuthFailureKind.INVALID_TOKEN, "Token payload is not an object")
        return AuthenticationResult.success(claims)


def issue_access_token(
    config: Config,
    subject: str,
    *,
    claims: dict[str, Any] | None = None,
    lifetime_seconds: int | None = None,
    now: float | None = None,
) -> str:
    if config.auth_mode != AUTH_MODE_LOCAL:
        raise RuntimeError("Tokens can only be issued in local issuer mode.")
    issued_at = int(time.time() if now is None else now)
    lifetime = config.AUTH_SERVER_EXPIRATION if lifetime_seconds is None else lifetime_seconds
    payload: dict[str, Any] = dict(claims or {})
    payload.update(
        {
            "sub": subject,
            "iss": config.AUTH_SERVER_ISSUER,
            "aud": config.AUTH_SERVER_AUDIENCE,
            "iat": issued_at,
            "nbf": issued_at,
            "exp": issued_at + int(lifetime),
        }
    )
    return jwt.encode(payload, config.AUTH_SERVER_SECRET or "", algorithm=LOCAL_ALGORITHM)


def extract_values_set(claims: dict[str, Any], *keys: str) -> set[str]:
    values: set[str] = set()
    for key in keys:
        raw = claims.get(key)
        if isinstance(raw, str):
            if key == "scope":
                values.update(token for token in raw.split() if token)
            elif raw.strip():
                values.add(raw.strip())
        elif isinstance(raw, list):
            for item in raw:
                if isinstance(item, str) and item.strip():
                    values.add(item.strip())
    return values


@dataclass(frozen=True)
class CurrentUser:
    id: str
    user_name: str | None = None
    email: str | None = None
    roles: tuple[str, ...] = ()
    claims: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "CurrentUser":
        user_name = claims.get("preferred_username") or claims.get("unique_name") or claims.get("name")
        return cls(
            id=str(claims.get("sub", "")),
            user_name=str(user_name) if user_name else None,
            email=claims.get("email") if isinstance(claims.get("email"), str) else None,
            roles=tuple(sorted(extract_values_set(claims, "role", "roles"))),
            claims=dict(claims),
        )
