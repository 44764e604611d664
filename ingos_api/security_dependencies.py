from __future__ import annotations

from fastapi import Request

from ingos_api.errors import http_error
from ingos_api.security_jwt import AuthenticationResult, CurrentUser


def authentication_result(request: Request) -> AuthenticationResult:
    result = getattr(request.state, "authentication", None)
    if isinstance(result, AuthenticationResult):
        return result
    return AuthenticationResult.no_result()


def optional_current_user(request: Request) -> CurrentUser | None:
    result = authentication_result(request)
    if not result.succeeded or result.claims is None:
        return None
    return CurrentUser.from_claims(result.claims)


async def require_authenticated_user(request: Request) -> CurrentUser:
    result = authentication_result(request)
    user = optional_current_user(request)
    if user is not None:
        return user

    challenge = "Bearer"
    details: dict[str, str] = {"reason": "missing_token"}
    if result.failure is not None:
        description = (result.failure_message or result.failure.value).replace('"', "'")
        challenge = f'Bearer error="invalid_token", error_description="{description}"'
        details = {"reason": result.failure.value}
    raise http_error(
        401,
        "UNAUTHORIZED",
        "Unauthorized",
        details=details,
        headers={"WWW-Authenticate": challenge},
    )
