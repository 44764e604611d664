from fastapi import Depends, Request

from ingos_api.localization import APP_RESOURCE, StringLocalizer
from ingos_api.routes.common import ERROR_RESPONSES, get_localizer, request_culture
from ingos_api.schemas import ProfileResponse, ProfileV2Response
from ingos_api.security_dependencies import require_authenticated_user
from ingos_api.security_jwt import CurrentUser
from ingos_api.versioning import ApiVersion, VersionedRouter, requested_api_version

router_v1 = VersionedRouter(api_versions=(ApiVersion(1, 0),), tags=["profile"])
router_v2 = VersionedRouter(api_versions=(ApiVersion(2, 0),), tags=["profile"])


def _greeting(localizer: StringLocalizer, user: CurrentUser, culture: str) -> str:
    return localizer.localize(APP_RESOURCE, "Greeting", culture, name=user.user_name or user.id)


@router_v1.get(
    "/profile",
    summary="Get the current user's profile",
    response_model=ProfileResponse,
    responses=ERROR_RESPONSES,
)
def get_profile_v1(
    request: Request,
    user: CurrentUser = Depends(require_authenticated_user),
    localizer: StringLocalizer = Depends(get_localizer),
) -> ProfileResponse:
    return ProfileResponse(
        id=user.id,
        user_name=user.user_name,
        email=user.email,
        roles=list(user.roles),
        greeting=_greeting(localizer, user, request_culture(request)),
    )


@router_v2.get(
    "/profile",
    summary="Get the current user's profile with token claims",
    response_model=ProfileV2Response,
    responses=ERROR_RESPONSES,
)
def get_profile_v2(
    request: Request,
    user: CurrentUser = Depends(require_authenticated_user),
    localizer: StringLocalizer = Depends(get_localizer),
) -> ProfileV2Response:
    return ProfileV2Response(
        id=user.id,
        user_name=user.user_name,
        email=user.email,
        roles=list(user.roles),
        greeting=_greeting(localizer, user, request_culture(request)),
        api_version=str(requested_api_version(request)),
        claims=user.claims,
    )
