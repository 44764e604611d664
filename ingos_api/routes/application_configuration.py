from fastapi import Depends, Request

from ingos_api.auditing import APPLICATION_NAME
from ingos_api.localization import StringLocalizer
from ingos_api.routes.common import ERROR_RESPONSES, get_localizer, request_culture
from ingos_api.schemas import (
    ApplicationConfigurationResponse,
    CurrentUserConfiguration,
    LanguageResponse,
    LocalizationConfiguration,
)
from ingos_api.security_dependencies import optional_current_user
from ingos_api.versioning import ApiVersionDescriptionProvider, VersionedRouter

router = VersionedRouter(tags=["abp"])


@router.get(
    "/application-configuration",
    summary="Get localization, current user and API version information",
    response_model=ApplicationConfigurationResponse,
    responses=ERROR_RESPONSES,
)
def get_application_configuration(
    request: Request,
    localizer: StringLocalizer = Depends(get_localizer),
) -> ApplicationConfigurationResponse:
    culture = request_culture(request)
    options = localizer.options
    user = optional_current_user(request)
    provider: ApiVersionDescriptionProvider = request.app.state.api_version_provider
    config = request.app.state.config

    return ApplicationConfigurationResponse(
        application_name=APPLICATION_NAME,
        localization=LocalizationConfiguration(
            current_culture=culture,
            default_culture=options.default_culture,
            languages=[
                LanguageResponse(
                    culture_name=language.culture_name,
                    ui_culture_name=language.ui_culture_name,
                    display_name=language.display_name,
                )
                for language in options.languages
            ],
            values={name: localizer.get_all_texts(name, culture) for name in options.resources},
        ),
        current_user=CurrentUserConfiguration(
            is_authenticated=user is not None,
            id=user.id if user else None,
            user_name=user.user_name if user else None,
            roles=list(user.roles) if user else [],
        ),
        api_versions=[str(d.api_version) for d in provider.api_version_descriptions],
        auth_mode=config.auth_mode,
    )
