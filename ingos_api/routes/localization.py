from fastapi import Depends, Query, Request

from ingos_api.cache import DistributedCache
from ingos_api.errors import http_error
from ingos_api.localization import APP_RESOURCE, StringLocalizer
from ingos_api.routes.common import ERROR_RESPONSES, get_cache, get_localizer, request_culture
from ingos_api.schemas import LocalizedTextsResponse
from ingos_api.versioning import ApiVersion, VersionedRouter

router = VersionedRouter(api_versions=(ApiVersion(1, 0),), tags=["localization"])


@router.get(
    "/localization/texts",
    summary="List localized texts for the request culture",
    response_model=LocalizedTextsResponse,
    responses=ERROR_RESPONSES,
)
def list_localized_texts(
    request: Request,
    resource: str = Query(default=APP_RESOURCE, description="localization resource name"),
    localizer: StringLocalizer = Depends(get_localizer),
    cache: DistributedCache = Depends(get_cache),
) -> LocalizedTextsResponse:
    if resource not in localizer.options.resources:
        raise http_error(404, "NOT_FOUND", "Not Found", details={"resource": resource})
    culture = request_culture(request)
    if localizer.serves_physical_files:
        texts = localizer.get_all_texts(resource, culture)
    else:
        texts = cache.get_or_add(
            f"localization:{resource}:{culture}",
            lambda: localizer.get_all_texts(resource, culture),
        )
    return LocalizedTextsResponse(resource=resource, culture=culture, texts=texts)
