from typing import Any

from fastapi import Request

from ingos_api.cache import DistributedCache
from ingos_api.localization import DEFAULT_CULTURE, StringLocalizer
from ingos_api.schemas import ErrorResponse

ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_localizer(request: Request) -> StringLocalizer:
    return request.app.state.localizer


def get_cache(request: Request) -> DistributedCache:
    return request.app.state.cache


def request_culture(request: Request) -> str:
    return getattr(request.state, "culture", None) or DEFAULT_CULTURE
