from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    code: str = Field(examples=["UNAUTHORIZED"])
    message: str = Field(examples=["Unauthorized"])
    error: str = Field(examples=["Unauthorized"])
    request_id: Optional[str] = Field(default=None, examples=["9f0c3c5b1f7e4a56b5d4b0b6f1d2e3a4"])
    details: Any = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "UNAUTHORIZED",
                "message": "Unauthorized",
                "error": "Unauthorized",
                "request_id": "9f0c3c5b1f7e4a56b5d4b0b6f1d2e3a4",
                "details": {"reason": "token_expired"},
            }
        }
    )


class HealthCheckEntry(BaseModel):
    status: str = Field(examples=["Healthy", "Unhealthy"])
    description: Optional[str] = None


class HealthResponse(BaseModel):
    status: str = Field(examples=["Healthy", "Unhealthy"])
    checks: dict[str, HealthCheckEntry]


class ProfileResponse(BaseModel):
    id: str
    user_name: Optional[str] = None
    email: Optional[str] = None
    roles: list[str] = Field(default_factory=list)
    greeting: str


class ProfileV2Response(ProfileResponse):
    api_version: str = Field(examples=["2.0"])
    claims: dict[str, Any] = Field(default_factory=dict)


class LocalizedTextsResponse(BaseModel):
    resource: str = Field(examples=["Ingos"])
    culture: str = Field(examples=["en", "zh-Hans"])
    texts: dict[str, str]


class LanguageResponse(BaseModel):
    culture_name: str
    ui_culture_name: str
    display_name: str


class LocalizationConfiguration(BaseModel):
    current_culture: str
    default_culture: str
    languages: list[LanguageResponse]
    values: dict[str, dict[str, str]]


class CurrentUserConfiguration(BaseModel):
    is_authenticated: bool
    id: Optional[str] = None
    user_name: Optional[str] = None
    roles: list[str] = Field(default_factory=list)


class ApplicationConfigurationResponse(BaseModel):
    application_name: str
    localization: LocalizationConfiguration
    current_user: CurrentUserConfiguration
    api_versions: list[str]
    auth_mode: str
