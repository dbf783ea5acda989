from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Any, Literal

PREFERENCES_VERSION = 2

ValueFocus = Literal["best_value", "midrange_worth_it", "splurge_if_unique"]

ALLOWED_IMAGE_FORMATS = ("jpeg", "jpg", "png", "webp")


class AnalysisPreferences(BaseModel):
    """
    User preferences sent alongside the photo.

    Version 2 replaced the free-form budget with age + value_focus. Unknown
    fields (including the retired budget) are rejected instead of dropped.
    """
    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    version: int = PREFERENCES_VERSION
    goals: str = Field("", max_length=500)
    age: Optional[int] = Field(None, ge=13, le=120)
    value_focus: Optional[ValueFocus] = Field(None, alias="valueFocus")
    fragrance_free: bool = Field(False, alias="fragranceFree")
    pregnancy_safe: bool = Field(False, alias="pregnancySafe")
    sensitive_mode: bool = Field(False, alias="sensitiveMode")

    @field_validator("version")
    @classmethod
    def validate_version(cls, v):
        if v != PREFERENCES_VERSION:
            raise ValueError(f"Unsupported preferences version {v}; expected {PREFERENCES_VERSION}")
        return v

    @field_validator("goals")
    @classmethod
    def strip_goals(cls, v):
        return v.strip()


class AnalysisRequest(BaseModel):
    """A validated upload: raw image bytes plus preferences"""
    model_config = ConfigDict(frozen=True)

    image_bytes: bytes
    mime_type: str
    preferences: AnalysisPreferences = Field(default_factory=AnalysisPreferences)


class ApiResponse(BaseModel):
    """Envelope for every API response"""
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None


class HealthStatus(BaseModel):
    status: str
    vector_index: bool
    database: str
    timestamp: str
