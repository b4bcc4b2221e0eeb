"""
API request and response models for the tzlev REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login.

    max_length on password keeps input under bcrypt's 72-byte window for any
    realistic password and bounds the work an anonymous request can cause.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    zehut: str = Field(min_length=1, max_length=32)
    password: str = Field(min_length=1, max_length=255)


class StatusResponse(BaseModel):
    status: str = "ok"
    message: str


class MeUser(BaseModel):
    zehut: str
    first_name: str
    last_name: str
    email: Optional[str] = None
    avatar: Optional[str] = None
    role: Optional[str] = None
    is_admin: bool = False


class MeResponse(BaseModel):
    """Response for GET /api/v1/auth/me. Fields come from the user repository, not the session."""

    user: MeUser


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------


class AcademicYearRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    academic_year: str = Field(alias="academicYear", min_length=1, max_length=32)


class AcademicYearResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    academic_year: str = Field(alias="academicYear")


class PreferencesResetResponse(BaseModel):
    success: bool = True
    removed: int
