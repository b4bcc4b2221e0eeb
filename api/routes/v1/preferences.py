"""
api/routes/v1/preferences.py -- Per-user UI preferences (session required).

Routes:
  GET    /api/v1/academic-year  -- saved academic year, "" when none
  POST   /api/v1/academic-year  -- save academic year
  DELETE /api/v1/preferences    -- forget every saved preference
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import AcademicYearRequest, AcademicYearResponse, PreferencesResetResponse, StatusResponse
from auth.dependencies import require_session
from auth.models import Identity
from cache.preferences import PreferenceService

router = APIRouter()


def _preferences(request: Request) -> PreferenceService:
    return request.app.state.preferences


@router.get("/academic-year", response_model=AcademicYearResponse)
def get_academic_year(request: Request, identity: Identity = Depends(require_session)) -> AcademicYearResponse:
    year = _preferences(request).get_academic_year(identity.subject_id)
    return AcademicYearResponse(academicYear=year)


@router.post("/academic-year", response_model=StatusResponse)
def set_academic_year(
    request: Request,
    body: AcademicYearRequest,
    identity: Identity = Depends(require_session),
) -> StatusResponse:
    _preferences(request).set_academic_year(identity.subject_id, body.academic_year)
    return StatusResponse(message="Academic year saved successfully")


@router.delete("/preferences", response_model=PreferencesResetResponse)
def reset_preferences(request: Request, identity: Identity = Depends(require_session)) -> PreferencesResetResponse:
    removed = _preferences(request).reset(identity.subject_id)
    return PreferencesResetResponse(removed=removed)
