"""
Skill progress API endpoints.

Coaches record assessments here; students, parents and dashboards read
the skill matrix, overall level and next-step recommendations.

All endpoints act for the tenant named in the X-Tenant-ID header.
"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from ...core.progress.catalog import UnknownSkillError
from ...core.progress.models import (
    MAX_LEVEL,
    MIN_LEVEL,
    InvalidLevelError,
    SkillMatrixItem,
    StudentProgress,
)
from ..dependencies import AuthenticatedUser, ProgressTrackerDep
from .catalog import SkillResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class AssessmentRequest(BaseModel):
    """A coach's assessment of one skill."""
    level: int = Field(description="Assessed level", ge=MIN_LEVEL, le=MAX_LEVEL)
    notes: Optional[str] = Field(
        None,
        description="Coach notes. Replaces any previous notes, even when omitted.",
        max_length=2000,
    )


class ProgressResponse(BaseModel):
    """A student's latest assessment on one skill."""
    student_id: str
    skill_id: str
    current_level: int
    attempts: int = Field(description="Number of assessments recorded")
    last_assessed: datetime
    coach_notes: Optional[str] = None
    is_mastered: bool

    @classmethod
    def from_progress(cls, progress: StudentProgress) -> "ProgressResponse":
        return cls(
            student_id=progress.student_id,
            skill_id=progress.skill_id,
            current_level=progress.current_level,
            attempts=progress.attempts,
            last_assessed=progress.last_assessed,
            coach_notes=progress.coach_notes,
            is_mastered=progress.is_mastered,
        )


class SkillMatrixItemResponse(BaseModel):
    skill: SkillResponse
    status: str = Field(description="NOT_STARTED, IN_PROGRESS or MASTERED")
    progress: Optional[ProgressResponse] = None

    @classmethod
    def from_item(cls, item: SkillMatrixItem) -> "SkillMatrixItemResponse":
        return cls(
            skill=SkillResponse.from_skill(item.skill),
            status=item.status.value,
            progress=ProgressResponse.from_progress(item.progress) if item.progress else None,
        )


class SkillMatrixResponse(BaseModel):
    student_id: str
    skills: list[SkillMatrixItemResponse]


class OverallLevelResponse(BaseModel):
    """Weighted completion across the full catalog."""
    student_id: str
    total_levels: int = Field(description="Sum of all catalog skill levels")
    earned_levels: int = Field(description="Weighted points earned, rounded")
    overall_percentage: int = Field(description="Completion percentage, rounded")
    suggested_level: int = Field(description="Suggested class level (1-5)")


class RecommendationsResponse(BaseModel):
    student_id: str
    skills: list[SkillResponse] = Field(description="At most three skills to focus on next")


class ResetResponse(BaseModel):
    student_id: str
    deleted: int = Field(description="Number of progress records removed")


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/{student_id}/skills",
    response_model=SkillMatrixResponse,
    summary="Get skill matrix",
    description="Every catalog skill with the student's status, in catalog order",
)
async def get_skill_matrix(
    student_id: str,
    tracker: ProgressTrackerDep,
    api_key: AuthenticatedUser = None,
) -> SkillMatrixResponse:
    matrix = tracker.get_student_skill_matrix(student_id)
    return SkillMatrixResponse(
        student_id=student_id,
        skills=[SkillMatrixItemResponse.from_item(item) for item in matrix],
    )


@router.delete(
    "/{student_id}/skills",
    response_model=ResetResponse,
    summary="Reset skill progress",
    description="Remove every skill progress record for the student",
)
async def reset_skill_progress(
    student_id: str,
    tracker: ProgressTrackerDep,
    api_key: AuthenticatedUser = None,
) -> ResetResponse:
    deleted = tracker.reset_student_progress(student_id)
    return ResetResponse(student_id=student_id, deleted=deleted)


@router.get(
    "/{student_id}/skills/{skill_id}",
    response_model=ProgressResponse,
    summary="Get progress on one skill",
    responses={404: {"description": "No assessment recorded for this skill"}},
)
async def get_skill_progress(
    student_id: str,
    skill_id: str,
    tracker: ProgressTrackerDep,
    api_key: AuthenticatedUser = None,
) -> ProgressResponse:
    progress = tracker.get_skill_progress(student_id, skill_id)
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No progress recorded for skill {skill_id}",
        )
    return ProgressResponse.from_progress(progress)


@router.put(
    "/{student_id}/skills/{skill_id}",
    response_model=ProgressResponse,
    summary="Record an assessment",
    description="Create or replace the student's record for a skill",
    responses={
        404: {"description": "Skill not in catalog"},
        422: {"description": "Level outside 1-5"},
    },
)
async def record_assessment(
    student_id: str,
    skill_id: str,
    request: AssessmentRequest,
    tracker: ProgressTrackerDep,
    api_key: AuthenticatedUser = None,
) -> ProgressResponse:
    """
    Record a coach's assessment.

    The first assessment creates the record with one attempt. Each later
    one replaces level, notes and timestamp and adds an attempt.
    """
    try:
        progress = tracker.update_skill_progress(
            student_id, skill_id, request.level, request.notes
        )
    except UnknownSkillError as e:
        logger.warning(
            "Assessment for unknown skill",
            extra={"student_id": student_id, "skill_id": e.skill_id}
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown skill: {e.skill_id}",
        )
    except InvalidLevelError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    return ProgressResponse.from_progress(progress)


@router.get(
    "/{student_id}/level",
    response_model=OverallLevelResponse,
    summary="Get overall level",
)
async def get_overall_level(
    student_id: str,
    tracker: ProgressTrackerDep,
    api_key: AuthenticatedUser = None,
) -> OverallLevelResponse:
    stats = tracker.calculate_overall_level(student_id)
    return OverallLevelResponse(
        student_id=student_id,
        total_levels=stats.total_levels,
        earned_levels=stats.earned_levels,
        overall_percentage=stats.overall_percentage,
        suggested_level=stats.suggested_level,
    )


@router.get(
    "/{student_id}/recommendations",
    response_model=RecommendationsResponse,
    summary="Get skill recommendations",
)
async def get_recommendations(
    student_id: str,
    tracker: ProgressTrackerDep,
    api_key: AuthenticatedUser = None,
) -> RecommendationsResponse:
    skills = tracker.get_skill_recommendations(student_id)
    return RecommendationsResponse(
        student_id=student_id,
        skills=[SkillResponse.from_skill(skill) for skill in skills],
    )
