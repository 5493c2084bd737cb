"""
Badge and counters API endpoints.

Front-desk and coaching tools push activity counters (lessons attended,
distance swum, referrals...) through PATCH /counters. Badges are awarded
either by evaluation against those counters or directly by a coach.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from ...core.progress.catalog import UnknownBadgeError
from ...core.progress.models import StudentProgressCounters
from ..dependencies import AuthenticatedUser, BadgeServiceDep
from .catalog import BadgeResponse

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CountersResponse(BaseModel):
    """Activity counters used for badge eligibility."""
    student_id: str
    lessons_attended_count: int
    consecutive_weeks_present: int
    stroke_levels: dict[str, int] = Field(description="Level per stroke name, lowercase")
    total_distance_meters: int
    early_check_ins: int
    lessons_scheduled_this_week: int
    lessons_attended_this_week: int
    referral_count: int
    equipment_purchases: int
    badges_earned: list[str] = Field(description="Earned badge ids, sorted")

    @classmethod
    def from_counters(cls, counters: StudentProgressCounters) -> "CountersResponse":
        return cls(
            student_id=counters.student_id,
            lessons_attended_count=counters.lessons_attended_count,
            consecutive_weeks_present=counters.consecutive_weeks_present,
            stroke_levels=dict(counters.stroke_levels),
            total_distance_meters=counters.total_distance_meters,
            early_check_ins=counters.early_check_ins,
            lessons_scheduled_this_week=counters.lessons_scheduled_this_week,
            lessons_attended_this_week=counters.lessons_attended_this_week,
            referral_count=counters.referral_count,
            equipment_purchases=counters.equipment_purchases,
            badges_earned=sorted(counters.badges_earned),
        )


class CountersUpdateRequest(BaseModel):
    """
    Partial counters update.

    Only the fields present are changed. `stroke_levels` merges into the
    stored map. Earned badges can't be set here.
    """
    model_config = ConfigDict(extra="forbid")

    lessons_attended_count: Optional[int] = Field(None, ge=0)
    consecutive_weeks_present: Optional[int] = Field(None, ge=0)
    stroke_levels: Optional[dict[str, int]] = None
    total_distance_meters: Optional[int] = Field(None, ge=0)
    early_check_ins: Optional[int] = Field(None, ge=0)
    lessons_scheduled_this_week: Optional[int] = Field(None, ge=0)
    lessons_attended_this_week: Optional[int] = Field(None, ge=0)
    referral_count: Optional[int] = Field(None, ge=0)
    equipment_purchases: Optional[int] = Field(None, ge=0)


class BadgeListResponse(BaseModel):
    student_id: str
    badges: list[BadgeResponse]


class EligibilityResponse(BaseModel):
    student_id: str
    badge_id: str
    eligible: bool = Field(description="True if the badge is not yet earned and its rule holds")


class AwardResponse(BaseModel):
    student_id: str
    badge: BadgeResponse
    awarded: bool = Field(description="False if the student already held the badge")


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------

@router.get(
    "/{student_id}/counters",
    response_model=CountersResponse,
    summary="Get activity counters",
    description="Counters and earned badges; an unknown student gets all zeros",
)
async def get_counters(
    student_id: str,
    service: BadgeServiceDep,
    api_key: AuthenticatedUser = None,
) -> CountersResponse:
    return CountersResponse.from_counters(service.get_student_counters(student_id))


@router.patch(
    "/{student_id}/counters",
    response_model=CountersResponse,
    summary="Update activity counters",
    responses={422: {"description": "Unknown field or negative value"}},
)
async def update_counters(
    student_id: str,
    request: CountersUpdateRequest,
    service: BadgeServiceDep,
    api_key: AuthenticatedUser = None,
) -> CountersResponse:
    updates = request.model_dump(exclude_unset=True, exclude_none=True)

    try:
        counters = service.update_student_counters(student_id, **updates)
    except ValueError as e:
        logger.warning(
            "Rejected counters update",
            extra={"student_id": student_id, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    return CountersResponse.from_counters(counters)


@router.delete(
    "/{student_id}/counters",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset counters and badges",
)
async def reset_counters(
    student_id: str,
    service: BadgeServiceDep,
    api_key: AuthenticatedUser = None,
) -> None:
    service.reset_student_data(student_id)


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

@router.get(
    "/{student_id}/badges",
    response_model=BadgeListResponse,
    summary="Get earned badges",
)
async def get_earned_badges(
    student_id: str,
    service: BadgeServiceDep,
    api_key: AuthenticatedUser = None,
) -> BadgeListResponse:
    badges = service.get_student_badges(student_id)
    return BadgeListResponse(
        student_id=student_id,
        badges=[BadgeResponse.from_badge(badge) for badge in badges],
    )


@router.get(
    "/{student_id}/badges/available",
    response_model=BadgeListResponse,
    summary="Get badges not yet earned",
)
async def get_available_badges(
    student_id: str,
    service: BadgeServiceDep,
    api_key: AuthenticatedUser = None,
) -> BadgeListResponse:
    badges = service.get_available_badges(student_id)
    return BadgeListResponse(
        student_id=student_id,
        badges=[BadgeResponse.from_badge(badge) for badge in badges],
    )


@router.get(
    "/{student_id}/badges/{badge_id}/eligibility",
    response_model=EligibilityResponse,
    summary="Check badge eligibility",
)
async def check_eligibility(
    student_id: str,
    badge_id: str,
    service: BadgeServiceDep,
    api_key: AuthenticatedUser = None,
) -> EligibilityResponse:
    return EligibilityResponse(
        student_id=student_id,
        badge_id=badge_id,
        eligible=service.check_badge_eligibility(student_id, badge_id),
    )


# Registered before /{badge_id} so "evaluate" isn't read as a badge id
@router.post(
    "/{student_id}/badges/evaluate",
    response_model=BadgeListResponse,
    summary="Evaluate and award badges",
    description="Award every badge the student currently qualifies for; returns the new ones",
)
async def evaluate_badges(
    student_id: str,
    service: BadgeServiceDep,
    api_key: AuthenticatedUser = None,
) -> BadgeListResponse:
    awarded = service.evaluate_badges(student_id)
    return BadgeListResponse(
        student_id=student_id,
        badges=[BadgeResponse.from_badge(badge) for badge in awarded],
    )


@router.post(
    "/{student_id}/badges/{badge_id}",
    response_model=AwardResponse,
    summary="Award a badge",
    description="Coach award; does not check eligibility. Idempotent.",
    responses={404: {"description": "Badge not in catalog"}},
)
async def award_badge(
    student_id: str,
    badge_id: str,
    service: BadgeServiceDep,
    api_key: AuthenticatedUser = None,
) -> AwardResponse:
    try:
        awarded = service.award_badge(student_id, badge_id)
    except UnknownBadgeError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown badge: {e.badge_id}",
        )

    return AwardResponse(
        student_id=student_id,
        badge=BadgeResponse.from_badge(service.catalog.get(badge_id)),
        awarded=awarded,
    )
