"""
Catalog API endpoints.

Read-only views of the skill and badge catalogs the service was started
with. Every tenant sees the same catalog.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel, Field

from ...core.progress.models import Badge, Skill, SkillCategory
from ..dependencies import AuthenticatedUser, BadgeCatalogDep, SkillCatalogDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Response Models
# ---------------------------------------------------------------------------

class SkillResponse(BaseModel):
    """A catalog skill."""
    id: str = Field(description="Stable skill identifier, e.g. ws-01")
    name: str
    category: str = Field(description="Skill category")
    level: int = Field(description="Difficulty tier (1-5), also the skill's weight")
    description: str = ""

    @classmethod
    def from_skill(cls, skill: Skill) -> "SkillResponse":
        return cls(
            id=skill.id,
            name=skill.name,
            category=skill.category.value,
            level=skill.level,
            description=skill.description,
        )


class BadgeResponse(BaseModel):
    """A catalog badge."""
    id: str
    name: str
    description: str
    icon: str
    category: str
    requirement: str = Field(description="Human-readable requirement")

    @classmethod
    def from_badge(cls, badge: Badge) -> "BadgeResponse":
        return cls(
            id=badge.id,
            name=badge.name,
            description=badge.description,
            icon=badge.icon,
            category=badge.category.value,
            requirement=badge.requirement,
        )


class SkillCatalogResponse(BaseModel):
    version: str
    skills: list[SkillResponse]


class BadgeCatalogResponse(BaseModel):
    version: str
    badges: list[BadgeResponse]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/skills",
    response_model=SkillCatalogResponse,
    summary="List catalog skills",
    description="All skills in catalog order, optionally filtered by category",
)
async def list_skills(
    catalog: SkillCatalogDep,
    api_key: AuthenticatedUser = None,
    category: Optional[str] = Query(None, description="Only skills in this category"),
) -> SkillCatalogResponse:
    if category is None:
        skills = list(catalog)
    else:
        try:
            skills = catalog.by_category(SkillCategory(category))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Unknown skill category: {category}",
            )

    return SkillCatalogResponse(
        version=catalog.version,
        skills=[SkillResponse.from_skill(skill) for skill in skills],
    )


@router.get(
    "/badges",
    response_model=BadgeCatalogResponse,
    summary="List catalog badges",
)
async def list_badges(
    catalog: BadgeCatalogDep,
    api_key: AuthenticatedUser = None,
) -> BadgeCatalogResponse:
    return BadgeCatalogResponse(
        version=catalog.version,
        badges=[BadgeResponse.from_badge(badge) for badge in catalog],
    )
