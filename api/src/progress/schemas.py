"""Pydantic schemas for aggregated student progress.

Derived, in-memory-only views produced by the aggregation engine:
- Course progress summaries (sessions, subsections, quizzes, resume pointer)
- Microcredential groups (two gated levels)
- Standalone course summaries
- Dashboard statistics
"""

from decimal import Decimal
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LevelState(str, Enum):
    """Microcredential level state."""

    LOCKED = "locked"
    UNLOCKED = "unlocked"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


# ==============================================================================
# Course Progress Schemas
# ==============================================================================


class CourseProgressSummary(BaseModel):
    """Progress of one enrolled course.

    Sessions are lesson records; subsections are the fine-grained units
    parsed from lesson content (shown as "lecciones").
    """

    model_config = ConfigDict(frozen=True)

    course_id: UUID
    title: str
    thumbnail_url: str | None = None
    cover_image_url: str | None = None
    total_sessions: int = 0
    completed_sessions: int = 0
    total_subsections: int = 0
    completed_subsections: int = 0
    total_sections: int = 0
    total_quizzes: int = 0
    completed_quizzes: int = 0
    progress_percent: Decimal = Field(
        Decimal(0), description="Stored progress scalar (0-100), source of truth"
    )
    subsection_percent: Decimal = Field(
        Decimal(0), description="Recomputed from subsection counts (display only)"
    )
    last_accessed_lesson_id: UUID | None = None
    last_accessed_subsection_index: int = Field(0, ge=0)
    resume_subsection_title: str | None = None


class StandaloneCourseSummary(CourseProgressSummary):
    """Enrolled course that is not part of any microcredential."""


class MicrocredentialCourseProgress(CourseProgressSummary):
    """One level of a microcredential."""

    level: Literal[1, 2]
    is_locked: bool = False
    state: LevelState = LevelState.UNLOCKED


class MicrocredentialGroup(BaseModel):
    """Microcredential with its two level courses."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    title: str
    courses: tuple[MicrocredentialCourseProgress, MicrocredentialCourseProgress]
    is_level2_locked: bool
    overall_progress: int = Field(0, ge=0, le=100)
    badge_unlocked: bool = False
    status: str


class MisCursosData(BaseModel):
    """Enrolled courses split into microcredential groups and standalone."""

    microcredentials: list[MicrocredentialGroup] = Field(default_factory=list)
    standalone_courses: list[StandaloneCourseSummary] = Field(default_factory=list)


# ==============================================================================
# Dashboard Stats Schemas
# ==============================================================================


class DashboardStats(BaseModel):
    """Top-level dashboard counters."""

    progress_percentage: int = 0
    completed_courses: int = 0
    courses_in_progress: int = 0
    total_study_minutes: int = 0
    completed_microcredentials: int = 0
    microcredentials_in_progress: int = 0
