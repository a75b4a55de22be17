"""Pydantic schemas for the student dashboard.

Response models for:
- Enrolled course cards (course + enrollment + counts)
- Recommended courses
- Upcoming schedule
- Full dashboard payload
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.progress.models import Course, Enrollment
from src.progress.schemas import DashboardStats, MisCursosData


# ==============================================================================
# Enrolled Course Schemas
# ==============================================================================


class CourseCard(BaseModel):
    """Course data shown on an enrolled course card."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str | None = None
    thumbnail_url: str | None = None
    cover_image_url: str | None = None
    difficulty: str | None = None
    tags: list[str] = Field(default_factory=list)
    average_rating: Decimal = Decimal(0)
    reviews_count: int = 0

    @classmethod
    def from_entity(cls, entity: Course) -> "CourseCard":
        """Create card from course entity."""
        return cls(
            id=entity.id,
            title=entity.title,
            description=entity.description,
            thumbnail_url=entity.thumbnail_url,
            cover_image_url=entity.cover_image_url,
            difficulty=entity.difficulty,
            tags=list(entity.tags),
            average_rating=entity.average_rating,
            reviews_count=entity.reviews_count,
        )


class EnrollmentRecord(BaseModel):
    """Stored enrollment as returned to the client."""

    id: UUID | None = None
    course_id: UUID
    student_id: UUID
    enrolled_at: datetime | None = None
    progress: Decimal = Field(Decimal(0), description="0-100 percentage")
    completed_lessons: list[UUID] = Field(default_factory=list)
    subsection_progress: dict[UUID, int] = Field(default_factory=dict)
    last_accessed_lesson_id: UUID | None = None

    @classmethod
    def from_entity(cls, entity: Enrollment) -> "EnrollmentRecord":
        """Create record from enrollment entity."""
        data = entity.to_dict()
        return cls(
            id=data["id"],
            course_id=data["course_id"],
            student_id=data["student_id"],
            enrolled_at=data["enrolled_at"],
            progress=data["progress"],
            completed_lessons=data["completed_lesson_ids"],
            subsection_progress=data["subsection_progress"],
            last_accessed_lesson_id=data["last_accessed_lesson_id"],
        )


class EnrolledCourseData(BaseModel):
    """Enrolled course card."""

    course: CourseCard
    enrollment: EnrollmentRecord
    lessons_count: int = 0
    completed_lessons_count: int = 0
    progress_percent: Decimal = Decimal(0)
    study_time_minutes: int = 0


# ==============================================================================
# Recommendation and Schedule Schemas
# ==============================================================================


class RecommendedCourse(BaseModel):
    """Catalog course suggested to the student."""

    course_id: UUID
    level: str = Field(description="Introductorio, Intermedio or Avanzado")
    title: str
    description: str
    students: int = 0
    lessons: int = 0
    rating: Decimal = Decimal(0)
    reviews_count: int = 0
    thumbnail: str


class ScheduleItem(BaseModel):
    """Upcoming scheduled lesson."""

    type: str = Field(description="En Vivo or Lección")
    title: str
    starts_at: datetime
    ends_at: datetime
    course_id: UUID
    lesson_id: UUID


# ==============================================================================
# Dashboard Payload
# ==============================================================================


class DashboardPayload(BaseModel):
    """Everything the student dashboard renders."""

    enrolled_courses: list[EnrolledCourseData] = Field(default_factory=list)
    recommended_courses: list[RecommendedCourse] = Field(default_factory=list)
    schedule_items: list[ScheduleItem] = Field(default_factory=list)
    mis_cursos_data: MisCursosData = Field(default_factory=MisCursosData)
    stats: DashboardStats = Field(default_factory=DashboardStats)
    favorites: list[UUID] = Field(default_factory=list)
