"""Snapshot entities for student progress aggregation.

Cassandra table definitions and read-only entity classes for:
- Student enrollments: stored progress, completed lessons, subsection progress
- Courses and their active lessons (one lesson = one session)
- Course sections and course tests (join rows, counted only)
- Test attempts per student
- Microcredentials and microcredential enrollments

Architecture: query-driven tables partitioned by the key the dashboard
reads with (student_id, user_id or course_id).
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class LessonType(str, Enum):
    """Lesson delivery type."""

    VIDEO = "video"
    LIVESTREAM = "livestream"
    HYBRID = "hybrid"


class TestAttemptStatus(str, Enum):
    """Test attempt status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class MicrocredentialStatus(str, Enum):
    """Microcredential enrollment status."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

# Authenticated user -> student record
STUDENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.students_by_user (
    user_id UUID PRIMARY KEY,
    student_id UUID
)
"""

# Enrollments by student, newest first
STUDENT_ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.student_enrollments_by_student (
    student_id UUID,
    enrolled_at TIMESTAMP,
    course_id UUID,
    id UUID,
    progress DECIMAL,
    completed_lessons SET<UUID>,
    subsection_progress MAP<UUID, INT>,
    last_accessed_lesson_id UUID,
    PRIMARY KEY (student_id, enrolled_at, course_id)
) WITH CLUSTERING ORDER BY (enrolled_at DESC, course_id ASC)
"""

COURSES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    thumbnail_url TEXT,
    cover_image_url TEXT,
    difficulty TEXT,
    tags LIST<TEXT>,
    average_rating DECIMAL,
    reviews_count INT,
    is_active BOOLEAN,
    created_at TIMESTAMP
)
"""

# Active catalog (recommendation candidates)
COURSES_BY_STATUS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_status (
    status TEXT,
    created_at TIMESTAMP,
    course_id UUID,
    title TEXT,
    description TEXT,
    thumbnail_url TEXT,
    cover_image_url TEXT,
    difficulty TEXT,
    average_rating DECIMAL,
    reviews_count INT,
    PRIMARY KEY (status, created_at, course_id)
) WITH CLUSTERING ORDER BY (created_at DESC, course_id ASC)
"""

COURSE_STUDENT_COUNTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_student_counts (
    course_id UUID PRIMARY KEY,
    students COUNTER
)
"""

# content: opaque JSON holding the ordered subsection list
LESSONS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.lessons_by_course (
    course_id UUID,
    id UUID,
    title TEXT,
    content TEXT,
    duration_minutes INT,
    scheduled_start TIMESTAMP,
    type TEXT,
    is_active BOOLEAN,
    PRIMARY KEY (course_id, id)
)
"""

COURSE_SECTIONS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_sections_by_course (
    course_id UUID,
    id UUID,
    PRIMARY KEY (course_id, id)
)
"""

COURSE_TESTS_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_tests_by_course (
    course_id UUID,
    id UUID,
    test_id UUID,
    PRIMARY KEY (course_id, id)
)
"""

TEST_ATTEMPTS_BY_STUDENT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.test_attempts_by_student (
    student_id UUID,
    id UUID,
    course_id UUID,
    course_test_id UUID,
    status TEXT,
    PRIMARY KEY (student_id, id)
)
"""

MICROCREDENTIALS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.microcredentials (
    id UUID PRIMARY KEY,
    title TEXT,
    course_level_1_id UUID,
    course_level_2_id UUID
)
"""

# Denormalized: course pair and title copied from microcredentials
MICROCREDENTIAL_ENROLLMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.microcredential_enrollments_by_student (
    student_id UUID,
    microcredential_id UUID,
    microcredential_title TEXT,
    course_level_1_id UUID,
    course_level_2_id UUID,
    level_1_completed BOOLEAN,
    level_2_completed BOOLEAN,
    level_2_unlocked BOOLEAN,
    badge_unlocked BOOLEAN,
    status TEXT,
    enrolled_at TIMESTAMP,
    PRIMARY KEY (student_id, microcredential_id)
)
"""

COURSE_FAVORITES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_favorites_by_user (
    user_id UUID,
    course_id UUID,
    created_at TIMESTAMP,
    PRIMARY KEY (user_id, course_id)
)
"""

# All CQL statements for table setup
PROGRESS_TABLES_CQL = [
    STUDENTS_BY_USER_TABLE_CQL,
    STUDENT_ENROLLMENTS_TABLE_CQL,
    COURSES_TABLE_CQL,
    COURSES_BY_STATUS_TABLE_CQL,
    COURSE_STUDENT_COUNTS_TABLE_CQL,
    LESSONS_BY_COURSE_TABLE_CQL,
    COURSE_SECTIONS_BY_COURSE_TABLE_CQL,
    COURSE_TESTS_BY_COURSE_TABLE_CQL,
    TEST_ATTEMPTS_BY_STUDENT_TABLE_CQL,
    MICROCREDENTIALS_TABLE_CQL,
    MICROCREDENTIAL_ENROLLMENTS_TABLE_CQL,
    COURSE_FAVORITES_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


class Course:
    """Course card data embedded in enrollments and the catalog.

    Attributes:
        id: Course UUID
        title: Course title
        description: Raw (possibly HTML) description
        thumbnail_url: Thumbnail image URL
        cover_image_url: Cover image URL
        difficulty: beginner, intermediate or advanced
        tags: Free-form tags
        average_rating: Mean review rating (0 when unrated)
        reviews_count: Number of reviews
        is_active: Whether the course is published
        created_at: Creation timestamp
    """

    def __init__(
        self,
        id: UUID,
        title: str = "",
        description: str | None = None,
        thumbnail_url: str | None = None,
        cover_image_url: str | None = None,
        difficulty: str | None = None,
        tags: list[str] | None = None,
        average_rating: Decimal = Decimal(0),
        reviews_count: int = 0,
        is_active: bool = True,
        created_at: datetime | None = None,
    ):
        self.id = id
        self.title = title
        self.description = description
        self.thumbnail_url = thumbnail_url
        self.cover_image_url = cover_image_url
        self.difficulty = difficulty
        self.tags = tags or []
        self.average_rating = average_rating
        self.reviews_count = reviews_count
        self.is_active = is_active
        self.created_at = ensure_utc_aware(created_at)

    @property
    def is_rated(self) -> bool:
        """Check if the course has at least one rating."""
        return self.average_rating > 0

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from a `courses` row."""
        return cls(
            id=row.id,
            title=row.title or "",
            description=row.description,
            thumbnail_url=row.thumbnail_url,
            cover_image_url=row.cover_image_url,
            difficulty=row.difficulty,
            tags=list(row.tags or []),
            average_rating=row.average_rating or Decimal(0),
            reviews_count=row.reviews_count or 0,
            is_active=row.is_active is not False,
            created_at=row.created_at,
        )

    @classmethod
    def from_status_row(cls, row: Any) -> "Course":
        """Create Course instance from a `courses_by_status` row."""
        return cls(
            id=row.course_id,
            title=row.title or "",
            description=row.description,
            thumbnail_url=row.thumbnail_url,
            cover_image_url=row.cover_image_url,
            difficulty=row.difficulty,
            average_rating=row.average_rating or Decimal(0),
            reviews_count=row.reviews_count or 0,
            is_active=row.status == "active",
            created_at=row.created_at,
        )

    def __repr__(self) -> str:
        return f"<Course {self.title} ({self.id})>"


class Enrollment:
    """Student enrollment in a course.

    `progress` is the server-authoritative scalar (0-100). It is used for
    coarse completion checks only and is never reconciled with the counts
    recomputed from `completed_lesson_ids` and `subsection_progress`.

    Attributes:
        id: Enrollment UUID
        course_id: Course UUID
        student_id: Student UUID
        enrolled_at: Enrollment timestamp
        progress: Stored progress percentage (0-100)
        completed_lesson_ids: Lessons explicitly marked complete
        subsection_progress: lesson_id -> highest subsection index reached
        last_accessed_lesson_id: Last lesson opened (resume pointer)
        course: Embedded course card (None if the course did not resolve)
    """

    def __init__(
        self,
        course_id: UUID,
        student_id: UUID,
        id: UUID | None = None,
        enrolled_at: datetime | None = None,
        progress: Decimal = Decimal(0),
        completed_lesson_ids: set[UUID] | frozenset[UUID] | None = None,
        subsection_progress: dict[UUID, int] | None = None,
        last_accessed_lesson_id: UUID | None = None,
        course: Course | None = None,
    ):
        self.id = id
        self.course_id = course_id
        self.student_id = student_id
        self.enrolled_at = ensure_utc_aware(enrolled_at)
        self.progress = Decimal(progress)
        self.completed_lesson_ids = frozenset(completed_lesson_ids or ())
        self.subsection_progress = dict(subsection_progress or {})
        self.last_accessed_lesson_id = last_accessed_lesson_id
        self.course = course

    @property
    def is_completed(self) -> bool:
        """Check completion against the stored scalar."""
        return self.progress >= 100

    @classmethod
    def from_row(cls, row: Any, course: Course | None = None) -> "Enrollment":
        """Create Enrollment instance from Cassandra row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            student_id=row.student_id,
            enrolled_at=row.enrolled_at,
            progress=row.progress or Decimal(0),
            completed_lesson_ids=set(row.completed_lessons or ()),
            subsection_progress=dict(row.subsection_progress or {}),
            last_accessed_lesson_id=row.last_accessed_lesson_id,
            course=course,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "course_id": self.course_id,
            "student_id": self.student_id,
            "enrolled_at": self.enrolled_at,
            "progress": self.progress,
            "completed_lesson_ids": sorted(self.completed_lesson_ids, key=str),
            "subsection_progress": dict(self.subsection_progress),
            "last_accessed_lesson_id": self.last_accessed_lesson_id,
        }

    def __repr__(self) -> str:
        return (
            f"<Enrollment student={self.student_id} course={self.course_id} "
            f"{self.progress}%>"
        )


class Lesson:
    """Lesson record (one lesson = one session).

    Attributes:
        id: Lesson UUID
        course_id: Owning course UUID
        title: Lesson title
        duration_minutes: Stored duration (None or 0 when unknown)
        scheduled_start: Scheduled date for live sessions
        type: video, livestream or hybrid
        is_active: Whether the lesson is published
        content: Opaque structured payload (JSON text or decoded mapping)
    """

    def __init__(
        self,
        id: UUID,
        course_id: UUID,
        title: str = "",
        duration_minutes: int | None = None,
        scheduled_start: datetime | None = None,
        type: str = LessonType.VIDEO.value,
        is_active: bool = True,
        content: Any = None,
    ):
        self.id = id
        self.course_id = course_id
        self.title = title
        self.duration_minutes = duration_minutes
        self.scheduled_start = ensure_utc_aware(scheduled_start)
        self.type = type
        self.is_active = is_active
        self.content = content

    @property
    def is_livestream(self) -> bool:
        """Check if lesson is a live session."""
        return self.type == LessonType.LIVESTREAM.value

    @classmethod
    def from_row(cls, row: Any) -> "Lesson":
        """Create Lesson instance from Cassandra row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            title=row.title or "",
            duration_minutes=row.duration_minutes,
            scheduled_start=row.scheduled_start,
            type=row.type or LessonType.VIDEO.value,
            is_active=row.is_active is not False,
            content=row.content,
        )

    def __repr__(self) -> str:
        return f"<Lesson {self.title} course={self.course_id}>"


class CourseSection:
    """Course -> section join row."""

    def __init__(self, id: UUID, course_id: UUID):
        self.id = id
        self.course_id = course_id

    @classmethod
    def from_row(cls, row: Any) -> "CourseSection":
        """Create CourseSection instance from Cassandra row."""
        return cls(id=row.id, course_id=row.course_id)


class CourseTest:
    """Course -> test join row (one quiz per row)."""

    def __init__(self, id: UUID, course_id: UUID, test_id: UUID | None = None):
        self.id = id
        self.course_id = course_id
        self.test_id = test_id

    @classmethod
    def from_row(cls, row: Any) -> "CourseTest":
        """Create CourseTest instance from Cassandra row."""
        return cls(id=row.id, course_id=row.course_id, test_id=row.test_id)

    def __repr__(self) -> str:
        return f"<CourseTest {self.id} course={self.course_id}>"


class TestAttempt:
    """Student attempt on a course test."""

    __test__ = False  # not a pytest test class

    def __init__(
        self,
        student_id: UUID,
        course_id: UUID,
        course_test_id: UUID,
        status: str = TestAttemptStatus.COMPLETED.value,
        id: UUID | None = None,
    ):
        self.id = id
        self.student_id = student_id
        self.course_id = course_id
        self.course_test_id = course_test_id
        self.status = status

    @property
    def is_completed(self) -> bool:
        """Only completed attempts count towards quiz progress."""
        return self.status == TestAttemptStatus.COMPLETED.value

    @classmethod
    def from_row(cls, row: Any) -> "TestAttempt":
        """Create TestAttempt instance from Cassandra row."""
        return cls(
            id=row.id,
            student_id=row.student_id,
            course_id=row.course_id,
            course_test_id=row.course_test_id,
            status=row.status or TestAttemptStatus.IN_PROGRESS.value,
        )


class Microcredential:
    """Two-level course bundle.

    Attributes:
        id: Microcredential UUID
        title: Display title
        course_level_1_id: Level 1 course
        course_level_2_id: Level 2 course (gated on level 1)
    """

    def __init__(
        self,
        id: UUID,
        course_level_1_id: UUID,
        course_level_2_id: UUID,
        title: str | None = None,
    ):
        self.id = id
        self.title = title
        self.course_level_1_id = course_level_1_id
        self.course_level_2_id = course_level_2_id

    @property
    def course_ids(self) -> tuple[UUID, UUID]:
        """Level 1 and level 2 course ids, in level order."""
        return (self.course_level_1_id, self.course_level_2_id)

    @classmethod
    def from_row(cls, row: Any) -> "Microcredential":
        """Create Microcredential instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title,
            course_level_1_id=row.course_level_1_id,
            course_level_2_id=row.course_level_2_id,
        )

    def __repr__(self) -> str:
        return f"<Microcredential {self.title} ({self.id})>"


class MicrocredentialEnrollment:
    """Student enrollment in a microcredential.

    `level2_unlocked` is stored but not used for gating: the lock state of
    level 2 derives from `level1_completed` only.

    Attributes:
        microcredential_id: Microcredential UUID
        student_id: Student UUID
        level1_completed: Level 1 course completed
        level2_completed: Level 2 course completed
        level2_unlocked: Stored unlock flag (badge bookkeeping only)
        badge_unlocked: Both levels completed and badge granted
        status: in_progress, completed or expired
        microcredential: Embedded course pair (None if not resolved)
    """

    def __init__(
        self,
        microcredential_id: UUID,
        student_id: UUID,
        level1_completed: bool = False,
        level2_completed: bool = False,
        level2_unlocked: bool = False,
        badge_unlocked: bool = False,
        status: str = MicrocredentialStatus.IN_PROGRESS.value,
        microcredential: Microcredential | None = None,
    ):
        self.microcredential_id = microcredential_id
        self.student_id = student_id
        self.level1_completed = level1_completed
        self.level2_completed = level2_completed
        self.level2_unlocked = level2_unlocked
        self.badge_unlocked = badge_unlocked
        self.status = status
        self.microcredential = microcredential

    @property
    def is_in_progress(self) -> bool:
        """In progress and badge not yet granted."""
        return (
            self.status == MicrocredentialStatus.IN_PROGRESS.value
            and not self.badge_unlocked
        )

    @classmethod
    def from_row(cls, row: Any) -> "MicrocredentialEnrollment":
        """Create instance from a `microcredential_enrollments_by_student` row.

        The course pair is embedded only when both denormalized ids are set.
        """
        microcredential = None
        if row.course_level_1_id and row.course_level_2_id:
            microcredential = Microcredential(
                id=row.microcredential_id,
                title=row.microcredential_title,
                course_level_1_id=row.course_level_1_id,
                course_level_2_id=row.course_level_2_id,
            )
        return cls(
            microcredential_id=row.microcredential_id,
            student_id=row.student_id,
            level1_completed=bool(row.level_1_completed),
            level2_completed=bool(row.level_2_completed),
            level2_unlocked=bool(row.level_2_unlocked),
            badge_unlocked=bool(row.badge_unlocked),
            status=row.status or MicrocredentialStatus.IN_PROGRESS.value,
            microcredential=microcredential,
        )

    def __repr__(self) -> str:
        return (
            f"<MicrocredentialEnrollment student={self.student_id} "
            f"mc={self.microcredential_id} {self.status}>"
        )
