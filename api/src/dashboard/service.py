"""Student dashboard service layer.

Business logic for:
- Snapshot acquisition (concurrent Cassandra reads, bounded by a timeout)
- Enrolled course cards with study time
- Recommended courses from the active catalog
- Upcoming schedule of enrolled courses
- Progress grouping and stats (delegated to src.progress)
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, TypeVar
from uuid import UUID

import structlog

from src.config import Settings, get_settings
from src.progress.calculator import completed_attempt_counts
from src.progress.grouping import build_mis_cursos
from src.progress.models import (
    Course,
    CourseSection,
    CourseTest,
    Enrollment,
    Lesson,
    Microcredential,
    MicrocredentialEnrollment,
    TestAttempt,
)
from src.progress.schemas import MisCursosData
from src.progress.stats import course_study_minutes, summarize
from src.progress.titles import resolve_titles
from src.utils.text import clean_description

from .models import DashboardSnapshot
from .schemas import (
    CourseCard,
    DashboardPayload,
    EnrolledCourseData,
    EnrollmentRecord,
    RecommendedCourse,
    ScheduleItem,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session
    from redis.asyncio import Redis

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ACTIVE_COURSE_STATUS = "active"

LEVEL_LABELS = {
    "beginner": "Introductorio",
    "intermediate": "Intermedio",
    "advanced": "Avanzado",
}
DEFAULT_LEVEL_LABEL = "Introductorio"

LIVESTREAM_LABEL = "En Vivo"
LESSON_LABEL = "Lección"

_OLDEST = datetime.min.replace(tzinfo=UTC)


# ==============================================================================
# Custom Exceptions
# ==============================================================================


class DashboardError(Exception):
    """Base dashboard error."""

    def __init__(self, message: str, code: str = "dashboard_error"):
        self.message = message
        self.code = code
        super().__init__(message)


class SnapshotFetchError(DashboardError):
    """The student snapshot could not be read (store error or timeout)."""

    def __init__(self, message: str = "No fue posible cargar el panel del estudiante"):
        super().__init__(message, "snapshot_unavailable")


# ==============================================================================
# Payload Builders
# ==============================================================================


def map_difficulty_to_level(difficulty: str | None) -> str:
    """Spanish level label for a course difficulty."""
    return LEVEL_LABELS.get(difficulty or "", DEFAULT_LEVEL_LABEL)


def rank_recommendations(
    catalog: Iterable[Course], enrolled_course_ids: Iterable[UUID], limit: int
) -> list[Course]:
    """Pick recommended courses from the active catalog.

    Enrolled courses are excluded. Rated courses come first by rating
    (highest first), followed by unrated courses, newest first.
    """
    enrolled = set(enrolled_course_ids)
    available = [c for c in catalog if c.id not in enrolled]

    rated = sorted(
        (c for c in available if c.is_rated),
        key=lambda c: c.average_rating,
        reverse=True,
    )
    unrated = sorted(
        (c for c in available if not c.is_rated),
        key=lambda c: c.created_at or _OLDEST,
        reverse=True,
    )
    return (rated + unrated)[: max(limit, 0)]


def build_schedule(
    lessons: Iterable[Lesson],
    courses_by_id: dict[UUID, Course],
    now: datetime,
    limit: int,
    default_minutes: int = 60,
) -> list[ScheduleItem]:
    """Upcoming scheduled lessons, soonest first.

    Args:
        lessons: Active lessons of the enrolled courses
        courses_by_id: Enrolled courses by id
        now: Reference time (lessons starting before it are skipped)
        limit: Maximum items returned
        default_minutes: Length used when a lesson has no duration

    Returns:
        List of ScheduleItem
    """
    upcoming = [
        lesson
        for lesson in lessons
        if lesson.scheduled_start is not None
        and lesson.scheduled_start >= now
        and lesson.course_id in courses_by_id
    ]
    upcoming.sort(key=lambda lesson: lesson.scheduled_start)

    items = []
    for lesson in upcoming[: max(limit, 0)]:
        minutes = lesson.duration_minutes or default_minutes
        items.append(
            ScheduleItem(
                type=LIVESTREAM_LABEL if lesson.is_livestream else LESSON_LABEL,
                title=f"{courses_by_id[lesson.course_id].title}: {lesson.title}",
                starts_at=lesson.scheduled_start,
                ends_at=lesson.scheduled_start + timedelta(minutes=minutes),
                course_id=lesson.course_id,
                lesson_id=lesson.id,
            )
        )
    return items


def build_enrolled_courses(
    snapshot: DashboardSnapshot, default_lesson_minutes: int
) -> list[EnrolledCourseData]:
    """Enrolled course cards, in enrollment order."""
    cards = []
    for enrollment in snapshot.enrollments:
        lessons = snapshot.lessons_for(enrollment.course_id)
        cards.append(
            EnrolledCourseData(
                course=CourseCard.from_entity(enrollment.course),
                enrollment=EnrollmentRecord.from_entity(enrollment),
                lessons_count=len(lessons),
                completed_lessons_count=len(enrollment.completed_lesson_ids),
                progress_percent=enrollment.progress,
                study_time_minutes=course_study_minutes(
                    lessons, enrollment.completed_lesson_ids, default_lesson_minutes
                ),
            )
        )
    return cards


def build_recommended_courses(
    snapshot: DashboardSnapshot, default_thumbnail_url: str
) -> list[RecommendedCourse]:
    """Recommendation cards for the ranked candidates of a snapshot."""
    return [
        RecommendedCourse(
            course_id=course.id,
            level=map_difficulty_to_level(course.difficulty),
            title=course.title,
            description=clean_description(course.description),
            students=snapshot.student_counts.get(course.id, 0),
            lessons=snapshot.lesson_counts.get(course.id, 0),
            rating=course.average_rating,
            reviews_count=course.reviews_count,
            thumbnail=course.thumbnail_url
            or course.cover_image_url
            or default_thumbnail_url,
        )
        for course in snapshot.recommended
    ]


# ==============================================================================
# Dashboard Service
# ==============================================================================


class DashboardService:
    """Service for the student dashboard."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        redis: "Redis | None" = None,
        settings: Settings | None = None,
    ):
        """Initialize with Cassandra session and optional Redis client."""
        self.session = session
        self.keyspace = keyspace
        self.redis = redis
        self.settings = settings or get_settings()
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        # Student lookup
        self._get_student_by_user = self.session.prepare(f"""
            SELECT student_id FROM {self.keyspace}.students_by_user
            WHERE user_id = ?
        """)

        # Phase 1: independent reads
        self._get_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.student_enrollments_by_student
            WHERE student_id = ?
        """)

        self._get_favorites = self.session.prepare(f"""
            SELECT course_id FROM {self.keyspace}.course_favorites_by_user
            WHERE user_id = ?
        """)

        self._get_courses_by_status = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses_by_status
            WHERE status = ?
        """)

        self._get_microcredential_enrollments = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.microcredential_enrollments_by_student
            WHERE student_id = ?
        """)

        self._get_test_attempts = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.test_attempts_by_student
            WHERE student_id = ?
        """)

        # Phase 2: per-course reads
        self._get_course = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.courses WHERE id = ?
        """)

        self._get_lessons = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.lessons_by_course
            WHERE course_id = ?
        """)

        self._get_course_tests = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.course_tests_by_course
            WHERE course_id = ?
        """)

        self._get_course_sections = self.session.prepare(f"""
            SELECT id, course_id FROM {self.keyspace}.course_sections_by_course
            WHERE course_id = ?
        """)

        self._get_student_count = self.session.prepare(f"""
            SELECT students FROM {self.keyspace}.course_student_counts
            WHERE course_id = ?
        """)

        # Batched microcredential reads (one query for all ids)
        self._get_microcredentials = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.microcredentials WHERE id IN ?
        """)

        self._get_microcredential_titles = self.session.prepare(f"""
            SELECT id, title FROM {self.keyspace}.microcredentials WHERE id IN ?
        """)

    # ==========================================================================
    # Single Reads
    # ==========================================================================

    async def get_student_id(self, user_id: UUID) -> UUID | None:
        """Student record id of a user, or None for users without one."""
        result = await self.session.aexecute(self._get_student_by_user, [user_id])
        row = result.one()
        return row.student_id if row else None

    async def _fetch_enrollment_rows(self, student_id: UUID) -> list:
        result = await self.session.aexecute(self._get_enrollments, [student_id])
        return list(result)

    async def _fetch_favorites(self, user_id: UUID) -> list[UUID]:
        result = await self.session.aexecute(self._get_favorites, [user_id])
        return [row.course_id for row in result]

    async def _fetch_catalog(self) -> list[Course]:
        result = await self.session.aexecute(
            self._get_courses_by_status, [ACTIVE_COURSE_STATUS]
        )
        return [Course.from_status_row(row) for row in result]

    async def _fetch_microcredential_enrollments(
        self, student_id: UUID
    ) -> list[MicrocredentialEnrollment]:
        result = await self.session.aexecute(
            self._get_microcredential_enrollments, [student_id]
        )
        return [MicrocredentialEnrollment.from_row(row) for row in result]

    async def _fetch_test_attempts(self, student_id: UUID) -> list[TestAttempt]:
        result = await self.session.aexecute(self._get_test_attempts, [student_id])
        return [TestAttempt.from_row(row) for row in result]

    async def _fetch_course(self, course_id: UUID) -> Course | None:
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def _fetch_lessons(self, course_id: UUID) -> list[Lesson]:
        """Active lessons of a course."""
        result = await self.session.aexecute(self._get_lessons, [course_id])
        lessons = [Lesson.from_row(row) for row in result]
        return [lesson for lesson in lessons if lesson.is_active]

    async def _fetch_course_tests(self, course_id: UUID) -> list[CourseTest]:
        result = await self.session.aexecute(self._get_course_tests, [course_id])
        return [CourseTest.from_row(row) for row in result]

    async def _fetch_sections(self, course_id: UUID) -> list[CourseSection]:
        result = await self.session.aexecute(self._get_course_sections, [course_id])
        return [CourseSection.from_row(row) for row in result]

    async def _fetch_student_count(self, course_id: UUID) -> int:
        result = await self.session.aexecute(self._get_student_count, [course_id])
        row = result.one()
        return int(row.students or 0) if row else 0

    async def _fetch_microcredentials(
        self, microcredential_ids: list[UUID]
    ) -> list[Microcredential]:
        if not microcredential_ids:
            return []
        result = await self.session.aexecute(
            self._get_microcredentials, [microcredential_ids]
        )
        return [Microcredential.from_row(row) for row in result]

    async def _fetch_titles(self, ids: list[UUID]) -> dict[UUID, str]:
        """Batched title lookup for microcredentials missing from the cache."""
        if not ids:
            return {}
        result = await self.session.aexecute(self._get_microcredential_titles, [ids])
        return {row.id: row.title for row in result if row.title}

    # ==========================================================================
    # Snapshot Acquisition
    # ==========================================================================

    async def fetch_snapshot(
        self,
        user_id: UUID,
        student_id: UUID,
        with_recommendations: bool = True,
    ) -> DashboardSnapshot:
        """Read everything the dashboard needs for one student.

        Independent reads run concurrently, then the reads keyed by the
        enrolled course ids. The whole acquisition is bounded by
        `dashboard_fetch_timeout_seconds`.

        Args:
            user_id: Authenticated user UUID
            student_id: Student UUID of the user
            with_recommendations: Also rank the catalog and read its counts

        Returns:
            DashboardSnapshot

        Raises:
            SnapshotFetchError: If any read fails or the timeout expires
        """
        timeout = self.settings.dashboard_fetch_timeout_seconds
        try:
            return await asyncio.wait_for(
                self._read_snapshot(user_id, student_id, with_recommendations),
                timeout=timeout,
            )
        except TimeoutError as e:
            logger.error(
                "dashboard_snapshot_timeout",
                student_id=str(student_id),
                timeout_seconds=timeout,
            )
            raise SnapshotFetchError from e
        except Exception as e:
            logger.error(
                "dashboard_snapshot_failed",
                student_id=str(student_id),
                error_type=type(e).__name__,
                error=str(e),
            )
            raise SnapshotFetchError from e

    async def _read_snapshot(
        self, user_id: UUID, student_id: UUID, with_recommendations: bool
    ) -> DashboardSnapshot:
        # Phase 1: independent reads
        (
            enrollment_rows,
            favorites,
            catalog,
            microcredential_enrollments,
            attempts,
        ) = await asyncio.gather(
            self._fetch_enrollment_rows(student_id),
            self._fetch_favorites(user_id),
            self._fetch_catalog() if with_recommendations else _none(list),
            self._fetch_microcredential_enrollments(student_id),
            self._fetch_test_attempts(student_id),
        )

        course_ids = list(dict.fromkeys(row.course_id for row in enrollment_rows))
        recommended = rank_recommendations(
            catalog, course_ids, self.settings.dashboard_recommended_limit
        )
        recommended_ids = [c.id for c in recommended]
        unresolved_pairs = list(
            dict.fromkeys(
                m.microcredential_id
                for m in microcredential_enrollments
                if m.microcredential is None
            )
        )

        # Phase 2: reads keyed by the enrolled course ids
        (
            courses,
            lessons,
            course_tests,
            sections,
            microcredentials,
            student_counts,
            recommended_lessons,
        ) = await asyncio.gather(
            _gather_each(self._fetch_course, course_ids),
            _gather_each(self._fetch_lessons, course_ids),
            _gather_each(self._fetch_course_tests, course_ids),
            _gather_each(self._fetch_sections, course_ids),
            self._fetch_microcredentials(unresolved_pairs),
            _gather_each(self._fetch_student_count, recommended_ids),
            _gather_each(self._fetch_lessons, recommended_ids),
        )

        courses_by_id = {c.id: c for c in courses if c is not None}
        enrollments, missing = _attach_courses(enrollment_rows, courses_by_id)
        for course_id in missing:
            logger.warning(
                "enrollment_course_missing",
                student_id=str(student_id),
                course_id=str(course_id),
            )

        microcredential_enrollments = _attach_microcredentials(
            microcredential_enrollments,
            {mc.id: mc for mc in microcredentials},
        )

        # Rows read above are final; a null title there is not read again
        already_read = set(unresolved_pairs)

        async def fetch_missing_titles(ids: list[UUID]) -> dict[UUID, str]:
            return await self._fetch_titles([i for i in ids if i not in already_read])

        titles = await resolve_titles(
            [m.microcredential_id for m in microcredential_enrollments],
            fetch_missing=fetch_missing_titles,
            known={
                m.microcredential_id: m.microcredential.title
                for m in microcredential_enrollments
                if m.microcredential is not None
            },
            cache=self.redis,
            ttl=self.settings.dashboard_title_cache_ttl_seconds,
        )

        return DashboardSnapshot(
            user_id=user_id,
            student_id=student_id,
            enrollments=enrollments,
            missing_course_ids=missing,
            favorites=list(dict.fromkeys(favorites)),
            catalog=catalog,
            microcredential_enrollments=microcredential_enrollments,
            attempts=attempts,
            lessons=[lesson for group in lessons for lesson in group],
            course_tests=[test for group in course_tests for test in group],
            sections=[section for group in sections for section in group],
            titles=titles,
            recommended=recommended,
            student_counts=dict(zip(recommended_ids, student_counts, strict=True)),
            lesson_counts={
                course_id: len(group)
                for course_id, group in zip(
                    recommended_ids, recommended_lessons, strict=True
                )
            },
        )

    # ==========================================================================
    # Dashboard Operations
    # ==========================================================================

    def build_payload(
        self, snapshot: DashboardSnapshot, now: datetime | None = None
    ) -> DashboardPayload:
        """Assemble the dashboard payload from a snapshot (no I/O)."""
        now = now or datetime.now(UTC)
        settings = self.settings

        mis_cursos = build_mis_cursos(
            snapshot.enrollments,
            snapshot.microcredential_enrollments,
            lessons=snapshot.lessons,
            course_tests=snapshot.course_tests,
            completed_counts=completed_attempt_counts(snapshot.attempts),
            sections=snapshot.sections,
            titles=snapshot.titles,
        )
        stats = summarize(
            snapshot.enrollments,
            snapshot.microcredential_enrollments,
            snapshot.lessons,
            settings.dashboard_default_lesson_minutes,
        )

        return DashboardPayload(
            enrolled_courses=build_enrolled_courses(
                snapshot, settings.dashboard_default_lesson_minutes
            ),
            recommended_courses=build_recommended_courses(
                snapshot, settings.dashboard_default_thumbnail_url
            ),
            schedule_items=build_schedule(
                snapshot.lessons,
                {e.course_id: e.course for e in snapshot.enrollments},
                now,
                settings.dashboard_schedule_limit,
                settings.dashboard_default_schedule_minutes,
            ),
            mis_cursos_data=mis_cursos,
            stats=stats,
            favorites=snapshot.favorites,
        )

    async def get_dashboard(self, user_id: UUID) -> DashboardPayload:
        """Build the full dashboard of a user.

        Args:
            user_id: Authenticated user UUID

        Returns:
            DashboardPayload (empty for users without a student record)

        Raises:
            SnapshotFetchError: If the snapshot cannot be read
        """
        student_id = await self._get_student_id_or_fail(user_id)
        if student_id is None:
            logger.info("dashboard_student_missing", user_id=str(user_id))
            return DashboardPayload()

        snapshot = await self.fetch_snapshot(user_id, student_id)
        payload = self.build_payload(snapshot)

        logger.info(
            "dashboard_built",
            student_id=str(student_id),
            enrolled_courses=len(snapshot.enrolled_course_ids),
            missing_courses=len(snapshot.missing_course_ids),
            microcredentials=len(payload.mis_cursos_data.microcredentials),
            recommended_courses=len(payload.recommended_courses),
        )
        return payload

    async def get_mis_cursos(self, user_id: UUID) -> MisCursosData:
        """Enrolled courses grouped into microcredentials and standalone."""
        student_id = await self._get_student_id_or_fail(user_id)
        if student_id is None:
            return MisCursosData()

        snapshot = await self.fetch_snapshot(
            user_id, student_id, with_recommendations=False
        )
        return self.build_payload(snapshot).mis_cursos_data

    async def _get_student_id_or_fail(self, user_id: UUID) -> UUID | None:
        try:
            return await self.get_student_id(user_id)
        except Exception as e:
            logger.error(
                "dashboard_student_lookup_failed",
                user_id=str(user_id),
                error=str(e),
            )
            raise SnapshotFetchError from e


# ==============================================================================
# Helpers
# ==============================================================================


async def _none(factory: Callable[[], T]) -> T:
    return factory()


async def _gather_each(
    fetch: Callable[[UUID], Awaitable[T]], ids: Sequence[UUID]
) -> list[T]:
    """Run one read per id concurrently, results in id order."""
    if not ids:
        return []
    return list(await asyncio.gather(*(fetch(i) for i in ids)))


def _attach_courses(
    rows: Iterable, courses_by_id: dict[UUID, Course]
) -> tuple[list[Enrollment], list[UUID]]:
    """Embed courses into enrollment rows; report the ids that did not resolve."""
    enrollments: list[Enrollment] = []
    missing: list[UUID] = []
    seen: set[UUID] = set()
    for row in rows:
        if row.course_id in seen:
            continue
        seen.add(row.course_id)
        course = courses_by_id.get(row.course_id)
        if course is None:
            missing.append(row.course_id)
            continue
        enrollments.append(Enrollment.from_row(row, course=course))
    return enrollments, missing


def _attach_microcredentials(
    enrollments: list[MicrocredentialEnrollment],
    microcredentials_by_id: dict[UUID, Microcredential],
) -> list[MicrocredentialEnrollment]:
    for enrollment in enrollments:
        if enrollment.microcredential is None:
            enrollment.microcredential = microcredentials_by_id.get(
                enrollment.microcredential_id
            )
    return enrollments
