"""Dashboard snapshot.

Everything the dashboard reads for one student, fetched once per request
and handed to the pure aggregation functions in `src.progress`.
"""

from dataclasses import dataclass, field
from uuid import UUID

from src.progress.models import (
    Course,
    CourseSection,
    CourseTest,
    Enrollment,
    Lesson,
    MicrocredentialEnrollment,
    TestAttempt,
)


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class DashboardSnapshot:
    """Read-only data set for one student's dashboard.

    Attributes:
        user_id: Authenticated user
        student_id: Student record of the user
        enrollments: Enrollments whose course resolved (course embedded)
        missing_course_ids: Enrolled course ids that did not resolve
        favorites: Favorite course ids
        catalog: Active courses (recommendation candidates)
        microcredential_enrollments: Enrollments with their course pair
            embedded when it resolved
        attempts: Test attempts of the student (any status)
        lessons: Active lessons of the enrolled courses
        course_tests: Course -> test rows of the enrolled courses
        sections: Course -> section rows of the enrolled courses
        titles: microcredential_id -> resolved title
        recommended: Ranked recommendation candidates (already limited)
        student_counts: course_id -> enrolled students (recommended only)
        lesson_counts: course_id -> active lessons (recommended only)
    """

    user_id: UUID
    student_id: UUID
    enrollments: list[Enrollment] = field(default_factory=list)
    missing_course_ids: list[UUID] = field(default_factory=list)
    favorites: list[UUID] = field(default_factory=list)
    catalog: list[Course] = field(default_factory=list)
    microcredential_enrollments: list[MicrocredentialEnrollment] = field(
        default_factory=list
    )
    attempts: list[TestAttempt] = field(default_factory=list)
    lessons: list[Lesson] = field(default_factory=list)
    course_tests: list[CourseTest] = field(default_factory=list)
    sections: list[CourseSection] = field(default_factory=list)
    titles: dict[UUID, str] = field(default_factory=dict)
    recommended: list[Course] = field(default_factory=list)
    student_counts: dict[UUID, int] = field(default_factory=dict)
    lesson_counts: dict[UUID, int] = field(default_factory=dict)

    @property
    def enrolled_course_ids(self) -> list[UUID]:
        """Course ids of the resolved enrollments, in enrollment order."""
        return [e.course_id for e in self.enrollments]

    def lessons_for(self, course_id: UUID) -> list[Lesson]:
        """Active lessons of one course."""
        return [lesson for lesson in self.lessons if lesson.course_id == course_id]
