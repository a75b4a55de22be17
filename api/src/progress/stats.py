"""Dashboard statistics.

Rolls enrolled courses and microcredential enrollments up into the
top-level dashboard counters. Completion uses the stored progress scalar.
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal

from .calculator import round_half_up
from .models import Enrollment, Lesson, MicrocredentialEnrollment
from .schemas import DashboardStats


# Minutes per completed lesson without a stored duration
DEFAULT_LESSON_STUDY_MINUTES = 15


def lesson_study_minutes(
    lesson: Lesson, default_minutes: int = DEFAULT_LESSON_STUDY_MINUTES
) -> int:
    """Study minutes credited for one completed lesson."""
    if lesson.duration_minutes and lesson.duration_minutes > 0:
        return lesson.duration_minutes
    return default_minutes


def course_study_minutes(
    lessons: Iterable[Lesson],
    completed_lesson_ids: Iterable,
    default_minutes: int = DEFAULT_LESSON_STUDY_MINUTES,
) -> int:
    """Sum study minutes over the completed lessons of a course."""
    completed = set(completed_lesson_ids)
    return sum(
        lesson_study_minutes(lesson, default_minutes)
        for lesson in lessons
        if lesson.id in completed
    )


def overall_progress_percentage(
    enrollments: Sequence[Enrollment],
    microcredential_enrollments: Sequence[MicrocredentialEnrollment],
) -> int:
    """Overall progress percentage shown on the dashboard.

    With microcredential enrollments: mean over them of the average of
    their two courses' stored progress (a course the student has no
    resolved enrollment for counts as 0). Otherwise the mean of the
    enrolled courses' stored progress. 0 when there is nothing enrolled.
    """
    if microcredential_enrollments:
        progress_by_course = {e.course_id: e.progress for e in enrollments}
        total = Decimal(0)
        for mc_enrollment in microcredential_enrollments:
            microcredential = mc_enrollment.microcredential
            if microcredential is None:
                continue
            level1 = progress_by_course.get(microcredential.course_level_1_id, 0)
            level2 = progress_by_course.get(microcredential.course_level_2_id, 0)
            total += (Decimal(level1) + Decimal(level2)) / 2
        return round_half_up(total / len(microcredential_enrollments))

    if enrollments:
        total = sum((e.progress for e in enrollments), Decimal(0))
        return round_half_up(total / len(enrollments))

    return 0


def summarize(
    enrollments: Sequence[Enrollment],
    microcredential_enrollments: Sequence[MicrocredentialEnrollment],
    lessons: Iterable[Lesson] = (),
    default_lesson_minutes: int = DEFAULT_LESSON_STUDY_MINUTES,
) -> DashboardStats:
    """Build the dashboard counters.

    Args:
        enrollments: Enrollments whose course resolved
        microcredential_enrollments: All microcredential enrollments
        lessons: Active lessons of the enrolled courses
        default_lesson_minutes: Minutes credited to a completed lesson
            without a stored duration

    Returns:
        DashboardStats
    """
    completed_courses = sum(1 for e in enrollments if e.is_completed)

    lessons = list(lessons)
    total_study_minutes = sum(
        course_study_minutes(
            [lesson for lesson in lessons if lesson.course_id == e.course_id],
            e.completed_lesson_ids,
            default_lesson_minutes,
        )
        for e in enrollments
    )

    return DashboardStats(
        progress_percentage=overall_progress_percentage(
            enrollments, microcredential_enrollments
        ),
        completed_courses=completed_courses,
        courses_in_progress=len(enrollments) - completed_courses,
        total_study_minutes=total_study_minutes,
        completed_microcredentials=sum(
            1 for m in microcredential_enrollments if m.badge_unlocked
        ),
        microcredentials_in_progress=sum(
            1 for m in microcredential_enrollments if m.is_in_progress
        ),
    )
