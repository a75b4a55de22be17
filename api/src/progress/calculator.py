"""Per-course progress calculation.

Pure functions over an already-fetched snapshot:
- Subsection progress: sessions (lessons) and subsections per course
- Resume point: next unfinished subsection after the last accessed one
- Quiz counts: completed/total tests per course, clamped
- Percentage helpers with zero-denominator guard and half-up rounding
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from .content import subsection_count
from .models import CourseTest, Lesson, TestAttempt


HUNDRED = Decimal(100)

# Stored index when a lesson has no progress yet
NO_SUBSECTION_REACHED = -1


# ==============================================================================
# Percentages
# ==============================================================================


def round_half_up(value: Decimal | float | int) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def percent(completed: int | Decimal, total: int | Decimal) -> Decimal:
    """Completion percentage in [0, 100]; 0 when total is 0."""
    if not total or total <= 0:
        return Decimal(0)
    value = Decimal(completed) * HUNDRED / Decimal(total)
    return min(max(value, Decimal(0)), HUNDRED)


# ==============================================================================
# Subsection Progress
# ==============================================================================


@dataclass(frozen=True)
class SubsectionProgress:
    """Session and subsection counts for one course."""

    total_sessions: int = 0
    completed_sessions: int = 0
    total_subsections: int = 0
    completed_subsections: int = 0

    @property
    def session_percent(self) -> Decimal:
        return percent(self.completed_sessions, self.total_sessions)

    @property
    def subsection_percent(self) -> Decimal:
        return percent(self.completed_subsections, self.total_subsections)


def compute_progress(
    course_id: UUID,
    completed_lesson_ids: Iterable[UUID],
    subsection_progress: Mapping[UUID, int],
    lessons: Iterable[Lesson],
) -> SubsectionProgress:
    """Count sessions and subsections completed in a course.

    A lesson listed in `completed_lesson_ids` counts all of its subsections.
    Otherwise the highest subsection index reached counts `index + 1`
    subsections (capped at the lesson's count), and a lesson walked through
    to its last subsection also counts as a completed session.

    Args:
        course_id: Course to compute for (other lessons are ignored)
        completed_lesson_ids: Lessons explicitly marked complete
        subsection_progress: lesson_id -> highest subsection index reached
        lessons: Lessons visible to the student (any course)

    Returns:
        SubsectionProgress for the course
    """
    completed = set(completed_lesson_ids)

    total_sessions = 0
    completed_sessions = 0
    total_subsections = 0
    completed_subsections = 0

    for lesson in lessons:
        if lesson.course_id != course_id:
            continue

        total_sessions += 1
        sub_count = subsection_count(lesson.content)
        total_subsections += sub_count

        if lesson.id in completed:
            completed_subsections += sub_count
            completed_sessions += 1
            continue

        highest_index = subsection_progress.get(lesson.id, NO_SUBSECTION_REACHED)
        if highest_index is None or highest_index < 0:
            continue

        completed_for_lesson = min(highest_index + 1, sub_count)
        completed_subsections += completed_for_lesson
        if completed_for_lesson == sub_count:
            completed_sessions += 1

    return SubsectionProgress(
        total_sessions=total_sessions,
        completed_sessions=completed_sessions,
        total_subsections=total_subsections,
        completed_subsections=completed_subsections,
    )


# ==============================================================================
# Resume Point
# ==============================================================================


def resume_index(
    last_accessed_lesson_id: UUID | None,
    subsection_progress: Mapping[UUID, int],
    lessons: Iterable[Lesson],
) -> int:
    """Subsection index to resume the last accessed lesson at.

    Advances past the highest subsection reached when more remain;
    otherwise stays on it (review state).
    """
    if last_accessed_lesson_id is None:
        return 0

    index = subsection_progress.get(last_accessed_lesson_id)
    if index is None:
        return 0

    lesson = next(
        (item for item in lessons if item.id == last_accessed_lesson_id), None
    )
    sub_count = subsection_count(lesson.content) if lesson else 1

    if sub_count > index + 1:
        index += 1

    return max(index, 0)


# ==============================================================================
# Quiz Counts
# ==============================================================================


@dataclass(frozen=True)
class QuizCounts:
    """Completed and total quizzes for one course."""

    total_quizzes: int = 0
    completed_quizzes: int = 0

    @property
    def quiz_percent(self) -> Decimal:
        return percent(self.completed_quizzes, self.total_quizzes)


def completed_attempt_counts(attempts: Iterable[TestAttempt]) -> dict[UUID, int]:
    """Count completed tests per course from attempt records.

    Repeated completed attempts on the same course test count once.
    """
    seen: dict[UUID, set[UUID]] = defaultdict(set)
    for attempt in attempts:
        if attempt.is_completed:
            seen[attempt.course_id].add(attempt.course_test_id)
    return {course_id: len(tests) for course_id, tests in seen.items()}


def quiz_counts(
    course_id: UUID,
    course_tests: Iterable[CourseTest],
    completed_counts: Mapping[UUID, int],
) -> QuizCounts:
    """Quiz totals for a course, completed count clamped to the total."""
    total = sum(1 for test in course_tests if test.course_id == course_id)
    completed = max(completed_counts.get(course_id, 0) or 0, 0)
    return QuizCounts(total_quizzes=total, completed_quizzes=min(completed, total))
