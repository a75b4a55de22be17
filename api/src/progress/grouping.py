"""Microcredential grouping and level gating.

Partitions a student's enrolled courses into microcredential groups
(level 1 + level 2) and standalone courses, and derives each level's
lock state. Level 2 is locked until `level1_completed` is set.
"""

from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from typing import Any
from uuid import UUID

import structlog

from .calculator import (
    compute_progress,
    quiz_counts,
    resume_index,
    round_half_up,
)
from .content import parse_lesson_content
from .models import (
    CourseSection,
    CourseTest,
    Enrollment,
    Lesson,
    Microcredential,
    MicrocredentialEnrollment,
)
from .schemas import (
    CourseProgressSummary,
    LevelState,
    MicrocredentialCourseProgress,
    MicrocredentialGroup,
    MisCursosData,
    StandaloneCourseSummary,
)


logger = structlog.get_logger(__name__)

DEFAULT_MICROCREDENTIAL_TITLE = "Microcredencial"


# ==============================================================================
# Course Summaries
# ==============================================================================


def _group_by_course(items: Iterable[Any]) -> dict[UUID, list[Any]]:
    grouped: dict[UUID, list[Any]] = defaultdict(list)
    for item in items:
        grouped[item.course_id].append(item)
    return grouped


def _summary_fields(
    enrollment: Enrollment,
    lessons: Sequence[Lesson],
    course_tests: Sequence[CourseTest],
    completed_counts: Mapping[UUID, int],
    section_count: int,
) -> dict[str, Any]:
    course_id = enrollment.course_id
    course = enrollment.course

    progress = compute_progress(
        course_id,
        enrollment.completed_lesson_ids,
        enrollment.subsection_progress,
        lessons,
    )
    quizzes = quiz_counts(course_id, course_tests, completed_counts)

    last_lesson_id = enrollment.last_accessed_lesson_id
    index = resume_index(last_lesson_id, enrollment.subsection_progress, lessons)

    resume_title = None
    if last_lesson_id is not None:
        lesson = next((item for item in lessons if item.id == last_lesson_id), None)
        if lesson is not None:
            titles = parse_lesson_content(lesson.content).titles()
            resume_title = titles[index] if index < len(titles) else lesson.title

    return {
        "course_id": course_id,
        "title": course.title if course else "",
        "thumbnail_url": course.thumbnail_url if course else None,
        "cover_image_url": course.cover_image_url if course else None,
        "total_sessions": progress.total_sessions,
        "completed_sessions": progress.completed_sessions,
        "total_subsections": progress.total_subsections,
        "completed_subsections": progress.completed_subsections,
        "total_sections": section_count,
        "total_quizzes": quizzes.total_quizzes,
        "completed_quizzes": quizzes.completed_quizzes,
        "progress_percent": enrollment.progress,
        "subsection_percent": progress.subsection_percent,
        "last_accessed_lesson_id": last_lesson_id,
        "last_accessed_subsection_index": index,
        "resume_subsection_title": resume_title,
    }


def build_course_summary(
    enrollment: Enrollment,
    lessons: Iterable[Lesson] = (),
    course_tests: Iterable[CourseTest] = (),
    completed_counts: Mapping[UUID, int] | None = None,
    sections: Iterable[CourseSection] = (),
) -> CourseProgressSummary:
    """Build the progress summary of a single enrolled course.

    Args:
        enrollment: Enrollment with its embedded course
        lessons: Active lessons (only this course's lessons are used)
        course_tests: Course -> test join rows
        completed_counts: course_id -> completed tests
        sections: Course -> section join rows

    Returns:
        CourseProgressSummary
    """
    course_id = enrollment.course_id
    return CourseProgressSummary(
        **_summary_fields(
            enrollment,
            [lesson for lesson in lessons if lesson.course_id == course_id],
            [test for test in course_tests if test.course_id == course_id],
            completed_counts or {},
            sum(1 for section in sections if section.course_id == course_id),
        )
    )


# ==============================================================================
# Level Gating
# ==============================================================================


def level_state(
    level: int,
    microcredential_enrollment: MicrocredentialEnrollment,
    has_progress: bool,
) -> LevelState:
    """Derive the state of a microcredential level.

    Level 1 starts unlocked. Level 2 stays locked until level 1 is
    completed; the stored `level2_unlocked` flag is not consulted.
    """
    if level == 1:
        completed = microcredential_enrollment.level1_completed
    else:
        if not microcredential_enrollment.level1_completed:
            return LevelState.LOCKED
        completed = microcredential_enrollment.level2_completed

    if completed:
        return LevelState.COMPLETED
    if has_progress:
        return LevelState.IN_PROGRESS
    return LevelState.UNLOCKED


def is_level2_locked(microcredential_enrollment: MicrocredentialEnrollment) -> bool:
    """Level 2 is locked until level 1 is completed."""
    return not microcredential_enrollment.level1_completed


# ==============================================================================
# Grouping
# ==============================================================================


def build_mis_cursos(
    enrollments: Sequence[Enrollment],
    microcredential_enrollments: Sequence[MicrocredentialEnrollment],
    microcredentials: Iterable[Microcredential] = (),
    *,
    lessons: Iterable[Lesson] = (),
    course_tests: Iterable[CourseTest] = (),
    completed_counts: Mapping[UUID, int] | None = None,
    sections: Iterable[CourseSection] = (),
    titles: Mapping[UUID, str] | None = None,
) -> MisCursosData:
    """Split enrolled courses into microcredential groups and standalone courses.

    A group is emitted only when both of its courses have enrollment data.
    The courses of every microcredential enrollment whose course pair
    resolves are claimed and never listed as standalone, even when the
    group itself is omitted. Enrollments without a resolved course are
    skipped. Output preserves the order of the source lists.

    Args:
        enrollments: Student enrollments with embedded courses
        microcredential_enrollments: Student microcredential enrollments
        microcredentials: Course pairs for enrollments without an embedded one
        lessons: Active lessons of the enrolled courses
        course_tests: Course -> test join rows
        completed_counts: course_id -> completed tests
        sections: Course -> section join rows
        titles: microcredential_id -> resolved title

    Returns:
        MisCursosData
    """
    completed_counts = completed_counts or {}
    titles = titles or {}
    lessons_by_course = _group_by_course(lessons)
    tests_by_course = _group_by_course(course_tests)
    sections_by_course = _group_by_course(sections)
    microcredentials_by_id = {mc.id: mc for mc in microcredentials}

    enrollment_by_course: dict[UUID, Enrollment] = {}
    for enrollment in enrollments:
        if enrollment.course is None:
            logger.warning(
                "enrollment_course_missing",
                course_id=str(enrollment.course_id),
            )
            continue
        enrollment_by_course.setdefault(enrollment.course_id, enrollment)

    def fields(enrollment: Enrollment) -> dict[str, Any]:
        course_id = enrollment.course_id
        return _summary_fields(
            enrollment,
            lessons_by_course.get(course_id, []),
            tests_by_course.get(course_id, []),
            completed_counts,
            len(sections_by_course.get(course_id, [])),
        )

    claimed: set[UUID] = set()
    groups: list[MicrocredentialGroup] = []

    for mc_enrollment in microcredential_enrollments:
        microcredential = mc_enrollment.microcredential or microcredentials_by_id.get(
            mc_enrollment.microcredential_id
        )
        if microcredential is None:
            logger.warning(
                "microcredential_unresolved",
                microcredential_id=str(mc_enrollment.microcredential_id),
            )
            continue

        claimed.update(microcredential.course_ids)

        level1 = enrollment_by_course.get(microcredential.course_level_1_id)
        level2 = enrollment_by_course.get(microcredential.course_level_2_id)
        if level1 is None or level2 is None:
            logger.warning(
                "microcredential_group_skipped",
                microcredential_id=str(microcredential.id),
                level1_found=level1 is not None,
                level2_found=level2 is not None,
            )
            continue

        level2_locked = is_level2_locked(mc_enrollment)
        courses = []
        for level, enrollment in ((1, level1), (2, level2)):
            course_fields = fields(enrollment)
            has_progress = (
                course_fields["completed_subsections"] > 0 or enrollment.progress > 0
            )
            courses.append(
                MicrocredentialCourseProgress(
                    **course_fields,
                    level=level,
                    is_locked=level == 2 and level2_locked,
                    state=level_state(level, mc_enrollment, has_progress),
                )
            )

        groups.append(
            MicrocredentialGroup(
                id=microcredential.id,
                title=titles.get(microcredential.id)
                or microcredential.title
                or DEFAULT_MICROCREDENTIAL_TITLE,
                courses=(courses[0], courses[1]),
                is_level2_locked=level2_locked,
                overall_progress=max(
                    0,
                    min(round_half_up((level1.progress + level2.progress) / 2), 100),
                ),
                badge_unlocked=mc_enrollment.badge_unlocked,
                status=mc_enrollment.status,
            )
        )

    standalone = [
        StandaloneCourseSummary(**fields(enrollment))
        for course_id, enrollment in enrollment_by_course.items()
        if course_id not in claimed
    ]

    logger.debug(
        "mis_cursos_built",
        microcredential_groups=len(groups),
        standalone_courses=len(standalone),
    )

    return MisCursosData(microcredentials=groups, standalone_courses=standalone)
