"""Tests for per-course progress calculation."""

from decimal import Decimal
from uuid import uuid4

import pytest

from src.progress.calculator import (
    SubsectionProgress,
    completed_attempt_counts,
    compute_progress,
    percent,
    quiz_counts,
    resume_index,
    round_half_up,
)
from src.progress.models import CourseTest, TestAttempt
from tests.factories import make_lesson


class TestPercent:
    """Tests for percentage helpers."""

    def test_zero_total_is_zero(self) -> None:
        """0/0 is reported as 0%."""
        assert percent(0, 0) == 0

    def test_regular_ratio(self) -> None:
        """Plain ratio scaled to 100."""
        assert percent(3, 4) == Decimal(75)

    def test_capped_at_hundred(self) -> None:
        """Values above the total are capped."""
        assert percent(5, 4) == Decimal(100)

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(Decimal("74.5"), 75), (Decimal("74.49"), 74), (Decimal("0.5"), 1), (50, 50)],
    )
    def test_round_half_up(self, value, expected) -> None:
        """Halves round up, not to even."""
        assert round_half_up(value) == expected


class TestComputeProgress:
    """Tests for compute_progress."""

    def test_scenario_completed_and_untouched_lessons(self) -> None:
        """One completed 3-subsection lesson plus an untouched 1-subsection lesson."""
        course_id = uuid4()
        lesson1 = make_lesson(course_id, subsections=3)
        lesson2 = make_lesson(course_id, subsections=1)

        result = compute_progress(
            course_id, {lesson1.id}, {lesson2.id: -1}, [lesson1, lesson2]
        )

        assert result == SubsectionProgress(
            total_sessions=2,
            completed_sessions=1,
            total_subsections=4,
            completed_subsections=3,
        )

    def test_partial_subsection_progress(self) -> None:
        """Highest index reached counts index + 1 subsections."""
        course_id = uuid4()
        lesson = make_lesson(course_id, subsections=4)

        result = compute_progress(course_id, set(), {lesson.id: 1}, [lesson])

        assert result.completed_subsections == 2
        assert result.completed_sessions == 0

    def test_walked_through_lesson_counts_as_session(self) -> None:
        """Reaching the last subsection completes the session without a flag."""
        course_id = uuid4()
        lesson = make_lesson(course_id, subsections=3)

        result = compute_progress(course_id, set(), {lesson.id: 2}, [lesson])

        assert result.completed_sessions == 1
        assert result.completed_subsections == 3

    def test_other_course_lessons_ignored(self) -> None:
        """Only lessons of the requested course are counted."""
        course_id = uuid4()
        mine = make_lesson(course_id, subsections=2)
        other = make_lesson(uuid4(), subsections=5)

        result = compute_progress(course_id, {other.id}, {}, [mine, other])

        assert result.total_sessions == 1
        assert result.total_subsections == 2
        assert result.completed_subsections == 0

    def test_no_lessons(self) -> None:
        """A course without lessons reports zeros and 0%."""
        result = compute_progress(uuid4(), set(), {}, [])
        assert result == SubsectionProgress()
        assert result.subsection_percent == 0
        assert result.session_percent == 0

    def test_adversarial_index_is_clamped(self) -> None:
        """An index beyond the subsection count never exceeds the total."""
        course_id = uuid4()
        lesson = make_lesson(course_id, subsections=2)

        result = compute_progress(course_id, set(), {lesson.id: 99}, [lesson])

        assert result.completed_subsections == result.total_subsections == 2

    def test_malformed_content_counts_one(self) -> None:
        """Lessons with malformed content count as one subsection."""
        course_id = uuid4()
        lesson = make_lesson(course_id, content="{broken")

        result = compute_progress(course_id, {lesson.id}, {}, [lesson])

        assert result.total_subsections == 1
        assert result.completed_subsections == 1

    def test_completion_is_monotonic(self) -> None:
        """Adding a lesson to the completed set never lowers the counts."""
        course_id = uuid4()
        lessons = [make_lesson(course_id, subsections=n) for n in (1, 2, 3, 4)]
        progress = {lessons[1].id: 0, lessons[3].id: 5}

        completed: set = set()
        previous = compute_progress(course_id, completed, progress, lessons)
        for lesson in lessons:
            completed.add(lesson.id)
            current = compute_progress(course_id, completed, progress, lessons)
            assert current.completed_subsections >= previous.completed_subsections
            assert current.completed_sessions >= previous.completed_sessions
            assert current.completed_subsections <= current.total_subsections
            previous = current


class TestResumeIndex:
    """Tests for resume_index."""

    def test_advances_to_next_subsection(self) -> None:
        """With subsections remaining, resume at the next one."""
        lesson = make_lesson(uuid4(), subsections=3)
        assert resume_index(lesson.id, {lesson.id: 0}, [lesson]) == 1

    def test_stays_on_last_subsection(self) -> None:
        """At the last subsection, stay there (review state)."""
        lesson = make_lesson(uuid4(), subsections=3)
        assert resume_index(lesson.id, {lesson.id: 2}, [lesson]) == 2

    def test_no_last_accessed_lesson(self) -> None:
        """Without a last accessed lesson, start at 0."""
        assert resume_index(None, {}, []) == 0

    def test_no_progress_entry(self) -> None:
        """A last accessed lesson without a map entry starts at 0."""
        lesson = make_lesson(uuid4(), subsections=3)
        assert resume_index(lesson.id, {}, [lesson]) == 0

    def test_negative_index_clamped(self) -> None:
        """A stored -1 on a single-subsection lesson resolves to 0."""
        lesson = make_lesson(uuid4())
        assert resume_index(lesson.id, {lesson.id: -1}, [lesson]) == 0

    def test_negative_index_advances_to_first(self) -> None:
        """A stored -1 on a multi-subsection lesson resumes at the first one."""
        lesson = make_lesson(uuid4(), subsections=3)
        assert resume_index(lesson.id, {lesson.id: -1}, [lesson]) == 0

    def test_unknown_lesson_treated_as_single_subsection(self) -> None:
        """A lesson missing from the list does not advance."""
        lesson_id = uuid4()
        assert resume_index(lesson_id, {lesson_id: 2}, []) == 2


class TestQuizCounts:
    """Tests for quiz aggregation."""

    def test_counts_course_tests(self) -> None:
        """Total is the number of tests linked to the course."""
        course_id = uuid4()
        tests = [CourseTest(id=uuid4(), course_id=course_id) for _ in range(3)]
        tests.append(CourseTest(id=uuid4(), course_id=uuid4()))

        counts = quiz_counts(course_id, tests, {course_id: 2})

        assert counts.total_quizzes == 3
        assert counts.completed_quizzes == 2

    def test_completed_clamped_to_total(self) -> None:
        """Extra completed attempts never exceed the number of tests."""
        course_id = uuid4()
        tests = [CourseTest(id=uuid4(), course_id=course_id)]

        counts = quiz_counts(course_id, tests, {course_id: 7})

        assert counts.completed_quizzes == 1
        assert counts.quiz_percent == 100

    def test_no_tests(self) -> None:
        """Courses without tests report 0 of 0."""
        counts = quiz_counts(uuid4(), [], {})
        assert (counts.total_quizzes, counts.completed_quizzes) == (0, 0)
        assert counts.quiz_percent == 0

    def test_attempt_counts_distinct_tests(self) -> None:
        """Repeated completed attempts on one test count once."""
        student_id, course_id = uuid4(), uuid4()
        test_a, test_b = uuid4(), uuid4()
        attempts = [
            TestAttempt(student_id, course_id, test_a),
            TestAttempt(student_id, course_id, test_a),
            TestAttempt(student_id, course_id, test_b, status="in_progress"),
        ]

        assert completed_attempt_counts(attempts) == {course_id: 1}
