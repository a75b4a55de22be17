"""Student progress aggregation module.

Provides:
- Lesson content decoding (subsection counts)
- Per-course session/subsection/quiz progress and resume point
- Microcredential grouping with level gating
- Dashboard statistics
"""

from .calculator import (
    QuizCounts,
    SubsectionProgress,
    completed_attempt_counts,
    compute_progress,
    percent,
    quiz_counts,
    resume_index,
    round_half_up,
)
from .content import (
    HasSubsections,
    LessonContent,
    NoStructuredContent,
    parse_lesson_content,
    subsection_count,
)
from .grouping import build_course_summary, build_mis_cursos, level_state
from .models import PROGRESS_TABLES_CQL
from .schemas import (
    CourseProgressSummary,
    DashboardStats,
    LevelState,
    MicrocredentialGroup,
    MisCursosData,
    StandaloneCourseSummary,
)
from .stats import summarize
from .titles import resolve_titles


__all__ = [
    "PROGRESS_TABLES_CQL",
    "CourseProgressSummary",
    "DashboardStats",
    "HasSubsections",
    "LessonContent",
    "LevelState",
    "MicrocredentialGroup",
    "MisCursosData",
    "NoStructuredContent",
    "QuizCounts",
    "StandaloneCourseSummary",
    "SubsectionProgress",
    "build_course_summary",
    "build_mis_cursos",
    "completed_attempt_counts",
    "compute_progress",
    "level_state",
    "parse_lesson_content",
    "percent",
    "quiz_counts",
    "resolve_titles",
    "resume_index",
    "round_half_up",
    "subsection_count",
    "summarize",
]
