"""Fixtures for dashboard tests: an in-memory stand-in for the Cassandra session."""

import asyncio
import re
from collections import Counter, defaultdict
from datetime import UTC, datetime
from decimal import Decimal
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest

from src.config import get_settings
from src.dashboard.service import DashboardService


_TABLE_RE = re.compile(r"FROM\s+\w+\.(\w+)")


class FakeResult:
    """Result set: iterable rows plus `one()`."""

    def __init__(self, rows: list[Any]):
        self._rows = rows

    def __iter__(self):
        return iter(self._rows)

    def one(self) -> Any:
        return self._rows[0] if self._rows else None


class FakeStore:
    """Rows keyed by table and partition key.

    Prepared statements are the CQL text itself; `execute` routes on the
    table name of the statement.
    """

    def __init__(self) -> None:
        self.partitions: dict[str, dict[Any, list[Any]]] = defaultdict(
            lambda: defaultdict(list)
        )
        self.reads: Counter[str] = Counter()
        self.delay: float = 0
        self.fail_on: str | None = None

    async def execute(self, statement: str, params: list[Any]) -> FakeResult:
        table = _TABLE_RE.search(statement).group(1)
        self.reads[table] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if table == self.fail_on:
            msg = f"read failed on {table}"
            raise RuntimeError(msg)
        key = params[0]
        if isinstance(key, list):
            # IN query: rows of every listed partition
            rows = [row for k in key for row in self.partitions[table].get(k, [])]
            return FakeResult(rows)
        return FakeResult(list(self.partitions[table].get(key, [])))

    def add(self, table: str, key: Any, **row: Any) -> SimpleNamespace:
        record = SimpleNamespace(**row)
        self.partitions[table][key].append(record)
        return record

    # ==========================================================================
    # Row builders
    # ==========================================================================

    def add_student(self, user_id: UUID, student_id: UUID) -> None:
        self.add("students_by_user", user_id, student_id=student_id)

    def add_course(self, title: str = "Curso", **fields: Any) -> UUID:
        course_id = fields.pop("id", None) or uuid4()
        row = {
            "id": course_id,
            "title": title,
            "description": None,
            "thumbnail_url": None,
            "cover_image_url": None,
            "difficulty": None,
            "tags": None,
            "average_rating": None,
            "reviews_count": None,
            "is_active": True,
            "created_at": datetime(2024, 1, 1),
            **fields,
        }
        self.add("courses", course_id, **row)
        return course_id

    def add_catalog_course(self, title: str = "Curso", **fields: Any) -> UUID:
        course_id = fields.pop("course_id", None) or uuid4()
        row = {
            "status": "active",
            "course_id": course_id,
            "title": title,
            "description": None,
            "thumbnail_url": None,
            "cover_image_url": None,
            "difficulty": None,
            "average_rating": None,
            "reviews_count": None,
            "created_at": datetime(2024, 1, 1),
            **fields,
        }
        self.add("courses_by_status", "active", **row)
        return course_id

    def add_enrollment(
        self, student_id: UUID, course_id: UUID, progress: int = 0, **fields: Any
    ) -> None:
        row = {
            "id": uuid4(),
            "student_id": student_id,
            "course_id": course_id,
            "enrolled_at": datetime(2024, 3, 1),
            "progress": Decimal(progress),
            "completed_lessons": None,
            "subsection_progress": None,
            "last_accessed_lesson_id": None,
            **fields,
        }
        self.add("student_enrollments_by_student", student_id, **row)

    def add_lesson(self, course_id: UUID, title: str = "Lección", **fields: Any) -> UUID:
        lesson_id = fields.pop("id", None) or uuid4()
        row = {
            "id": lesson_id,
            "course_id": course_id,
            "title": title,
            "content": None,
            "duration_minutes": None,
            "scheduled_start": None,
            "type": "video",
            "is_active": True,
            **fields,
        }
        self.add("lessons_by_course", course_id, **row)
        return lesson_id

    def add_course_test(self, course_id: UUID) -> UUID:
        test_row_id = uuid4()
        self.add(
            "course_tests_by_course",
            course_id,
            id=test_row_id,
            course_id=course_id,
            test_id=uuid4(),
        )
        return test_row_id

    def add_attempt(
        self, student_id: UUID, course_id: UUID, course_test_id: UUID, status: str
    ) -> None:
        self.add(
            "test_attempts_by_student",
            student_id,
            id=uuid4(),
            student_id=student_id,
            course_id=course_id,
            course_test_id=course_test_id,
            status=status,
        )

    def add_microcredential(
        self, level1: UUID, level2: UUID, title: str | None = None
    ) -> UUID:
        mc_id = uuid4()
        self.add(
            "microcredentials",
            mc_id,
            id=mc_id,
            title=title,
            course_level_1_id=level1,
            course_level_2_id=level2,
        )
        return mc_id

    def add_microcredential_enrollment(
        self,
        student_id: UUID,
        microcredential_id: UUID,
        level1: UUID | None = None,
        level2: UUID | None = None,
        title: str | None = None,
        **fields: Any,
    ) -> None:
        row = {
            "student_id": student_id,
            "microcredential_id": microcredential_id,
            "microcredential_title": title,
            "course_level_1_id": level1,
            "course_level_2_id": level2,
            "level_1_completed": False,
            "level_2_completed": False,
            "level_2_unlocked": False,
            "badge_unlocked": False,
            "status": "in_progress",
            "enrolled_at": datetime(2024, 3, 1, tzinfo=UTC),
            **fields,
        }
        self.add("microcredential_enrollments_by_student", student_id, **row)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def mock_session(store: FakeStore) -> Mock:
    """Cassandra session whose statements are routed to the fake store."""
    session = Mock()
    session.prepare = Mock(side_effect=lambda cql: cql)
    session.aexecute = AsyncMock(side_effect=store.execute)
    return session


@pytest.fixture
def dashboard_service(mock_session: Mock) -> DashboardService:
    """DashboardService without Redis."""
    return DashboardService(
        session=mock_session, keyspace="test_keyspace", settings=get_settings()
    )


@pytest.fixture
def user_id() -> UUID:
    return uuid4()


@pytest.fixture
def student_id(store: FakeStore, user_id: UUID) -> UUID:
    """Student record linked to `user_id`."""
    student_id = uuid4()
    store.add_student(user_id, student_id)
    return student_id
