"""Tests for the student dashboard service."""

import json
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest

from src.config import get_settings
from src.dashboard.service import (
    DashboardService,
    SnapshotFetchError,
    build_schedule,
    map_difficulty_to_level,
    rank_recommendations,
)
from src.progress.models import Course
from src.progress.schemas import LevelState
from tests.factories import make_course, make_lesson

from .conftest import FakeStore


def _subsections(count: int) -> str:
    return json.dumps({"subsections": [{"title": f"Tema {i + 1}"} for i in range(count)]})


class TestMapDifficultyToLevel:
    """Tests for difficulty labels."""

    @pytest.mark.parametrize(
        ("difficulty", "label"),
        [
            ("beginner", "Introductorio"),
            ("intermediate", "Intermedio"),
            ("advanced", "Avanzado"),
            ("expert", "Introductorio"),
            (None, "Introductorio"),
        ],
    )
    def test_labels(self, difficulty, label) -> None:
        """Known difficulties map to Spanish labels; anything else is introductory."""
        assert map_difficulty_to_level(difficulty) == label


class TestRankRecommendations:
    """Tests for recommendation ranking."""

    def test_rated_first_then_newest(self) -> None:
        """Rated courses by rating, then unrated by creation date."""
        base = datetime(2024, 1, 1, tzinfo=UTC)
        top = make_course("Top", average_rating=Decimal("4.9"))
        good = make_course("Good", average_rating=Decimal("4.1"))
        new = make_course("New", created_at=base + timedelta(days=10))
        old = make_course("Old", created_at=base)
        undated = make_course("Undated")

        ranked = rank_recommendations([old, good, undated, new, top], [], limit=10)

        assert [c.title for c in ranked] == ["Top", "Good", "New", "Old", "Undated"]

    def test_excludes_enrolled_and_limits(self) -> None:
        """Enrolled courses are never recommended; output is capped."""
        courses = [make_course(f"Curso {i}") for i in range(6)]

        ranked = rank_recommendations(courses, [courses[0].id, courses[1].id], limit=3)

        assert len(ranked) == 3
        assert not {c.id for c in ranked} & {courses[0].id, courses[1].id}


class TestBuildSchedule:
    """Tests for upcoming schedule items."""

    def test_upcoming_lessons_sorted_and_limited(self) -> None:
        """Past and unscheduled lessons are skipped; soonest first."""
        now = datetime(2024, 6, 1, 12, tzinfo=UTC)
        course = make_course("Farmacología")
        past = make_lesson(course.id, title="Pasada", scheduled_start=now - timedelta(hours=1))
        later = make_lesson(course.id, title="Luego", scheduled_start=now + timedelta(days=2))
        live = make_lesson(
            course.id,
            title="Directo",
            type="livestream",
            duration_minutes=90,
            scheduled_start=now + timedelta(hours=3),
        )
        unscheduled = make_lesson(course.id, title="Sin fecha")

        items = build_schedule(
            [past, later, live, unscheduled], {course.id: course}, now, limit=5
        )

        assert [item.title for item in items] == [
            "Farmacología: Directo",
            "Farmacología: Luego",
        ]
        assert items[0].type == "En Vivo"
        assert items[0].ends_at - items[0].starts_at == timedelta(minutes=90)
        assert items[1].type == "Lección"
        assert items[1].ends_at - items[1].starts_at == timedelta(minutes=60)

    def test_limit(self) -> None:
        """No more than `limit` items."""
        now = datetime(2024, 6, 1, tzinfo=UTC)
        course = make_course()
        lessons = [
            make_lesson(course.id, scheduled_start=now + timedelta(days=i))
            for i in range(1, 8)
        ]

        assert len(build_schedule(lessons, {course.id: course}, now, limit=5)) == 5

    def test_lessons_of_other_courses_skipped(self) -> None:
        """Only enrolled courses appear."""
        now = datetime(2024, 6, 1, tzinfo=UTC)
        lesson = make_lesson(uuid4(), scheduled_start=now + timedelta(days=1))

        assert build_schedule([lesson], {}, now, limit=5) == []


class TestGetDashboard:
    """Tests for DashboardService.get_dashboard."""

    @pytest.mark.asyncio
    async def test_new_student_gets_recommendations_only(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """No enrollments: zero stats, empty lists and four recommendations."""
        catalog = [
            store.add_catalog_course(
                f"Curso {i}",
                average_rating=Decimal(i),
                description="<p>Aprende <b>farmacia</b> &amp; más</p>",
            )
            for i in range(6)
        ]
        store.add("course_student_counts", catalog[5], students=12)
        store.add_lesson(catalog[5])
        store.add_lesson(catalog[5])

        payload = await dashboard_service.get_dashboard(user_id)

        assert payload.enrolled_courses == []
        assert payload.schedule_items == []
        assert payload.mis_cursos_data.microcredentials == []
        assert payload.mis_cursos_data.standalone_courses == []
        assert payload.stats.progress_percentage == 0
        assert payload.stats.completed_courses == 0
        assert payload.stats.total_study_minutes == 0
        assert len(payload.recommended_courses) == 4

        first = payload.recommended_courses[0]
        assert first.course_id == catalog[5]
        assert first.students == 12
        assert first.lessons == 2
        assert first.level == "Introductorio"
        assert first.description == "Aprende farmacia & más"
        assert first.thumbnail == get_settings().dashboard_default_thumbnail_url

    @pytest.mark.asyncio
    async def test_enrolled_courses_grouped_and_counted(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Microcredential pair grouped, third course standalone, counts derived."""
        course_a = store.add_course("Nivel 1")
        course_b = store.add_course("Nivel 2")
        course_c = store.add_course("Suelto", difficulty="advanced")
        lesson1 = store.add_lesson(course_a, content=_subsections(3), duration_minutes=20)
        lesson2 = store.add_lesson(course_a, content=_subsections(1))
        store.add_lesson(course_a, is_active=False)
        test_id = store.add_course_test(course_a)
        store.add_attempt(student_id, course_a, test_id, "completed")
        store.add_attempt(student_id, course_a, test_id, "completed")

        store.add_enrollment(
            student_id,
            course_a,
            progress=75,
            completed_lessons={lesson1},
            subsection_progress={lesson2: -1},
        )
        store.add_enrollment(student_id, course_b, progress=25)
        store.add_enrollment(student_id, course_c, progress=100)
        store.add_microcredential_enrollment(
            student_id,
            uuid4(),
            level1=course_a,
            level2=course_b,
            title="Farmacia clínica",
        )
        store.add("course_favorites_by_user", user_id, course_id=course_c)

        payload = await dashboard_service.get_dashboard(user_id)

        assert [card.course.id for card in payload.enrolled_courses] == [
            course_a,
            course_b,
            course_c,
        ]
        card_a = payload.enrolled_courses[0]
        assert card_a.lessons_count == 2
        assert card_a.completed_lessons_count == 1
        assert card_a.study_time_minutes == 20
        assert card_a.progress_percent == Decimal(75)

        group = payload.mis_cursos_data.microcredentials[0]
        assert group.title == "Farmacia clínica"
        assert group.overall_progress == 50
        assert group.is_level2_locked is True
        level1, level2 = group.courses
        assert (level1.total_subsections, level1.completed_subsections) == (4, 3)
        assert (level1.total_sessions, level1.completed_sessions) == (2, 1)
        assert (level1.total_quizzes, level1.completed_quizzes) == (1, 1)
        assert level1.state == LevelState.IN_PROGRESS
        assert level2.state == LevelState.LOCKED
        assert [c.course_id for c in payload.mis_cursos_data.standalone_courses] == [
            course_c
        ]

        assert payload.stats.progress_percentage == 50
        assert payload.stats.completed_courses == 1
        assert payload.stats.courses_in_progress == 2
        assert payload.stats.microcredentials_in_progress == 1
        assert payload.favorites == [course_c]

    @pytest.mark.asyncio
    async def test_enrolled_courses_not_recommended(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Recommendations exclude the student's own courses."""
        enrolled = store.add_course("Inscrito")
        store.add_catalog_course("Inscrito", course_id=enrolled, average_rating=Decimal(5))
        other = store.add_catalog_course("Otro")
        store.add_enrollment(student_id, enrolled)

        payload = await dashboard_service.get_dashboard(user_id)

        assert [c.course_id for c in payload.recommended_courses] == [other]

    @pytest.mark.asyncio
    async def test_missing_course_skipped(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Enrollments whose course no longer exists are left out."""
        course = store.add_course("Existe")
        store.add_enrollment(student_id, course, progress=40)
        store.add_enrollment(student_id, uuid4(), progress=90)

        payload = await dashboard_service.get_dashboard(user_id)

        assert [card.course.id for card in payload.enrolled_courses] == [course]
        assert payload.stats.progress_percentage == 40

    @pytest.mark.asyncio
    async def test_missing_course_counted_in_log(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
        monkeypatch,
    ) -> None:
        """The dashboard_built event reports resolved and missing courses."""
        logger = Mock()
        monkeypatch.setattr("src.dashboard.service.logger", logger)
        course, gone = store.add_course("Existe"), uuid4()
        store.add_enrollment(student_id, course)
        store.add_enrollment(student_id, gone)

        await dashboard_service.get_dashboard(user_id)

        built = [
            c for c in logger.info.call_args_list if c.args == ("dashboard_built",)
        ]
        assert len(built) == 1
        assert built[0].kwargs["enrolled_courses"] == 1
        assert built[0].kwargs["missing_courses"] == 1
        logger.warning.assert_any_call(
            "enrollment_course_missing",
            student_id=str(student_id),
            course_id=str(gone),
        )

    @pytest.mark.asyncio
    async def test_user_without_student_record(
        self, dashboard_service: DashboardService, store: FakeStore
    ) -> None:
        """Users without a student record get an empty dashboard."""
        payload = await dashboard_service.get_dashboard(uuid4())

        assert payload.enrolled_courses == []
        assert payload.recommended_courses == []
        assert payload.stats.progress_percentage == 0
        assert store.reads["student_enrollments_by_student"] == 0

    @pytest.mark.asyncio
    async def test_student_lookup_failure(
        self, dashboard_service: DashboardService, store: FakeStore
    ) -> None:
        """A failing student lookup surfaces as SnapshotFetchError."""
        store.fail_on = "students_by_user"

        with pytest.raises(SnapshotFetchError) as exc_info:
            await dashboard_service.get_dashboard(uuid4())

        assert exc_info.value.code == "snapshot_unavailable"


class TestFetchSnapshot:
    """Tests for snapshot acquisition."""

    @pytest.mark.asyncio
    async def test_phase_one_failure(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Any failed read fails the whole snapshot."""
        store.fail_on = "student_enrollments_by_student"

        with pytest.raises(SnapshotFetchError):
            await dashboard_service.fetch_snapshot(user_id, student_id)

    @pytest.mark.asyncio
    async def test_phase_two_failure(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """A failed per-course read fails the snapshot too."""
        course = store.add_course()
        store.add_enrollment(student_id, course)
        store.fail_on = "lessons_by_course"

        with pytest.raises(SnapshotFetchError) as exc_info:
            await dashboard_service.fetch_snapshot(user_id, student_id)

        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_timeout(
        self, mock_session: Mock, store: FakeStore, user_id: UUID, student_id: UUID
    ) -> None:
        """Reads slower than the configured timeout raise SnapshotFetchError."""
        settings = get_settings().model_copy(
            update={"dashboard_fetch_timeout_seconds": 0.01}
        )
        service = DashboardService(mock_session, "test_keyspace", settings=settings)
        store.delay = 0.5

        with pytest.raises(SnapshotFetchError) as exc_info:
            await service.fetch_snapshot(user_id, student_id)

        assert isinstance(exc_info.value.__cause__, TimeoutError)

    @pytest.mark.asyncio
    async def test_without_recommendations(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """The catalog is not read when recommendations are not needed."""
        store.add_catalog_course()

        snapshot = await dashboard_service.fetch_snapshot(
            user_id, student_id, with_recommendations=False
        )

        assert snapshot.catalog == []
        assert snapshot.recommended == []
        assert store.reads["courses_by_status"] == 0

    @pytest.mark.asyncio
    async def test_duplicate_enrollment_rows(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """A course enrolled twice is read and listed once."""
        course = store.add_course()
        store.add_enrollment(student_id, course)
        store.add_enrollment(student_id, course)

        snapshot = await dashboard_service.fetch_snapshot(user_id, student_id)

        assert snapshot.enrolled_course_ids == [course]
        assert store.reads["courses"] == 1

    @pytest.mark.asyncio
    async def test_schedule_from_snapshot(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Schedule items come from the enrolled courses' lessons."""
        now = datetime(2024, 6, 1, tzinfo=UTC)
        course = store.add_course("Farmacología")
        store.add_lesson(
            course,
            title="Clase magistral",
            type="livestream",
            scheduled_start=datetime(2024, 6, 2, 18),
        )
        store.add_enrollment(student_id, course)

        snapshot = await dashboard_service.fetch_snapshot(user_id, student_id)
        payload = dashboard_service.build_payload(snapshot, now=now)

        assert len(payload.schedule_items) == 1
        item = payload.schedule_items[0]
        assert item.title == "Farmacología: Clase magistral"
        assert item.type == "En Vivo"
        assert item.starts_at == datetime(2024, 6, 2, 18, tzinfo=UTC)


class TestMicrocredentialTitles:
    """Tests for title resolution inside the snapshot."""

    @pytest.mark.asyncio
    async def test_pair_and_title_read_from_microcredentials(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Enrollment rows without a pair are resolved from microcredentials."""
        course_a, course_b = store.add_course(), store.add_course()
        mc_id = store.add_microcredential(course_a, course_b, title="Gestión")
        store.add_microcredential_enrollment(student_id, mc_id)
        store.add_enrollment(student_id, course_a)
        store.add_enrollment(student_id, course_b)

        data = await dashboard_service.get_mis_cursos(user_id)

        assert [group.title for group in data.microcredentials] == ["Gestión"]
        assert store.reads["microcredentials"] == 1

    @pytest.mark.asyncio
    async def test_missing_title_fetched_once(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """An embedded pair without a title triggers one title read."""
        course_a, course_b = store.add_course(), store.add_course()
        mc_id = store.add_microcredential(course_a, course_b, title="Desde la tabla")
        store.add_microcredential_enrollment(
            student_id, mc_id, level1=course_a, level2=course_b
        )
        store.add_enrollment(student_id, course_a)
        store.add_enrollment(student_id, course_b)

        data = await dashboard_service.get_mis_cursos(user_id)

        assert data.microcredentials[0].title == "Desde la tabla"
        assert store.reads["microcredentials"] == 1

    @pytest.mark.asyncio
    async def test_cached_title(
        self, mock_session: Mock, store: FakeStore, user_id: UUID, student_id: UUID
    ) -> None:
        """A cached title avoids the microcredentials read."""
        redis_mock = AsyncMock()
        redis_mock.mget = AsyncMock(return_value=[b"Cacheado"])
        service = DashboardService(
            mock_session, "test_keyspace", redis=redis_mock, settings=get_settings()
        )
        course_a, course_b = store.add_course(), store.add_course()
        store.add_microcredential_enrollment(
            student_id, uuid4(), level1=course_a, level2=course_b
        )
        store.add_enrollment(student_id, course_a)
        store.add_enrollment(student_id, course_b)

        data = await service.get_mis_cursos(user_id)

        assert data.microcredentials[0].title == "Cacheado"
        assert store.reads["microcredentials"] == 0

    @pytest.mark.asyncio
    async def test_default_title(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Without any title the default label is shown."""
        course_a, course_b = store.add_course(), store.add_course()
        store.add_microcredential_enrollment(
            student_id, uuid4(), level1=course_a, level2=course_b
        )
        store.add_enrollment(student_id, course_a)
        store.add_enrollment(student_id, course_b)

        data = await dashboard_service.get_mis_cursos(user_id)

        assert data.microcredentials[0].title == "Microcredencial"

    @pytest.mark.asyncio
    async def test_several_missing_titles_one_read(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Titles missing for several microcredentials come from a single read."""
        expected = ["Gestión", "Farmacología", "Atención"]
        for title in expected:
            course_a, course_b = store.add_course(), store.add_course()
            mc_id = store.add_microcredential(course_a, course_b, title=title)
            store.add_microcredential_enrollment(
                student_id, mc_id, level1=course_a, level2=course_b
            )
            store.add_enrollment(student_id, course_a)
            store.add_enrollment(student_id, course_b)

        data = await dashboard_service.get_mis_cursos(user_id)

        assert sorted(group.title for group in data.microcredentials) == sorted(
            expected
        )
        assert store.reads["microcredentials"] == 1

    @pytest.mark.asyncio
    async def test_unresolved_pairs_read_together(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """Pairs missing from several enrollment rows are read in one query."""
        for title in ("Uno", "Dos"):
            course_a, course_b = store.add_course(), store.add_course()
            mc_id = store.add_microcredential(course_a, course_b, title=title)
            store.add_microcredential_enrollment(student_id, mc_id)
            store.add_enrollment(student_id, course_a)
            store.add_enrollment(student_id, course_b)

        data = await dashboard_service.get_mis_cursos(user_id)

        assert sorted(group.title for group in data.microcredentials) == ["Dos", "Uno"]
        assert store.reads["microcredentials"] == 1

    @pytest.mark.asyncio
    async def test_null_title_not_read_twice(
        self,
        dashboard_service: DashboardService,
        store: FakeStore,
        user_id: UUID,
        student_id: UUID,
    ) -> None:
        """A pair row read without a title is not read again for the title."""
        course_a, course_b = store.add_course(), store.add_course()
        mc_id = store.add_microcredential(course_a, course_b, title=None)
        store.add_microcredential_enrollment(student_id, mc_id)
        store.add_enrollment(student_id, course_a)
        store.add_enrollment(student_id, course_b)

        data = await dashboard_service.get_mis_cursos(user_id)

        assert data.microcredentials[0].title == "Microcredencial"
        assert store.reads["microcredentials"] == 1


class TestCourseEntity:
    """Sanity checks on catalog rows used for ranking."""

    def test_unrated_when_rating_missing(self) -> None:
        """A missing rating is treated as unrated."""
        assert not Course(id=uuid4()).is_rated
