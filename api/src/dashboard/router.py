"""Student dashboard API endpoints.

Provides routes for:
- Full dashboard (enrolled courses, recommendations, schedule, stats)
- "Mis cursos" view (microcredential groups and standalone courses)
"""

from fastapi import APIRouter

from src.auth.dependencies import StudentUser
from src.progress.schemas import MisCursosData

from .dependencies import DashboardServiceDep, handle_dashboard_error
from .schemas import DashboardPayload
from .service import DashboardError


router = APIRouter(prefix="/v1/student/dashboard", tags=["dashboard"])


@router.get(
    "",
    response_model=DashboardPayload,
    summary="Get student dashboard",
)
async def get_dashboard(
    dashboard_service: DashboardServiceDep,
    user: StudentUser,
) -> DashboardPayload:
    """Get the dashboard of the authenticated student.

    Users without a student record get an empty dashboard.
    """
    try:
        return await dashboard_service.get_dashboard(user.id)
    except DashboardError as e:
        raise handle_dashboard_error(e) from e


@router.get(
    "/mis-cursos",
    response_model=MisCursosData,
    summary="Get enrolled courses grouped by microcredential",
)
async def get_mis_cursos(
    dashboard_service: DashboardServiceDep,
    user: StudentUser,
) -> MisCursosData:
    """Get enrolled courses split into microcredentials and standalone courses."""
    try:
        return await dashboard_service.get_mis_cursos(user.id)
    except DashboardError as e:
        raise handle_dashboard_error(e) from e
