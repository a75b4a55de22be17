"""FastAPI dependencies for the student dashboard.

Provides dependency injection for:
- Dashboard service
- Error handlers
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from .service import DashboardError, DashboardService


async def get_dashboard_service(request: Request) -> DashboardService:
    """Get dashboard service from app state.

    Args:
        request: FastAPI request

    Returns:
        DashboardService instance
    """
    app_state = request.app.state
    if not hasattr(app_state, "dashboard_service") or not app_state.dashboard_service:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Servicio de panel no disponible",
        )
    return app_state.dashboard_service


# Type alias for dependency injection
DashboardServiceDep = Annotated[DashboardService, Depends(get_dashboard_service)]


def handle_dashboard_error(error: DashboardError) -> HTTPException:
    """Convert dashboard errors to HTTP exceptions.

    Args:
        error: Dashboard error

    Returns:
        HTTPException with appropriate status code
    """
    status_map = {
        "snapshot_unavailable": status.HTTP_503_SERVICE_UNAVAILABLE,
    }

    status_code = status_map.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)

    return HTTPException(
        status_code=status_code,
        detail=error.message,
    )
