from fastapi import APIRouter, Depends

from ai_attendance.dependencies import Services, get_services, require_session
from ai_attendance.schemas import DashboardView, Session

router = APIRouter(
    prefix="/dashboard",
    tags=["Dashboard"]
)


@router.get("", response_model=DashboardView)
def get_dashboard(
    session: Session = Depends(require_session),
    services: Services = Depends(get_services),
):
    """Latest statistics and recent records over the live window."""
    return services.aggregator.view
