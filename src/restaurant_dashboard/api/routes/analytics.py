"""
Analytics route.
"""
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...models.database import get_db
from ...models.schemas import AnalyticsReport
from ...services.analytics_service import AnalyticsService
from ..dependencies import require_permission

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("", response_model=AnalyticsReport)
def get_report(
    restaurant_id: int,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    top_customers: int = Query(10, ge=1, le=100),
    user_id: str = Depends(require_permission("analytics.view")),
    db: Session = Depends(get_db),
):
    """Metrics for a date range; defaults to the last 30 days."""
    end_date = end_date or date.today()
    start_date = start_date or end_date - timedelta(days=29)
    return AnalyticsService(db).get_report(restaurant_id, start_date, end_date, top_customers)
