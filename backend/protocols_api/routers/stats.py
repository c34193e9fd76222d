"""
Dashboard statistics router.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from protocols_api.dependencies import get_current_principal, get_db
from protocols_api.models.common import envelope
from protocols_api.services.stats_service import StatsService

router = APIRouter(dependencies=[Depends(get_current_principal)])


@router.get("/dashboard")
def dashboard_stats(db: Session = Depends(get_db)):
    return envelope(StatsService(db).dashboard())
