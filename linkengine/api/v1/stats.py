from fastapi import APIRouter, Depends

from linkengine.dependencies import get_aggregator
from linkengine.schemas.analytics import GlobalStats
from linkengine.services.analytics import AnalyticsAggregator

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/", response_model=GlobalStats)
def get_global_stats(aggregator: AnalyticsAggregator = Depends(get_aggregator)):
    """Totals across all links (eventually consistent)"""
    return aggregator.global_stats()
