from datetime import timedelta
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel


class AnalyticsWindow(str, Enum):
    """Trailing windows supported by link summaries"""
    LAST_24_HOURS = "24h"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    ALL_TIME = "all"

    def to_timedelta(self) -> Optional[timedelta]:
        return {
            AnalyticsWindow.LAST_24_HOURS: timedelta(hours=24),
            AnalyticsWindow.LAST_7_DAYS: timedelta(days=7),
            AnalyticsWindow.LAST_30_DAYS: timedelta(days=30),
        }.get(self)


class ReferrerCount(BaseModel):
    referrer: str
    count: int


class AnalyticsSummary(BaseModel):
    link_id: int
    window: AnalyticsWindow
    total_clicks: int
    unique_clicks: int
    by_country: Dict[str, int]
    by_device: Dict[str, int]
    by_browser: Dict[str, int]
    by_os: Dict[str, int]
    by_day: Dict[str, int]
    top_referrers: List[ReferrerCount]


class GlobalStats(BaseModel):
    total_links: int
    total_clicks: int
    total_users: int
