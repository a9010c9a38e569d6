"""
Read-side analytics over the click log.

Summaries are plain GROUP BY folds over the clicks of one link inside a
trailing window. Dimension maps are ordered by count (desc) then key, so the
same click set always produces the same summary.
"""

from datetime import datetime
from typing import Dict, Iterable, Optional, Tuple

from sqlalchemy import case, distinct, func
from sqlalchemy.orm import Session

from linkengine.clock import utcnow
from linkengine.models import Click, Link
from linkengine.schemas.analytics import (
    AnalyticsSummary,
    AnalyticsWindow,
    GlobalStats,
    ReferrerCount,
)

DIRECT = "Direct"


def _ordered(rows: Iterable[Tuple[Optional[str], int]], default: str = "Unknown") -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for key, count in rows:
        name = str(key) if key else default
        counts[name] = counts.get(name, 0) + count
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


class AnalyticsAggregator:
    """Per-link summaries and global rollups"""

    def __init__(self, db: Session):
        self.db = db

    def summary(
        self,
        link_id: int,
        window: AnalyticsWindow = AnalyticsWindow.LAST_7_DAYS,
        now: Optional[datetime] = None,
        referrer_limit: int = 10
    ) -> AnalyticsSummary:
        now = now or utcnow()
        filters = [Click.link_id == link_id, Click.timestamp <= now]
        span = window.to_timedelta()
        if span is not None:
            filters.append(Click.timestamp >= now - span)

        total, unique = (
            self.db.query(
                func.count(Click.id),
                func.coalesce(func.sum(case((Click.is_unique.is_(True), 1), else_=0)), 0),
            )
            .filter(*filters)
            .one()
        )

        def group(column):
            return self.db.query(column, func.count(Click.id)).filter(*filters).group_by(column).all()

        day = func.date(Click.timestamp)
        by_day = _ordered(group(day))

        referrers = _ordered(group(Click.referrer), default=DIRECT)

        return AnalyticsSummary(
            link_id=link_id,
            window=window,
            total_clicks=total,
            unique_clicks=int(unique),
            by_country=_ordered(group(Click.country)),
            by_device=_ordered(group(Click.device), default="unknown"),
            by_browser=_ordered(group(Click.browser)),
            by_os=_ordered(group(Click.os)),
            by_day=dict(sorted(by_day.items())),
            top_referrers=[
                ReferrerCount(referrer=name, count=count)
                for name, count in list(referrers.items())[:referrer_limit]
            ],
        )

    def global_stats(self) -> GlobalStats:
        """Cross-link rollup from the denormalized counters."""
        total_links, total_clicks, total_users = self.db.query(
            func.count(Link.id),
            func.coalesce(func.sum(Link.click_count), 0),
            func.count(distinct(Link.owner_id)),
        ).one()
        return GlobalStats(
            total_links=total_links,
            total_clicks=int(total_clicks),
            total_users=total_users,
        )
