"""
Append-only click log.

Uniqueness is a point-in-time predicate: a visit is unique when no other
click from the same IP on the same link lies within the window of it, on
either side, so the order in which clicks are written does not matter. It
is evaluated once, at ingestion, and frozen on the row.
"""

from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from linkengine.config import settings
from linkengine.models import Click
from linkengine.services.visitor import RequestContext, VisitorInfo


class ClickIngestor:
    """Writes Click rows into the caller's transaction"""

    def __init__(self, db: Session, unique_window: Optional[timedelta] = None):
        self.db = db
        self.unique_window = unique_window or timedelta(hours=settings.unique_window_hours)

    def is_unique_visit(self, link_id: int, ip_address: str, now: datetime) -> bool:
        previous = (
            self.db.query(Click.id)
            .filter(
                Click.link_id == link_id,
                Click.ip_address == ip_address,
                Click.timestamp >= now - self.unique_window,
                Click.timestamp <= now + self.unique_window,
            )
            .first()
        )
        return previous is None

    def record(
        self,
        link_id: int,
        context: RequestContext,
        visitor: VisitorInfo,
        now: datetime
    ) -> Click:
        """Append a click. Flushes but does not commit."""
        click = Click(
            link_id=link_id,
            timestamp=now,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            referrer=context.referrer,
            browser=visitor.browser,
            os=visitor.os,
            device=visitor.device,
            country=visitor.country,
            city=visitor.city,
            is_unique=self.is_unique_visit(link_id, context.ip_address, now),
        )
        self.db.add(click)
        self.db.flush()
        return click
