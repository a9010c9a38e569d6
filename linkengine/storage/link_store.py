"""
Durable mapping from short codes and aliases to Link records.

The store owns the two invariants the rest of the engine leans on:

- Short codes and custom aliases share one namespace. Every code a link
  answers to is a primary key in `link_codes`, inserted in the same
  transaction as the link row, so two concurrent creates for the same alias
  cannot both commit.
- `click_count` only moves through a single conditional UPDATE, so the
  quota check and the increment cannot be separated by another request.

Nothing here commits implicitly except `create`, `delete` and
`purge_expired`; the resolver drives the click transaction through
`commit()` / `rollback()`.
"""

import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from linkengine.config import settings
from linkengine.errors import AliasTaken, StoreUnavailable
from linkengine.models import Click, Link, LinkCode

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LinkStore:
    """SQLAlchemy-backed link store bound to one session"""

    def __init__(
        self,
        db: Session,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None
    ):
        self.db = db
        self.max_retries = max_retries if max_retries is not None else settings.store_max_retries
        self.retry_backoff = retry_backoff if retry_backoff is not None else settings.store_retry_backoff

    def _with_retries(self, operation: Callable[[], T]) -> T:
        """Run a read, retrying transient database errors before giving up."""
        for attempt in range(1, self.max_retries + 1):
            try:
                return operation()
            except OperationalError as exc:
                self.db.rollback()
                if attempt == self.max_retries:
                    raise StoreUnavailable(f"Link store unavailable: {exc}") from exc
                logger.warning("Transient store error (attempt %s/%s): %s", attempt, self.max_retries, exc)
                time.sleep(self.retry_backoff * attempt)

    # Writes

    def create(self, link: Link) -> Link:
        """
        Insert a link and claim all of its codes atomically.

        Raises:
            AliasTaken: one of the link's codes is already claimed
        """
        try:
            self.db.add(link)
            self.db.flush()  # Assigns link.id
            for code in link.codes():
                self.db.add(LinkCode(code=code, link_id=link.id))
            self.db.flush()
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            taken = next((code for code in link.codes() if self.code_exists(code)), link.short_code)
            raise AliasTaken(taken) from exc

        self.db.refresh(link)
        return link

    def claim_code(self, link: Link, code: str) -> None:
        """Register an extra code (a new alias) for an existing link, flush only."""
        self.db.add(LinkCode(code=code, link_id=link.id))
        self.db.flush()

    def release_code(self, code: str) -> None:
        self.db.query(LinkCode).filter(LinkCode.code == code).delete(synchronize_session="fetch")

    def increment_click(self, link_id: int) -> Optional[int]:
        """
        Increment click_count only while it is below max_clicks.

        Returns the new count, or None when no row was updated (quota reached
        or the link is gone). Does not commit.
        """
        result = self.db.execute(
            update(Link)
            .where(
                Link.id == link_id,
                or_(Link.max_clicks.is_(None), Link.click_count < Link.max_clicks),
            )
            .values(click_count=Link.click_count + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return self.db.query(Link.click_count).filter(Link.id == link_id).scalar()

    def increment_unique(self, link_id: int) -> None:
        """Atomic unique_click_count + 1. Does not commit."""
        self.db.execute(
            update(Link)
            .where(Link.id == link_id)
            .values(unique_click_count=Link.unique_click_count + 1)
            .execution_options(synchronize_session=False)
        )

    def delete(self, link: Link) -> List[str]:
        """Delete a link with its codes and click history. Returns the freed codes."""
        codes = link.codes()
        self._delete_links([link.id])
        self.db.commit()
        return codes

    def purge_expired(self, now: datetime) -> List[str]:
        """
        Physically remove links whose expires_at has passed.

        Returns the codes that were freed so callers can drop cache entries.
        """
        expired = (
            self.db.query(Link.id, Link.short_code, Link.custom_alias)
            .filter(Link.expires_at.isnot(None), Link.expires_at <= now)
            .all()
        )
        if not expired:
            return []

        self._delete_links([row.id for row in expired])
        self.db.commit()

        codes = [code for row in expired for code in (row.short_code, row.custom_alias) if code]
        logger.info("Purged %s expired links", len(expired))
        return codes

    def _delete_links(self, link_ids: List[int]) -> None:
        self.db.query(Click).filter(Click.link_id.in_(link_ids)).delete(synchronize_session="fetch")
        self.db.query(LinkCode).filter(LinkCode.link_id.in_(link_ids)).delete(synchronize_session="fetch")
        self.db.query(Link).filter(Link.id.in_(link_ids)).delete(synchronize_session="fetch")

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()

    # Reads

    def find_by_code(self, code: str) -> Optional[Link]:
        """Look a link up by short code or custom alias."""
        return self._with_retries(
            lambda: self.db.query(Link)
            .join(LinkCode, LinkCode.link_id == Link.id)
            .filter(LinkCode.code == code)
            .first()
        )

    def get(self, link_id: int) -> Optional[Link]:
        return self._with_retries(lambda: self.db.query(Link).filter(Link.id == link_id).first())

    def code_exists(self, code: str) -> bool:
        return self._with_retries(
            lambda: self.db.query(LinkCode.code).filter(LinkCode.code == code).first() is not None
        )

    def list_by_owner(self, owner_id: str, offset: int = 0, limit: int = 10) -> List[Link]:
        return self._with_retries(
            lambda: self.db.query(Link)
            .filter(Link.owner_id == owner_id)
            .order_by(Link.created_at.desc(), Link.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def count_by_owner(self, owner_id: str) -> int:
        return self._with_retries(lambda: self.db.query(Link).filter(Link.owner_id == owner_id).count())
