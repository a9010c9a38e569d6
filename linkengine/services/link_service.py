import logging
import re
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from linkengine.cache.strategies import CacheStrategy
from linkengine.clock import to_naive_utc, utcnow
from linkengine.config import settings
from linkengine.errors import AliasTaken, AllocationExhausted
from linkengine.models import Link
from linkengine.schemas.analytics import AnalyticsSummary, AnalyticsWindow
from linkengine.schemas.link import LinkCreate, LinkUpdate
from linkengine.services.allocator import ShortCodeAllocator
from linkengine.services.analytics import AnalyticsAggregator
from linkengine.services.passwords import hash_password
from linkengine.services.resolver import cache_key
from linkengine.storage.link_store import LinkStore

logger = logging.getLogger(__name__)

SUSPICIOUS_PATTERNS = (
    re.compile(r"paypal.*login", re.IGNORECASE),
    re.compile(r"bank.*login", re.IGNORECASE),
    re.compile(r"secure.*login", re.IGNORECASE),
    re.compile(r"\.(tk|ml|ga|cf)(/|$)", re.IGNORECASE),
)


def security_warnings_for(url: str) -> List[str]:
    """Flag destinations that look like phishing or abused free domains."""
    if any(pattern.search(url) for pattern in SUSPICIOUS_PATTERNS):
        return ["suspicious_domain"]
    return []


class LinkService:
    """
    Owner-facing link management with dependency injection for the cache.

    Every edit or delete drops the cached snapshots of the affected codes so
    the resolver reloads the new gates on the next visit.
    """

    def __init__(
        self,
        db: Session,
        cache: Optional[CacheStrategy] = None,
        allocator: Optional[ShortCodeAllocator] = None
    ):
        self.db = db
        self.cache = cache
        self.store = LinkStore(db)
        self.allocator = allocator or ShortCodeAllocator(self.store)

    async def create_link(self, payload: LinkCreate, owner_id: str) -> Link:
        """
        Create a link owned by `owner_id`.

        The alias (if any) and the generated short code are claimed by the
        store's insert. A lost race on the alias surfaces as AliasTaken; a
        lost race on the generated code just draws another one.

        Raises:
            AliasTaken: the custom alias is already in use
            AllocationExhausted: no free short code could be found
        """
        if payload.custom_alias is not None:
            self.allocator.allocate(payload.custom_alias)

        for _ in range(self.allocator.max_retries):
            link = self._build_link(payload, owner_id, self.allocator.allocate())
            try:
                created = self.store.create(link)
            except AliasTaken as exc:
                if exc.code == payload.custom_alias:
                    raise
                logger.debug("Short code %s was claimed concurrently, retrying", exc.code)
                continue

            logger.info("Link %s created for owner %s", created.short_code, owner_id)
            return created

        raise AllocationExhausted(self.allocator.max_retries)

    def _build_link(self, payload: LinkCreate, owner_id: str, short_code: str) -> Link:
        original_url = str(payload.original_url)
        utm = payload.utm.model_dump() if payload.utm else {}

        expires_at = to_naive_utc(payload.expires_at)
        if payload.expiry_hours is not None:
            expires_at = utcnow() + timedelta(hours=payload.expiry_hours)

        warnings = security_warnings_for(original_url)

        return Link(
            short_code=short_code,
            custom_alias=payload.custom_alias,
            original_url=original_url,
            owner_id=owner_id,
            title=payload.title,
            description=payload.description,
            tags=list(payload.tags),
            utm_source=utm.get("source"),
            utm_medium=utm.get("medium"),
            utm_campaign=utm.get("campaign"),
            utm_term=utm.get("term"),
            utm_content=utm.get("content"),
            is_active=payload.is_active,
            start_at=to_naive_utc(payload.start_at),
            expires_at=expires_at,
            is_locked=payload.password is not None,
            password_hash=hash_password(payload.password) if payload.password else None,
            max_clicks=payload.max_clicks,
            pixel_script=payload.pixel_script or None,
            click_count=0,
            unique_click_count=0,
            is_suspicious=bool(warnings),
            security_warnings=warnings,
        )

    async def get_link(self, code: str, owner_id: Optional[str] = None) -> Optional[Link]:
        """Find a link by short code or alias, optionally scoped to its owner."""
        link = self.store.find_by_code(code)
        if link is None or (owner_id is not None and link.owner_id != owner_id):
            return None
        return link

    async def list_links(self, owner_id: str, page: int = 1, page_size: int = 10) -> Tuple[List[Link], int]:
        offset = (page - 1) * page_size
        return self.store.list_by_owner(owner_id, offset, page_size), self.store.count_by_owner(owner_id)

    async def update_link(self, code: str, payload: LinkUpdate, owner_id: str) -> Optional[Link]:
        """
        Apply an owner edit. Only fields present in the request are changed.

        Raises:
            AliasTaken: the new alias is already in use
        """
        link = await self.get_link(code, owner_id)
        if link is None:
            return None

        changes = payload.model_dump(exclude_unset=True)
        stale_codes = link.codes()

        try:
            if "custom_alias" in changes and changes["custom_alias"] != link.custom_alias:
                self._change_alias(link, changes.pop("custom_alias"))
            else:
                changes.pop("custom_alias", None)

            if "original_url" in changes and changes["original_url"] is not None:
                link.original_url = str(payload.original_url)
                link.security_warnings = security_warnings_for(link.original_url)
                link.is_suspicious = bool(link.security_warnings)
            changes.pop("original_url", None)

            if "utm" in changes:
                utm = changes.pop("utm") or {}
                link.utm_source = utm.get("source")
                link.utm_medium = utm.get("medium")
                link.utm_campaign = utm.get("campaign")
                link.utm_term = utm.get("term")
                link.utm_content = utm.get("content")

            if "password" in changes:
                password = changes.pop("password")
                link.is_locked = bool(password)
                link.password_hash = hash_password(password) if password else None

            for field in ("start_at", "expires_at"):
                if field in changes:
                    setattr(link, field, to_naive_utc(changes.pop(field)))

            if "tags" in changes:
                link.tags = list(changes.pop("tags") or [])

            if "pixel_script" in changes:
                link.pixel_script = changes.pop("pixel_script") or None

            for field, value in changes.items():
                if field == "is_active" and value is None:
                    continue
                setattr(link, field, value)

            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise AliasTaken(payload.custom_alias) from exc

        self.db.refresh(link)
        await self._invalidate(*stale_codes, *link.codes())
        logger.info("Link %s updated", link.short_code)
        return link

    def _change_alias(self, link: Link, new_alias: Optional[str]) -> None:
        if new_alias is not None and self.store.code_exists(new_alias):
            raise AliasTaken(new_alias)
        if link.custom_alias:
            self.store.release_code(link.custom_alias)
        if new_alias is not None:
            self.store.claim_code(link, new_alias)
        link.custom_alias = new_alias

    async def delete_link(self, code: str, owner_id: str) -> bool:
        """Hard delete: the link, its codes and its click history."""
        link = await self.get_link(code, owner_id)
        if link is None:
            return False

        codes = self.store.delete(link)
        await self._invalidate(*codes)
        logger.info("Link %s deleted by owner %s", codes[0], owner_id)
        return True

    async def get_summary(
        self,
        link_id: int,
        window: AnalyticsWindow = AnalyticsWindow.LAST_7_DAYS
    ) -> AnalyticsSummary:
        return AnalyticsAggregator(self.db).summary(link_id, window)

    async def _invalidate(self, *codes: str) -> None:
        if not self.cache:
            return
        await self.cache.delete(*{cache_key(code) for code in codes if code})
