"""
Link resolution: the gating state machine.

Gates are evaluated in a fixed order and the first match terminates:

    1. not_found  - no link for the code, or the link is inactive
    2. scheduled  - start_at is in the future
    3. expired    - expires_at has passed (checked live, sweep or not)
    4. locked     - password protected and no valid credential supplied
    5. exhausted  - max_clicks reached
    6. pixel      - admit, but hand back a delayed redirect
    7. redirect   - admit and redirect immediately

Gated outcomes record nothing. Admission is one database transaction: the
conditional click_count increment, the click row and the unique counter
commit together or not at all. If that transaction fails the caller gets
IngestFailure, never a redirect. A resolution that outlives its deadline
ends in StoreUnavailable and is not admitted.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Optional, Tuple, Union

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from linkengine.cache.strategies import CacheStrategy
from linkengine.clock import utcnow
from linkengine.config import settings
from linkengine.errors import (
    GATE_MESSAGES,
    INCORRECT_PASSWORD_MESSAGE,
    GateKind,
    IngestFailure,
    StoreUnavailable,
)
from linkengine.schemas.link import LinkSnapshot
from linkengine.services.passwords import PasswordVerifier
from linkengine.services.visitor import RequestContext, VisitorParser
from linkengine.storage.click_log import ClickIngestor
from linkengine.storage.link_store import LinkStore

logger = logging.getLogger(__name__)


class RedirectTarget(BaseModel):
    """Successful resolution: the click has been counted"""
    url: str
    delay_seconds: float = 0.0
    pixel_script: Optional[str] = None
    click_count: int


class GateResult(BaseModel):
    """Terminal, non-redirect resolution"""
    kind: GateKind
    message: str

    @classmethod
    def of(cls, kind: GateKind, message: Optional[str] = None) -> "GateResult":
        return cls(kind=kind, message=message or GATE_MESSAGES[kind])


Resolution = Union[RedirectTarget, GateResult]


def cache_key(code: str) -> str:
    return f"link:{code}"


class RedirectResolver:
    """
    Decides, for a code and a request, whether to redirect and where.

    Stateless apart from its collaborators; one instance per request/session.
    Lookup, gates and admission block (database, bcrypt, geo), so they run in
    a worker thread and the whole resolution is bounded by `timeout`.
    """

    def __init__(
        self,
        store: LinkStore,
        ingestor: ClickIngestor,
        visitor_parser: Optional[VisitorParser] = None,
        password_verifier: Optional[PasswordVerifier] = None,
        pixel_delay_seconds: Optional[float] = None,
        timeout: Optional[float] = None
    ):
        self.store = store
        self.ingestor = ingestor
        self.visitor_parser = visitor_parser or VisitorParser()
        self.password_verifier = password_verifier or PasswordVerifier()
        self.pixel_delay_seconds = (
            pixel_delay_seconds if pixel_delay_seconds is not None else settings.pixel_delay_seconds
        )
        self.timeout = timeout if timeout is not None else settings.resolve_timeout_seconds

    def lookup(self, code: str) -> Optional[LinkSnapshot]:
        link = self.store.find_by_code(code)
        return LinkSnapshot.model_validate(link) if link else None

    async def resolve(
        self,
        code: str,
        context: RequestContext,
        now: Optional[datetime] = None
    ) -> Resolution:
        _, outcome = await self.resolve_code(code, context, now)
        return outcome

    async def resolve_code(
        self,
        code: str,
        context: RequestContext,
        now: Optional[datetime] = None,
        snapshot: Optional[LinkSnapshot] = None
    ) -> Tuple[Optional[LinkSnapshot], Resolution]:
        """
        Load the link (unless `snapshot` is given), run the gates, admit the click.

        Returns the snapshot that was gated together with the outcome.

        Raises:
            StoreUnavailable: the resolution did not finish within `timeout`.
                A worker still running at that point will not start the
                admission transaction, so the visit is neither redirected
                nor counted.
            IngestFailure: the admission transaction failed
        """
        now = now or utcnow()
        deadline = time.monotonic() + self.timeout

        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self._resolve_blocking, code, snapshot, context, now, deadline),
                timeout=self.timeout
            )
        except asyncio.TimeoutError as exc:
            logger.error("Resolution of %s timed out after %ss", code, self.timeout)
            raise StoreUnavailable(f"Resolution of {code} timed out") from exc

    def _resolve_blocking(
        self,
        code: str,
        snapshot: Optional[LinkSnapshot],
        context: RequestContext,
        now: datetime,
        deadline: Optional[float] = None
    ) -> Tuple[Optional[LinkSnapshot], Resolution]:
        if snapshot is None:
            snapshot = self.lookup(code)

        gate = self.check_gates(snapshot, context, now)
        if gate is not None:
            return snapshot, gate

        return snapshot, self._admit(snapshot, context, now, deadline)

    def check_gates(
        self,
        snapshot: Optional[LinkSnapshot],
        context: RequestContext,
        now: datetime
    ) -> Optional[GateResult]:
        """Gates 1-5 in order. None means the visit may be admitted."""
        if snapshot is None or not snapshot.is_active:
            return GateResult.of(GateKind.NOT_FOUND)

        if snapshot.start_at is not None and now < snapshot.start_at:
            return GateResult.of(GateKind.SCHEDULED)

        if snapshot.expires_at is not None and now >= snapshot.expires_at:
            return GateResult.of(GateKind.EXPIRED)

        if snapshot.is_locked:
            credential = context.unlock_credential
            if not credential:
                return GateResult.of(GateKind.LOCKED)
            if not self.password_verifier.verify(snapshot.password_hash, credential):
                return GateResult.of(GateKind.LOCKED, INCORRECT_PASSWORD_MESSAGE)

        # Cheap precheck only; the conditional increment is authoritative
        if snapshot.max_clicks is not None and snapshot.click_count >= snapshot.max_clicks:
            return GateResult.of(GateKind.EXHAUSTED)

        return None

    def _admit(
        self,
        snapshot: LinkSnapshot,
        context: RequestContext,
        now: datetime,
        deadline: Optional[float] = None
    ) -> Resolution:
        # Enrichment happens outside the transaction so a slow geo lookup
        # does not hold the per-link write lock.
        visitor = self.visitor_parser.parse(context.ip_address, context.user_agent)
        if deadline is not None and time.monotonic() >= deadline:
            raise StoreUnavailable(f"Deadline passed before admitting a click for link {snapshot.id}")

        try:
            new_count = self.store.increment_click(snapshot.id)
            if new_count is None:
                self.store.rollback()
                if self.store.get(snapshot.id) is None:
                    return GateResult.of(GateKind.NOT_FOUND)
                return GateResult.of(GateKind.EXHAUSTED)

            click = self.ingestor.record(snapshot.id, context, visitor, now)
            if click.is_unique:
                self.store.increment_unique(snapshot.id)

            self.store.commit()
        except SQLAlchemyError as exc:
            self.store.rollback()
            logger.error("Click ingestion failed for link %s: %s", snapshot.id, exc)
            raise IngestFailure(f"Could not record click for link {snapshot.id}") from exc

        if snapshot.pixel_script:
            return RedirectTarget(
                url=snapshot.destination_url(),
                delay_seconds=self.pixel_delay_seconds,
                pixel_script=snapshot.pixel_script,
                click_count=new_count,
            )

        return RedirectTarget(url=snapshot.destination_url(), click_count=new_count)


class CachedResolver:
    """
    Read-through cache in front of RedirectResolver.

    The cache only saves the lookup. A cached snapshot goes through exactly
    the same gates (against the live clock) and the same atomic increment as
    a freshly loaded one, so a stale entry can never redirect past expiry or
    past the click quota.
    """

    def __init__(self, resolver: RedirectResolver, cache: CacheStrategy, ttl: Optional[int] = None):
        self.resolver = resolver
        self.cache = cache
        self.ttl = ttl if ttl is not None else settings.cache_ttl

    async def resolve(
        self,
        code: str,
        context: RequestContext,
        now: Optional[datetime] = None
    ) -> Resolution:
        now = now or utcnow()

        cached = await self._read(code)
        from_cache = cached is not None

        snapshot, outcome = await self.resolver.resolve_code(code, context, now, snapshot=cached)

        if isinstance(outcome, RedirectTarget):
            if not from_cache:
                await self._write(code, snapshot, now)
        elif from_cache and outcome.kind in (GateKind.NOT_FOUND, GateKind.EXPIRED):
            await self.cache.delete(cache_key(code))

        return outcome

    async def invalidate(self, *codes: str) -> None:
        await self.cache.delete(*(cache_key(code) for code in codes if code))

    async def _read(self, code: str) -> Optional[LinkSnapshot]:
        raw = await self.cache.get(cache_key(code))
        if raw is None:
            return None
        try:
            return LinkSnapshot.model_validate_json(raw)
        except ValueError:
            logger.warning("Discarding unreadable cache entry for %s", code)
            await self.cache.delete(cache_key(code))
            return None

    async def _write(self, code: str, snapshot: LinkSnapshot, now: datetime) -> None:
        ttl = self.ttl
        if snapshot.expires_at is not None:
            remaining = int((snapshot.expires_at - now) / timedelta(seconds=1))
            ttl = min(ttl, remaining)
        if ttl < 1:
            return
        await self.cache.set(cache_key(code), snapshot.model_dump_json(), ttl=ttl)
