"""
FastAPI dependencies for dependency injection.

Singletons (cache, visitor parser, rate limiter) are built once from settings; services
and resolvers are built per request around the request's DB session.
Tests override these to inject in-memory or null collaborators.
"""

import ipaddress
import logging
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from linkengine.cache.factory import CacheFactory, CacheBackend
from linkengine.cache.strategies import CacheStrategy
from linkengine.config import settings
from linkengine.database.connection import get_db
from linkengine.errors import RateLimited
from linkengine.geo.factory import GeoFactory, GeoBackend
from linkengine.ratelimit.factory import RateLimiterFactory, RateLimitBackend
from linkengine.ratelimit.strategies import RateLimitStrategy
from linkengine.services.analytics import AnalyticsAggregator
from linkengine.services.link_service import LinkService
from linkengine.services.resolver import CachedResolver, RedirectResolver
from linkengine.services.visitor import VisitorParser
from linkengine.storage.click_log import ClickIngestor
from linkengine.storage.link_store import LinkStore

logger = logging.getLogger(__name__)


@lru_cache()
def get_cache() -> CacheStrategy:
    """Cache instance (singleton), backend chosen by settings."""
    backend = CacheBackend(settings.cache_backend)
    return CacheFactory.create(backend)


@lru_cache()
def get_visitor_parser() -> VisitorParser:
    """Visitor parser (singleton) with the configured geo backend."""
    return VisitorParser(geo=GeoFactory.create(GeoBackend(settings.geo_backend)))


def get_current_owner(x_account_id: Optional[str] = Header(None)) -> str:
    """
    Identity collaborator.

    Authentication happens upstream; the gateway forwards the authenticated
    account in X-Account-Id. This core never authenticates on its own.
    """
    if not x_account_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required"
        )
    return x_account_id


def get_link_service(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache)
) -> LinkService:
    return LinkService(db=db, cache=cache)


def get_resolver(
    db: Session = Depends(get_db),
    cache: CacheStrategy = Depends(get_cache),
    visitor_parser: VisitorParser = Depends(get_visitor_parser)
):
    """RedirectResolver, wrapped in CachedResolver when caching is enabled."""
    resolver = RedirectResolver(
        store=LinkStore(db),
        ingestor=ClickIngestor(db),
        visitor_parser=visitor_parser,
    )
    if settings.cache_enabled:
        return CachedResolver(resolver, cache)
    return resolver


def get_aggregator(db: Session = Depends(get_db)) -> AnalyticsAggregator:
    return AnalyticsAggregator(db)


def _is_trusted_proxy(host: str, trusted_proxies: List[str]) -> bool:
    if host in trusted_proxies:
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    for entry in trusted_proxies:
        try:
            if address in ipaddress.ip_network(entry, strict=False):
                return True
        except ValueError:
            continue
    return False


def client_ip(request: Request, trusted_proxies: Optional[List[str]] = None) -> str:
    """
    The visitor's address, as used for unique visits, geo lookup and rate limits.

    X-Forwarded-For is read only when the direct peer is one of the trusted
    proxies; its first entry is then the visitor. Otherwise the peer itself.
    """
    trusted = settings.trusted_proxies if trusted_proxies is None else trusted_proxies
    peer = request.client.host if request.client else "unknown"

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded and trusted and _is_trusted_proxy(peer, trusted):
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    return peer


@lru_cache()
def get_rate_limiter() -> RateLimitStrategy:
    """Rate limiter (singleton), backend chosen by settings."""
    return RateLimiterFactory.create(RateLimitBackend(settings.rate_limit_backend))


async def _enforce(limiter: RateLimitStrategy, scope: str, request: Request, limit: int, window: int, message: str):
    if not settings.rate_limit_enabled:
        return
    ip_address = client_ip(request)
    allowed, retry_after = await limiter.hit(f"{scope}:{ip_address}", limit, window)
    if not allowed:
        logger.info("Rate limit hit: %s from %s", scope, ip_address)
        raise RateLimited(message, retry_after)


async def limit_redirects(request: Request, limiter: RateLimitStrategy = Depends(get_rate_limiter)):
    await _enforce(
        limiter, "redirect", request,
        settings.redirect_rate_limit, settings.redirect_rate_window_seconds,
        "Too many redirect attempts, please try again later."
    )


async def limit_link_creation(request: Request, limiter: RateLimitStrategy = Depends(get_rate_limiter)):
    await _enforce(
        limiter, "create", request,
        settings.create_rate_limit, settings.create_rate_window_seconds,
        "Too many link creation attempts, please try again later."
    )
