"""
Test configuration and fixtures for the link engine.
This centralizes all test setup, making individual tests clean.
"""

import os

# Keep the app off the network and off Redis before settings are loaded
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_link_engine.db")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("GEO_BACKEND", "null")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from main import app
from linkengine.cache.strategies import InMemoryCache
from linkengine.database.connection import Base, build_engine, get_db
from linkengine.dependencies import get_cache, get_rate_limiter, get_visitor_parser
from linkengine.geo.strategies import NullGeoLocator
from linkengine.ratelimit.strategies import InMemoryRateLimiter
from linkengine.schemas.link import LinkCreate
from linkengine.services.link_service import LinkService
from linkengine.services.resolver import RedirectResolver
from linkengine.services.visitor import RequestContext, VisitorParser
from linkengine.storage.click_log import ClickIngestor
from linkengine.storage.link_store import LinkStore

OWNER = "account-1"


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    File-backed SQLite database per test.
    A file (not :memory:) so several sessions and threads can share it.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory):
    """Fresh database session for each test"""
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def cache():
    return InMemoryCache()


@pytest.fixture(scope="function")
def link_service(db_session, cache):
    return LinkService(db=db_session, cache=cache)


@pytest.fixture(scope="function")
def make_link(link_service):
    """Create a link through the service: make_link(max_clicks=1, ...)"""
    def _make(owner_id=OWNER, **fields):
        fields.setdefault("original_url", "https://example.com/landing")
        return asyncio.run(link_service.create_link(LinkCreate(**fields), owner_id))
    return _make


@pytest.fixture(scope="function")
def resolver(db_session):
    return RedirectResolver(
        store=LinkStore(db_session),
        ingestor=ClickIngestor(db_session),
        visitor_parser=VisitorParser(NullGeoLocator()),
    )


@pytest.fixture
def visit():
    """Request context factory: visit("1.2.3.4", user_agent=...)"""
    def _visit(ip_address="203.0.113.7", **fields):
        return RequestContext(ip_address=ip_address, **fields)
    return _visit


@pytest.fixture(scope="function")
def client(db_session, cache):
    """
    Create a test client with database, cache, visitor parser and rate
    limiter overridden. Rate limit counters start empty for every test.
    This is the main fixture that API tests will use.
    """
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_visitor_parser] = lambda: VisitorParser(NullGeoLocator())
    rate_limiter = InMemoryRateLimiter()
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
