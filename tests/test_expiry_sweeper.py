"""
Tests for the TTL sweep worker.
"""

import asyncio
from datetime import timedelta

from linkengine.clock import utcnow
from linkengine.models import Click, Link, LinkCode
from linkengine.services.resolver import cache_key
from linkengine.workers.expiry_sweeper import ExpirySweeper


class TestExpirySweeper:

    def test_sweep_removes_expired_links_and_cache_entries(self, make_link, session_factory, db_session, cache):
        now = utcnow()
        expired = make_link(custom_alias="flash-sale", expires_at=now + timedelta(minutes=10))
        live = make_link(expires_at=now + timedelta(days=1))
        expired_code = expired.short_code
        db_session.add(Click(link_id=expired.id, timestamp=now, ip_address="203.0.113.7", is_unique=True))
        db_session.commit()
        asyncio.run(cache.set(cache_key("flash-sale"), "{}", ttl=300))

        sweeper = ExpirySweeper(cache=cache, db_session_factory=session_factory, interval=1)
        codes = asyncio.run(sweeper.sweep_once(now + timedelta(minutes=11)))

        assert sorted(codes) == sorted([expired_code, "flash-sale"])
        assert sweeper.purged_count == 2
        assert asyncio.run(cache.get(cache_key("flash-sale"))) is None

        db_session.expire_all()
        assert db_session.query(Link).filter(Link.id == live.id).count() == 1
        assert db_session.query(Link).filter(Link.short_code == expired_code).count() == 0
        assert db_session.query(LinkCode).filter(LinkCode.code == "flash-sale").count() == 0
        assert db_session.query(Click).count() == 0

    def test_sweep_without_expired_links(self, make_link, session_factory, cache):
        make_link()
        sweeper = ExpirySweeper(cache=cache, db_session_factory=session_factory)

        assert asyncio.run(sweeper.sweep_once()) == []
        assert sweeper.purged_count == 0

    def test_stop_clears_running_flag(self, session_factory):
        sweeper = ExpirySweeper(db_session_factory=session_factory, interval=1)
        sweeper.running = True

        sweeper.stop()

        assert sweeper.running is False
