"""
Tests for click ingestion and the 24h uniqueness predicate.
"""

from datetime import timedelta

from linkengine.clock import utcnow
from linkengine.models import Click
from linkengine.services.visitor import RequestContext, VisitorInfo
from linkengine.storage.click_log import ClickIngestor


def record(ingestor, link, ip_address, when, **fields):
    click = ingestor.record(link.id, RequestContext(ip_address=ip_address, **fields), VisitorInfo(), when)
    ingestor.db.commit()
    return click


class TestUniqueness:

    def test_first_visit_is_unique_repeat_is_not(self, make_link, db_session):
        link = make_link()
        ingestor = ClickIngestor(db_session)
        now = utcnow()

        first = record(ingestor, link, "203.0.113.7", now)
        second = record(ingestor, link, "203.0.113.7", now + timedelta(hours=1))

        assert first.is_unique is True
        assert second.is_unique is False

    def test_visit_after_window_is_unique_again(self, make_link, db_session):
        link = make_link()
        ingestor = ClickIngestor(db_session)
        now = utcnow()

        record(ingestor, link, "203.0.113.7", now)
        later = record(ingestor, link, "203.0.113.7", now + timedelta(hours=24, seconds=1))

        assert later.is_unique is True

    def test_other_ip_or_link_is_unique(self, make_link, db_session):
        link = make_link()
        other = make_link()
        ingestor = ClickIngestor(db_session)
        now = utcnow()

        record(ingestor, link, "203.0.113.7", now)

        assert record(ingestor, link, "203.0.113.8", now).is_unique is True
        assert record(ingestor, other, "203.0.113.7", now).is_unique is True

    def test_custom_window(self, make_link, db_session):
        link = make_link()
        ingestor = ClickIngestor(db_session, unique_window=timedelta(minutes=30))
        now = utcnow()

        record(ingestor, link, "203.0.113.7", now)

        assert record(ingestor, link, "203.0.113.7", now + timedelta(minutes=45)).is_unique is True

    def test_flag_is_frozen_at_ingestion(self, make_link, db_session):
        link = make_link()
        ingestor = ClickIngestor(db_session)
        now = utcnow()

        first = record(ingestor, link, "203.0.113.7", now)
        second = record(ingestor, link, "203.0.113.7", now + timedelta(minutes=5))
        second_id = second.id

        db_session.delete(first)
        db_session.commit()

        assert db_session.get(Click, second_id).is_unique is False

    def test_out_of_order_ingestion(self, make_link, db_session):
        link = make_link()
        ingestor = ClickIngestor(db_session)
        now = utcnow()

        later = record(ingestor, link, "203.0.113.7", now + timedelta(minutes=5))
        earlier = record(ingestor, link, "203.0.113.7", now)

        assert later.is_unique is True
        assert earlier.is_unique is False
        assert db_session.query(Click).filter(Click.is_unique.is_(True)).count() == 1

    def test_out_of_order_outside_window_is_unique(self, make_link, db_session):
        link = make_link()
        ingestor = ClickIngestor(db_session)
        now = utcnow()

        record(ingestor, link, "203.0.113.7", now + timedelta(hours=25))

        assert record(ingestor, link, "203.0.113.7", now).is_unique is True


class TestRecord:

    def test_record_stores_request_and_visitor_fields(self, make_link, db_session):
        link = make_link()
        ingestor = ClickIngestor(db_session)
        visitor = VisitorInfo(browser="Firefox", os="Linux", device="desktop", country="Germany", city="Berlin")
        now = utcnow()

        click = ingestor.record(
            link.id,
            RequestContext(ip_address="203.0.113.7", user_agent="Mozilla/5.0", referrer="https://news.example/"),
            visitor,
            now,
        )
        db_session.commit()

        stored = db_session.get(Click, click.id)
        assert stored.timestamp == now
        assert stored.user_agent == "Mozilla/5.0"
        assert stored.referrer == "https://news.example/"
        assert stored.browser == "Firefox"
        assert stored.country == "Germany"
        assert stored.city == "Berlin"

    def test_record_does_not_commit(self, make_link, db_session):
        link = make_link()
        ingestor = ClickIngestor(db_session)

        ingestor.record(link.id, RequestContext(ip_address="203.0.113.7"), VisitorInfo(), utcnow())
        db_session.rollback()

        assert db_session.query(Click).count() == 0
