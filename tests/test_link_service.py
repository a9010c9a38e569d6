"""
Tests for owner-facing link management.
"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from linkengine.clock import utcnow
from linkengine.errors import AliasTaken, AllocationExhausted
from linkengine.models import Link
from linkengine.schemas.link import LinkCreate, LinkUpdate
from linkengine.services.allocator import ShortCodeAllocator
from linkengine.services.link_service import LinkService, security_warnings_for
from linkengine.services.passwords import PasswordVerifier
from linkengine.services.short_code_strategies import ShortCodeStrategy
from linkengine.storage.link_store import LinkStore

OWNER = "account-1"


class SequenceStrategy(ShortCodeStrategy):
    """Proposes the given codes in order"""

    def __init__(self, *codes):
        self.codes = list(codes)

    def generate(self) -> str:
        return self.codes.pop(0)


class TestCreateLink:

    def test_defaults(self, make_link):
        link = make_link()

        assert link.owner_id == OWNER
        assert len(link.short_code) == 7
        assert link.custom_alias is None
        assert link.is_active is True
        assert link.is_locked is False
        assert link.click_count == 0
        assert link.unique_click_count == 0
        assert link.codes() == [link.short_code]

    def test_password_is_hashed(self, make_link):
        link = make_link(password="s3cret")

        assert link.is_locked is True
        assert link.password_hash != "s3cret"
        assert PasswordVerifier().verify(link.password_hash, "s3cret")

    def test_expiry_hours(self, make_link):
        before = utcnow()
        link = make_link(expiry_hours=2)

        assert before + timedelta(hours=2) <= link.expires_at <= utcnow() + timedelta(hours=2)

    def test_aware_datetimes_are_stored_as_utc(self, make_link):
        start = datetime(2030, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))

        link = make_link(start_at=start)

        assert link.start_at == datetime(2030, 1, 1, 10, 0)

    def test_duplicate_alias(self, make_link):
        make_link(custom_alias="spring-sale")

        with pytest.raises(AliasTaken):
            make_link(custom_alias="spring-sale")

    def test_code_collision_retries(self, db_session, make_link):
        taken = make_link().short_code
        store = LinkStore(db_session)
        allocator = ShortCodeAllocator(store, strategy=SequenceStrategy(taken, "fresh23"))
        service = LinkService(db_session, allocator=allocator)

        link = asyncio.run(service.create_link(LinkCreate(original_url="https://example.com/a"), OWNER))

        assert link.short_code == "fresh23"

    def test_allocation_exhausted(self, db_session, make_link):
        taken = make_link().short_code
        allocator = ShortCodeAllocator(LinkStore(db_session), strategy=SequenceStrategy(*[taken] * 3), max_retries=3)
        service = LinkService(db_session, allocator=allocator)

        with pytest.raises(AllocationExhausted):
            asyncio.run(service.create_link(LinkCreate(original_url="https://example.com/a"), OWNER))

    def test_suspicious_destination_is_flagged(self, make_link):
        link = make_link(original_url="https://paypal-secure-login.example.tk/")

        assert link.is_suspicious is True
        assert link.security_warnings == ["suspicious_domain"]

    def test_security_warnings(self):
        assert security_warnings_for("https://example.com/") == []
        assert security_warnings_for("http://free-prize.ml/claim") == ["suspicious_domain"]


class TestSchemaValidation:

    def test_expires_at_and_expiry_hours_are_exclusive(self):
        with pytest.raises(ValueError):
            LinkCreate(original_url="https://example.com/", expires_at=utcnow(), expiry_hours=1)

    def test_start_must_precede_expiry(self):
        now = utcnow()
        with pytest.raises(ValueError):
            LinkCreate(original_url="https://example.com/", start_at=now, expires_at=now)

    def test_alias_pattern(self):
        with pytest.raises(ValueError):
            LinkCreate(original_url="https://example.com/", custom_alias="has space")

    def test_mixed_aware_and_naive_schedule(self):
        payload = LinkCreate(
            original_url="https://example.com/",
            start_at=datetime(2030, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2))),
            expires_at=datetime(2030, 1, 1, 11, 0),
        )

        assert payload.start_at == datetime(2030, 1, 1, 10, 0)
        assert payload.start_at.tzinfo is None

    def test_mixed_schedule_out_of_order(self):
        with pytest.raises(ValueError, match="start_at must be before expires_at"):
            LinkCreate(
                original_url="https://example.com/",
                start_at=datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc),
                expires_at=datetime(2030, 1, 1, 11, 0),
            )

    def test_update_mixed_schedule(self):
        with pytest.raises(ValueError, match="start_at must be before expires_at"):
            LinkUpdate(
                start_at=datetime(2030, 1, 2, tzinfo=timezone.utc),
                expires_at=datetime(2030, 1, 1),
            )

    def test_password_longer_than_72_bytes(self):
        with pytest.raises(ValueError, match="72 bytes"):
            LinkCreate(original_url="https://example.com/", password="x" * 73)
        with pytest.raises(ValueError, match="72 bytes"):
            LinkUpdate(password="\u00e9" * 37)

        assert LinkCreate(original_url="https://example.com/", password="x" * 72).password == "x" * 72

    @pytest.mark.parametrize("alias", ["health", "docs", "redoc", "api", "Health"])
    def test_reserved_alias(self, alias):
        with pytest.raises(ValueError, match="reserved"):
            LinkCreate(original_url="https://example.com/", custom_alias=alias)
        with pytest.raises(ValueError, match="reserved"):
            LinkUpdate(custom_alias=alias)


class TestOwnerOperations:

    def test_get_is_scoped_to_owner(self, make_link, link_service):
        link = make_link()

        assert asyncio.run(link_service.get_link(link.short_code, OWNER)).id == link.id
        assert asyncio.run(link_service.get_link(link.short_code, "someone-else")) is None

    def test_list_links_paginates(self, make_link, link_service):
        for _ in range(3):
            make_link()
        make_link(owner_id="account-2")

        links, total = asyncio.run(link_service.list_links(OWNER, page=1, page_size=2))
        rest, _ = asyncio.run(link_service.list_links(OWNER, page=2, page_size=2))

        assert total == 3
        assert len(links) == 2
        assert len(rest) == 1

    def test_update_changes_alias(self, make_link, link_service):
        link = make_link(custom_alias="old-alias")

        updated = asyncio.run(link_service.update_link("old-alias", LinkUpdate(custom_alias="new-alias"), OWNER))

        assert updated.custom_alias == "new-alias"
        assert not link_service.store.code_exists("old-alias")
        assert link_service.store.find_by_code("new-alias").id == link.id

    def test_update_alias_to_taken_code(self, make_link, link_service):
        other = make_link()
        make_link(custom_alias="mine")

        with pytest.raises(AliasTaken):
            asyncio.run(link_service.update_link("mine", LinkUpdate(custom_alias=other.short_code), OWNER))

    def test_update_password_and_unlock(self, make_link, link_service):
        link = make_link()

        locked = asyncio.run(link_service.update_link(link.short_code, LinkUpdate(password="s3cret"), OWNER))
        assert locked.is_locked is True

        unlocked = asyncio.run(link_service.update_link(link.short_code, LinkUpdate(password=""), OWNER))
        assert unlocked.is_locked is False
        assert unlocked.password_hash is None

    def test_update_leaves_unsent_fields(self, make_link, link_service):
        link = make_link(title="Launch", max_clicks=10)

        updated = asyncio.run(link_service.update_link(link.short_code, LinkUpdate(title="Relaunch"), OWNER))

        assert updated.title == "Relaunch"
        assert updated.max_clicks == 10

    def test_update_by_other_owner(self, make_link, link_service):
        link = make_link()

        assert asyncio.run(link_service.update_link(link.short_code, LinkUpdate(title="x"), "intruder")) is None

    def test_delete_link(self, make_link, link_service):
        link = make_link(custom_alias="gone")
        code = link.short_code

        assert asyncio.run(link_service.delete_link("gone", OWNER)) is True
        assert link_service.store.find_by_code(code) is None
        assert asyncio.run(link_service.delete_link("gone", OWNER)) is False


class TestConcurrentCreate:
    """Only one of several simultaneous requests for an alias gets it"""

    @staticmethod
    def _create_in_thread(session_factory, alias, index):
        db = session_factory()
        try:
            service = LinkService(db)
            payload = LinkCreate(original_url=f"https://example.com/{index}", custom_alias=alias)
            try:
                return asyncio.run(service.create_link(payload, f"account-{index}"))
            except AliasTaken as exc:
                return exc
        finally:
            db.close()

    def test_same_alias_race(self, session_factory, db_session):
        attempts = 8
        with ThreadPoolExecutor(max_workers=attempts) as pool:
            futures = [
                pool.submit(self._create_in_thread, session_factory, "launch-day", index)
                for index in range(attempts)
            ]
            outcomes = [future.result() for future in futures]

        created = [o for o in outcomes if not isinstance(o, AliasTaken)]
        refused = [o for o in outcomes if isinstance(o, AliasTaken)]
        assert len(created) == 1
        assert len(refused) == attempts - 1
        assert all(exc.code == "launch-day" for exc in refused)

        store = LinkStore(db_session)
        assert store.find_by_code("launch-day").original_url == created[0].original_url
        assert db_session.query(Link).filter(Link.custom_alias == "launch-day").count() == 1
