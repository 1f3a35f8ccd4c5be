"""
Tests for the cookie change log and action source attribution.
"""

import pytest

from models.cookie import Cookie
from models.audit import ChangeCategory, ChangeSource, derive_category
from services.audit_log import LOG_STORAGE_KEY, ActionSourceTracker, ChangeLog


@pytest.fixture
def change_log(kv_store, options_service):
    return ChangeLog(kv_store, options_service)


class TestCategory:

    def test_derived_from_presence_only(self):
        snapshot = {"name": "a", "value": "1"}
        assert derive_category(None, snapshot) == ChangeCategory.ADDITION
        assert derive_category(snapshot, None) == ChangeCategory.DELETION
        assert derive_category(snapshot, dict(snapshot)) == ChangeCategory.MODIFICATION


class TestChangeLog:

    async def test_entry_fields(self, change_log, cookie_factory):
        cookie = cookie_factory(name="sid", domain="example.com")
        entry = await change_log.add_log(None, cookie, ChangeSource.USER)

        assert entry.category == "addition"
        assert entry.source == "user"
        assert entry.cookie_name == "sid"
        assert entry.domain == "example.com"
        assert entry.change.before is None
        assert entry.change.after["name"] == "sid"
        assert "httpOnly" in entry.change.after
        assert entry.timestamp.endswith("+00:00")

    async def test_newest_first(self, change_log, cookie_factory):
        first = cookie_factory(name="first")
        second = cookie_factory(name="second")
        await change_log.add_log(None, first)
        await change_log.add_log(first, None)
        await change_log.add_log(None, second)

        logs = await change_log.get_logs()
        assert [(e.cookie_name, e.category) for e in logs] == [
            ("second", "addition"),
            ("first", "deletion"),
            ("first", "addition"),
        ]
        assert all(e.source == "website" for e in logs)

    async def test_capped_to_limit(self, change_log, options_service, cookie_factory):
        await options_service.update_options(changelog_limit=3)
        for i in range(4):
            await change_log.add_log(None, cookie_factory(name=f"c{i}"))

        logs = await change_log.get_logs()
        assert [e.cookie_name for e in logs] == ["c3", "c2", "c1"]

    async def test_both_snapshots_missing(self, change_log, kv_store):
        assert await change_log.add_log(None, None) is None
        assert await kv_store.get(LOG_STORAGE_KEY) is None

    async def test_unnamed_cookie_placeholder(self, change_log):
        entry = await change_log.add_log(None, Cookie())
        assert entry.cookie_name == "Unknown Name"
        assert entry.domain == "Unknown Domain"

    async def test_clear(self, change_log, cookie_factory):
        await change_log.add_log(None, cookie_factory())
        await change_log.clear_logs()
        assert await change_log.get_logs() == []

    async def test_malformed_blob(self, kv_store):
        await kv_store.set(LOG_STORAGE_KEY, {"not": "a list"})
        assert await ChangeLog(kv_store).get_logs() == []

        await kv_store.set(LOG_STORAGE_KEY, [{"id": "broken"}])
        assert await ChangeLog(kv_store).get_logs() == []

    async def test_default_limit_without_options(self, kv_store, cookie_factory):
        log = ChangeLog(kv_store, default_limit=2)
        for i in range(3):
            await log.add_log(None, cookie_factory(name=f"c{i}"))
        assert len(await log.get_logs()) == 2


class TestActionSourceTracker:

    def test_defaults_to_website(self, clock):
        assert ActionSourceTracker(clock=clock).current_source() == ChangeSource.WEBSITE

    def test_user_action_within_window(self, clock):
        tracker = ActionSourceTracker(window_seconds=0.5, clock=clock)
        tracker.mark_user_action()
        clock.advance(0.4)
        assert tracker.current_source() == ChangeSource.USER

    def test_user_action_expires(self, clock):
        tracker = ActionSourceTracker(window_seconds=0.5, clock=clock)
        tracker.mark_user_action()
        clock.advance(0.6)
        assert tracker.current_source() == ChangeSource.WEBSITE

    def test_reset(self, clock):
        tracker = ActionSourceTracker(clock=clock)
        tracker.mark_user_action()
        tracker.reset()
        assert tracker.current_source() == ChangeSource.WEBSITE
