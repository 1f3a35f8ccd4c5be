"""
Tests for chameleon profiling protection.
"""

import asyncio
import math
import random

import pytest

from core.config import ProfilingProtectionConfig
from services.chameleon import (
    CHAMELEON_STATE_KEY,
    ChameleonScheduler,
    obfuscate_value_preserve_structure,
    resolve_ad_threshold,
)
from services.options_service import OptionsService
from storage.cookie_store import InMemoryCookieStore
from storage.kv_store import InMemoryKeyValueStore


def char_class(ch):
    if "0" <= ch <= "9":
        return "digit"
    if "A" <= ch <= "Z":
        return "upper"
    if "a" <= ch <= "z":
        return "lower"
    return ch


class CountingKeyValueStore(InMemoryKeyValueStore):
    """Records every update() key."""

    def __init__(self, initial=None):
        super().__init__(initial)
        self.updated_keys = []

    async def update(self, key, mutator, default=None):
        self.updated_keys.append(key)
        return await super().update(key, mutator, default)


class YieldingCookieStore(InMemoryCookieStore):
    """Gives up the loop on every write and records written keys."""

    def __init__(self, cookies=None):
        super().__init__(cookies)
        self.written = []

    async def set(self, cookie):
        await asyncio.sleep(0)
        self.written.append(cookie.key)
        return await super().set(cookie)


@pytest.fixture
def protected_kv():
    return CountingKeyValueStore({"all_options": {"profilingProtectionEnabled": True}})


@pytest.fixture
def make_scheduler(config, clock, rng, classifier_factory, ad_oracle):
    def factory(cookie_store, kv_store, oracle=ad_oracle):
        return ChameleonScheduler(
            cookie_store,
            kv_store,
            classifier_factory(oracle),
            OptionsService(kv_store, config, cache_seconds=0),
            ProfilingProtectionConfig(),
            clock=clock,
            rng=rng,
        )
    return factory


class TestObfuscation:

    def test_preserves_length_and_classes(self, rng):
        value = "GA1.2.1337-Abz_xyz.é%20"
        obfuscated = obfuscate_value_preserve_structure(value, rng)

        assert len(obfuscated) == len(value)
        assert [char_class(c) for c in obfuscated] == [char_class(c) for c in value]
        assert obfuscated != value

    def test_non_alphanumeric_untouched(self, rng):
        assert obfuscate_value_preserve_structure("--__..%%", rng) == "--__..%%"
        assert obfuscate_value_preserve_structure("", rng) == ""


class TestThreshold:

    @pytest.mark.parametrize("percent,expected", [
        (95, 0.95),
        (80, 0.8),
        (150, 1.0),
        (-5, 0.0),
        (None, 0.95),
        (math.nan, 0.95),
        (math.inf, 0.95),
        ("abc", 0.95),
    ])
    def test_resolve(self, percent, expected):
        assert resolve_ad_threshold(percent) == pytest.approx(expected)


class TestTick:

    async def test_rewrites_ad_cookie_and_schedules_cooldown(self, make_scheduler, protected_kv, cookie_factory, clock):
        cookie = cookie_factory(value="AbC-123_xyz", same_site="lax")
        store = InMemoryCookieStore([cookie])
        report = await make_scheduler(store, protected_kv).run_tick()

        assert report.ran
        assert report.rewritten == [cookie.key]

        [written] = await store.get_all({})
        assert written.value != cookie.value
        assert [char_class(c) for c in written.value] == [char_class(c) for c in cookie.value]
        assert (written.domain, written.path, written.secure, written.http_only) == (
            cookie.domain, cookie.path, cookie.secure, cookie.http_only
        )
        assert written.expiration_date == cookie.expiration_date
        assert written.same_site == "lax"

        state = await protected_kv.get(CHAMELEON_STATE_KEY)
        next_at = state[cookie.key]["next_at"]
        assert clock.now + 5 * 60 <= next_at <= clock.now + 10 * 60

    async def test_cooling_cookie_is_skipped_until_due(self, make_scheduler, protected_kv, cookie_factory, clock):
        store = InMemoryCookieStore([cookie_factory()])
        scheduler = make_scheduler(store, protected_kv)
        await scheduler.run_tick()
        [first] = await store.get_all({})

        report = await scheduler.run_tick()
        assert report.rewritten == []
        assert report.skipped_cooling == 1
        [still] = await store.get_all({})
        assert still.value == first.value

        clock.advance(10 * 60 + 1)
        report = await scheduler.run_tick()
        assert report.rewritten == [first.key]

    async def test_session_cookies_never_rewritten(self, make_scheduler, protected_kv, cookie_factory):
        cookie = cookie_factory(expiration_date=None)
        store = InMemoryCookieStore([cookie])
        report = await make_scheduler(store, protected_kv).run_tick()

        assert report.skipped_session == 1
        assert report.rewritten == []
        [unchanged] = await store.get_all({})
        assert unchanged.value == cookie.value
        assert CHAMELEON_STATE_KEY not in protected_kv.updated_keys

    async def test_disabled_protection_is_noop(self, make_scheduler, cookie_factory, ad_oracle):
        kv = CountingKeyValueStore()
        store = InMemoryCookieStore([cookie_factory()])
        report = await make_scheduler(store, kv).run_tick()

        assert report.ran is False
        assert ad_oracle.calls == []

    async def test_disabled_ml_is_noop(self, make_scheduler, cookie_factory, ad_oracle):
        kv = CountingKeyValueStore({"all_options": {"profilingProtectionEnabled": True, "mlEnabled": False}})
        report = await make_scheduler(InMemoryCookieStore([cookie_factory()]), kv).run_tick()

        assert report.ran is False
        assert ad_oracle.calls == []

    async def test_below_threshold_is_skipped(self, make_scheduler, protected_kv, cookie_factory, oracle_factory):
        store = InMemoryCookieStore([cookie_factory()])
        report = await make_scheduler(store, protected_kv, oracle_factory([0.1, 0.9])).run_tick()

        assert report.skipped_low_confidence == 1
        assert report.rewritten == []

    async def test_lower_configured_threshold(self, make_scheduler, cookie_factory, oracle_factory):
        kv = CountingKeyValueStore({"all_options": {
            "profilingProtectionEnabled": True,
            "profilingProtectionThresholdPercent": 80,
        }})
        store = InMemoryCookieStore([cookie_factory()])
        report = await make_scheduler(store, kv, oracle_factory([0.1, 0.9])).run_tick()
        assert len(report.rewritten) == 1

    async def test_not_ad_label_is_skipped(self, make_scheduler, cookie_factory, oracle_factory):
        kv = CountingKeyValueStore({"all_options": {
            "profilingProtectionEnabled": True,
            "profilingProtectionThresholdPercent": 0,
        }})
        store = InMemoryCookieStore([cookie_factory()])
        report = await make_scheduler(store, kv, oracle_factory([0.6, 0.4])).run_tick()
        assert report.rewritten == []

    async def test_classifier_failure_skips(self, make_scheduler, protected_kv, cookie_factory, failing_oracle):
        store = InMemoryCookieStore([cookie_factory()])
        report = await make_scheduler(store, protected_kv, failing_oracle).run_tick()
        assert report.rewritten == []
        assert report.skipped_low_confidence == 1

    async def test_value_without_letters_or_digits(self, make_scheduler, protected_kv, cookie_factory):
        store = InMemoryCookieStore([cookie_factory(value="--..--")])
        report = await make_scheduler(store, protected_kv).run_tick()
        assert report.skipped_unchanged == 1
        assert CHAMELEON_STATE_KEY not in protected_kv.updated_keys

    async def test_write_failure_leaves_cooldown_unchanged(self, make_scheduler, protected_kv, cookie_factory):
        # SameSite=None without Secure is rejected on write
        bad = cookie_factory(name="bad", secure=False, same_site="no_restriction")
        good = cookie_factory(name="good")
        store = InMemoryCookieStore([bad, good])

        report = await make_scheduler(store, protected_kv).run_tick()

        assert report.failed == [bad.key]
        assert report.rewritten == [good.key]
        state = await protected_kv.get(CHAMELEON_STATE_KEY)
        assert bad.key not in state
        assert good.key in state

    async def test_state_persisted_once_per_tick(self, make_scheduler, protected_kv, cookie_factory):
        store = InMemoryCookieStore([cookie_factory(name=f"c{i}") for i in range(4)])
        report = await make_scheduler(store, protected_kv).run_tick()

        assert len(report.rewritten) == 4
        assert protected_kv.updated_keys.count(CHAMELEON_STATE_KEY) == 1
        assert report.state_persisted

    async def test_existing_entries_are_kept(self, make_scheduler, cookie_factory, clock):
        kv = CountingKeyValueStore({
            "all_options": {"profilingProtectionEnabled": True},
            CHAMELEON_STATE_KEY: {"gone;.old.example;/": {"next_at": clock.now - 1}},
        })
        store = InMemoryCookieStore([cookie_factory()])
        await make_scheduler(store, kv).run_tick()

        state = await kv.get(CHAMELEON_STATE_KEY)
        assert set(state) == {"gone;.old.example;/", cookie_factory().key}

    async def test_malformed_state_entry_counts_as_eligible(self, make_scheduler, cookie_factory, clock):
        cookie = cookie_factory()
        kv = CountingKeyValueStore({
            "all_options": {"profilingProtectionEnabled": True},
            CHAMELEON_STATE_KEY: {cookie.key: {"next_at": "soon"}},
        })
        store = InMemoryCookieStore([cookie])
        report = await make_scheduler(store, kv).run_tick()
        assert report.rewritten == [cookie.key]

    async def test_seeded_rng_is_deterministic(self, config, clock, classifier_factory, ad_oracle, cookie_factory):
        values = []
        for _ in range(2):
            kv = InMemoryKeyValueStore({"all_options": {"profilingProtectionEnabled": True}})
            store = InMemoryCookieStore([cookie_factory()])
            scheduler = ChameleonScheduler(
                store,
                kv,
                classifier_factory(ad_oracle),
                OptionsService(kv, config, cache_seconds=0),
                clock=clock,
                rng=random.Random(7),
            )
            await scheduler.run_tick()
            [cookie] = await store.get_all({})
            values.append(cookie.value)
        assert values[0] == values[1]

    async def test_overlapping_ticks_rewrite_once(self, make_scheduler, protected_kv, cookie_factory):
        cookie = cookie_factory(name="tracker")
        store = YieldingCookieStore([cookie])
        scheduler = make_scheduler(store, protected_kv)

        first, second = await asyncio.gather(scheduler.run_tick(), scheduler.run_tick())

        assert store.written == [cookie.key]
        assert sorted([len(first.rewritten), len(second.rewritten)]) == [0, 1]
        assert first.skipped_cooling + second.skipped_cooling == 1
