# Overview: Coverage for the single-flight TTL read cache.

import threading
import time
import unittest

from purchasing.errors import TransientDataAccessError
from purchasing.services.request_coalescer import RequestCoalescer


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class RequestCoalescerTests(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.cache = RequestCoalescer(ttl_seconds=30, clock=self.clock)
        self.calls = 0

    def _loader(self, value="v"):
        def _load():
            self.calls += 1
            return f"{value}{self.calls}"
        return _load

    def test_fresh_value_is_served_from_cache(self):
        self.assertEqual(self.cache.get("k", self._loader()), "v1")
        self.clock.advance(29)
        self.assertEqual(self.cache.get("k", self._loader()), "v1")
        self.assertEqual(self.calls, 1)

    def test_expired_value_is_reloaded(self):
        self.cache.get("k", self._loader())
        self.clock.advance(30)
        self.assertEqual(self.cache.get("k", self._loader()), "v2")
        self.assertIsNone(self.cache.peek("missing"))

    def test_force_refresh_bypasses_fresh_entry(self):
        self.cache.get("k", self._loader())
        self.assertEqual(self.cache.get("k", self._loader(), force_refresh=True), "v2")
        self.assertEqual(self.cache.get("k", self._loader()), "v2")

    def test_failures_are_not_cached(self):
        def boom():
            raise RuntimeError("down")

        with self.assertRaises(RuntimeError):
            self.cache.get("k", boom)
        self.assertEqual(self.cache.get("k", self._loader()), "v1")

    def test_invalidate_and_prefix(self):
        self.cache.get("purchase:1:detail", self._loader())
        self.cache.get("purchase:1:timeline", self._loader())
        self.cache.get("purchase:2:detail", self._loader())
        self.assertEqual(self.cache.invalidate_prefix("purchase:1:"), 2)
        self.assertEqual(len(self.cache), 1)
        self.cache.invalidate("purchase:2:detail")
        self.assertEqual(len(self.cache), 0)

    def test_concurrent_callers_share_one_load(self):
        cache = RequestCoalescer(ttl_seconds=30)
        started = threading.Event()
        release = threading.Event()
        load_count = []

        def slow_loader():
            load_count.append(1)
            started.set()
            release.wait(5)
            return "shared"

        results = []

        def worker():
            results.append(cache.get("k", slow_loader))

        leader = threading.Thread(target=worker)
        leader.start()
        self.assertTrue(started.wait(5))
        followers = [threading.Thread(target=worker) for _ in range(4)]
        for t in followers:
            t.start()
        time.sleep(0.2)
        release.set()
        for t in [leader, *followers]:
            t.join(5)

        self.assertEqual(results, ["shared"] * 5)
        self.assertEqual(len(load_count), 1)

    def test_concurrent_callers_share_the_error(self):
        cache = RequestCoalescer(ttl_seconds=30)
        started = threading.Event()
        release = threading.Event()

        def failing_loader():
            started.set()
            release.wait(5)
            raise RuntimeError("down")

        errors = []

        def worker():
            try:
                cache.get("k", failing_loader)
            except RuntimeError as exc:
                errors.append(str(exc))

        leader = threading.Thread(target=worker)
        leader.start()
        self.assertTrue(started.wait(5))
        follower = threading.Thread(target=worker)
        follower.start()
        time.sleep(0.2)
        release.set()
        leader.join(5)
        follower.join(5)

        self.assertEqual(errors, ["down", "down"])

    def test_stale_value_not_served_by_default(self):
        self.cache.get("k", self._loader())
        self.clock.advance(60)

        def transient():
            raise TransientDataAccessError("db away")

        with self.assertRaises(TransientDataAccessError):
            self.cache.get("k", transient)

    def test_stale_value_served_when_configured(self):
        cache = RequestCoalescer(ttl_seconds=30, clock=self.clock, serve_stale_on_error=True)
        cache.get("k", self._loader())
        self.clock.advance(60)

        def transient():
            raise TransientDataAccessError("db away")

        with self.assertLogs("purchasing.services.request_coalescer", level="WARNING"):
            self.assertEqual(cache.get("k", transient), "v1")

    def test_stale_fallback_only_for_transient_errors(self):
        cache = RequestCoalescer(ttl_seconds=30, clock=self.clock, serve_stale_on_error=True)
        cache.get("k", self._loader())
        self.clock.advance(60)

        def broken():
            raise KeyError("bug")

        with self.assertRaises(KeyError):
            cache.get("k", broken)

    def test_expired_entries_are_swept(self):
        for i in range(100):
            self.cache.get(f"purchase:{i}:detail", self._loader())
        self.assertEqual(len(self.cache), 100)

        self.clock.advance(10_000)
        self.cache.get("purchase:999:detail", self._loader())

        self.assertEqual(len(self.cache), 1)
        self.assertIsNone(self.cache.peek("purchase:0:detail"))

    def test_len_ignores_expired_entries(self):
        self.cache.get("k", self._loader())
        self.clock.advance(31)
        self.assertEqual(len(self.cache), 0)

    def test_stale_fallbacks_are_bounded(self):
        cache = RequestCoalescer(
            ttl_seconds=30, clock=self.clock, serve_stale_on_error=True, max_stale_entries=2
        )
        for i in range(5):
            cache.get(f"k{i}", self._loader())
            self.clock.advance(1)
        self.clock.advance(60)

        self.assertEqual(len(cache), 2)

        def transient():
            raise TransientDataAccessError("db away")

        # Only the most recently stored keys survive as fallbacks
        with self.assertLogs("purchasing.services.request_coalescer", level="WARNING"):
            self.assertEqual(cache.get("k4", transient), "v5")
        with self.assertRaises(TransientDataAccessError):
            cache.get("k0", transient)

    def test_negative_ttl_rejected(self):
        with self.assertRaises(ValueError):
            RequestCoalescer(ttl_seconds=-1)
