import os
import tempfile
import threading
import unittest
from unittest import mock

from flask import Flask

from config import BASE_DIR
from counters import CachedCounters, CounterPair
from renderer import PageCache, PageRenderer, Snapshot
from store import CounterStore


def make_app():
    return Flask(__name__, template_folder=os.path.join(BASE_DIR, "templates"))


class TestPageRenderer(unittest.TestCase):
    def test_renders_counts(self):
        body = PageRenderer(make_app()).render(CounterPair(10, 2))
        self.assertIsInstance(body, bytes)
        html = body.decode("utf-8")
        self.assertIn('data-visits="10"', html)
        self.assertIn('data-likes="2"', html)
        self.assertIn('action="/like"', html)
        self.assertTrue(html.rstrip().endswith("</html>"))

    def test_renders_outside_request(self):
        renderer = PageRenderer(make_app())
        result = []
        t = threading.Thread(target=lambda: result.append(renderer.render(CounterPair(1, 1))))
        t.start()
        t.join()
        self.assertIn(b'data-visits="1"', result[0])


class TestPageCache(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.store = CounterStore.open(os.path.join(self.tmp.name, "jairo.db"))
        self.counters = CachedCounters(self.store)
        self.cache = PageCache(PageRenderer(make_app()), self.counters, workers=4)

    def tearDown(self):
        self.cache.close()
        self.store.close()
        self.tmp.cleanup()

    def test_prime_does_not_count_a_visit(self):
        snapshot = self.cache.prime()
        self.assertEqual(snapshot.counters, CounterPair(0, 0))
        self.assertEqual(self.counters.snapshot(), CounterPair(0, 0))

    def test_refresh_counts_visit_and_swaps(self):
        first = self.cache.prime()
        self.cache.schedule_refresh()
        self.cache.wait()
        current = self.cache.current()
        self.assertIsNot(current, first)
        self.assertEqual(current.counters, CounterPair(1, 0))
        self.assertIn(b'data-visits="1"', current.body)
        # the first snapshot is untouched
        self.assertIn(b'data-visits="0"', first.body)

    def test_older_render_never_replaces_newer(self):
        self.cache.swap(Snapshot(5, CounterPair(5, 0), b"five"))
        self.assertFalse(self.cache.swap(Snapshot(4, CounterPair(4, 0), b"four")))
        self.assertEqual(self.cache.current().body, b"five")
        self.assertTrue(self.cache.swap(Snapshot(6, CounterPair(6, 0), b"six")))

    def test_many_refreshes_end_on_latest(self):
        self.cache.prime()
        for _ in range(50):
            self.cache.schedule_refresh()
        self.cache.wait()
        self.assertEqual(self.counters.snapshot().visits, 50)
        self.assertEqual(self.cache.current().counters.visits, 50)

    def test_render_failure_keeps_previous_snapshot(self):
        first = self.cache.prime()
        with mock.patch.object(self.cache.renderer, "render", side_effect=RuntimeError("bad template")):
            with self.assertLogs(level="ERROR"):
                self.assertIsNone(self.cache.refresh())
        self.assertIs(self.cache.current(), first)


if __name__ == '__main__':
    unittest.main()
