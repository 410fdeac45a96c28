import logging
import threading
from collections import namedtuple
from concurrent.futures import ThreadPoolExecutor, wait
from itertools import count

from flask import render_template

Snapshot = namedtuple("Snapshot", ["generation", "counters", "body"])


class PageRenderer:
    def __init__(self, app, template="index.html"):
        self.app = app
        self.template = template

    def render(self, pair):
        # Called from worker threads, so push an app context of our own.
        with self.app.app_context():
            html = render_template(self.template, visits=pair.visits, likes=pair.likes)
        return html.encode("utf-8")


class PageCache:
    """
    Holds the last rendered homepage.

    Readers take `current()` without locking: the snapshot is immutable
    and only ever replaced as a whole. Each refresh counts a visit,
    renders into a new buffer and swaps it in, so what a visitor sees
    reflects the page as of the previous request.
    """

    def __init__(self, renderer, counters, workers=4):
        self.renderer = renderer
        self.counters = counters
        self.snapshot = None
        self.generations = count()
        self.sequence_lock = threading.Lock()
        self.swap_lock = threading.Lock()
        self.pending_lock = threading.Lock()
        self.pending = set()
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="render")

    def prime(self):
        with self.sequence_lock:
            pair = self.counters.snapshot()
            generation = next(self.generations)
        self.swap(Snapshot(generation, pair, self.renderer.render(pair)))
        return self.snapshot

    def current(self):
        return self.snapshot

    def swap(self, snapshot):
        """Install snapshot unless a newer one is already in place."""
        with self.swap_lock:
            if self.snapshot is not None and self.snapshot.generation >= snapshot.generation:
                return False
            self.snapshot = snapshot
            return True

    def refresh(self):
        # generation order must follow increment order
        with self.sequence_lock:
            pair = self.counters.increment_visit()
            generation = next(self.generations)
        try:
            body = self.renderer.render(pair)
        except Exception:
            logging.exception("Error rendering index page, keeping previous snapshot")
            return None
        snapshot = Snapshot(generation, pair, body)
        self.swap(snapshot)
        return snapshot

    def schedule_refresh(self):
        future = self.executor.submit(self.refresh)
        with self.pending_lock:
            self.pending.add(future)
        future.add_done_callback(self._done)
        return future

    def _done(self, future):
        with self.pending_lock:
            self.pending.discard(future)

    def wait(self, timeout=None):
        """Block until every scheduled refresh has finished."""
        with self.pending_lock:
            futures = list(self.pending)
        wait(futures, timeout=timeout)

    def close(self):
        self.executor.shutdown(wait=True)
