import logging
import threading
from collections import namedtuple

from store import UINT64_MAX

BUCKET = "stats"
VISITS = "visits"
LIKES = "likes"

LIKE_MODES = ("observed", "likes-only")

CounterPair = namedtuple("CounterPair", ["visits", "likes"])


def wrap(value):
    """Fixed-width unsigned arithmetic: keep value within [0, 2**64)."""
    return value & UINT64_MAX


def load_counters(store):
    """Create the stats bucket if needed and read the persisted pair (absent keys are 0)."""
    store.ensure_bucket(BUCKET)
    with store.view() as tx:
        b = tx.bucket(BUCKET)
        return CounterPair(b.get(VISITS) or 0, b.get(LIKES) or 0)


def write_counters(tx, pair):
    b = tx.bucket(BUCKET)
    b.put(VISITS, pair.visits)
    b.put(LIKES, pair.likes)


class CachedCounters:
    """In-memory counters, written to the store only by flush()."""

    def __init__(self, store):
        self.store = store
        self.lock = threading.Lock()
        self.visits, self.likes = load_counters(store)

    def increment_visit(self):
        with self.lock:
            self.visits = wrap(self.visits + 1)
            return CounterPair(self.visits, self.likes)

    def increment_like(self):
        with self.lock:
            self.likes = wrap(self.likes + 1)
            return CounterPair(self.visits, self.likes)

    def snapshot(self):
        with self.lock:
            return CounterPair(self.visits, self.likes)

    def flush(self):
        pair = self.snapshot()
        with self.store.update() as tx:
            write_counters(tx, pair)
        return pair


class DirectCounters:
    """
    Counters that live only in the store.

    Every call is one read-modify-write transaction, so the file always
    matches the last completed request. In "observed" like mode a like
    also takes one off the visit counter, which is how the deployed site
    has always behaved; "likes-only" leaves visits alone.
    """

    def __init__(self, store, like_mode="observed"):
        if like_mode not in LIKE_MODES:
            raise ValueError(f"unknown like mode {like_mode!r}")
        self.store = store
        self.like_mode = like_mode
        load_counters(store)

    def _apply(self, visits_delta, likes_delta):
        with self.store.update() as tx:
            b = tx.bucket(BUCKET)
            pair = CounterPair(
                wrap((b.get(VISITS) or 0) + visits_delta),
                wrap((b.get(LIKES) or 0) + likes_delta),
            )
            write_counters(tx, pair)
        return pair

    def record_visit(self):
        return self._apply(1, 0)

    def record_like(self):
        if self.like_mode == "observed":
            return self._apply(-1, 1)
        return self._apply(0, 1)

    def snapshot(self):
        with self.store.view() as tx:
            b = tx.bucket(BUCKET)
            return CounterPair(b.get(VISITS) or 0, b.get(LIKES) or 0)


class Persistor(threading.Thread):
    """Background thread flushing CachedCounters every `interval` seconds."""

    def __init__(self, counters, interval=5.0):
        super().__init__(name="persistor", daemon=True)
        self.counters = counters
        self.interval = interval
        self.stopping = threading.Event()
        self.ticks = 0
        self.failures = 0

    def tick(self):
        try:
            pair = self.counters.flush()
        except Exception:
            self.failures += 1
            logging.exception("Error persisting stats, retrying in %.1f sec", self.interval)
            return False
        finally:
            self.ticks += 1
        logging.info("Stats persisted: visits=%d likes=%d", pair.visits, pair.likes)
        return True

    def run(self):
        while True:
            self.tick()
            if self.stopping.wait(self.interval):
                return

    def stop(self):
        """Wake the loop, wait for it to exit, then flush one last time."""
        self.stopping.set()
        if self.is_alive():
            self.join()
        self.tick()
