"""
Single-file key-value store for the site counters.

Values are kept in named buckets; counters are stored as 8-byte
little-endian unsigned integers so the record layout is
bucket "stats" -> {"visits": u64, "likes": u64}.
"""
import logging
import sqlite3
import struct
import threading
from contextlib import contextmanager

UINT64_MAX = 2 ** 64 - 1
_UINT64 = struct.Struct("<Q")

SCHEMA = (
    "CREATE TABLE IF NOT EXISTS buckets (name TEXT PRIMARY KEY)",
    "CREATE TABLE IF NOT EXISTS entries ("
    " bucket TEXT NOT NULL REFERENCES buckets(name),"
    " key BLOB NOT NULL,"
    " value BLOB NOT NULL,"
    " PRIMARY KEY (bucket, key))",
)


class StoreError(Exception):
    pass


def encode_uint64(value):
    if not 0 <= value <= UINT64_MAX:
        raise ValueError(f"{value} does not fit in an unsigned 64-bit integer")
    return _UINT64.pack(value)


def decode_uint64(raw):
    if len(raw) != _UINT64.size:
        raise StoreError(f"expected {_UINT64.size} bytes, got {len(raw)}")
    return _UINT64.unpack(raw)[0]


def _key(key):
    return key.encode() if isinstance(key, str) else bytes(key)


class Bucket:
    def __init__(self, tx, name):
        self.tx = tx
        self.name = name

    def get(self, key):
        """Return the stored integer for key, or None if it was never written."""
        row = self.tx.conn.execute(
            "SELECT value FROM entries WHERE bucket = ? AND key = ?",
            (self.name, _key(key)),
        ).fetchone()
        if row is None:
            return None
        return decode_uint64(row[0])

    def put(self, key, value):
        if not self.tx.writable:
            raise StoreError("put inside a read-only transaction")
        self.tx.conn.execute(
            "INSERT OR REPLACE INTO entries (bucket, key, value) VALUES (?, ?, ?)",
            (self.name, _key(key), encode_uint64(value)),
        )


class Tx:
    def __init__(self, conn, writable):
        self.conn = conn
        self.writable = writable

    def bucket(self, name):
        row = self.conn.execute(
            "SELECT 1 FROM buckets WHERE name = ?", (name,)
        ).fetchone()
        if row is None:
            raise StoreError(f"bucket {name!r} not found")
        return Bucket(self, name)

    def create_bucket_if_not_exists(self, name):
        if not self.writable:
            raise StoreError("bucket creation inside a read-only transaction")
        self.conn.execute("INSERT OR IGNORE INTO buckets (name) VALUES (?)", (name,))
        return Bucket(self, name)


class CounterStore:
    """
    Embedded store backed by one SQLite file.

    All transactions go through a single connection guarded by a lock,
    so at most one transaction is in flight at any time. The file is held
    in exclusive locking mode for the lifetime of the store; another
    process opening the same file fails.
    """

    def __init__(self, path, conn):
        self.path = path
        self.conn = conn
        self.lock = threading.Lock()
        self.closed = False

    @classmethod
    def open(cls, path, timeout=1.0):
        try:
            conn = sqlite3.connect(
                path, timeout=timeout, isolation_level=None, check_same_thread=False
            )
        except sqlite3.Error as e:
            raise StoreError(f"cannot open store {path}: {e}") from e

        store = cls(path, conn)
        try:
            conn.execute("PRAGMA locking_mode=EXCLUSIVE")
            conn.execute("PRAGMA synchronous=FULL")
            with store.update() as tx:
                for statement in SCHEMA:
                    tx.conn.execute(statement)
        except (sqlite3.Error, StoreError) as e:
            conn.close()
            raise StoreError(f"cannot open store {path}: {e}") from e

        logging.info("Opened store %s", path)
        return store

    @contextmanager
    def _transaction(self, writable):
        with self.lock:
            if self.closed:
                raise StoreError("store is closed")
            try:
                # IMMEDIATE takes the write lock up front; reads use a deferred BEGIN.
                self.conn.execute("BEGIN IMMEDIATE" if writable else "BEGIN")
            except sqlite3.Error as e:
                raise StoreError(f"cannot begin transaction: {e}") from e

            try:
                yield Tx(self.conn, writable)
            except sqlite3.Error as e:
                self._rollback()
                raise StoreError(f"transaction failed: {e}") from e
            except BaseException:
                self._rollback()
                raise

            try:
                self.conn.execute("COMMIT" if writable else "ROLLBACK")
            except sqlite3.Error as e:
                self._rollback()
                raise StoreError(f"commit failed: {e}") from e

    def _rollback(self):
        # Called while another error is propagating; that error wins.
        if not self.conn.in_transaction:
            return
        try:
            self.conn.execute("ROLLBACK")
        except sqlite3.Error:
            logging.exception("Rollback failed on store %s", self.path)

    def update(self):
        """Read-write transaction; commits on success, rolls back on error."""
        return self._transaction(writable=True)

    def view(self):
        return self._transaction(writable=False)

    def ensure_bucket(self, name):
        with self.update() as tx:
            tx.create_bucket_if_not_exists(name)

    def close(self):
        with self.lock:
            if self.closed:
                return
            self.closed = True
            self.conn.close()
        logging.info("Closed store %s", self.path)
