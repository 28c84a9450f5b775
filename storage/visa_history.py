"""
SQLite store of visa requests.
Requests are appended in order; put() persists later changes of the same request in place,
so the last row per (server, branch) is the authoritative state of that contribution.
"""

import json
import sqlite3
import threading
from typing import List, Optional

from models import ContributionKey, VisaRequest

DB_PATH = None  # can be overridden by caller

# noinspection SqlResolve
SQL_CREATE = """
CREATE TABLE IF NOT EXISTS visa_requests (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    request_id TEXT UNIQUE NOT NULL,
    server_id TEXT NOT NULL,
    branch TEXT NOT NULL,
    payload TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS visa_requests_key ON visa_requests(server_id, branch);
"""


class VisaHistoryStore:
    def __init__(self, path: Optional[str] = None):
        """Create a store instance.

        :param path: SQLite file path or None for in-memory.
        """
        self.path = path or DB_PATH or ':memory:'
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self._lock = threading.RLock()
        self._init_db()

    def _init_db(self):
        with self._lock:
            cur = self.conn.cursor()
            cur.executescript(SQL_CREATE)
            self.conn.commit()

    def close(self):
        with self._lock:
            if self.conn is not None:
                try:
                    self.conn.close()
                finally:
                    self.conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # noinspection SqlResolve
    def put(self, request: VisaRequest) -> None:
        """Insert a new request or update the stored state of an existing one."""
        payload = json.dumps(request.to_dict())
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                'INSERT INTO visa_requests(request_id, server_id, branch, payload) VALUES (?, ?, ?, ?) '
                'ON CONFLICT(request_id) DO UPDATE SET payload = excluded.payload',
                (request.request_id, request.server_id, request.branch, payload),
            )
            self.conn.commit()

    def append(self, request: VisaRequest) -> None:
        self.put(request)

    # noinspection SqlResolve
    def get_last(self, key: ContributionKey) -> Optional[VisaRequest]:
        with self._lock:
            cur = self.conn.cursor()
            cur.execute(
                'SELECT payload FROM visa_requests WHERE server_id = ? AND branch = ? ORDER BY seq DESC LIMIT 1',
                (key.server_id, key.branch),
            )
            row = cur.fetchone()
        if not row:
            return None
        return VisaRequest.from_dict(json.loads(row[0]))

    # noinspection SqlResolve
    def list_all(self) -> List[VisaRequest]:
        """All requests, oldest first."""
        with self._lock:
            cur = self.conn.cursor()
            cur.execute('SELECT payload FROM visa_requests ORDER BY seq ASC')
            rows = cur.fetchall()
        return [VisaRequest.from_dict(json.loads(r[0])) for r in rows]
