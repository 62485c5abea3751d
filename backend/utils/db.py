"""
SQLite hierarchical key-value store with live subscriptions.

Values live in a path tree ("profiles/{id}/results/{promptId}/google").
Every JSON leaf is one row keyed by its full path; dicts are flattened on
write and rebuilt on read, so reading "profiles/{id}" returns the whole
subtree. Lists are stored as single JSON leaves.

Writes run off the event loop via asyncio.to_thread(); subscribers are
notified on the loop after each committed write.

DATABASE_PATH env var: path to the store file (see utils/config.py).
"""

import asyncio
import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Iterator, Optional

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    """A profile, prompt or other addressed node does not exist."""


def now_ms() -> int:
    return int(time.time() * 1000)


def _norm(path: str) -> str:
    segments = [s for s in (path or "").strip().split("/") if s]
    if not segments:
        raise ValueError("Store path must not be empty")
    return "/".join(segments)


def _flatten(prefix: str, value: Any) -> list[tuple[str, str]]:
    if value is None:
        return []
    if isinstance(value, dict):
        rows: list[tuple[str, str]] = []
        for k, v in value.items():
            rows += _flatten(f"{prefix}/{_norm(str(k))}", v)
        return rows
    return [(prefix, json.dumps(value, ensure_ascii=False))]


def _unflatten(base: str, rows: list[tuple[str, str]]) -> Any:
    if not rows:
        return None
    tree: dict = {}
    for path, raw in rows:
        if path == base:
            return json.loads(raw)
        node = tree
        rel = path[len(base) + 1:].split("/")
        for seg in rel[:-1]:
            node = node.setdefault(seg, {})
        node[rel[-1]] = json.loads(raw)
    return tree


def _related(a: str, b: str) -> bool:
    return a == b or a.startswith(b + "/") or b.startswith(a + "/")


class Store:
    """Path-addressed JSON store. One instance per process, owned by server.create_app()."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        self._ready = False
        self._watchers: dict[str, set[asyncio.Queue]] = {}

    # ── Connection / schema ──────────────────────────────────────────────────

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=30)
        try:
            if not self._ready:
                self._create_schema(conn)
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS nodes (
                path        TEXT PRIMARY KEY,
                value       TEXT NOT NULL,
                updated_at  TEXT NOT NULL
            )
        """)
        conn.commit()
        self._ready = True

    def init_db(self) -> None:
        """Create the table if it doesn't exist. Safe to call on every startup."""
        with self._connect():
            pass

    # ── Sync primitives (called from asyncio.to_thread) ──────────────────────

    @staticmethod
    def _select(conn: sqlite3.Connection, path: str) -> list[tuple[str, str]]:
        return conn.execute(
            "SELECT path, value FROM nodes WHERE path = ? OR (path > ? AND path < ?) ORDER BY path",
            (path, path + "/", path + "0"),
        ).fetchall()

    @staticmethod
    def _replace(conn: sqlite3.Connection, path: str, value: Any) -> None:
        segments = path.split("/")
        # A leaf stored at an ancestor would shadow the new subtree
        for i in range(1, len(segments)):
            conn.execute("DELETE FROM nodes WHERE path = ?", ("/".join(segments[:i]),))
        conn.execute(
            "DELETE FROM nodes WHERE path = ? OR (path > ? AND path < ?)",
            (path, path + "/", path + "0"),
        )
        now = datetime.now(timezone.utc).isoformat()
        conn.executemany(
            "INSERT INTO nodes (path, value, updated_at) VALUES (?, ?, ?)",
            [(p, v, now) for p, v in _flatten(path, value)],
        )

    def get_sync(self, path: str) -> Any:
        path = _norm(path)
        with self._connect() as conn:
            return _unflatten(path, self._select(conn, path))

    def set_sync(self, path: str, value: Any) -> None:
        path = _norm(path)
        with self._connect() as conn:
            self._replace(conn, path, value)

    def update_sync(self, path: str, fields: dict) -> list[str]:
        """Replace each (possibly nested, slash-separated) child key in one transaction."""
        base = _norm(path)
        written = []
        with self._connect() as conn:
            for key, value in fields.items():
                target = f"{base}/{_norm(key)}"
                self._replace(conn, target, value)
                written.append(target)
        return written

    def append_child_sync(self, path: str, build: Callable[[str], Any], width: int = 2) -> str:
        """
        Write build(key) under the next integer child key of path.

        The max-key read and the write share one IMMEDIATE transaction, so
        concurrent appends to the same parent never reuse a key.
        """
        base = _norm(path)
        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            used = []
            for child_path, _ in self._select(conn, base):
                if child_path == base:
                    continue
                first = child_path[len(base) + 1:].split("/", 1)[0]
                if first.isdigit():
                    used.append(int(first))
            key = str(max(used) + 1 if used else 0).zfill(width)
            self._replace(conn, f"{base}/{key}", build(key))
        return key

    # ── Async API ────────────────────────────────────────────────────────────

    async def get(self, path: str) -> Any:
        return await asyncio.to_thread(self.get_sync, path)

    async def set(self, path: str, value: Any) -> None:
        await asyncio.to_thread(self.set_sync, path, value)
        self._notify(_norm(path))

    async def update(self, path: str, fields: dict) -> None:
        written = await asyncio.to_thread(self.update_sync, path, fields)
        for target in written:
            self._notify(target)

    async def delete(self, path: str) -> None:
        await self.set(path, None)

    async def append_child(self, path: str, build: Callable[[str], Any], width: int = 2) -> str:
        key = await asyncio.to_thread(self.append_child_sync, path, build, width)
        self._notify(f"{_norm(path)}/{key}")
        return key

    # ── Live subscriptions ───────────────────────────────────────────────────

    def _notify(self, written: str) -> None:
        for watched, queues in self._watchers.items():
            if _related(watched, written):
                for q in queues:
                    q.put_nowait(written)

    async def watch(self, path: str) -> AsyncIterator[Any]:
        """Yield the current value at path, then the fresh value after every related write."""
        path = _norm(path)
        queue: asyncio.Queue = asyncio.Queue()
        self._watchers.setdefault(path, set()).add(queue)
        try:
            yield await self.get(path)
            while True:
                await queue.get()
                # Coalesce bursts (e.g. a batch of "checking" writes) into one push
                while not queue.empty():
                    queue.get_nowait()
                yield await self.get(path)
        finally:
            queues = self._watchers.get(path)
            if queues is not None:
                queues.discard(queue)
                if not queues:
                    del self._watchers[path]


# ── Profile helpers ──────────────────────────────────────────────────────────

def profile_path(profile_id: str, *parts: str) -> str:
    return "/".join(["profiles", profile_id, *parts])


async def load_profile(store: Store, profile_id: str) -> dict:
    """Return the profile subtree or raise NotFoundError."""
    profile = await store.get(profile_path(profile_id))
    if not isinstance(profile, dict):
        raise NotFoundError("Profile not found")
    return profile


async def set_profile_status(
    store: Store,
    profile_id: str,
    status: Optional[str] = None,
    progress: Optional[int] = None,
    **extra: Any,
) -> None:
    fields: dict[str, Any] = {"updatedAt": now_ms()}
    if status is not None:
        fields["status"] = status
    if progress is not None:
        fields["progress"] = progress
    fields.update(extra)
    await store.update(profile_path(profile_id), fields)
