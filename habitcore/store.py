"""Document store boundary.

Documents live at slash-separated paths such as
``users/{uid}/habits/{habitId}``. Updates are addressed by dotted field
paths (``logs.2024-05-01.duration``) so that writes to different fields of
the same document never clobber each other. Values may be plain JSON data
or one of the sentinels below.
"""

from __future__ import annotations

import copy
import json
import logging
import secrets
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import anyio.to_thread

from habitcore.errors import DocumentNotFound, StoreError
from habitcore.fileio import delete_file, read_json, write_json_atomic

logger = logging.getLogger(__name__)

Updates = dict[str, Any]
Document = dict[str, Any]


# ── Sentinels ─────────────────────────────────────────────────


@dataclass(frozen=True)
class Increment:
    """Add *amount* to the numeric field (missing counts as 0)."""

    amount: int


class _Sentinel:
    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return self.name


DELETE_FIELD = _Sentinel("DELETE_FIELD")
SERVER_TIMESTAMP = _Sentinel("SERVER_TIMESTAMP")


# ── Paths ─────────────────────────────────────────────────────


def habits_collection(uid: str) -> str:
    return f"users/{uid}/habits"


def habit_path(uid: str, habit_id: str) -> str:
    return f"users/{uid}/habits/{habit_id}"


def settings_path(uid: str) -> str:
    return f"users/{uid}/settings/general"


def _segments(path: str) -> list[str]:
    parts = path.split("/")
    if any(not p or p in {".", ".."} for p in parts):
        raise StoreError(f"Invalid document path: {path!r}")
    return parts


# ── Update semantics ──────────────────────────────────────────


def _resolve(value: Any, now: datetime) -> Any:
    if value is SERVER_TIMESTAMP:
        return now.isoformat(timespec="seconds")
    if isinstance(value, Increment):
        return value.amount
    if isinstance(value, dict):
        return {k: _resolve(v, now) for k, v in value.items() if v is not DELETE_FIELD}
    if isinstance(value, list):
        return [_resolve(v, now) for v in value]
    return copy.deepcopy(value)


def apply_updates(doc: Document, updates: Updates, now: datetime | None = None) -> Document:
    """Return a copy of *doc* with field-path *updates* applied.

    Intermediate maps are created as needed; a non-map intermediate is
    replaced by a map.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    result = copy.deepcopy(doc)
    for field_path, value in updates.items():
        keys = field_path.split(".")
        if any(not k for k in keys):
            raise StoreError(f"Invalid field path: {field_path!r}")
        node = result
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                if value is DELETE_FIELD:
                    break
                child = {}
                node[key] = child
            node = child
        else:
            last = keys[-1]
            if value is DELETE_FIELD:
                node.pop(last, None)
            elif isinstance(value, Increment):
                current = node.get(last)
                if isinstance(current, bool) or not isinstance(current, (int, float)):
                    current = 0
                node[last] = current + value.amount
            else:
                node[last] = _resolve(value, now)
    return result


# ── Interface ─────────────────────────────────────────────────


class DocumentStore(ABC):
    """Async document store. Field-path updates are atomic per document;
    batches are all-or-nothing across documents."""

    @abstractmethod
    async def get_all(self, collection: str) -> dict[str, Document]:
        """Map of document id to body for every document in *collection*."""

    @abstractmethod
    async def get(self, path: str) -> Document | None:
        ...

    @abstractmethod
    async def add(self, collection: str, data: Document) -> str:
        """Create a document with a generated id and return the id."""

    @abstractmethod
    async def update(self, path: str, updates: Updates) -> None:
        """Apply field-path updates; DocumentNotFound if missing."""

    @abstractmethod
    async def set(self, path: str, data: Document, merge: bool = False) -> None:
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    @abstractmethod
    async def commit_batch(self, writes: list[tuple[str, Updates]]) -> None:
        """Apply every (path, updates) pair, or none of them."""


def new_document_id() -> str:
    return secrets.token_hex(10)


# ── In-memory ─────────────────────────────────────────────────


class MemoryDocumentStore(DocumentStore):
    def __init__(self, clock: Callable[[], datetime] | None = None) -> None:
        self._docs: dict[str, Document] = {}
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_all(self, collection: str) -> dict[str, Document]:
        depth = len(_segments(collection)) + 1
        prefix = collection + "/"
        return {
            path[len(prefix):]: copy.deepcopy(doc)
            for path, doc in sorted(self._docs.items())
            if path.startswith(prefix) and len(path.split("/")) == depth
        }

    async def get(self, path: str) -> Document | None:
        _segments(path)
        doc = self._docs.get(path)
        return copy.deepcopy(doc) if doc is not None else None

    async def add(self, collection: str, data: Document) -> str:
        _segments(collection)
        doc_id = new_document_id()
        self._docs[f"{collection}/{doc_id}"] = _resolve(data, self._clock())
        return doc_id

    async def update(self, path: str, updates: Updates) -> None:
        _segments(path)
        if path not in self._docs:
            raise DocumentNotFound(path)
        self._docs[path] = apply_updates(self._docs[path], updates, self._clock())

    async def set(self, path: str, data: Document, merge: bool = False) -> None:
        _segments(path)
        if merge and path in self._docs:
            self._docs[path] = apply_updates(self._docs[path], data, self._clock())
        else:
            self._docs[path] = _resolve(data, self._clock())

    async def delete(self, path: str) -> None:
        _segments(path)
        self._docs.pop(path, None)

    async def commit_batch(self, writes: list[tuple[str, Updates]]) -> None:
        now = self._clock()
        staged = {}
        for path, updates in writes:
            _segments(path)
            base = staged.get(path, self._docs.get(path))
            if base is None:
                raise DocumentNotFound(path)
            staged[path] = apply_updates(base, updates, now)
        self._docs.update(staged)


# ── JSON files ────────────────────────────────────────────────


class FileDocumentStore(DocumentStore):
    """One JSON file per document below *root*, written atomically.

    Disk work runs in a worker thread; OS and decode errors surface as
    StoreError.
    """

    def __init__(self, root: Path, clock: Callable[[], datetime] | None = None) -> None:
        self.root = root
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def _file(self, path: str) -> Path:
        return self.root.joinpath(*_segments(path)).with_suffix(".json")

    async def _run(self, label: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await anyio.to_thread.run_sync(func, *args)
        except OSError as e:
            raise StoreError(f"I/O error on {label}: {e}") from e
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise StoreError(f"Corrupt document {label}: {e}") from e

    def _read_all(self, collection: str) -> dict[str, Document]:
        directory = self.root.joinpath(*_segments(collection))
        if not directory.is_dir():
            return {}
        docs = {}
        for f in sorted(directory.glob("*.json")):
            try:
                docs[f.stem] = read_json(f)
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.error("Skipping unreadable document %s: %s", f, e)
        return docs

    def _read(self, path: str) -> Document | None:
        f = self._file(path)
        if not f.exists():
            return None
        return read_json(f)

    def _write_new(self, path: str, data: Document) -> None:
        write_json_atomic(self._file(path), _resolve(data, self._clock()))

    def _update(self, path: str, updates: Updates) -> None:
        f = self._file(path)
        if not f.exists():
            raise DocumentNotFound(path)
        write_json_atomic(f, apply_updates(read_json(f), updates, self._clock()))

    def _set(self, path: str, data: Document, merge: bool) -> None:
        f = self._file(path)
        if merge and f.exists():
            write_json_atomic(f, apply_updates(read_json(f), data, self._clock()))
        else:
            write_json_atomic(f, _resolve(data, self._clock()))

    def _delete(self, path: str) -> None:
        delete_file(self._file(path))

    def _commit_batch(self, writes: list[tuple[str, Updates]]) -> None:
        # Stage every document before touching disk so a missing one aborts the batch.
        now = self._clock()
        staged: dict[Path, Document] = {}
        for path, updates in writes:
            f = self._file(path)
            if f in staged:
                base = staged[f]
            elif f.exists():
                base = read_json(f)
            else:
                raise DocumentNotFound(path)
            staged[f] = apply_updates(base, updates, now)
        for f, doc in staged.items():
            write_json_atomic(f, doc)
        logger.debug("Committed batch of %d documents", len(staged))

    async def get_all(self, collection: str) -> dict[str, Document]:
        return await self._run(collection, self._read_all, collection)

    async def get(self, path: str) -> Document | None:
        return await self._run(path, self._read, path)

    async def add(self, collection: str, data: Document) -> str:
        doc_id = new_document_id()
        path = f"{collection}/{doc_id}"
        await self._run(path, self._write_new, path, data)
        return doc_id

    async def update(self, path: str, updates: Updates) -> None:
        await self._run(path, self._update, path, updates)

    async def set(self, path: str, data: Document, merge: bool = False) -> None:
        await self._run(path, self._set, path, data, merge)

    async def delete(self, path: str) -> None:
        await self._run(path, self._delete, path)

    async def commit_batch(self, writes: list[tuple[str, Updates]]) -> None:
        await self._run("batch", self._commit_batch, writes)


def open_store(kind: str, root: Path) -> DocumentStore:
    if kind == "memory":
        return MemoryDocumentStore()
    return FileDocumentStore(root)
