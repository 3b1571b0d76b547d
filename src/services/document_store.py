"""
Document store abstraction.

Documents live at slash separated paths (``Activities/{id}``,
``Profiles/{phone}/Activities/{id}``). A collection path has an odd number of
segments, a document path an even number. Writes are grouped into atomic
batches of at most ``Settings.BATCH_WRITE_LIMIT`` operations.
"""

import asyncio
import copy
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Optional

from ulid import ULID

from src.utils.config import Settings
from src.utils.errors import StoreError


DOCUMENT_ID = "__name__"

QUERY_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "in", "array-contains")


class _DeleteField:
    def __repr__(self):
        return "DELETE_FIELD"


DELETE_FIELD = _DeleteField()


@dataclass(frozen=True)
class ArrayUnion:
    values: tuple

    def __init__(self, values: Iterable):
        object.__setattr__(self, "values", tuple(values))


@dataclass(frozen=True)
class ArrayRemove:
    values: tuple

    def __init__(self, values: Iterable):
        object.__setattr__(self, "values", tuple(values))


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    parts = path.strip("/").split("/")
    if len(parts) < 2 or len(parts) % 2:
        raise StoreError(f"Not a document path: {path}")
    return "/".join(parts[:-1]), parts[-1]


def get_field(data: Optional[dict], field_path: str) -> Any:
    """Read a dotted field path from nested maps."""
    current: Any = data
    for part in field_path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def _apply_transform(existing: Any, value: Any) -> Any:
    if isinstance(value, ArrayUnion):
        result = list(existing) if isinstance(existing, list) else []
        for item in value.values:
            if item not in result:
                result.append(item)
        return result
    if isinstance(value, ArrayRemove):
        if not isinstance(existing, list):
            return []
        return [item for item in existing if item not in value.values]
    if isinstance(value, dict):
        return resolve_transforms(value)
    return copy.deepcopy(value)


def resolve_transforms(data: dict) -> dict:
    """Resolve field transforms against an empty document."""
    resolved = {}
    for key, value in data.items():
        if value is DELETE_FIELD:
            continue
        resolved[key] = _apply_transform(None, value)
    return resolved


def merge_document(existing: Optional[dict], update: dict) -> dict:
    """Deep-merge ``update`` into ``existing`` applying field transforms."""
    result = copy.deepcopy(existing) if existing else {}
    for key, value in update.items():
        if value is DELETE_FIELD:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge_document(result[key], value)
        else:
            result[key] = _apply_transform(result.get(key), value)
    return result


@dataclass(frozen=True)
class DocumentSnapshot:
    """Read-only view of a stored document."""
    path: str
    data: Optional[dict] = None
    create_time: Optional[str] = None
    update_time: Optional[str] = None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def parent_path(self) -> str:
        return self.path.rsplit("/", 1)[0]

    def get(self, field_path: str, default: Any = None) -> Any:
        value = get_field(self.data, field_path)
        return default if value is None else value

    def to_dict(self) -> dict:
        return copy.deepcopy(self.data) if self.data is not None else {}


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class Query:
    """Immutable query over the direct children of one collection path."""
    collection: str
    filters: tuple = ()
    order_field: str = DOCUMENT_ID
    descending: bool = False
    limit_count: Optional[int] = None
    cursor: Optional[str] = None

    def where(self, field_path: str, op: str, value: Any) -> "Query":
        if op not in QUERY_OPERATORS:
            raise StoreError(f"Unsupported query operator: {op}")
        return replace(self, filters=self.filters + (Filter(field_path, op, value),))

    def order_by(self, field_path: str, descending: bool = False) -> "Query":
        return replace(self, order_field=field_path, descending=descending)

    def limit(self, count: int) -> "Query":
        return replace(self, limit_count=count)

    def start_after(self, doc_id: Optional[str]) -> "Query":
        """Document-id cursor; only valid when ordering by document id."""
        return replace(self, cursor=doc_id)


def matches_filter(data: dict, flt: Filter) -> bool:
    """Evaluate one filter against document data."""
    value = get_field(data, flt.field)
    try:
        if flt.op == "==":
            return value == flt.value
        if flt.op == "!=":
            return value is not None and value != flt.value
        if flt.op == "in":
            return value in flt.value
        if flt.op == "array-contains":
            return isinstance(value, list) and flt.value in value
        if value is None:
            return False
        if flt.op == "<":
            return value < flt.value
        if flt.op == "<=":
            return value <= flt.value
        if flt.op == ">":
            return value > flt.value
        if flt.op == ">=":
            return value >= flt.value
    except TypeError:
        return False
    return False


@dataclass
class QueryResult:
    docs: list = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.docs

    @property
    def size(self) -> int:
        return len(self.docs)

    def first(self) -> Optional[DocumentSnapshot]:
        return self.docs[0] if self.docs else None


@dataclass(frozen=True)
class Write:
    """One batched operation: ``set`` (optionally merging) or ``delete``."""
    op: str
    path: str
    data: Optional[dict] = None
    merge: bool = False


class DocumentStore(ABC):
    """Async document store used by commands and the change trigger."""

    def new_id(self) -> str:
        """Time ordered unique id for new documents."""
        return str(ULID())

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot:
        ...

    async def get_all(self, paths: Iterable[str]) -> list:
        return list(await asyncio.gather(*(self.get(path) for path in paths)))

    @abstractmethod
    async def query(self, query: Query) -> QueryResult:
        ...

    @abstractmethod
    async def commit(self, writes: list) -> None:
        """Apply all writes atomically."""
        ...

    def batch(self) -> "WriteBatch":
        return WriteBatch(self)


class WriteBatch:
    """Atomic group of writes, capped at the store's batch limit."""

    def __init__(self, store: DocumentStore, limit: Optional[int] = None):
        self.store = store
        self.limit = limit or Settings.BATCH_WRITE_LIMIT
        self.writes: list = []

    def __len__(self) -> int:
        return len(self.writes)

    def _add(self, write: Write) -> "WriteBatch":
        if len(self.writes) >= self.limit:
            raise StoreError(f"Batch exceeds {self.limit} writes")
        self.writes.append(write)
        return self

    def set(self, path: str, data: dict, merge: bool = False) -> "WriteBatch":
        split_path(path)
        return self._add(Write("set", path, data, merge))

    def delete(self, path: str) -> "WriteBatch":
        split_path(path)
        return self._add(Write("delete", path))

    async def commit(self) -> None:
        if self.writes:
            await self.store.commit(list(self.writes))


class ShardedBatchWriter:
    """Collects any number of writes and commits them in sequential batches."""

    def __init__(self, store: DocumentStore, limit: Optional[int] = None):
        self.store = store
        self.limit = limit or Settings.BATCH_WRITE_LIMIT
        self.batches: list = [WriteBatch(store, self.limit)]

    @property
    def _current(self) -> WriteBatch:
        if len(self.batches[-1]) >= self.limit:
            self.batches.append(WriteBatch(self.store, self.limit))
        return self.batches[-1]

    def set(self, path: str, data: dict, merge: bool = False) -> "ShardedBatchWriter":
        self._current.set(path, data, merge)
        return self

    def delete(self, path: str) -> "ShardedBatchWriter":
        self._current.delete(path)
        return self

    @property
    def write_count(self) -> int:
        return sum(len(batch) for batch in self.batches)

    async def commit(self) -> int:
        """Commit every shard in order; returns the number of batches committed."""
        committed = 0
        for batch in self.batches:
            if len(batch):
                await batch.commit()
                committed += 1
        self.batches = [WriteBatch(self.store, self.limit)]
        return committed
