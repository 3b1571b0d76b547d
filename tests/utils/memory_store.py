"""In-memory document store used by unit and integration tests."""

import copy
from datetime import datetime, timezone
from typing import Optional

from src.services.document_store import (
    DOCUMENT_ID,
    DocumentSnapshot,
    DocumentStore,
    Query,
    QueryResult,
    get_field,
    matches_filter,
    merge_document,
    resolve_transforms,
    split_path,
)
from src.utils.errors import StoreError


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryDocumentStore(DocumentStore):
    """Keeps documents in a dict keyed by path and records every commit."""

    def __init__(self):
        self.documents: dict = {}
        self.create_times: dict = {}
        self.update_times: dict = {}
        self.commits: list = []
        self._counter = 0

    def new_id(self) -> str:
        self._counter += 1
        return f"id{self._counter:05d}"

    # Test helpers

    def seed(self, path: str, data: dict) -> DocumentSnapshot:
        split_path(path)
        self.documents[path] = copy.deepcopy(data)
        self.create_times.setdefault(path, _timestamp())
        self.update_times[path] = _timestamp()
        return self.snapshot(path)

    def snapshot(self, path: str) -> DocumentSnapshot:
        data = self.documents.get(path)
        return DocumentSnapshot(
            path=path,
            data=copy.deepcopy(data) if data is not None else None,
            create_time=self.create_times.get(path),
            update_time=self.update_times.get(path),
        )

    def data(self, path: str) -> Optional[dict]:
        return copy.deepcopy(self.documents.get(path))

    def collection(self, collection_path: str) -> dict:
        """``{doc_id: data}`` of the direct children of a collection."""
        children = {}
        for path, data in self.documents.items():
            parent, doc_id = split_path(path)
            if parent == collection_path:
                children[doc_id] = copy.deepcopy(data)
        return children

    @property
    def write_count(self) -> int:
        return sum(len(writes) for writes in self.commits)

    # DocumentStore

    async def get(self, path: str) -> DocumentSnapshot:
        split_path(path)
        return self.snapshot(path)

    async def query(self, query: Query) -> QueryResult:
        matched = []
        for path, data in self.documents.items():
            parent, doc_id = split_path(path)
            if parent != query.collection:
                continue
            if all(matches_filter(data, flt) for flt in query.filters):
                matched.append((doc_id, path))

        if query.order_field == DOCUMENT_ID:
            matched.sort(key=lambda item: item[0], reverse=query.descending)
        else:
            def sort_key(item):
                value = get_field(self.documents[item[1]], query.order_field)
                return (value is not None, value if value is not None else 0, item[0])
            matched.sort(key=sort_key, reverse=query.descending)

        if query.cursor is not None:
            if query.descending:
                matched = [item for item in matched if item[0] < query.cursor]
            else:
                matched = [item for item in matched if item[0] > query.cursor]

        if query.limit_count is not None:
            matched = matched[:query.limit_count]

        return QueryResult(docs=[self.snapshot(path) for _, path in matched])

    async def commit(self, writes: list) -> None:
        staged = copy.deepcopy(self.documents)
        touched = []
        for write in writes:
            if write.op == "delete":
                staged.pop(write.path, None)
            elif write.op == "set":
                if write.merge:
                    staged[write.path] = merge_document(staged.get(write.path), write.data)
                else:
                    staged[write.path] = resolve_transforms(write.data)
            else:
                raise StoreError(f"Unknown write operation: {write.op}")
            touched.append(write.path)

        self.documents = staged
        now = _timestamp()
        for path in touched:
            if path in staged:
                self.create_times.setdefault(path, now)
                self.update_times[path] = now
            else:
                self.create_times.pop(path, None)
                self.update_times.pop(path, None)
        self.commits.append(list(writes))
