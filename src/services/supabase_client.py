"""Supabase client wrapper and the Supabase backed document store."""

import json
from typing import Any, Optional

from supabase import create_client, Client, PostgrestAPIError
from supabase.client import ClientOptions

from src.services.document_store import (
    DELETE_FIELD,
    DOCUMENT_ID,
    ArrayRemove,
    ArrayUnion,
    DocumentSnapshot,
    DocumentStore,
    Filter,
    Query,
    QueryResult,
    Write,
    merge_document,
    resolve_transforms,
    split_path,
)
from src.utils.config import Settings
from src.utils.errors import StoreError
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

# PostgREST: function not found in the schema cache
MISSING_FUNCTION_CODES = frozenset({"PGRST202", "404"})

# Global client instance (singleton pattern)
_client: Optional[Client] = None


def get_supabase_client() -> Client:
    """Get or create Supabase client singleton."""
    global _client

    if _client is None:
        url = Settings.SUPABASE_URL
        key = Settings.SUPABASE_SERVICE_ROLE_KEY

        if not url or not key:
            raise StoreError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        options = ClientOptions(
            auto_refresh_token=False,
            persist_session=False,
        )

        _client = create_client(url, key, options)
        logger.info("Supabase client initialized", url=url)

    return _client


async def close_supabase_client() -> None:
    """Drop the cached client."""
    global _client
    if _client:
        _client = None
        logger.info("Supabase client closed")


class SupabaseClient:
    """Async context manager for Supabase client."""

    def __init__(self):
        self.client: Optional[Client] = None

    async def __aenter__(self) -> Client:
        self.client = get_supabase_client()
        return self.client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            logger.error(
                "Supabase operation error",
                error=str(exc_val),
                error_type=exc_type.__name__,
            )
        return False


def json_path(field_path: str, as_text: bool) -> str:
    """PostgREST column expression for a dotted field inside the data column."""
    if field_path == DOCUMENT_ID:
        return "doc_id"
    parts = [f'"{part}"' if " " in part else part for part in field_path.split(".")]
    if len(parts) == 1:
        return f"data{'->>' if as_text else '->'}{parts[0]}"
    return "data->" + "->".join(parts[:-1]) + ("->>" if as_text else "->") + parts[-1]


def _filter_value(value: Any) -> Any:
    if isinstance(value, str):
        return value
    return json.dumps(value)


def apply_filter(request, flt: Filter):
    """Translate one store filter onto a PostgREST request builder."""
    if flt.op == "array-contains":
        return request.contains(json_path(flt.field, as_text=False), json.dumps([flt.value]))

    if flt.op == "in":
        as_text = all(isinstance(value, str) for value in flt.value)
        column = json_path(flt.field, as_text=as_text)
        values = list(flt.value) if as_text else [_filter_value(value) for value in flt.value]
        return request.in_(column, values)

    as_text = isinstance(flt.value, str)
    column = json_path(flt.field, as_text=as_text)
    value = _filter_value(flt.value)
    if flt.value is None:
        if flt.op == "==":
            return request.is_(json_path(flt.field, as_text=True), "null")
        return request.not_.is_(json_path(flt.field, as_text=True), "null")

    method = {
        "==": request.eq,
        "!=": request.neq,
        "<": request.lt,
        "<=": request.lte,
        ">": request.gt,
        ">=": request.gte,
    }[flt.op]
    return method(column, value)


def encode_transforms(data: Any) -> Any:
    """Encode field transforms for the batch commit database function."""
    if data is DELETE_FIELD:
        return {"$delete": True}
    if isinstance(data, ArrayUnion):
        return {"$arrayUnion": list(data.values)}
    if isinstance(data, ArrayRemove):
        return {"$arrayRemove": list(data.values)}
    if isinstance(data, dict):
        return {key: encode_transforms(value) for key, value in data.items()}
    return data


def snapshot_from_row(row: dict) -> DocumentSnapshot:
    return DocumentSnapshot(
        path=row["path"],
        data=row.get("data") or {},
        create_time=row.get("created_at"),
        update_time=row.get("updated_at"),
    )


def is_missing_function(error: Exception) -> bool:
    """PostgREST reports that the batch commit function does not exist."""
    return isinstance(error, PostgrestAPIError) and str(error.code) in MISSING_FUNCTION_CODES


class SupabaseDocumentStore(DocumentStore):
    """Stores every document as a row of the documents table."""

    COLUMNS = "path,collection,doc_id,data,created_at,updated_at"

    def __init__(self, table: Optional[str] = None, commit_rpc: Optional[str] = None):
        self.table = table or Settings.DOCUMENTS_TABLE
        self.commit_rpc = commit_rpc or Settings.BATCH_COMMIT_RPC

    async def get(self, path: str) -> DocumentSnapshot:
        split_path(path)
        async with SupabaseClient() as client:
            try:
                result = client.table(self.table).select(self.COLUMNS).eq("path", path).limit(1).execute()
            except Exception as e:
                raise StoreError(f"Failed to read document {path}: {e}")
        if result.data:
            return snapshot_from_row(result.data[0])
        return DocumentSnapshot(path=path)

    async def query(self, query: Query) -> QueryResult:
        async with SupabaseClient() as client:
            try:
                request = client.table(self.table).select(self.COLUMNS).eq("collection", query.collection)
                for flt in query.filters:
                    request = apply_filter(request, flt)
                if query.cursor:
                    request = request.gt("doc_id", query.cursor)
                request = request.order(json_path(query.order_field, as_text=False), desc=query.descending)
                if query.order_field != DOCUMENT_ID:
                    request = request.order("doc_id")
                if query.limit_count is not None:
                    request = request.limit(query.limit_count)
                result = request.execute()
            except Exception as e:
                raise StoreError(f"Failed to query {query.collection}: {e}")
        return QueryResult(docs=[snapshot_from_row(row) for row in (result.data or [])])

    async def commit(self, writes: list) -> None:
        if not writes:
            return

        payload = []
        for write in writes:
            collection, doc_id = split_path(write.path)
            payload.append({
                "op": write.op,
                "path": write.path,
                "collection": collection,
                "doc_id": doc_id,
                "merge": write.merge,
                "data": encode_transforms(write.data) if write.data is not None else None,
            })

        async with SupabaseClient() as client:
            try:
                client.rpc(self.commit_rpc, {"writes": payload}).execute()
                return
            except Exception as e:
                if not is_missing_function(e):
                    raise StoreError(f"Failed to commit batch of {len(writes)} writes: {e}")
                logger.warning(
                    "Batch commit function missing, applying writes one by one",
                    rpc=self.commit_rpc,
                    write_count=len(writes),
                )

            try:
                for write in writes:
                    self._apply_single(client, write)
            except Exception as fallback_error:
                raise StoreError(f"Failed to commit batch: {fallback_error}")

    def _apply_single(self, client: Client, write: Write) -> None:
        collection, doc_id = split_path(write.path)
        if write.op == "delete":
            client.table(self.table).delete().eq("path", write.path).execute()
            return

        if write.merge:
            current = client.table(self.table).select("data").eq("path", write.path).limit(1).execute()
            existing = current.data[0]["data"] if current.data else None
            data = merge_document(existing, write.data)
        else:
            data = resolve_transforms(write.data)

        client.table(self.table).upsert({
            "path": write.path,
            "collection": collection,
            "doc_id": doc_id,
            "data": data,
        }, on_conflict="path").execute()


# Document store singleton
_store: Optional[SupabaseDocumentStore] = None


def get_document_store() -> SupabaseDocumentStore:
    global _store
    if _store is None:
        _store = SupabaseDocumentStore()
    return _store
