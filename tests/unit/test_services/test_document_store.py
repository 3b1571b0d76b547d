"""Tests for the document store primitives and batching."""

import pytest

from src.services.document_store import (
    DELETE_FIELD,
    ArrayRemove,
    ArrayUnion,
    DocumentSnapshot,
    Filter,
    Query,
    ShardedBatchWriter,
    WriteBatch,
    matches_filter,
    merge_document,
    resolve_transforms,
    split_path,
)
from src.utils.errors import StoreError


@pytest.mark.unit
def test_split_path():
    assert split_path("Activities/A1") == ("Activities", "A1")
    assert split_path("Profiles/+91/Activities/A1") == ("Profiles/+91/Activities", "A1")
    with pytest.raises(StoreError):
        split_path("Activities")
    with pytest.raises(StoreError):
        split_path("Activities/A1/Assignees")


@pytest.mark.unit
def test_merge_document_deep_merges_and_applies_transforms():
    existing = {
        "employeeOf": {"Acme": "O1", "Beta": "O2"},
        "countedCheckIns": ["C1"],
        "name": "Asha",
    }
    update = {
        "employeeOf": {"Beta": DELETE_FIELD, "Gamma": "O3"},
        "countedCheckIns": ArrayUnion(["C1", "C2"]),
        "name": DELETE_FIELD,
    }

    merged = merge_document(existing, update)

    assert merged == {"employeeOf": {"Acme": "O1", "Gamma": "O3"}, "countedCheckIns": ["C1", "C2"]}
    assert existing["employeeOf"] == {"Acme": "O1", "Beta": "O2"}


@pytest.mark.unit
def test_array_remove():
    assert merge_document({"ids": ["a", "b", "c"]}, {"ids": ArrayRemove(["b"])}) == {"ids": ["a", "c"]}
    assert merge_document({}, {"ids": ArrayRemove(["b"])}) == {"ids": []}


@pytest.mark.unit
def test_resolve_transforms_on_new_document():
    resolved = resolve_transforms({"ids": ArrayUnion(["a", "a"]), "gone": DELETE_FIELD, "nested": {"n": 1}})

    assert resolved == {"ids": ["a"], "nested": {"n": 1}}


@pytest.mark.unit
def test_snapshot_accessors():
    snapshot = DocumentSnapshot(path="Activities/A1", data={"attachment": {"Name": {"value": "Asha"}}})

    assert snapshot.id == "A1"
    assert snapshot.exists
    assert snapshot.get("attachment.Name.value") == "Asha"
    assert snapshot.get("attachment.Missing.value", "x") == "x"
    copy = snapshot.to_dict()
    copy["attachment"]["Name"]["value"] = "Changed"
    assert snapshot.get("attachment.Name.value") == "Asha"

    missing = DocumentSnapshot(path="Activities/A2")
    assert not missing.exists
    assert missing.to_dict() == {}


@pytest.mark.unit
@pytest.mark.parametrize("flt,expected", [
    (Filter("status", "==", "CONFIRMED"), True),
    (Filter("status", "!=", "CONFIRMED"), False),
    (Filter("status", "in", ["PENDING", "CONFIRMED"]), True),
    (Filter("tags", "array-contains", "b"), True),
    (Filter("relevantTime", ">=", 100), True),
    (Filter("relevantTime", "<", 100), False),
    (Filter("missing", ">", 0), False),
    (Filter("status", ">", 5), False),
])
def test_matches_filter(flt, expected):
    data = {"status": "CONFIRMED", "tags": ["a", "b"], "relevantTime": 100}

    assert matches_filter(data, flt) is expected


@pytest.mark.unit
def test_query_is_immutable():
    base = Query("Activities")
    filtered = base.where("template", "==", "leave").limit(5)

    assert base.filters == ()
    assert len(filtered.filters) == 1
    assert filtered.limit_count == 5
    with pytest.raises(StoreError):
        base.where("template", "like", "leave")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_write_batch_enforces_limit(store):
    batch = WriteBatch(store, limit=2)
    batch.set("Activities/A1", {"n": 1})
    batch.delete("Activities/A2")

    with pytest.raises(StoreError):
        batch.set("Activities/A3", {"n": 3})

    await batch.commit()
    assert len(store.commits) == 1
    assert store.data("Activities/A1") == {"n": 1}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_write_batch_rejects_collection_paths(store):
    with pytest.raises(StoreError):
        store.batch().set("Activities", {})


@pytest.mark.unit
@pytest.mark.asyncio
async def test_sharded_writer_splits_into_batches(store):
    writer = ShardedBatchWriter(store, limit=3)
    for index in range(7):
        writer.set(f"Activities/A{index}", {"index": index})

    assert writer.write_count == 7
    assert await writer.commit() == 3
    assert [len(writes) for writes in store.commits] == [3, 3, 1]
    assert len(store.collection("Activities")) == 7
    assert writer.write_count == 0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_merge_write_over_existing_document(store):
    store.seed("Profiles/+919876543210", {"employeeOf": {"Acme": "O1"}, "uid": "u1"})

    batch = store.batch()
    batch.set("Profiles/+919876543210", {"employeeOf": {"Beta": "O2"}}, merge=True)
    await batch.commit()

    assert store.data("Profiles/+919876543210") == {"employeeOf": {"Acme": "O1", "Beta": "O2"}, "uid": "u1"}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_get_all_preserves_order(store):
    store.seed("Profiles/a", {"n": 1})
    store.seed("Profiles/c", {"n": 3})

    snapshots = await store.get_all(["Profiles/c", "Profiles/b", "Profiles/a"])

    assert [s.id for s in snapshots] == ["c", "b", "a"]
    assert [s.exists for s in snapshots] == [True, False, True]
