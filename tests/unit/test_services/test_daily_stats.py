"""Tests for the daily status report and all-time counters."""

import pytest

from src.services import collections
from src.services.daily_stats import count_addendum, record_daily_status
from tests.utils.factories import BASE_TIMESTAMP, create_addendum_data


def _addendum(action="create", template="leave", **flags) -> dict:
    data = create_addendum_data(action, "A1", template, "+919800000001")
    data["activityData"] = {"office": "Acme", "template": template}
    data.update(flags)
    return data


@pytest.mark.unit
def test_count_create_from_client():
    daily, counter = count_addendum({}, {}, _addendum())

    assert counter["totalActivities"] == 1
    assert counter["totalCreatedWithClientApi"] == 1
    assert counter["totalByTemplateMap"] == {"leave": 1}
    assert daily["activitiesAddedToday"] == 1
    assert daily["createApi"] == 1
    assert daily["createCountByOffice"] == {"Acme": 1}
    assert daily["templateUsageObject"] == {"leave": {"create": 1}}
    assert "withSupport" not in daily


@pytest.mark.unit
def test_count_support_admin_request_as_support_only():
    daily, counter = count_addendum({}, {}, _addendum(isSupportRequest=True, isAdminRequest=True))

    assert daily["withSupport"] == 1
    assert counter["totalCreatedWithSupport"] == 1
    assert counter["supportMap"] == {"leave": 1}
    assert "withAdminApi" not in daily
    assert "totalCreatedWithClientApi" not in counter


@pytest.mark.unit
def test_count_accumulates_on_existing_documents():
    daily = {"commentApi": 4, "templateUsageObject": {"leave": {"comment": 4}}}
    counter = {"autoGeneratedMap": {"leave": 1}}

    daily, counter = count_addendum(daily, counter, _addendum("comment", isAutoGenerated=True))

    assert daily["commentApi"] == 5
    assert daily["autoGenerated"] == 1
    assert daily["templateUsageObject"]["leave"]["comment"] == 5
    assert counter["autoGeneratedMap"] == {"leave": 2}
    assert "totalActivities" not in counter


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_daily_status_skipped_outside_production(services, store):
    assert await record_daily_status(services, "ADD1", _addendum(), BASE_TIMESTAMP) is False
    assert store.commits == []


@pytest.mark.unit
@pytest.mark.asyncio
async def test_record_daily_status_counts_each_addendum_once(services, store, production):
    assert await record_daily_status(services, "ADD1", _addendum(), BASE_TIMESTAMP) is True
    assert await record_daily_status(services, "ADD1", _addendum(), BASE_TIMESTAMP) is False
    assert await record_daily_status(services, "ADD2", _addendum("comment"), BASE_TIMESTAMP) is True

    report = store.data(collections.daily_status_report("2025-10-15"))
    assert report["report"] == "daily status report"
    assert (report["date"], report["month"], report["year"]) == (15, 10, 2025)
    assert report["createApi"] == 1
    assert report["commentApi"] == 1

    counter = store.data(collections.counter())
    assert counter["report"] == "counter"
    assert counter["totalActivities"] == 1
    assert store.data(collections.counted_addendum("2025-10-15", "ADD1")) == {"timestamp": BASE_TIMESTAMP}
