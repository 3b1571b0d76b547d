"""Daily and all-time usage counters kept under ``Inits`` in production."""

from typing import Mapping

from src.models.addendum import AddendumAction
from src.services import collections
from src.services.container import Services
from src.utils.config import Settings
from src.utils.dates import date_parts, to_local
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

DAILY_STATUS_REPORT = "daily status report"
COUNTER = "counter"

ACTION_COUNTERS = {
    AddendumAction.CREATE.value: "createApi",
    AddendumAction.UPDATE.value: "updateApi",
    AddendumAction.CHANGE_STATUS.value: "changeStatusApi",
    AddendumAction.SHARE.value: "shareApi",
    AddendumAction.COMMENT.value: "commentApi",
}


def _bump(mapping: dict, key: str) -> None:
    mapping[key] = mapping.get(key, 0) + 1


def count_addendum(daily: dict, counter: dict, addendum: Mapping) -> tuple:
    """Apply one addendum to copies of the daily and counter documents."""
    activity_data = addendum.get("activityData") or {}
    template = addendum.get("template") or activity_data.get("template", "")
    office = activity_data.get("office", "")
    action = addendum.get("action")
    is_support = bool(addendum.get("isSupportRequest"))
    is_admin = bool(addendum.get("isAdminRequest"))
    is_auto = bool(addendum.get("isAutoGenerated"))

    daily = dict(daily)
    counter = dict(counter)
    for name in ("supportMap", "autoGeneratedMap", "totalByTemplateMap", "adminApiMap"):
        counter[name] = dict(counter.get(name) or {})
    daily["createCountByOffice"] = dict(daily.get("createCountByOffice") or {})
    usage = {key: dict(value) for key, value in (daily.get("templateUsageObject") or {}).items()}

    if action == AddendumAction.CREATE.value:
        _bump(counter, "totalActivities")
        _bump(daily, "activitiesAddedToday")
        if not is_support and not is_admin:
            _bump(counter, "totalCreatedWithClientApi")
        _bump(counter["totalByTemplateMap"], template)
        _bump(daily["createCountByOffice"], office)

    if action in ACTION_COUNTERS:
        _bump(daily, ACTION_COUNTERS[action])

    if is_support:
        _bump(daily, "withSupport")
        _bump(counter, "totalCreatedWithSupport")
        _bump(counter["supportMap"], template)

    if is_auto:
        _bump(daily, "autoGenerated")
        _bump(counter["autoGeneratedMap"], template)

    # Support requests on admin resources are counted as support only
    if is_admin and not is_support:
        _bump(daily, "withAdminApi")
        _bump(counter, "totalCreatedWithAdminApi")
        _bump(counter["adminApiMap"], template)

    usage.setdefault(template, {})
    _bump(usage[template], action or "")
    daily["templateUsageObject"] = usage
    return daily, counter


async def record_daily_status(services: Services, addendum_id: str, addendum: Mapping, now: int) -> bool:
    """
    Count one addendum towards today's report and the all-time counter.

    Each addendum id is counted at most once per day through a marker
    document written in the same batch as the counters.
    """
    if not Settings.is_production():
        return False

    store = services.store
    date_key = to_local(now, None).strftime("%Y-%m-%d")
    marker_path = collections.counted_addendum(date_key, addendum_id)
    report_path = collections.daily_status_report(date_key)
    counter_path = collections.counter()

    marker, report, counter = await store.get_all([marker_path, report_path, counter_path])
    if marker.exists:
        return False

    daily, totals = count_addendum(report.to_dict(), counter.to_dict(), addendum)
    daily.update(report=DAILY_STATUS_REPORT, **date_parts(now, None))
    totals["report"] = COUNTER

    batch = store.batch()
    batch.set(report_path, daily, merge=True)
    batch.set(counter_path, totals, merge=True)
    batch.set(marker_path, {"timestamp": now})
    await batch.commit()

    logger.debug("Addendum counted", addendum_id=addendum_id, date_key=date_key)
    return True
