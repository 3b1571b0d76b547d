"""
Post-processing of the addendum an activity write points at.

The processor enriches the addendum with place and travel information,
fans out one personalised comment per registered assignee and counts
check-ins towards attendance. Enrichment runs once per addendum
(``processedAt``); the fan-out and attendance steps are safe to repeat.
"""

from dataclasses import replace
from types import MappingProxyType
from typing import Optional

from src.models.addendum import SKIPPABLE_ACTIONS, AddendumAction
from src.models.activity import ActivityStatus
from src.services import collections
from src.services.allowance import trip_distance
from src.services.attendance import add_check_in_timestamps
from src.services.change_context import ChangeContext
from src.services.comments import comment_for
from src.services.container import Services
from src.services.document_store import DocumentSnapshot, Query, ShardedBatchWriter
from src.services.geocoding import ReverseGeocodeResult
from src.utils.dates import date_parts
from src.utils.errors import GeocodingError
from src.utils.geo import (
    adjusted_geopoint,
    adjusted_geopoint_key,
    coordinates,
    is_distance_accurate,
    maps_url,
    plus_code_url,
)
from src.utils.logging import get_structured_logger, log_timing

logger = get_structured_logger(__name__)

ENRICHED_FIELDS = (
    "city", "state", "locality", "url", "identifier", "distanceTravelled",
    "accumulatedDistance", "date", "month", "year", "adjustedGeopoint",
    "distanceAccurate", "venueQuery",
)


async def find_previous_addendum(services: Services, office_id: str, addendum: DocumentSnapshot) -> Optional[DocumentSnapshot]:
    """Latest earlier addendum by the same user."""
    result = await services.store.query(
        Query(collections.office_addenda(office_id))
        .where("user", "==", addendum.get("user"))
        .where("timestamp", "<=", addendum.get("timestamp"))
        .order_by("timestamp", descending=True)
        .limit(2)
    )
    for doc in result.docs:
        if doc.id != addendum.id:
            return doc
    return None


async def find_venue_activity(services: Services, office_id: str, location) -> Optional[DocumentSnapshot]:
    """Confirmed activity (branch, customer, ...) at roughly the same place."""
    key = adjusted_geopoint_key(location)
    if key is None:
        return None
    return (await services.store.query(
        Query(collections.ACTIVITIES)
        .where("officeId", "==", office_id)
        .where("status", "==", ActivityStatus.CONFIRMED.value)
        .where("adjustedGeopoints", "==", key)
        .limit(1)
    )).first()


async def reverse_geocode(services: Services, location) -> Optional[ReverseGeocodeResult]:
    point = coordinates(location)
    if point is None or services.geocoder is None:
        return None
    try:
        return await services.geocoder.reverse_geocode(*point)
    except GeocodingError as e:
        logger.warning("Reverse geocoding failed", error=str(e))
        return None


def place_information(result: Optional[ReverseGeocodeResult], location) -> dict:
    fallback = maps_url(location)
    if result is None or not result.formatted_address:
        return {"url": fallback, "identifier": fallback}
    return {
        "url": plus_code_url(result.plus_code) if result.plus_code else fallback,
        "identifier": result.formatted_address,
    }


def distance_accurate(addendum: DocumentSnapshot, venue_activity: Optional[DocumentSnapshot]) -> bool:
    location = addendum.get("location")
    accuracy = addendum.get("geopointAccuracy")
    venue = (addendum.get("activityData.venue") or [{}])[0]
    if venue.get("location"):
        return is_distance_accurate(location, accuracy, venue.get("geopoint"))
    if venue_activity is None:
        return False
    return is_distance_accurate(location, accuracy, (venue_activity.get("venue") or [{}])[0].get("geopoint"))


async def enrich_addendum(
    ctx: ChangeContext,
    services: Services,
    addendum: DocumentSnapshot,
    previous: Optional[DocumentSnapshot],
) -> dict:
    location = addendum.get("location")
    venue_activity = await find_venue_activity(services, ctx.office_id, location)
    geocoded = await reverse_geocode(services, location)

    distance = 0
    accumulated = 0
    if previous is not None:
        distance = await trip_distance(services, previous.get("location") or location, location)
        accumulated = round(float(previous.get("accumulatedDistance") or 0) + distance, 2)

    updates = {
        "city": geocoded.city if geocoded else "",
        "state": geocoded.state if geocoded else "",
        "locality": geocoded.locality if geocoded else "",
        "distanceTravelled": distance,
        "accumulatedDistance": accumulated,
        "adjustedGeopoint": adjusted_geopoint(location),
        "distanceAccurate": distance_accurate(addendum, venue_activity),
        "processedAt": ctx.now,
        **place_information(geocoded, location),
        **date_parts(ctx.now, addendum.get("activityData.timezone") or ctx.timezone),
    }
    venue = (venue_activity.get("venue") or [{}])[0] if venue_activity else {}
    if venue.get("location"):
        updates["venueQuery"] = venue
    return updates


async def fan_out_comments(ctx: ChangeContext, services: Services, addendum_id: str, addendum: dict) -> int:
    """Write one comment per registered assignee under ``Updates/{uid}/Addendum``."""
    writer = ShardedBatchWriter(services.store)
    is_comment = 1 if addendum.get("action") == AddendumAction.COMMENT.value else 0
    for assignee in ctx.assignees:
        if not assignee.uid:
            continue
        writer.set(collections.update_addendum(assignee.uid, addendum_id), {
            "comment": comment_for(ctx, addendum, assignee.phone_number),
            "activityId": ctx.activity_id,
            "isComment": is_comment,
            "timestamp": addendum.get("userDeviceTimestamp"),
            "location": addendum.get("location"),
            "user": addendum.get("user"),
        })
    count = writer.write_count
    await writer.commit()
    return count


async def process_addendum(ctx: ChangeContext, services: Services) -> ChangeContext:
    """Returns the context with ``addendum_updates`` and ``previous_addendum`` filled in."""
    addendum = ctx.addendum
    if addendum is None:
        return ctx

    store = services.store
    action = addendum.get("action")
    if action in SKIPPABLE_ACTIONS:
        parts = date_parts(ctx.now, ctx.timezone)
        batch = store.batch()
        batch.set(addendum.path, parts, merge=True)
        await batch.commit()
        return replace(ctx, addendum_updates=MappingProxyType(parts))

    previous = await find_previous_addendum(services, ctx.office_id, addendum)

    if addendum.get("processedAt"):
        updates = {name: addendum.get(name) for name in ENRICHED_FIELDS if addendum.get(name) is not None}
    else:
        with log_timing("enrich_addendum", logger, addendum_id=addendum.id):
            updates = await enrich_addendum(ctx, services, addendum, previous)
        batch = store.batch()
        batch.set(addendum.path, updates, merge=True)
        await batch.commit()

    ctx = replace(ctx, addendum_updates=MappingProxyType(updates), previous_addendum=previous)
    merged = dict(addendum.to_dict(), **updates)

    recipients = await fan_out_comments(ctx, services, addendum.id, merged)
    if ctx.template == "check-in":
        await add_check_in_timestamps(ctx, services, merged)

    logger.info(
        "Addendum processed",
        addendum_id=addendum.id,
        activity_id=ctx.activity_id,
        action=action,
        recipients=recipients,
    )
    return ctx
