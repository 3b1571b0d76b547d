"""Per-recipient English sentences describing an addendum."""

from typing import Optional

from src.models.addendum import AddendumAction
from src.services.change_context import ChangeContext

VOWELS = frozenset("aeiou")


def article(word: str) -> str:
    return "an" if word[:1].lower() in VOWELS else "a"


def join_names(names: list) -> str:
    """'a', 'a & b', 'a, b & c'."""
    if not names:
        return ""
    if len(names) == 1:
        return names[0]
    return f"{', '.join(names[:-1])} & {names[-1]}"


def updated_schedule_names(new_schedule: list, old_schedule: list) -> list:
    new_by_name = {item.get("name"): item for item in new_schedule or []}
    updated = []
    for item in old_schedule or []:
        new_item = new_by_name.get(item.get("name"), {})
        if (
            new_item.get("startTime") != item.get("startTime")
            or new_item.get("endTime") != item.get("endTime")
        ):
            updated.append(item.get("name"))
    return updated


def updated_venue_descriptors(new_venue: list, old_venue: list) -> list:
    new_by_descriptor = {item.get("venueDescriptor"): item for item in new_venue or []}
    updated = []
    for item in old_venue or []:
        new_item = new_by_descriptor.get(item.get("venueDescriptor"), {})
        if any(new_item.get(key) != item.get(key) for key in ("location", "address", "geopoint")):
            updated.append(item.get("venueDescriptor"))
    return updated


def updated_attachment_fields(new_attachment: dict, old_attachment: dict) -> list:
    updated = []
    for field_name, item in (new_attachment or {}).items():
        # Photos are base64 strings; comparing them is not worth it
        if item.get("type") == "photo":
            continue
        old_item = (old_attachment or {}).get(field_name) or {}
        if old_item.get("value") != item.get("value"):
            updated.append(field_name)
    return updated


def updated_field_names(before: dict, after: dict) -> str:
    before = before or {}
    fields = (
        updated_schedule_names(after.get("schedule"), before.get("schedule"))
        + updated_venue_descriptors(after.get("venue"), before.get("venue"))
        + updated_attachment_fields(after.get("attachment"), before.get("attachment"))
    )
    return join_names(fields)


def pronoun(ctx: ChangeContext, actor: str, recipient: str) -> str:
    if actor == recipient:
        return "You"
    return ctx.display_name(actor)


def check_in_location(addendum: dict) -> Optional[str]:
    venue = ((addendum.get("activityData") or {}).get("venue") or [{}])[0]
    if venue.get("location"):
        return venue["location"]
    if addendum.get("venueQuery"):
        return addendum["venueQuery"].get("location")
    return addendum.get("identifier")


def create_comment(template: str, who: str, location: Optional[str]) -> str:
    if template == "check-in" and location:
        return f"{who} checked in from {location}"
    return f"{who} created {article(template)} {template}"


def change_status_comment(status: str, activity_name: str, who: str) -> str:
    # PENDING reads badly as a verb
    verb = "reversed" if status == "PENDING" else status.lower()
    return f"{who} {verb} {activity_name}"


def share_comment(ctx: ChangeContext, who: str, share: list, recipient: str) -> str:
    names = ["you" if phone == recipient else ctx.display_name(phone) for phone in share]
    return f"{who} added {join_names(names)}"


def comment_for(ctx: ChangeContext, addendum: dict, recipient: str) -> str:
    """
    Sentence shown to ``recipient`` for one addendum.

    ``addendum`` is the stored addendum merged with the fields the addendum
    processor computed (``identifier``, ``venueQuery``).
    """
    if addendum.get("cancellationMessage"):
        return addendum["cancellationMessage"]

    action = addendum.get("action")
    who = pronoun(ctx, addendum.get("user", ""), recipient)
    activity_data = addendum.get("activityData") or {}
    template = addendum.get("template") or activity_data.get("template", "")

    if action == AddendumAction.CREATE.value:
        location = check_in_location(addendum) if template == "check-in" else None
        return create_comment(template, who, location)

    if action == AddendumAction.CHANGE_STATUS.value:
        return change_status_comment(
            addendum.get("status") or activity_data.get("status", ""),
            addendum.get("activityName") or activity_data.get("activityName", ""),
            who,
        )

    if action == AddendumAction.SHARE.value:
        return share_comment(ctx, who, addendum.get("share") or [], recipient)

    if action == AddendumAction.REMOVE.value:
        removed = addendum.get("remove", "")
        name = "you" if removed == recipient else ctx.display_name(removed)
        return f"{who} removed {name}"

    if action == AddendumAction.UPDATE.value:
        return f"{who} updated {updated_field_names(addendum.get('activityOld'), ctx.after.to_dict())}"

    if action == AddendumAction.UPDATE_PHONE_NUMBER.value:
        return (
            f"Phone number '{addendum.get('oldPhoneNumber')}' was "
            f"changed to {addendum.get('newPhoneNumber')}"
        )

    # comment and checkIn carry their own text
    return addendum.get("comment") or ""
