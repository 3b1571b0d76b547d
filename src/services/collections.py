"""Document paths for every collection the backend reads or writes."""

ACTIVITIES = "Activities"
TEMPLATES = "ActivityTemplates"
OFFICES = "Offices"
PROFILES = "Profiles"
UPDATES = "Updates"
RECIPIENTS = "Recipients"
INITS = "Inits"
SITEMAP = "Sitemap"


def activity(activity_id: str) -> str:
    return f"{ACTIVITIES}/{activity_id}"


def assignees(activity_id: str) -> str:
    return f"{ACTIVITIES}/{activity_id}/Assignees"


def assignee(activity_id: str, phone_number: str) -> str:
    return f"{assignees(activity_id)}/{phone_number}"


def template(template_id: str) -> str:
    return f"{TEMPLATES}/{template_id}"


def office(office_id: str) -> str:
    return f"{OFFICES}/{office_id}"


def office_activities(office_id: str) -> str:
    return f"{OFFICES}/{office_id}/Activities"


def office_activity(office_id: str, activity_id: str) -> str:
    return f"{office_activities(office_id)}/{activity_id}"


def office_addenda(office_id: str) -> str:
    return f"{OFFICES}/{office_id}/Addendum"


def addendum(office_id: str, addendum_id: str) -> str:
    return f"{office_addenda(office_id)}/{addendum_id}"


def profile(phone_number: str) -> str:
    return f"{PROFILES}/{phone_number}"


def profile_activities(phone_number: str) -> str:
    return f"{PROFILES}/{phone_number}/Activities"


def profile_activity(phone_number: str, activity_id: str) -> str:
    return f"{profile_activities(phone_number)}/{activity_id}"


def profile_subscriptions(phone_number: str) -> str:
    return f"{PROFILES}/{phone_number}/Subscriptions"


def profile_subscription(phone_number: str, activity_id: str) -> str:
    return f"{profile_subscriptions(phone_number)}/{activity_id}"


def updates(uid: str) -> str:
    return f"{UPDATES}/{uid}"


def update_addendum(uid: str, addendum_id: str) -> str:
    return f"{UPDATES}/{uid}/Addendum/{addendum_id}"


def recipient(activity_id: str) -> str:
    return f"{RECIPIENTS}/{activity_id}"


def employee_status(office_id: str, month_year: str, phone_number: str) -> str:
    return f"{OFFICES}/{office_id}/Statuses/{month_year}/Employees/{phone_number}"


def attendance_day(office_id: str, month_year: str, phone_number: str, day: int) -> str:
    return f"{OFFICES}/{office_id}/Attendances/{month_year}/{phone_number}/{day}"


def attendance_summary(office_id: str, month_year: str, phone_number: str) -> str:
    return f"{OFFICES}/{office_id}/Attendances/{month_year}/{phone_number}/summary"


def directory(office_id: str) -> str:
    """Realtime employee directory of an office."""
    return f"{OFFICES}/{office_id}/Directory"


def directory_entry(office_id: str, phone_number: str) -> str:
    return f"{directory(office_id)}/{phone_number}"


def sitemap_entry(slug: str) -> str:
    return f"{SITEMAP}/{slug}"


def daily_status_report(date_key: str) -> str:
    return f"{INITS}/daily-status-report-{date_key}"


def counted_addendum(date_key: str, addendum_id: str) -> str:
    return f"{daily_status_report(date_key)}/Counted/{addendum_id}"


def counter() -> str:
    return f"{INITS}/counter"
