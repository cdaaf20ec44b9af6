# File: cityfix/services/vocabulary.py
"""Mapping between the UI report vocabulary and the remote issue vocabulary.

Every function is total: unknown input falls back to the catch-all value of
the target vocabulary. The projections are lossy in two places:

* categories collapse many-to-one on the way out (pothole and road_damage are
  both stored as ``road``), so reading a record back yields the canonical
  local category for that remote value;
* ``under_review`` has no remote status and is written as ``reported``.
"""
from cityfix.models.issue import IssueCategory, IssuePriority, IssueStatus

CATEGORY_TO_REMOTE = {
    "pothole": IssueCategory.road,
    "road_damage": IssueCategory.road,
    "streetlight": IssueCategory.electricity,
    "garbage": IssueCategory.waste,
    "flooding": IssueCategory.waste,
    "sign_damage": IssueCategory.waste,
    "graffiti": IssueCategory.other,
    "other": IssueCategory.other,
}

CATEGORY_FROM_REMOTE = {
    IssueCategory.road: "pothole",
    IssueCategory.water: "flooding",
    IssueCategory.electricity: "streetlight",
    IssueCategory.waste: "garbage",
    IssueCategory.other: "other",
}

SEVERITY_TO_PRIORITY = {
    "low": IssuePriority.low,
    "medium": IssuePriority.medium,
    "high": IssuePriority.high,
}

PRIORITY_TO_SEVERITY = {
    IssuePriority.low: "low",
    IssuePriority.medium: "medium",
    IssuePriority.high: "high",
    IssuePriority.critical: "high",
}

STATUS_TO_REMOTE = {
    "reported": IssueStatus.reported,
    "under_review": IssueStatus.reported,
    "in_progress": IssueStatus.in_progress,
    "resolved": IssueStatus.resolved,
    "closed": IssueStatus.closed,
}


def _remote_value(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def to_remote_category(category: str) -> IssueCategory:
    return CATEGORY_TO_REMOTE.get(category, IssueCategory.other)


def to_local_category(category) -> str:
    return CATEGORY_FROM_REMOTE.get(_remote_value(IssueCategory, category), "other")


def to_remote_priority(severity: str) -> IssuePriority:
    return SEVERITY_TO_PRIORITY.get(severity, IssuePriority.medium)


def to_local_severity(priority) -> str:
    return PRIORITY_TO_SEVERITY.get(_remote_value(IssuePriority, priority), "medium")


def to_remote_status(status: str) -> IssueStatus:
    return STATUS_TO_REMOTE.get(status, IssueStatus.reported)


def to_local_status(status) -> str:
    remote = _remote_value(IssueStatus, status)
    return remote.value if remote else "reported"
