# File: cityfix/services/dashboard.py
"""Filtering, sorting, paging and summary counts over the in-memory report list."""
import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from cityfix.schemas.report import REPORT_CATEGORIES, REPORT_STATUSES, Report

SORT_FIELDS = {
    "createdAt": "created_at",
    "updatedAt": "updated_at",
    "title": "title",
    "status": "status",
    "severity": "severity",
    "category": "category",
    "upvotes": "upvotes",
}

_SEVERITY_RANK = {"low": 0, "medium": 1, "high": 2}


@dataclass
class Page:
    items: List[Report]
    total: int
    page: int
    per_page: int
    total_pages: int


def _unset(value: Optional[str]) -> bool:
    return not value or value == "all"


def filter_reports(reports: Iterable[Report], search: Optional[str] = None,
                   status: Optional[str] = None, category: Optional[str] = None) -> List[Report]:
    term = (search or "").strip().lower()
    out = []
    for r in reports:
        if term and not (
            term in r.title.lower()
            or term in r.description.lower()
            or term in r.location.address.lower()
        ):
            continue
        if not _unset(status) and r.status != status:
            continue
        if not _unset(category) and r.category != category:
            continue
        out.append(r)
    return out


def sort_reports(reports: Iterable[Report], field: str = "createdAt", direction: str = "desc") -> List[Report]:
    attr = SORT_FIELDS.get(field)
    if attr is None:
        raise ValueError(f"Unsupported sort field: {field}")
    if direction not in ("asc", "desc"):
        raise ValueError(f"Unsupported sort direction: {direction}")

    def key(r: Report):
        value = getattr(r, attr)
        if attr == "severity":
            return _SEVERITY_RANK[value]
        if isinstance(value, str):
            return value.lower()
        return value

    return sorted(reports, key=key, reverse=direction == "desc")


def paginate(items: List[Report], page: int = 1, per_page: int = 10) -> Page:
    if page < 1 or per_page < 1:
        raise ValueError("page and per_page must be positive")
    total = len(items)
    start = (page - 1) * per_page
    return Page(
        items=items[start:start + per_page],
        total=total,
        page=page,
        per_page=per_page,
        total_pages=math.ceil(total / per_page),
    )


def summarize(reports: Iterable[Report], now: Optional[datetime] = None) -> Dict[str, int]:
    now = now or datetime.now(timezone.utc)
    week_ago = now - timedelta(days=7)
    reports = list(reports)
    return {
        "total": len(reports),
        "new_this_week": sum(1 for r in reports if r.created_at > week_ago),
        "pending_review": sum(1 for r in reports if r.status == "reported"),
        "in_progress": sum(1 for r in reports if r.status in ("in_progress", "under_review")),
        "resolved": sum(1 for r in reports if r.status in ("resolved", "closed")),
    }


def status_distribution(reports: Iterable[Report]) -> Dict[str, int]:
    counts = {s: 0 for s in REPORT_STATUSES}
    for r in reports:
        counts[r.status] += 1
    return counts


def category_distribution(reports: Iterable[Report]) -> Dict[str, int]:
    counts = {c: 0 for c in REPORT_CATEGORIES}
    for r in reports:
        counts[r.category] += 1
    return counts
