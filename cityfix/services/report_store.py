# File: cityfix/services/report_store.py
"""In-memory report collection kept in sync with the remote row store.

``ReportStore`` is the single source of truth the API reads from. Writes go to
the remote store first and are mirrored locally only once the remote call has
returned, with one exception: upvotes advance locally even when the remote
vote fails. Such divergent votes are kept, one per (report, user), until a
retry confirms them or the backend says the report is gone.

A subscription replaces the local collection wholesale on every remote
change notification, re-sending divergent votes first.
"""
from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from cityfix.core.errors import IssueNotFound, RemoteStoreError
from cityfix.schemas.issue import CommentRecord, IssueIn, IssueLocation, IssueRecord
from cityfix.schemas.report import (
    CommentAuthor, CommentDraft, Coordinates, Location, Report, ReportComment,
    ReportDraft, ReportUpdate, UserRef,
)
from cityfix.services.issues import IssueBackend
from cityfix.services.vocabulary import (
    to_local_category, to_local_severity, to_local_status,
    to_remote_category, to_remote_priority, to_remote_status,
)

logger = logging.getLogger(__name__)

ANONYMOUS = "Anonymous"

PENDING = "pending"
CONFIRMED = "confirmed"
FAILED = "failed"
ABANDONED = "abandoned"

OnChange = Callable[[List[Report]], Union[None, Awaitable[None]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VoteAttempt:
    report_id: str
    user_id: str
    state: str = PENDING
    error: Optional[str] = None
    attempts: int = 0
    created_at: datetime = field(default_factory=_utcnow)


# ---------- shape conversion ----------

def _to_location(loc: IssueLocation) -> Location:
    return Location(address=loc.address, coordinates=Coordinates(lat=loc.latitude, lng=loc.longitude))


def _to_issue_location(loc: Location) -> IssueLocation:
    return IssueLocation(latitude=loc.coordinates.lat, longitude=loc.coordinates.lng, address=loc.address)


def issue_to_report(record: IssueRecord) -> Report:
    assigned = None
    if record.assigned_to:
        assigned = UserRef(id=record.assigned_to, name=record.assigned_to_name or ANONYMOUS)
    return Report(
        id=record.id,
        title=record.title,
        description=record.description,
        category=to_local_category(record.category),
        location=_to_location(record.location),
        images=list(record.images),
        status=to_local_status(record.status),
        severity=to_local_severity(record.priority),
        reported_by=UserRef(id=record.user_id, name=record.user_name or ANONYMOUS),
        assigned_to=assigned,
        created_at=record.created_at,
        updated_at=record.updated_at,
        upvotes=record.votes,
        upvoted_by=list(record.voter_ids),
        comments=[],
    )


def comment_to_report_comment(record: CommentRecord) -> ReportComment:
    author = record.user
    role = author.role if author and author.role in ("citizen", "admin") else "citizen"
    return ReportComment(
        id=record.id,
        text=record.content,
        created_at=record.created_at,
        user=CommentAuthor(
            id=author.id if author else record.user_id,
            name=author.name if author else ANONYMOUS,
            role=role,
        ),
    )


def update_to_patch(update: ReportUpdate) -> dict:
    """Project the forwardable fields of a partial update onto remote columns."""
    changes = update.model_dump(exclude_unset=True)
    patch: dict[str, Any] = {}
    if changes.get("title") is not None:
        patch["title"] = update.title
    if changes.get("description") is not None:
        patch["description"] = update.description
    if changes.get("category") is not None:
        patch["category"] = to_remote_category(update.category)
    if changes.get("severity") is not None:
        patch["priority"] = to_remote_priority(update.severity)
    if changes.get("location") is not None:
        patch["location"] = _to_issue_location(update.location)
    if changes.get("images") is not None:
        patch["images"] = list(update.images)
    if changes.get("status") is not None:
        patch["status"] = to_remote_status(update.status)
    return patch


class ReportStore:
    def __init__(self, backend: IssueBackend, clock: Callable[[], datetime] = _utcnow) -> None:
        self._backend = backend
        self._clock = clock
        self._reports: List[Report] = []
        # divergent votes only, keyed by (report_id, user_id)
        self._votes: Dict[Tuple[str, str], VoteAttempt] = {}
        self.is_loading = True

    # ---------- reads ----------

    def list_reports(self) -> List[Report]:
        return list(self._reports)

    def _find(self, report_id: str) -> Optional[int]:
        for idx, report in enumerate(self._reports):
            if report.id == report_id:
                return idx
        return None

    def _replace(self, report_id: str, fn: Callable[[Report], Report]) -> Optional[Report]:
        idx = self._find(report_id)
        if idx is None:
            return None
        self._reports[idx] = fn(self._reports[idx])
        return self._reports[idx]

    async def refresh(self) -> List[Report]:
        records = await self._backend.list_issues()
        self._reports = [issue_to_report(r) for r in records]
        self.is_loading = False
        logger.debug("report store refreshed with %d reports", len(self._reports))
        return self.list_reports()

    async def get_report_by_id(self, report_id: str) -> Optional[Report]:
        idx = self._find(report_id)
        if idx is None:
            return None
        report = self._reports[idx]
        try:
            comments = await self._backend.list_comments(report_id)
        except RemoteStoreError:
            logger.error("Error fetching comments for report %s", report_id, exc_info=True)
            return report
        return report.model_copy(update={"comments": [comment_to_report_comment(c) for c in comments]})

    # ---------- writes ----------

    async def add_report(self, draft: ReportDraft) -> Report:
        payload = IssueIn(
            title=draft.title,
            description=draft.description,
            category=to_remote_category(draft.category),
            status=to_remote_status(draft.status),
            priority=to_remote_priority(draft.severity),
            location=_to_issue_location(draft.location),
            images=list(draft.images),
            user_id=draft.reported_by.id,
        )
        created = await self._backend.create_issue(payload)

        report = Report(
            id=created.id,
            title=created.title,
            description=created.description,
            category=draft.category,
            location=_to_location(created.location),
            images=list(created.images),
            status=to_local_status(created.status),
            severity=draft.severity,
            reported_by=draft.reported_by,
            assigned_to=draft.assigned_to,
            created_at=created.created_at,
            updated_at=created.updated_at,
            upvotes=created.votes,
            upvoted_by=list(created.voter_ids),
            comments=[],
        )
        # a refetch may already have delivered this row with a collapsed category
        if self._replace(report.id, lambda _: report) is None:
            self._reports.append(report)
        return report

    async def update_report(self, report_id: str, update: ReportUpdate) -> Optional[Report]:
        await self._backend.update_issue(report_id, update_to_patch(update))
        changes = {
            k: getattr(update, k) for k in update.model_fields_set
            if getattr(update, k) is not None or k == "assigned_to"
        }
        changes["updated_at"] = self._clock()
        return self._replace(report_id, lambda r: r.model_copy(update=changes))

    async def delete_report(self, report_id: str) -> None:
        await self._backend.delete_issue(report_id)
        self._reports = [r for r in self._reports if r.id != report_id]

    async def upvote_report(self, report_id: str, user_id: str) -> Optional[Report]:
        attempt = self._votes.get((report_id, user_id)) or VoteAttempt(report_id=report_id, user_id=user_id)
        await self._send_vote(attempt)

        def _apply(report: Report) -> Report:
            if user_id in report.upvoted_by:
                return report
            return report.model_copy(update={
                "upvotes": report.upvotes + 1,
                "upvoted_by": [*report.upvoted_by, user_id],
                "updated_at": self._clock(),
            })

        return self._replace(report_id, _apply)

    async def _send_vote(self, attempt: VoteAttempt) -> None:
        key = (attempt.report_id, attempt.user_id)
        attempt.attempts += 1
        try:
            await self._backend.vote(attempt.report_id, attempt.user_id)
        except IssueNotFound as e:
            attempt.state = ABANDONED
            attempt.error = e.message
            self._votes.pop(key, None)
            logger.warning("Dropping vote on missing issue %s", attempt.report_id)
        except RemoteStoreError as e:
            attempt.state = FAILED
            attempt.error = e.message
            self._votes[key] = attempt
            logger.warning("Error upvoting issue %s remotely", attempt.report_id, exc_info=True)
        else:
            attempt.state = CONFIRMED
            attempt.error = None
            self._votes.pop(key, None)

    def failed_votes(self) -> List[VoteAttempt]:
        return list(self._votes.values())

    async def retry_failed_votes(self) -> int:
        """Re-send votes whose remote call failed; returns how many are now confirmed."""
        confirmed = 0
        for attempt in self.failed_votes():
            await self._send_vote(attempt)
            if attempt.state == CONFIRMED:
                confirmed += 1
        if confirmed:
            logger.info("reconciled %d upvotes, %d still pending", confirmed, len(self._votes))
        return confirmed

    async def add_comment(self, report_id: str, draft: CommentDraft) -> ReportComment:
        record = await self._backend.create_comment(report_id, draft.user.id, draft.text)
        comment = ReportComment(id=record.id, text=draft.text, created_at=record.created_at, user=draft.user)
        self._replace(report_id, lambda r: r.model_copy(update={
            "comments": [*r.comments, comment],
            "updated_at": self._clock(),
        }))
        return comment

    # ---------- realtime ----------

    def subscribe(self, on_change: Optional[OnChange] = None) -> Callable[[], None]:
        """Refetch everything on each remote change; returns a disposer."""
        async def _handle(_event) -> None:
            if self._votes:
                await self.retry_failed_votes()
            try:
                reports = await self.refresh()
            except RemoteStoreError:
                logger.error("Error refreshing reports after change notification", exc_info=True)
                return
            if on_change is not None:
                result = on_change(reports)
                if inspect.isawaitable(result):
                    await result

        subscription = self._backend.subscribe(_handle)
        return subscription.unsubscribe
