# File: cityfix/services/issues.py
"""Remote row store for issues, comments and votes.

All operations are coroutines; the blocking SQLAlchemy work runs on the
threadpool with a fresh session per call. Every committed write publishes a
change event on the feed.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from cityfix.core.errors import IssueNotFound, RemoteStoreError
from cityfix.models.issue import Issue, IssueCategory, IssuePriority, IssueStatus
from cityfix.models.issue_comment import IssueComment
from cityfix.models.issue_vote import IssueVote
from cityfix.models.user import Profile
from cityfix.schemas.issue import CommentRecord, IssueIn, IssueLocation, IssueRecord
from cityfix.services.realtime import (
    DELETE, INSERT, ISSUE_COMMENTS, ISSUES, UPDATE,
    ChangeEvent, ChangeFeed, Listener, Subscription,
)

logger = logging.getLogger(__name__)

# columns a remote update may touch; "location" is expanded below
UPDATABLE = {"title", "description", "category", "priority", "status", "images",
             "assigned_to", "resolution_notes"}


class IssueBackend(Protocol):
    async def create_issue(self, payload: IssueIn) -> IssueRecord: ...
    async def list_issues(self, status: Optional[IssueStatus] = None,
                          category: Optional[IssueCategory] = None,
                          priority: Optional[IssuePriority] = None,
                          user_id: Optional[str] = None) -> List[IssueRecord]: ...
    async def get_issue(self, issue_id: str) -> IssueRecord: ...
    async def update_issue(self, issue_id: str, patch: Dict[str, Any]) -> IssueRecord: ...
    async def delete_issue(self, issue_id: str) -> None: ...
    async def vote(self, issue_id: str, user_id: str) -> None: ...
    async def create_comment(self, issue_id: str, user_id: str, content: str) -> CommentRecord: ...
    async def list_comments(self, issue_id: str) -> List[CommentRecord]: ...
    def subscribe(self, callback: Listener) -> Subscription: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class SqlIssueBackend:
    def __init__(self, session_factory: sessionmaker, feed: Optional[ChangeFeed] = None,
                 clock: Callable[[], datetime] = _utcnow,
                 id_factory: Callable[[], str] = _new_id) -> None:
        self._session_factory = session_factory
        self.feed = feed or ChangeFeed()
        self._clock = clock
        self._new_id = id_factory

    # ---------- plumbing ----------

    async def _run(self, fn: Callable[[Session], Any]) -> Any:
        def _work():
            with self._session_factory() as db:
                try:
                    return fn(db)
                except RemoteStoreError:
                    db.rollback()
                    raise
                except SQLAlchemyError as e:
                    db.rollback()
                    raise RemoteStoreError(str(e.orig if getattr(e, "orig", None) else e)) from e
        return await run_in_threadpool(_work)

    def _publish(self, table: str, kind: str, record_id: str, issue_id: Optional[str] = None):
        self.feed.publish(ChangeEvent(table=table, kind=kind, record_id=record_id, issue_id=issue_id))

    @staticmethod
    def _get_or_404(db: Session, issue_id: str) -> Issue:
        obj = db.get(Issue, issue_id)
        if obj is None:
            raise IssueNotFound(issue_id)
        return obj

    @staticmethod
    def _to_records(db: Session, issues: List[Issue]) -> List[IssueRecord]:
        if not issues:
            return []
        issue_ids = [i.id for i in issues]

        voters: Dict[str, List[str]] = {}
        for issue_id, user_id in db.execute(
            select(IssueVote.issue_id, IssueVote.user_id)
            .where(IssueVote.issue_id.in_(issue_ids))
            .order_by(IssueVote.id)
        ):
            voters.setdefault(issue_id, []).append(user_id)

        profile_ids = {i.user_id for i in issues} | {i.assigned_to for i in issues if i.assigned_to}
        names = dict(db.execute(select(Profile.id, Profile.name).where(Profile.id.in_(profile_ids))).all())

        return [
            IssueRecord(
                id=i.id,
                title=i.title,
                description=i.description or "",
                category=i.category,
                priority=i.priority,
                status=i.status,
                location=IssueLocation(latitude=i.latitude, longitude=i.longitude, address=i.address or ""),
                images=list(i.images or []),
                user_id=i.user_id,
                assigned_to=i.assigned_to,
                resolution_notes=i.resolution_notes,
                votes=i.votes or 0,
                created_at=i.created_at,
                updated_at=i.updated_at,
                user_name=names.get(i.user_id),
                assigned_to_name=names.get(i.assigned_to) if i.assigned_to else None,
                voter_ids=voters.get(i.id, []),
            )
            for i in issues
        ]

    # ---------- issues ----------

    async def create_issue(self, payload: IssueIn) -> IssueRecord:
        def _create(db: Session) -> IssueRecord:
            now = self._clock()
            obj = Issue(
                id=self._new_id(),
                title=payload.title,
                description=payload.description,
                category=payload.category,
                priority=payload.priority,
                status=payload.status,
                latitude=payload.location.latitude,
                longitude=payload.location.longitude,
                address=payload.location.address,
                images=list(payload.images),
                user_id=payload.user_id,
                assigned_to=payload.assigned_to,
                votes=0,
                created_at=now,
                updated_at=now,
            )
            db.add(obj)
            db.commit()
            db.refresh(obj)
            return self._to_records(db, [obj])[0]

        record = await self._run(_create)
        logger.info("issue %s created by %s", record.id, record.user_id)
        self._publish(ISSUES, INSERT, record.id, record.id)
        return record

    async def list_issues(self, status: Optional[IssueStatus] = None,
                          category: Optional[IssueCategory] = None,
                          priority: Optional[IssuePriority] = None,
                          user_id: Optional[str] = None) -> List[IssueRecord]:
        def _list(db: Session) -> List[IssueRecord]:
            q = select(Issue)
            if status:
                q = q.where(Issue.status == IssueStatus(status))
            if category:
                q = q.where(Issue.category == IssueCategory(category))
            if priority:
                q = q.where(Issue.priority == IssuePriority(priority))
            if user_id:
                q = q.where(Issue.user_id == user_id)
            q = q.order_by(Issue.created_at.desc(), Issue.id.desc())
            return self._to_records(db, list(db.scalars(q).all()))

        return await self._run(_list)

    async def get_issue(self, issue_id: str) -> IssueRecord:
        def _get(db: Session) -> IssueRecord:
            return self._to_records(db, [self._get_or_404(db, issue_id)])[0]

        return await self._run(_get)

    async def update_issue(self, issue_id: str, patch: Dict[str, Any]) -> IssueRecord:
        def _update(db: Session) -> IssueRecord:
            obj = self._get_or_404(db, issue_id)
            for key, value in patch.items():
                if key == "location":
                    loc = value if isinstance(value, IssueLocation) else IssueLocation.model_validate(value)
                    obj.latitude = loc.latitude
                    obj.longitude = loc.longitude
                    obj.address = loc.address
                elif key == "status":
                    obj.status = IssueStatus(value)
                elif key == "priority":
                    obj.priority = IssuePriority(value)
                elif key == "category":
                    obj.category = IssueCategory(value)
                elif key == "images":
                    obj.images = list(value)
                elif key in UPDATABLE:
                    setattr(obj, key, value)
                else:
                    raise RemoteStoreError(f"Unknown issue column: {key}")
            obj.updated_at = self._clock()
            db.commit()
            db.refresh(obj)
            return self._to_records(db, [obj])[0]

        record = await self._run(_update)
        self._publish(ISSUES, UPDATE, record.id, record.id)
        return record

    async def delete_issue(self, issue_id: str) -> None:
        def _delete(db: Session) -> None:
            obj = self._get_or_404(db, issue_id)
            db.execute(delete(IssueComment).where(IssueComment.issue_id == issue_id))
            db.execute(delete(IssueVote).where(IssueVote.issue_id == issue_id))
            db.delete(obj)
            db.commit()

        await self._run(_delete)
        logger.info("issue %s deleted", issue_id)
        self._publish(ISSUES, DELETE, issue_id, issue_id)

    async def vote(self, issue_id: str, user_id: str) -> None:
        """vote_on_issue: one vote per user; repeats are no-ops."""
        def _vote(db: Session) -> bool:
            obj = self._get_or_404(db, issue_id)
            exists = db.scalar(
                select(IssueVote.id).where(IssueVote.issue_id == issue_id, IssueVote.user_id == user_id)
            )
            if exists:
                return False
            db.add(IssueVote(issue_id=issue_id, user_id=user_id, created_at=self._clock()))
            try:
                db.flush()
            except IntegrityError:
                # lost a race against the same user's concurrent vote
                db.rollback()
                return False
            obj.votes = db.scalar(select(func.count(IssueVote.id)).where(IssueVote.issue_id == issue_id))
            obj.updated_at = self._clock()
            db.commit()
            return True

        if await self._run(_vote):
            self._publish(ISSUES, UPDATE, issue_id, issue_id)

    # ---------- comments ----------

    @staticmethod
    def _comment_record(comment: IssueComment, author: Optional[Profile]) -> CommentRecord:
        user = None
        if author is not None:
            user = {"id": author.id, "name": author.name, "role": author.role.value if author.role else None}
        return CommentRecord(
            id=comment.id,
            issue_id=comment.issue_id,
            user_id=comment.user_id,
            content=comment.content,
            created_at=comment.created_at,
            updated_at=comment.updated_at,
            user=user,
        )

    async def create_comment(self, issue_id: str, user_id: str, content: str) -> CommentRecord:
        def _create(db: Session) -> CommentRecord:
            self._get_or_404(db, issue_id)
            now = self._clock()
            comment = IssueComment(
                id=self._new_id(), issue_id=issue_id, user_id=user_id,
                content=content, created_at=now, updated_at=now,
            )
            db.add(comment)
            db.commit()
            db.refresh(comment)
            return self._comment_record(comment, db.get(Profile, user_id))

        record = await self._run(_create)
        self._publish(ISSUE_COMMENTS, INSERT, record.id, issue_id)
        return record

    async def list_comments(self, issue_id: str) -> List[CommentRecord]:
        def _list(db: Session) -> List[CommentRecord]:
            rows = db.execute(
                select(IssueComment, Profile)
                .outerjoin(Profile, Profile.id == IssueComment.user_id)
                .where(IssueComment.issue_id == issue_id)
                .order_by(IssueComment.created_at.asc(), IssueComment.id.asc())
            ).all()
            return [self._comment_record(c, p) for c, p in rows]

        return await self._run(_list)

    # ---------- realtime ----------

    def subscribe(self, callback: Listener) -> Subscription:
        return self.feed.subscribe(callback, table=ISSUES)

    def subscribe_comments(self, issue_id: str, callback: Listener) -> Subscription:
        return self.feed.subscribe(callback, table=ISSUE_COMMENTS, issue_id=issue_id)
