# File: cityfix/schemas/issue.py
"""Remote row-store shapes (the "Issue" vocabulary)."""
from datetime import datetime, timezone
from typing import Annotated, Optional, List

from pydantic import AfterValidator, BaseModel, Field

from cityfix.models.issue import IssueStatus, IssuePriority, IssueCategory

def _assume_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

UtcDatetime = Annotated[datetime, AfterValidator(_assume_utc)]

class IssueLocation(BaseModel):
    latitude: float
    longitude: float
    address: str = ""

class IssueIn(BaseModel):
    """Pre-validated payload for remote create."""
    title: str
    description: str = ""
    category: IssueCategory = IssueCategory.other
    priority: IssuePriority = IssuePriority.medium
    status: IssueStatus = IssueStatus.reported
    location: IssueLocation
    images: List[str] = Field(default_factory=list)
    user_id: str
    assigned_to: Optional[str] = None

class IssueRecord(BaseModel):
    id: str
    title: str
    description: str = ""
    category: IssueCategory
    priority: IssuePriority
    status: IssueStatus
    location: IssueLocation
    images: List[str] = Field(default_factory=list)
    user_id: str
    assigned_to: Optional[str] = None
    resolution_notes: Optional[str] = None
    votes: int = 0
    created_at: UtcDatetime
    updated_at: UtcDatetime

    # joined from profiles / issue_votes
    user_name: Optional[str] = None
    assigned_to_name: Optional[str] = None
    voter_ids: List[str] = Field(default_factory=list)

class CommentAuthorRecord(BaseModel):
    id: str
    name: str
    role: Optional[str] = None

class CommentRecord(BaseModel):
    id: str
    issue_id: str
    user_id: str
    content: str
    created_at: UtcDatetime
    updated_at: UtcDatetime
    user: Optional[CommentAuthorRecord] = None

