# File: cityfix/schemas/report.py
"""UI-facing shapes (the "Report" vocabulary), serialized camelCase."""
from datetime import datetime
from typing import Optional, Literal, List, get_args

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ReportCategory = Literal[
    "pothole",
    "streetlight",
    "garbage",
    "graffiti",
    "road_damage",
    "flooding",
    "sign_damage",
    "other",
]
ReportStatus = Literal["reported", "under_review", "in_progress", "resolved", "closed"]
ReportSeverity = Literal["low", "medium", "high"]
CommentRole = Literal["citizen", "admin"]

REPORT_CATEGORIES: tuple[str, ...] = get_args(ReportCategory)
REPORT_STATUSES: tuple[str, ...] = get_args(ReportStatus)
REPORT_SEVERITIES: tuple[str, ...] = get_args(ReportSeverity)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Coordinates(CamelModel):
    lat: float
    lng: float


class Location(CamelModel):
    address: str = ""
    coordinates: Coordinates


class UserRef(CamelModel):
    id: str
    name: str = "Anonymous"


class CommentAuthor(UserRef):
    role: CommentRole = "citizen"


class ReportComment(CamelModel):
    id: str
    text: str
    created_at: datetime
    user: CommentAuthor


class CommentDraft(CamelModel):
    text: str = Field(min_length=1, max_length=4000)
    user: CommentAuthor


class Report(CamelModel):
    id: str
    title: str
    description: str = ""
    category: ReportCategory
    location: Location
    images: List[str] = Field(default_factory=list)
    status: ReportStatus = "reported"
    severity: ReportSeverity = "medium"
    reported_by: UserRef
    assigned_to: Optional[UserRef] = None
    created_at: datetime
    updated_at: datetime
    upvotes: int = 0
    upvoted_by: List[str] = Field(default_factory=list)
    comments: List[ReportComment] = Field(default_factory=list)


class ReportDraft(CamelModel):
    """A report as submitted, before the store assigns id, timestamps and counters."""
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: ReportCategory = "other"
    location: Location
    images: List[str] = Field(default_factory=list)
    status: ReportStatus = "reported"
    severity: ReportSeverity = "medium"
    reported_by: UserRef
    assigned_to: Optional[UserRef] = None


class ReportUpdate(CamelModel):
    """Partial update; only explicitly set fields are applied."""
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    category: Optional[ReportCategory] = None
    severity: Optional[ReportSeverity] = None
    location: Optional[Location] = None
    images: Optional[List[str]] = None
    status: Optional[ReportStatus] = None
    assigned_to: Optional[UserRef] = None


class ReportSubmission(CamelModel):
    """Body of POST /reports; the reporter comes from the session."""
    title: str = Field(min_length=1, max_length=200)
    description: str = ""
    category: ReportCategory = "other"
    location: Location
    images: List[str] = Field(default_factory=list)
    severity: ReportSeverity = "medium"


class CommentIn(CamelModel):
    text: str = Field(min_length=1, max_length=4000)


class ReportPage(CamelModel):
    items: List[Report]
    total: int
    page: int
    per_page: int
    total_pages: int
