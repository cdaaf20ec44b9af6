# File: cityfix/models/issue.py
from __future__ import annotations
from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import String, Float, Enum, Integer, DateTime, ForeignKey, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from cityfix.db.base import Base

class IssueStatus(PyEnum):
    reported = "reported"
    in_progress = "in_progress"
    resolved = "resolved"
    closed = "closed"

class IssuePriority(PyEnum):
    low = "low"
    medium = "medium"
    high = "high"
    critical = "critical"

class IssueCategory(PyEnum):
    road = "road"
    water = "water"
    electricity = "electricity"
    waste = "waste"
    other = "other"

class Issue(Base):
    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    title: Mapped[str] = mapped_column(String(200), index=True)
    description: Mapped[str] = mapped_column(String(4000), default="")
    status: Mapped[IssueStatus] = mapped_column(Enum(IssueStatus), default=IssueStatus.reported, index=True)
    priority: Mapped[IssuePriority] = mapped_column(Enum(IssuePriority), default=IssuePriority.medium, index=True)
    category: Mapped[IssueCategory] = mapped_column(Enum(IssueCategory), default=IssueCategory.other, index=True)

    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    address: Mapped[str] = mapped_column(String(300), default="")
    images: Mapped[list] = mapped_column(JSON, default=list)

    user_id: Mapped[str] = mapped_column(ForeignKey("profiles.id", ondelete="CASCADE"), index=True)
    assigned_to: Mapped[str | None] = mapped_column(ForeignKey("profiles.id", ondelete="SET NULL"), index=True, nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)
    votes: Mapped[int] = mapped_column(Integer, default=0, server_default="0")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

Index("ix_issues_lat_lng", Issue.latitude, Issue.longitude)
