from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.issuetracker.models import Base
from app.issuetracker.utils import utcnow

if TYPE_CHECKING:
    from app.issuetracker.models import User
    from app.issuetracker.modules.clients.models import Client
    from app.issuetracker.modules.comments.models import Comment
    from app.issuetracker.modules.files.models import File
    from app.issuetracker.modules.notifications.models import Notification


class Issue(Base):
    __tablename__ = "issues"
    __table_args__ = (
        Index("idx_issues_assigned_to_id", "assigned_to_id"),
        Index("idx_issues_reported_by_id", "reported_by_id"),
        Index("idx_issues_client_id", "client_id"),
        Index("idx_issues_status", "status"),
        Index("idx_issues_priority", "priority"),
        Index("idx_issues_created_at", "created_at"),
        Index("idx_issues_updated_at", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="NEW")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="MEDIUM")

    assigned_to_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reported_by_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="RESTRICT"), nullable=False)

    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    # Bug-report details
    environment: Mapped[str | None] = mapped_column(String(32), nullable=True, default="LOCAL")
    how_discovered: Mapped[str | None] = mapped_column(String(32), nullable=True)
    steps_to_reproduce: Mapped[str | None] = mapped_column(Text, nullable=True)
    expected_result: Mapped[str | None] = mapped_column(Text, nullable=True)
    actual_result: Mapped[str | None] = mapped_column(Text, nullable=True)
    impact: Mapped[str | None] = mapped_column(Text, nullable=True)
    related_logs: Mapped[str | None] = mapped_column(Text, nullable=True)
    work_around_available: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    work_around_description: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    assigned_to = relationship("User", foreign_keys=[assigned_to_id], lazy="selectin")
    reported_by: Mapped["User"] = relationship("User", foreign_keys=[reported_by_id], lazy="selectin")
    client: Mapped["Client"] = relationship("Client", lazy="selectin")

    comments: Mapped[list["Comment"]] = relationship(
        "Comment",
        back_populates="issue",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    files: Mapped[list["File"]] = relationship(
        "File",
        back_populates="issue",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    notifications: Mapped[list["Notification"]] = relationship(
        "Notification",
        back_populates="issue",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
