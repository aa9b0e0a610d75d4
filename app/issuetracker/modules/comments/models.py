from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.issuetracker.models import Base
from app.issuetracker.utils import utcnow

if TYPE_CHECKING:
    from app.issuetracker.models import User
    from app.issuetracker.modules.issues.models import Issue


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("idx_comments_created_by_id", "created_by_id"),
        Index("idx_comments_issue_id", "issue_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)

    created_by_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    issue_id: Mapped[int] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    created_by: Mapped["User"] = relationship("User", lazy="selectin")
    issue: Mapped["Issue"] = relationship("Issue", back_populates="comments")
