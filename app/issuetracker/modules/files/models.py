from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.issuetracker.models import Base
from app.issuetracker.utils import utcnow

if TYPE_CHECKING:
    from app.issuetracker.models import User
    from app.issuetracker.modules.issues.models import Issue


class File(Base):
    __tablename__ = "files"
    __table_args__ = (
        Index("idx_files_uploaded_by_id", "uploaded_by_id"),
        Index("idx_files_issue_id", "issue_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    filename: Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(255), nullable=False)
    size: Mapped[int] = mapped_column(Integer, nullable=False)
    key: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)

    uploaded_by_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    issue_id: Mapped[int | None] = mapped_column(ForeignKey("issues.id", ondelete="CASCADE"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    uploaded_by: Mapped["User"] = relationship("User", lazy="selectin")
    issue = relationship("Issue", back_populates="files")
