from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.issuetracker.models import Base
from app.issuetracker.utils import utcnow

if TYPE_CHECKING:
    from app.issuetracker.models import User


class Client(Base):
    __tablename__ = "clients"
    __table_args__ = (
        Index("idx_clients_manager_id", "manager_id"),
        Index("idx_clients_status", "status"),
        Index("idx_clients_name", "name"),
        Index("idx_clients_created_at", "created_at"),
        Index("idx_clients_updated_at", "updated_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(64), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    primary_contact: Mapped[str | None] = mapped_column(Text, nullable=True)
    sla: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="ACTIVE")  # ACTIVE, INACTIVE, LEAD, FORMER

    manager_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    manager = relationship("User", foreign_keys=[manager_id], lazy="selectin")
    domain_names: Mapped[list["DomainName"]] = relationship(
        "DomainName",
        back_populates="client",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="DomainName.created_at.desc()",
    )


class DomainName(Base):
    __tablename__ = "domain_names"
    __table_args__ = (
        Index("idx_domain_names_client_id", "client_id"),
        Index("idx_domain_names_expiration", "domain_expiration"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hosting_provider: Mapped[str | None] = mapped_column(Text, nullable=True)
    domain_expiration: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    domain_status: Mapped[str | None] = mapped_column(String(32), nullable=True)  # ACTIVE, EXPIRED, CANCELLED

    client_id: Mapped[int] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)

    client: Mapped[Client] = relationship("Client", back_populates="domain_names", lazy="selectin")
