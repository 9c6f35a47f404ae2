from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.hse.models import Base


class Distribution(Base):
    """One recipient's copy of a published version ("read & understood" tracking)."""

    __tablename__ = "document_distributions"
    __table_args__ = (
        UniqueConstraint("version_id", "recipient_user_id", name="uq_distributions_version_recipient"),
        Index("idx_distributions_document", "document_id"),
        Index("idx_distributions_recipient", "recipient_user_id"),
        Index("idx_distributions_is_read", "is_read"),
        Index("idx_distributions_deadline", "deadline"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    version_id: Mapped[int] = mapped_column(ForeignKey("document_versions.id", ondelete="CASCADE"), nullable=False)

    recipient_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    recipient_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_department: Mapped[str | None] = mapped_column(String(128), nullable=True)

    is_mandatory: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    deadline: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    acknowledged_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)

    distributed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    distributed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    deadline_notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    document: Mapped["Document"] = relationship("Document", lazy="selectin")
    version: Mapped["DocumentVersion"] = relationship("DocumentVersion", lazy="selectin")
