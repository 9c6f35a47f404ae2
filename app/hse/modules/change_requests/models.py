from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.hse.constants import CR_PRIORITIES, CR_REQUEST_TYPES, CR_STATUSES, sql_in
from app.hse.models import Base


class ChangeRequest(Base):
    """Post-publication proposal to revise a document; independent of approval history."""

    __tablename__ = "change_requests"
    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(CR_STATUSES)}", name="ck_change_requests_status"),
        CheckConstraint(f"request_type IN {sql_in(CR_REQUEST_TYPES)}", name="ck_change_requests_type"),
        CheckConstraint(f"priority IN {sql_in(CR_PRIORITIES)}", name="ck_change_requests_priority"),
        Index("idx_change_requests_document", "document_id"),
        Index("idx_change_requests_status", "status"),
        Index("idx_change_requests_requested_by", "requested_by_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)

    request_type: Mapped[str] = mapped_column(String(16), nullable=False, default="REVISION")
    priority: Mapped[str] = mapped_column(String(16), nullable=False, default="NORMAL")

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    proposed_changes: Mapped[str | None] = mapped_column(Text, nullable=True)
    affected_sections: Mapped[str | None] = mapped_column(Text, nullable=True)

    # PENDING -> APPROVED -> COMPLETED | PENDING -> REJECTED
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")

    reviewed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    review_comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    new_version_id: Mapped[int | None] = mapped_column(ForeignKey("document_versions.id", ondelete="SET NULL"), nullable=True)

    requested_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
