from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.hse.constants import EXT_FILE_TYPES, EXT_STATUSES, sql_in
from app.hse.models import Base


class ExternalDocument(Base):
    """
    Register entry for a document issued outside the organization (ISO standard,
    government regulation, client procedure). The register tracks which edition is
    in use and when it is due for review; the content lives at ``file_url``.
    """

    __tablename__ = "external_documents"
    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(EXT_STATUSES)}", name="ck_external_documents_status"),
        CheckConstraint(f"file_type IN {sql_in(EXT_FILE_TYPES)}", name="ck_external_documents_file_type"),
        Index("idx_external_documents_code", "document_code"),
        Index("idx_external_documents_source", "source"),
        Index("idx_external_documents_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Not unique: superseded editions keep their rows under the same code.
    document_code: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False)  # e.g. "ISO", "Government", "Client"
    issued_by: Mapped[str | None] = mapped_column(String(255), nullable=True)

    version_number: Mapped[str | None] = mapped_column(String(64), nullable=True)  # issuer's own edition label
    issue_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_review_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    file_type: Mapped[str] = mapped_column(String(8), nullable=False, default="LINK")
    file_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="ACTIVE")
    distribution_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    owner_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    department: Mapped[str | None] = mapped_column(String(128), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    superseded_by_id: Mapped[int | None] = mapped_column(
        ForeignKey("external_documents.id", ondelete="SET NULL"), nullable=True
    )

    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
