from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.hse.constants import ESIGN_STATUSES, sql_in
from app.hse.models import Base


class EsignRequest(Base):
    __tablename__ = "esign_requests"
    __table_args__ = (
        CheckConstraint(f"status IN {sql_in(ESIGN_STATUSES)}", name="ck_esign_requests_status"),
        CheckConstraint("retry_count >= 0", name="ck_esign_requests_retry_count"),
        Index("idx_esign_requests_document", "document_id"),
        Index("idx_esign_requests_version", "version_id"),
        Index("idx_esign_requests_status", "status"),
        Index("idx_esign_requests_signer", "signer_user_id"),
        Index("uq_esign_requests_external_id", "external_request_id", unique=True),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    version_id: Mapped[int] = mapped_column(ForeignKey("document_versions.id", ondelete="CASCADE"), nullable=False)
    workflow_id: Mapped[int | None] = mapped_column(ForeignKey("approval_workflows.id", ondelete="SET NULL"), nullable=True)

    provider: Mapped[str] = mapped_column(String(64), nullable=False, default="local")
    external_request_id: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # PENDING -> SIGNED | FAILED; FAILED -> PENDING (retry) | FAILED_PERMANENT
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="PENDING")

    signer_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    signer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    signer_position: Mapped[str | None] = mapped_column(String(128), nullable=True)

    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    signed_file_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    failed_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_retry_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    version: Mapped["DocumentVersion"] = relationship("DocumentVersion", lazy="selectin")
