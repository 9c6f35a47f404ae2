from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.hse.constants import EXPORT_ACTIONS, LIFECYCLE_STATUSES, VERSION_STATUSES, sql_in
from app.hse.models import Base


class Document(Base):
    """Masterlist entry for one controlled document."""

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(f"lifecycle_status IN {sql_in(LIFECYCLE_STATUSES)}", name="ck_documents_lifecycle_status"),
        Index("idx_documents_category", "category"),
        Index("idx_documents_department", "department"),
        Index("idx_documents_lifecycle_status", "lifecycle_status"),
        Index("idx_documents_owner", "owner_user_id"),
        Index("idx_documents_expiry_date", "expiry_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)  # e.g. "HSE-SOP-001"
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    department: Mapped[str] = mapped_column(String(128), nullable=False)

    # Pointer to the current DocumentVersion (denormalized for quick access)
    current_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_revision: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    owner_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)

    lifecycle_status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")
    control_type: Mapped[str] = mapped_column(String(32), nullable=False, default="CONTROLLED")
    sign_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    effective_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    next_review_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    keywords: Mapped[str | None] = mapped_column(Text, nullable=True)  # comma-separated, lowercase

    created_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    versions: Mapped[list["DocumentVersion"]] = relationship(
        "DocumentVersion",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=lambda: [DocumentVersion.version_number, DocumentVersion.revision_number],
    )

    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_user_id], lazy="selectin")

    @property
    def version_label(self) -> str:
        return f"v{self.current_version}r{self.current_revision}"

    @property
    def keyword_list(self) -> list[str]:
        return [k for k in (self.keywords or "").split(",") if k]

    def find_version(self, version_number: int, revision_number: int) -> "DocumentVersion | None":
        for v in self.versions:
            if v.version_number == version_number and v.revision_number == revision_number:
                return v
        return None


class DocumentVersion(Base):
    """Immutable snapshot of one revision; only status and the signed file are updated later."""

    __tablename__ = "document_versions"
    __table_args__ = (
        UniqueConstraint("document_id", "version_number", "revision_number", name="uq_document_version_revision"),
        CheckConstraint(f"status IN {sql_in(VERSION_STATUSES)}", name="ck_document_versions_status"),
        Index("idx_document_versions_document", "document_id"),
        Index("idx_document_versions_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    revision_number: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Opaque blob-store reference; file bytes are never interpreted here.
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_path: Mapped[str] = mapped_column(String(512), nullable=False)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False, default="application/pdf")
    sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)

    signed_file_path: Mapped[str | None] = mapped_column(String(512), nullable=True)
    signed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="DRAFT")
    changes_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    uploaded_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    document: Mapped[Document] = relationship(
        "Document",
        back_populates="versions",
        foreign_keys=[document_id],
        lazy="selectin",
    )

    @property
    def label(self) -> str:
        return f"v{self.version_number}r{self.revision_number}"


class DisposalRecord(Base):
    """
    Append-only retirement record. ``document_id`` is a plain column so the record
    outlives any later cleanup of the masterlist row.
    """

    __tablename__ = "document_disposal_records"
    __table_args__ = (
        Index("idx_disposal_records_document", "document_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(Integer, nullable=False)
    document_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    document_title: Mapped[str | None] = mapped_column(String(255), nullable=True)

    disposed_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    disposed_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    method: Mapped[str] = mapped_column(String(64), nullable=False, default="ELECTRONIC_DELETION")
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class DocumentExportLog(Base):
    """
    One copy taken out of the register (download, print or on-screen view).
    Every exported copy is uncontrolled; ``watermark_text`` is the stamp it carries.
    """

    __tablename__ = "document_export_logs"
    __table_args__ = (
        CheckConstraint(f"action IN {sql_in(EXPORT_ACTIONS)}", name="ck_document_export_logs_action"),
        Index("idx_document_export_logs_document", "document_id"),
        Index("idx_document_export_logs_exported_by", "exported_by_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    version_id: Mapped[int] = mapped_column(ForeignKey("document_versions.id", ondelete="CASCADE"), nullable=False)
    action: Mapped[str] = mapped_column(String(16), nullable=False)

    exported_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    exported_by_name: Mapped[str] = mapped_column(String(255), nullable=False)

    watermark_text: Mapped[str | None] = mapped_column(String(512), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
