from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.hse.constants import COMPLETION_POLICIES, DECISIONS, STEP_MODES, sql_in
from app.hse.models import Base

_OPEN_WORKFLOW = text("status = 'PENDING'")


class ApprovalWorkflow(Base):
    __tablename__ = "approval_workflows"
    __table_args__ = (
        CheckConstraint("status IN ('PENDING','APPROVED','REJECTED')", name="ck_approval_workflows_status"),
        CheckConstraint("current_step >= 1 AND current_step <= total_steps", name="ck_approval_workflows_current_step"),
        Index("idx_approval_workflows_document", "document_id"),
        Index("idx_approval_workflows_status", "status"),
        # At most one open workflow per document.
        Index(
            "uq_approval_workflows_open_document",
            "document_id",
            unique=True,
            postgresql_where=_OPEN_WORKFLOW,
            sqlite_where=_OPEN_WORKFLOW,
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    document_id: Mapped[int] = mapped_column(ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)
    version_id: Mapped[int] = mapped_column(ForeignKey("document_versions.id", ondelete="CASCADE"), nullable=False)

    workflow_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    total_steps: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # PENDING -> APPROVED | REJECTED (closed exactly once)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")
    final_decision: Mapped[str | None] = mapped_column(String(16), nullable=True)
    final_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    initiated_by_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    initiated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    steps: Mapped[list["ApprovalStep"]] = relationship(
        "ApprovalStep",
        back_populates="workflow",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ApprovalStep.step_number",
    )

    document: Mapped["Document"] = relationship("Document", lazy="selectin")
    version: Mapped["DocumentVersion"] = relationship("DocumentVersion", lazy="selectin")

    @property
    def is_open(self) -> bool:
        return self.status == "PENDING"

    def step(self, step_number: int) -> "ApprovalStep | None":
        for st in self.steps:
            if st.step_number == step_number:
                return st
        return None


class ApprovalStep(Base):
    __tablename__ = "approval_steps"
    __table_args__ = (
        UniqueConstraint("workflow_id", "step_number", name="uq_approval_steps_workflow_step"),
        CheckConstraint(f"mode IN {sql_in(STEP_MODES)}", name="ck_approval_steps_mode"),
        CheckConstraint(f"completion_policy IN {sql_in(COMPLETION_POLICIES)}", name="ck_approval_steps_policy"),
        CheckConstraint(
            "status IN ('PENDING','IN_PROGRESS','COMPLETED','REJECTED')",
            name="ck_approval_steps_status",
        ),
        CheckConstraint("quorum_required >= 0 AND quorum_required <= quorum_target", name="ck_approval_steps_quorum"),
        Index("idx_approval_steps_workflow", "workflow_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    workflow_id: Mapped[int] = mapped_column(ForeignKey("approval_workflows.id", ondelete="CASCADE"), nullable=False)

    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    step_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # SERIAL: assignees decide in sequence order; PARALLEL: any order
    mode: Mapped[str] = mapped_column(String(16), nullable=False, default="SERIAL")
    completion_policy: Mapped[str] = mapped_column(String(16), nullable=False, default="QUORUM")

    # quorum_target is what the submitter asked for; quorum_required never exceeds the assignee count.
    quorum_target: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    quorum_required: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    quorum_achieved: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # display only

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="PENDING")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    workflow: Mapped[ApprovalWorkflow] = relationship("ApprovalWorkflow", back_populates="steps", lazy="selectin")
    assignees: Mapped[list["StepAssignee"]] = relationship(
        "StepAssignee",
        back_populates="step",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="StepAssignee.sequence",
    )


class StepAssignee(Base):
    __tablename__ = "approval_step_assignees"
    __table_args__ = (
        UniqueConstraint("step_id", "assignee_user_id", name="uq_step_assignees_step_user"),
        CheckConstraint(f"decision IS NULL OR decision IN {sql_in(DECISIONS)}", name="ck_step_assignees_decision"),
        Index("idx_step_assignees_step", "step_id"),
        Index("idx_step_assignees_assignee", "assignee_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    step_id: Mapped[int] = mapped_column(ForeignKey("approval_steps.id", ondelete="CASCADE"), nullable=False)

    assignee_user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    assignee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    assignee_position: Mapped[str | None] = mapped_column(String(128), nullable=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Write-once: NULL -> APPROVED | REJECTED
    decision: Mapped[str | None] = mapped_column(String(16), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    notified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    step: Mapped[ApprovalStep] = relationship("ApprovalStep", back_populates="assignees", lazy="selectin")
