import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docapproval.database import Base
from docapproval.models.workflow import WorkflowStage

DOCUMENT_APPROVAL_STATUSES = ("pending", "in_progress", "approved", "rejected")
FINAL_STATUSES = ("approved", "rejected")
STAGE_APPROVAL_STATUSES = ("pending", "approved", "rejected")


class DocumentApproval(Base):
    __tablename__ = "document_approvals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), nullable=False
    )
    document_name: Mapped[Optional[str]] = mapped_column(String(255))
    workflow_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_workflows.id"), nullable=False
    )
    current_stage_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workflow_stages.id")
    )
    status: Mapped[str] = mapped_column(String(20), default="pending")
    submitted_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    submitted_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    stage_started_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # Compare-and-swap counter: every UPDATE carries "WHERE version = :old"
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN (%s)" % ", ".join(f"'{s}'" for s in DOCUMENT_APPROVAL_STATUSES),
            name="chk_document_approval_status",
        ),
        Index("idx_document_approvals_document", "document_id"),
        Index("idx_document_approvals_status", "status"),
        Index(
            "uq_document_approvals_in_progress",
            "document_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
        ),
    )

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_STATUSES


class StageApproval(Base):
    __tablename__ = "stage_approvals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    document_approval_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("document_approvals.id"), nullable=False
    )
    stage_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("workflow_stages.id"), nullable=False
    )
    approver_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    status: Mapped[str] = mapped_column(String(20), default="pending")
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    comments: Mapped[Optional[str]] = mapped_column(Text)
    signature_data: Mapped[Optional[str]] = mapped_column(Text)

    # Rows are always loaded through ApprovalStore.list_stage_approvals
    stage: Mapped[WorkflowStage] = relationship(lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "status IN (%s)" % ", ".join(f"'{s}'" for s in STAGE_APPROVAL_STATUSES),
            name="chk_stage_approval_status",
        ),
        Index("idx_stage_approvals_document", "document_approval_id"),
        Index("idx_stage_approvals_approver", "approver_id", "status"),
        UniqueConstraint(
            "document_approval_id", "stage_id", name="uq_stage_approval_per_stage"
        ),
    )
