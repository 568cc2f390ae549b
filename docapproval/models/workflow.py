import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docapproval.database import Base


class ApprovalWorkflow(Base):
    __tablename__ = "approval_workflows"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    document_type: Mapped[str] = mapped_column(String(100), nullable=False)
    project_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    stages: Mapped[list["WorkflowStage"]] = relationship(
        back_populates="workflow",
        order_by=lambda: [WorkflowStage.stage_order, WorkflowStage.stage_name],
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_workflows_type_active", "document_type", "is_active"),
        Index("idx_workflows_project", "project_id"),
    )


class WorkflowStage(Base):
    __tablename__ = "workflow_stages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    workflow_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_workflows.id"), nullable=False
    )
    stage_order: Mapped[int] = mapped_column(Integer, nullable=False)
    stage_name: Mapped[str] = mapped_column(String(255), nullable=False)
    required_role: Mapped[str] = mapped_column(String(50), nullable=False)
    approver_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True)
    )
    is_parallel: Mapped[bool] = mapped_column(Boolean, default=False)
    # Stored for clients; the workflow engine does not act on it
    auto_approve: Mapped[bool] = mapped_column(Boolean, default=False)
    deadline_hours: Mapped[int] = mapped_column(Integer, default=72)

    workflow: Mapped[ApprovalWorkflow] = relationship(back_populates="stages")

    __table_args__ = (
        CheckConstraint("stage_order > 0", name="chk_stage_order_positive"),
        CheckConstraint("deadline_hours >= 0", name="chk_deadline_non_negative"),
        Index("idx_stages_workflow_order", "workflow_id", "stage_order"),
    )
