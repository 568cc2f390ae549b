"""
Persistence for workflows and document approvals.

The store owns every query the approval services need so the services can be
exercised against an in-memory substitute. Writes are flushed, never
committed: the request-scoped session in ``get_db`` owns the transaction.
"""

import uuid
from typing import Optional, Sequence

from sqlalchemy import select, and_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, contains_eager
from sqlalchemy.orm.exc import StaleDataError
import structlog

from docapproval.models.document_approval import DocumentApproval, StageApproval
from docapproval.models.workflow import ApprovalWorkflow, WorkflowStage

logger = structlog.get_logger()


class ConcurrentApprovalUpdate(Exception):
    """Raised when a document approval changed between read and write."""


class ApprovalStore:
    """SQLAlchemy-backed store bound to one request session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def flush(self) -> None:
        try:
            await self.session.flush()
        except StaleDataError as exc:
            logger.warning("document_approval_version_conflict", error=str(exc))
            raise ConcurrentApprovalUpdate(str(exc)) from exc

    def add(self, obj) -> None:
        self.session.add(obj)

    # ---------- workflows ----------

    async def add_workflow(
        self, workflow: ApprovalWorkflow, stages: Sequence[WorkflowStage]
    ) -> ApprovalWorkflow:
        self.session.add(workflow)
        await self.session.flush()
        for stage in stages:
            stage.workflow_id = workflow.id
            self.session.add(stage)
        await self.session.flush()
        await self.session.refresh(workflow, attribute_names=["stages"])
        return workflow

    async def get_workflow(self, workflow_id: uuid.UUID) -> Optional[ApprovalWorkflow]:
        result = await self.session.execute(
            select(ApprovalWorkflow).where(ApprovalWorkflow.id == workflow_id)
        )
        return result.scalar_one_or_none()

    async def list_workflows(
        self,
        document_type: Optional[str] = None,
        project_id: Optional[uuid.UUID] = None,
    ) -> list[ApprovalWorkflow]:
        """Active workflows, optionally filtered by document type and project."""
        q = select(ApprovalWorkflow).where(ApprovalWorkflow.is_active == True)  # noqa: E712
        if document_type:
            q = q.where(ApprovalWorkflow.document_type == document_type)
        if project_id:
            q = q.where(ApprovalWorkflow.project_id == project_id)
        result = await self.session.execute(q.order_by(ApprovalWorkflow.created_at.desc()))
        return list(result.scalars().all())

    async def list_stages(self, workflow_id: uuid.UUID) -> list[WorkflowStage]:
        result = await self.session.execute(
            select(WorkflowStage)
            .where(WorkflowStage.workflow_id == workflow_id)
            .order_by(WorkflowStage.stage_order, WorkflowStage.stage_name)
        )
        return list(result.scalars().all())

    # ---------- document approvals ----------

    async def add_document_approval(self, approval: DocumentApproval) -> DocumentApproval:
        self.session.add(approval)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            # uq_document_approvals_in_progress: a parallel submission won
            logger.warning(
                "document_approval_insert_conflict",
                document_id=str(approval.document_id),
                error=str(exc.orig),
            )
            raise ConcurrentApprovalUpdate(str(exc.orig)) from exc
        return approval

    async def add_stage_approvals(
        self, stage_approvals: Sequence[StageApproval]
    ) -> list[StageApproval]:
        self.session.add_all(stage_approvals)
        await self.session.flush()
        return list(stage_approvals)

    async def get_document_approval(
        self, approval_id: uuid.UUID, for_update: bool = False
    ) -> Optional[DocumentApproval]:
        q = select(DocumentApproval).where(DocumentApproval.id == approval_id)
        if for_update:
            # Serializes concurrent decisions on the same document
            q = q.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(q)
        return result.scalar_one_or_none()

    async def list_document_approvals(self, document_id: uuid.UUID) -> list[DocumentApproval]:
        result = await self.session.execute(
            select(DocumentApproval)
            .where(DocumentApproval.document_id == document_id)
            .order_by(DocumentApproval.submitted_at.desc())
        )
        return list(result.scalars().all())

    async def find_in_progress_approval(
        self, document_id: uuid.UUID
    ) -> Optional[DocumentApproval]:
        result = await self.session.execute(
            select(DocumentApproval).where(
                DocumentApproval.document_id == document_id,
                DocumentApproval.status == "in_progress",
            )
        )
        return result.scalars().first()

    # ---------- stage approvals ----------

    async def get_stage_approval(self, stage_approval_id: uuid.UUID) -> Optional[StageApproval]:
        result = await self.session.execute(
            select(StageApproval).where(StageApproval.id == stage_approval_id)
        )
        return result.unique().scalar_one_or_none()

    async def list_stage_approvals(self, document_approval_id: uuid.UUID) -> list[StageApproval]:
        """All stage rows of a document approval in stage order."""
        result = await self.session.execute(
            select(StageApproval)
            .join(StageApproval.stage)
            .options(contains_eager(StageApproval.stage))
            .where(StageApproval.document_approval_id == document_approval_id)
            .order_by(WorkflowStage.stage_order, WorkflowStage.stage_name)
        )
        return list(result.unique().scalars().all())

    async def list_actionable_stage_approvals(
        self,
        approver_id: Optional[uuid.UUID] = None,
        role: Optional[str] = None,
        any_role: bool = False,
    ) -> list[tuple[StageApproval, DocumentApproval]]:
        """
        Pending rows in the active stage group of in-progress approvals.

        With ``approver_id`` the rows are narrowed to those assigned to that
        user, plus unassigned rows whose stage requires ``role`` (any
        unassigned row when ``any_role`` is set).
        """
        current_stage = aliased(WorkflowStage)
        q = (
            select(StageApproval, DocumentApproval)
            .join(DocumentApproval, StageApproval.document_approval_id == DocumentApproval.id)
            .join(StageApproval.stage)
            .join(current_stage, DocumentApproval.current_stage_id == current_stage.id)
            .options(contains_eager(StageApproval.stage))
            .where(
                StageApproval.status == "pending",
                DocumentApproval.status == "in_progress",
                WorkflowStage.stage_order == current_stage.stage_order,
            )
        )
        if approver_id is not None:
            open_row = StageApproval.approver_id.is_(None)
            if not any_role:
                open_row = and_(open_row, WorkflowStage.required_role == role)
            q = q.where(or_(StageApproval.approver_id == approver_id, open_row))
        result = await self.session.execute(
            q.order_by(DocumentApproval.submitted_at, WorkflowStage.stage_name)
        )
        return [(row[0], row[1]) for row in result.unique().all()]
