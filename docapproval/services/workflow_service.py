"""
Workflow definition service: create, look up and soft-disable approval
workflows.

A workflow is an ordered list of stages. Stages sharing a ``stage_order``
form one parallel group that must be fully approved before the document
moves on. Stages are immutable once the workflow exists.
"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import HTTPException, status as http_status
import structlog

from docapproval.config import settings
from docapproval.models.workflow import ApprovalWorkflow, WorkflowStage
from docapproval.schemas.workflow import WorkflowCreate

logger = structlog.get_logger()


def parse_uuid(value, field_name: str) -> uuid.UUID:
    """Parse an identifier from a request, raising 422 when malformed."""
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": {
                    "code": "INVALID_IDENTIFIER",
                    "message": f"{field_name} must be a valid UUID",
                }
            },
        )


def build_stages(data: WorkflowCreate) -> list[WorkflowStage]:
    """
    Stage rows for a workflow payload. Orders are either all explicit or all
    omitted, in which case each stage takes its 1-based position.
    """
    explicit = [s.stage_order is not None for s in data.stages]
    if any(explicit) and not all(explicit):
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": {
                    "code": "WORKFLOW_STAGE_ORDER_MIXED",
                    "message": "Set stage_order on every stage or on none",
                }
            },
        )

    stages = []
    for position, stage_in in enumerate(data.stages, start=1):
        deadline = stage_in.deadline_hours
        stages.append(WorkflowStage(
            id=uuid.uuid4(),
            stage_order=stage_in.stage_order or position,
            stage_name=stage_in.stage_name.strip(),
            required_role=stage_in.required_role.strip(),
            approver_user_id=(
                parse_uuid(stage_in.approver_user_id, "approver_user_id")
                if stage_in.approver_user_id else None
            ),
            is_parallel=stage_in.is_parallel,
            auto_approve=stage_in.auto_approve,
            deadline_hours=deadline if deadline is not None else settings.DEFAULT_STAGE_DEADLINE_HOURS,
        ))
    return stages


async def create_workflow(
    store, data: WorkflowCreate, created_by: Optional[str] = None
) -> ApprovalWorkflow:
    """Persist a workflow together with its stage definitions."""
    if not data.stages:
        raise HTTPException(
            status_code=http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail={
                "error": {
                    "code": "WORKFLOW_STAGES_REQUIRED",
                    "message": "A workflow needs at least one stage",
                }
            },
        )

    workflow = ApprovalWorkflow(
        id=uuid.uuid4(),
        name=data.name.strip(),
        description=data.description,
        document_type=data.document_type.strip(),
        project_id=parse_uuid(data.project_id, "project_id") if data.project_id else None,
        is_active=True,
        created_by=parse_uuid(created_by, "created_by") if created_by else None,
        created_at=datetime.utcnow(),
    )
    stages = build_stages(data)
    workflow = await store.add_workflow(workflow, stages)

    logger.info(
        "approval_workflow_created",
        workflow_id=str(workflow.id),
        document_type=workflow.document_type,
        stages=len(stages),
    )
    return workflow


async def get_workflow(store, workflow_id: str) -> ApprovalWorkflow:
    workflow = await store.get_workflow(parse_uuid(workflow_id, "workflow_id"))
    if not workflow:
        raise HTTPException(
            status_code=http_status.HTTP_404_NOT_FOUND,
            detail={
                "error": {
                    "code": "WORKFLOW_NOT_FOUND",
                    "message": "Approval workflow not found",
                }
            },
        )
    return workflow


async def get_workflows_by_type(
    store, document_type: Optional[str] = None, project_id: Optional[str] = None
) -> list[ApprovalWorkflow]:
    """Active workflows for a document type. An empty type lists every type."""
    return await store.list_workflows(
        document_type=document_type or None,
        project_id=parse_uuid(project_id, "project_id") if project_id else None,
    )


async def deactivate_workflow(store, workflow_id: str) -> tuple[ApprovalWorkflow, bool]:
    """
    Soft-disable a workflow. Approvals already in flight keep running.

    Returns the workflow and whether this call switched it off.
    """
    workflow = await get_workflow(store, workflow_id)
    if not workflow.is_active:
        return workflow, False

    workflow.is_active = False
    await store.flush()
    logger.info("approval_workflow_deactivated", workflow_id=str(workflow.id))
    return workflow, True
