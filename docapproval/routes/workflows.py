"""
Workflow routes: define approval workflows per document type, list and
inspect them, soft-disable them.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
import structlog

from docapproval.dependencies import get_approval_store
from docapproval.middleware.auth import get_current_user
from docapproval.middleware.authorization import require_roles
from docapproval.models.workflow import ApprovalWorkflow, WorkflowStage
from docapproval.repositories.approval_store import ApprovalStore
from docapproval.schemas.workflow import (
    WorkflowCreate,
    WorkflowResponse,
    WorkflowStageResponse,
)
from docapproval.services.audit_service import create_audit_log
from docapproval.services.workflow_service import (
    create_workflow,
    deactivate_workflow,
    get_workflow,
    get_workflows_by_type,
)

logger = structlog.get_logger()
router = APIRouter()


def _stage_to_response(stage: WorkflowStage) -> WorkflowStageResponse:
    return WorkflowStageResponse(
        id=str(stage.id),
        workflow_id=str(stage.workflow_id),
        stage_order=stage.stage_order,
        stage_name=stage.stage_name,
        required_role=stage.required_role,
        approver_user_id=str(stage.approver_user_id) if stage.approver_user_id else None,
        is_parallel=bool(stage.is_parallel),
        auto_approve=bool(stage.auto_approve),
        deadline_hours=stage.deadline_hours,
    )


def _to_response(workflow: ApprovalWorkflow) -> WorkflowResponse:
    return WorkflowResponse(
        id=str(workflow.id),
        name=workflow.name,
        description=workflow.description,
        document_type=workflow.document_type,
        project_id=str(workflow.project_id) if workflow.project_id else None,
        is_active=bool(workflow.is_active),
        created_by=str(workflow.created_by) if workflow.created_by else None,
        created_at=workflow.created_at.isoformat() if workflow.created_at else "",
        stages=[_stage_to_response(s) for s in workflow.stages],
    )


@router.post("", response_model=WorkflowResponse, status_code=status.HTTP_201_CREATED)
async def create_workflow_route(
    body: WorkflowCreate,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    store: ApprovalStore = Depends(get_approval_store),
):
    """Define a new approval workflow with its ordered stages."""
    workflow = await create_workflow(store, body, created_by=current_user["user_id"])

    await create_audit_log(
        store,
        actor_id=current_user["user_id"],
        action="WORKFLOW_CREATED",
        entity_type="ApprovalWorkflow",
        entity_id=str(workflow.id),
        after_state={
            "name": workflow.name,
            "document_type": workflow.document_type,
            "stages": len(workflow.stages),
        },
        actor_email=current_user.get("email"),
    )
    return _to_response(workflow)


@router.get("", response_model=List[WorkflowResponse])
async def list_workflows(
    document_type: Optional[str] = Query(None, max_length=100),
    project_id: Optional[str] = Query(None),
    current_user: dict = Depends(get_current_user),
    store: ApprovalStore = Depends(get_approval_store),
):
    """Active workflows; filter by document type and project."""
    workflows = await get_workflows_by_type(store, document_type, project_id)
    return [_to_response(w) for w in workflows]


@router.get("/{workflow_id}", response_model=WorkflowResponse)
async def get_workflow_route(
    workflow_id: str,
    current_user: dict = Depends(get_current_user),
    store: ApprovalStore = Depends(get_approval_store),
):
    return _to_response(await get_workflow(store, workflow_id))


@router.post("/{workflow_id}/deactivate", response_model=WorkflowResponse)
async def deactivate_workflow_route(
    workflow_id: str,
    current_user: dict = Depends(get_current_user),
    _auth: None = Depends(require_roles("admin")),
    store: ApprovalStore = Depends(get_approval_store),
):
    """Stop offering a workflow for new submissions."""
    workflow, changed = await deactivate_workflow(store, workflow_id)

    if changed:
        await create_audit_log(
            store,
            actor_id=current_user["user_id"],
            action="WORKFLOW_DEACTIVATED",
            entity_type="ApprovalWorkflow",
            entity_id=str(workflow.id),
            before_state={"is_active": True},
            after_state={"is_active": False},
            actor_email=current_user.get("email"),
        )
    return _to_response(workflow)
