"""
Document approval routes: submit a document against a workflow and follow
its approval rounds.
"""

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
import structlog

from docapproval.dependencies import get_approval_notifier, get_approval_store
from docapproval.middleware.auth import get_current_user
from docapproval.models.document_approval import DocumentApproval, StageApproval
from docapproval.repositories.approval_store import ApprovalStore
from docapproval.schemas.approval import (
    DocumentApprovalResponse,
    DocumentSubmitRequest,
    StageApprovalResponse,
)
from docapproval.services.approval_service import (
    get_document_approval_detail,
    get_document_approvals,
    submit_document_for_approval,
)
from docapproval.services.notification_service import APPROVAL_REQUEST, ApprovalNotifier

logger = structlog.get_logger()
router = APIRouter()


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def stage_approval_to_response(sa: StageApproval) -> StageApprovalResponse:
    stage = sa.stage
    return StageApprovalResponse(
        id=str(sa.id),
        document_approval_id=str(sa.document_approval_id),
        stage_id=str(sa.stage_id),
        stage_order=stage.stage_order if stage else None,
        stage_name=stage.stage_name if stage else None,
        required_role=stage.required_role if stage else None,
        approver_id=str(sa.approver_id) if sa.approver_id else None,
        status=sa.status,
        approved_at=_iso(sa.approved_at),
        rejected_at=_iso(sa.rejected_at),
        comments=sa.comments,
        has_signature=bool(sa.signature_data),
    )


def document_approval_to_response(
    approval: DocumentApproval, stage_approvals: Optional[List[StageApproval]] = None
) -> DocumentApprovalResponse:
    return DocumentApprovalResponse(
        id=str(approval.id),
        document_id=str(approval.document_id),
        document_name=approval.document_name,
        workflow_id=str(approval.workflow_id),
        current_stage_id=str(approval.current_stage_id) if approval.current_stage_id else None,
        status=approval.status,
        submitted_at=_iso(approval.submitted_at) or "",
        submitted_by=str(approval.submitted_by) if approval.submitted_by else None,
        completed_at=_iso(approval.completed_at),
        rejection_reason=approval.rejection_reason,
        stage_approvals=[stage_approval_to_response(sa) for sa in stage_approvals or []],
    )


@router.post("", response_model=DocumentApprovalResponse, status_code=status.HTTP_201_CREATED)
async def submit_document(
    body: DocumentSubmitRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    store: ApprovalStore = Depends(get_approval_store),
    notifier: ApprovalNotifier = Depends(get_approval_notifier),
):
    """Submit a document for approval under the given workflow."""
    approval, stage_approvals = await submit_document_for_approval(
        store,
        document_id=body.document_id,
        document_name=body.document_name,
        workflow_id=body.workflow_id,
        submitter_id=current_user["user_id"],
    )
    background_tasks.add_task(notifier.notify, APPROVAL_REQUEST, str(approval.id))
    return document_approval_to_response(approval, stage_approvals)


@router.get("", response_model=List[DocumentApprovalResponse])
async def list_document_approvals(
    document_id: str = Query(...),
    current_user: dict = Depends(get_current_user),
    store: ApprovalStore = Depends(get_approval_store),
):
    """Approval rounds of one document, newest first."""
    approvals = await get_document_approvals(store, document_id)
    return [document_approval_to_response(a) for a in approvals]


@router.get("/{document_approval_id}", response_model=DocumentApprovalResponse)
async def get_document_approval(
    document_approval_id: str,
    current_user: dict = Depends(get_current_user),
    store: ApprovalStore = Depends(get_approval_store),
):
    approval, stage_approvals = await get_document_approval_detail(store, document_approval_id)
    return document_approval_to_response(approval, stage_approvals)
