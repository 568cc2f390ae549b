"""
Stage approval routes: list the rows awaiting the current user, approve or
reject a stage.
"""

from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends
import structlog

from docapproval.dependencies import get_approval_notifier, get_approval_store
from docapproval.middleware.auth import get_current_user
from docapproval.repositories.approval_store import ApprovalStore
from docapproval.routes.document_approvals import (
    document_approval_to_response,
    stage_approval_to_response,
)
from docapproval.schemas.approval import (
    DocumentApprovalResponse,
    PendingStageApprovalResponse,
    StageApproveRequest,
    StageRejectRequest,
)
from docapproval.services.approval_service import (
    StageDecision,
    approve_stage,
    get_pending_approvals,
    reject_stage,
)
from docapproval.services.notification_service import ApprovalNotifier

logger = structlog.get_logger()
router = APIRouter()


def _schedule_notification(
    background_tasks: BackgroundTasks, notifier: ApprovalNotifier, decision: StageDecision
) -> None:
    if decision.result.notification:
        background_tasks.add_task(
            notifier.notify,
            decision.result.notification,
            str(decision.document_approval.id),
        )


@router.get("/pending", response_model=List[PendingStageApprovalResponse])
async def list_pending_approvals(
    current_user: dict = Depends(get_current_user),
    store: ApprovalStore = Depends(get_approval_store),
):
    """Stage rows waiting for the current user's decision."""
    rows = await get_pending_approvals(store, current_user["user_id"], current_user["role"])
    items = []
    for stage_approval, approval in rows:
        data = stage_approval_to_response(stage_approval).model_dump()
        data.update(
            document_id=str(approval.document_id),
            document_name=approval.document_name,
            submitted_at=approval.submitted_at.isoformat() if approval.submitted_at else None,
        )
        items.append(PendingStageApprovalResponse(**data))
    return items


@router.post("/{stage_approval_id}/approve", response_model=DocumentApprovalResponse)
async def approve_stage_route(
    stage_approval_id: str,
    background_tasks: BackgroundTasks,
    body: StageApproveRequest = StageApproveRequest(),
    current_user: dict = Depends(get_current_user),
    store: ApprovalStore = Depends(get_approval_store),
    notifier: ApprovalNotifier = Depends(get_approval_notifier),
):
    """Approve a stage; the document advances once its stage group is complete."""
    decision = await approve_stage(
        store,
        stage_approval_id,
        current_user,
        comments=body.comments,
        signature=body.signature,
    )
    _schedule_notification(background_tasks, notifier, decision)
    return document_approval_to_response(decision.document_approval, decision.stage_approvals)


@router.post("/{stage_approval_id}/reject", response_model=DocumentApprovalResponse)
async def reject_stage_route(
    stage_approval_id: str,
    body: StageRejectRequest,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    store: ApprovalStore = Depends(get_approval_store),
    notifier: ApprovalNotifier = Depends(get_approval_notifier),
):
    """Reject a stage. The whole document approval ends as rejected."""
    decision = await reject_stage(store, stage_approval_id, current_user, body.reason)
    _schedule_notification(background_tasks, notifier, decision)
    return document_approval_to_response(decision.document_approval, decision.stage_approvals)
