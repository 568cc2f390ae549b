"""
Approval service: document submission, stage decisions, workflow advancement.

Lifecycle of a DocumentApproval:
  submit            → in_progress, current stage = lowest stage_order
  approve (group    → current stage = first stage of the next order group,
   fully approved)    or approved when no later group exists
  reject            → rejected (terminal, remaining rows stay pending)

Every decision rewrites the parent DocumentApproval, whose version column
turns the read-check-write sequence into a compare-and-swap.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Sequence

from fastapi import HTTPException, status as http_status
import structlog

from docapproval.models.document_approval import DocumentApproval, StageApproval
from docapproval.repositories.approval_store import ConcurrentApprovalUpdate
from docapproval.services.audit_service import create_audit_log
from docapproval.services.notification_service import (
    APPROVAL_COMPLETED,
    APPROVAL_REJECTED,
    APPROVAL_REQUEST,
)
from docapproval.services.workflow_service import get_workflow, parse_uuid

logger = structlog.get_logger()

ADMIN_ROLE = "admin"


@dataclass
class ApprovalResult:
    is_final: bool
    is_rejected: bool
    next_stage_id: Optional[uuid.UUID] = None
    notification: Optional[str] = None


@dataclass
class StageDecision:
    document_approval: DocumentApproval
    stage_approval: StageApproval
    stage_approvals: list[StageApproval]
    result: ApprovalResult


def _http_error(status_code: int, code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={"error": {"code": code, "message": message}},
    )


def _state(approval: DocumentApproval) -> dict:
    return {
        "status": approval.status,
        "current_stage_id": str(approval.current_stage_id) if approval.current_stage_id else None,
    }


def evaluate_advancement(
    stage_approvals: Sequence[StageApproval], current_order: int
) -> ApprovalResult:
    """
    Decide what follows a stage approval.

    Waits while any row of the current order group is not approved. Once the
    group is complete, moves to the lowest later order, or finalizes when no
    later order exists.
    """
    current_group = [sa for sa in stage_approvals if sa.stage.stage_order == current_order]
    if not all(sa.status == "approved" for sa in current_group):
        return ApprovalResult(is_final=False, is_rejected=False)

    later_orders = sorted(
        {sa.stage.stage_order for sa in stage_approvals if sa.stage.stage_order > current_order}
    )
    if later_orders:
        next_group = sorted(
            (sa for sa in stage_approvals if sa.stage.stage_order == later_orders[0]),
            key=lambda sa: sa.stage.stage_name,
        )
        return ApprovalResult(
            is_final=False,
            is_rejected=False,
            next_stage_id=next_group[0].stage_id,
            notification=APPROVAL_REQUEST,
        )

    return ApprovalResult(is_final=True, is_rejected=False, notification=APPROVAL_COMPLETED)


# ---------- submission ----------


async def submit_document_for_approval(
    store,
    document_id: str,
    document_name: str,
    workflow_id: str,
    submitter_id: Optional[str] = None,
) -> tuple[DocumentApproval, list[StageApproval]]:
    """Create the document approval and one pending row per stage."""
    doc_uuid = parse_uuid(document_id, "document_id")
    workflow = await get_workflow(store, workflow_id)
    if not workflow.is_active:
        raise _http_error(
            http_status.HTTP_409_CONFLICT,
            "WORKFLOW_INACTIVE",
            "This approval workflow has been deactivated",
        )

    stages = await store.list_stages(workflow.id)
    if not stages:
        raise _http_error(
            http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            "WORKFLOW_STAGES_MISSING",
            "No workflow stages found",
        )

    existing = await store.find_in_progress_approval(doc_uuid)
    if existing:
        raise _http_error(
            http_status.HTTP_409_CONFLICT,
            "DOCUMENT_APPROVAL_IN_PROGRESS",
            "This document already has an approval in progress",
        )

    now = datetime.utcnow()
    approval = DocumentApproval(
        id=uuid.uuid4(),
        document_id=doc_uuid,
        document_name=document_name,
        workflow_id=workflow.id,
        current_stage_id=stages[0].id,
        status="in_progress",
        submitted_at=now,
        submitted_by=parse_uuid(submitter_id, "submitted_by") if submitter_id else None,
        stage_started_at=now,
        updated_at=now,
    )
    try:
        approval = await store.add_document_approval(approval)
    except ConcurrentApprovalUpdate:
        raise _http_error(
            http_status.HTTP_409_CONFLICT,
            "DOCUMENT_APPROVAL_IN_PROGRESS",
            "This document already has an approval in progress",
        )

    stage_approvals = [
        StageApproval(
            id=uuid.uuid4(),
            document_approval_id=approval.id,
            stage_id=stage.id,
            stage=stage,
            approver_id=stage.approver_user_id,
            status="pending",
        )
        for stage in stages
    ]
    stage_approvals = await store.add_stage_approvals(stage_approvals)

    await create_audit_log(
        store,
        actor_id=submitter_id,
        action="DOCUMENT_SUBMITTED",
        entity_type="DocumentApproval",
        entity_id=str(approval.id),
        after_state=_state(approval),
    )

    logger.info(
        "document_submitted_for_approval",
        document_approval_id=str(approval.id),
        document_id=str(doc_uuid),
        workflow_id=str(workflow.id),
        stages=len(stage_approvals),
    )
    return approval, stage_approvals


# ---------- stage decisions ----------


def _check_approver(stage_approval: StageApproval, approver: dict) -> uuid.UUID:
    """Pinned rows belong to their approver; open rows to the stage's role."""
    approver_id = parse_uuid(approver.get("user_id"), "approver_id")
    if stage_approval.approver_id is not None:
        allowed = stage_approval.approver_id == approver_id
    else:
        allowed = approver.get("role") in (stage_approval.stage.required_role, ADMIN_ROLE)

    if not allowed:
        raise _http_error(
            http_status.HTTP_403_FORBIDDEN,
            "APPROVAL_NOT_ASSIGNED",
            "You are not an approver for this stage",
        )
    return approver_id


async def _load_for_decision(
    store, stage_approval_id: str, approver: dict
) -> tuple[StageApproval, DocumentApproval, list[StageApproval], int, uuid.UUID]:
    stage_approval = await store.get_stage_approval(
        parse_uuid(stage_approval_id, "stage_approval_id")
    )
    if not stage_approval:
        raise _http_error(
            http_status.HTTP_404_NOT_FOUND,
            "STAGE_APPROVAL_NOT_FOUND",
            "Stage approval not found",
        )

    approval = await store.get_document_approval(
        stage_approval.document_approval_id, for_update=True
    )
    if not approval:
        raise _http_error(
            http_status.HTTP_404_NOT_FOUND,
            "DOCUMENT_APPROVAL_NOT_FOUND",
            "Document approval not found",
        )

    if approval.is_final:
        raise _http_error(
            http_status.HTTP_409_CONFLICT,
            "APPROVAL_ALREADY_FINAL",
            f"Document approval is already {approval.status}",
        )

    stage_approvals = await store.list_stage_approvals(approval.id)
    # Use the instance from the full listing so advancement sees the update
    stage_approval = next(
        (sa for sa in stage_approvals if sa.id == stage_approval.id), stage_approval
    )

    if stage_approval.status != "pending":
        raise _http_error(
            http_status.HTTP_409_CONFLICT,
            "STAGE_ALREADY_DECIDED",
            f"This stage was already {stage_approval.status}",
        )

    current_order = next(
        (sa.stage.stage_order for sa in stage_approvals if sa.stage_id == approval.current_stage_id),
        None,
    )
    if current_order is None:
        logger.error(
            "document_approval_current_stage_missing",
            document_approval_id=str(approval.id),
            current_stage_id=str(approval.current_stage_id),
        )
        raise _http_error(
            http_status.HTTP_409_CONFLICT,
            "APPROVAL_STATE_INVALID",
            "Document approval does not point at one of its stages",
        )

    approver_id = _check_approver(stage_approval, approver)
    return stage_approval, approval, stage_approvals, current_order, approver_id


async def _flush_decision(store, approval: DocumentApproval) -> None:
    try:
        await store.flush()
    except ConcurrentApprovalUpdate:
        raise _http_error(
            http_status.HTTP_409_CONFLICT,
            "APPROVAL_CONCURRENT_UPDATE",
            "Another decision was recorded for this document at the same time, please retry",
        )


async def approve_stage(
    store,
    stage_approval_id: str,
    approver: dict,
    comments: Optional[str] = None,
    signature: Optional[str] = None,
) -> StageDecision:
    """
    Approve one stage row, then advance or finalize the document approval.

    Raises 404 for unknown rows, 403 for the wrong approver and 409 when the
    row or its document approval no longer accepts a decision.
    """
    stage_approval, approval, stage_approvals, current_order, approver_id = (
        await _load_for_decision(store, stage_approval_id, approver)
    )
    # Only approvals wait for their turn; a rejection may come from any stage
    if stage_approval.stage.stage_order != current_order:
        raise _http_error(
            http_status.HTTP_409_CONFLICT,
            "STAGE_NOT_ACTIVE",
            "This stage is not awaiting a decision yet",
        )

    before = _state(approval)
    now = datetime.utcnow()

    stage_approval.status = "approved"
    stage_approval.approved_at = now
    stage_approval.comments = comments
    stage_approval.signature_data = signature
    if stage_approval.approver_id is None:
        stage_approval.approver_id = approver_id

    result = evaluate_advancement(stage_approvals, current_order)
    if result.next_stage_id is not None:
        approval.current_stage_id = result.next_stage_id
        approval.stage_started_at = now
    elif result.is_final:
        approval.status = "approved"
        approval.completed_at = now
    # Written even while waiting so concurrent approvals of one group collide
    approval.updated_at = now

    await _flush_decision(store, approval)

    await create_audit_log(
        store,
        actor_id=approver.get("user_id"),
        action="STAGE_APPROVED",
        entity_type="DocumentApproval",
        entity_id=str(approval.id),
        before_state=before,
        after_state=_state(approval),
        actor_email=approver.get("email"),
    )

    logger.info(
        "stage_approved",
        document_approval_id=str(approval.id),
        stage_approval_id=str(stage_approval.id),
        stage_order=current_order,
        approver_id=str(approver_id),
    )
    if result.next_stage_id is not None:
        logger.info(
            "approval_advanced",
            document_approval_id=str(approval.id),
            current_stage_id=str(result.next_stage_id),
        )
    elif result.is_final:
        logger.info("approval_completed", document_approval_id=str(approval.id))

    return StageDecision(approval, stage_approval, stage_approvals, result)


async def reject_stage(
    store,
    stage_approval_id: str,
    approver: dict,
    reason: str,
) -> StageDecision:
    """
    Reject one stage row. Rejection at any stage ends the whole approval,
    including rows of stages that are not active yet.
    """
    reason = (reason or "").strip()
    if not reason:
        raise _http_error(
            http_status.HTTP_422_UNPROCESSABLE_ENTITY,
            "REJECTION_REASON_REQUIRED",
            "A reason is required to reject a stage",
        )

    stage_approval, approval, stage_approvals, current_order, approver_id = (
        await _load_for_decision(store, stage_approval_id, approver)
    )
    before = _state(approval)
    now = datetime.utcnow()

    stage_approval.status = "rejected"
    stage_approval.rejected_at = now
    stage_approval.comments = reason
    if stage_approval.approver_id is None:
        stage_approval.approver_id = approver_id

    approval.status = "rejected"
    approval.rejection_reason = reason
    approval.completed_at = now
    approval.updated_at = now

    await _flush_decision(store, approval)

    await create_audit_log(
        store,
        actor_id=approver.get("user_id"),
        action="STAGE_REJECTED",
        entity_type="DocumentApproval",
        entity_id=str(approval.id),
        before_state=before,
        after_state=_state(approval),
        actor_email=approver.get("email"),
    )

    logger.info(
        "stage_rejected",
        document_approval_id=str(approval.id),
        stage_approval_id=str(stage_approval.id),
        stage_order=current_order,
        approver_id=str(approver_id),
    )
    result = ApprovalResult(is_final=False, is_rejected=True, notification=APPROVAL_REJECTED)
    return StageDecision(approval, stage_approval, stage_approvals, result)


# ---------- queries ----------


async def get_document_approvals(store, document_id: str) -> list[DocumentApproval]:
    """All approval rounds of a document, newest first."""
    return await store.list_document_approvals(parse_uuid(document_id, "document_id"))


async def get_document_approval_detail(
    store, document_approval_id: str
) -> tuple[DocumentApproval, list[StageApproval]]:
    approval = await store.get_document_approval(
        parse_uuid(document_approval_id, "document_approval_id")
    )
    if not approval:
        raise _http_error(
            http_status.HTTP_404_NOT_FOUND,
            "DOCUMENT_APPROVAL_NOT_FOUND",
            "Document approval not found",
        )
    return approval, await store.list_stage_approvals(approval.id)


async def get_pending_approvals(
    store, user_id: str, role: Optional[str] = None
) -> list[tuple[StageApproval, DocumentApproval]]:
    """
    Rows awaiting this user's decision right now. An admin sees every open
    row, matching what ``_check_approver`` lets them decide.
    """
    return await store.list_actionable_stage_approvals(
        approver_id=parse_uuid(user_id, "user_id"),
        role=role,
        any_role=role == ADMIN_ROLE,
    )


async def find_overdue_stage_approvals(
    store, now: Optional[datetime] = None
) -> list[tuple[StageApproval, DocumentApproval]]:
    """
    Pending rows of active stages whose deadline has passed.

    The deadline runs from the moment the stage became active. A stage with
    ``deadline_hours == 0`` has no deadline.
    """
    now = now or datetime.utcnow()
    overdue = []
    for stage_approval, approval in await store.list_actionable_stage_approvals():
        hours = stage_approval.stage.deadline_hours or 0
        started = approval.stage_started_at or approval.submitted_at
        if hours <= 0 or started is None:
            continue
        if started + timedelta(hours=hours) <= now:
            overdue.append((stage_approval, approval))
    return overdue
