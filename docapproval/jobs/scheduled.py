# docapproval/jobs/scheduled.py
"""
Scheduled background jobs triggered by an external scheduler → API endpoints.

Jobs:
  - check-approval-deadlines: Hourly. Reminds approvers of stages whose
    deadline_hours elapsed. Reminder only, nothing is auto-decided.
"""

from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
import structlog

from docapproval.config import settings
from docapproval.dependencies import get_approval_notifier, get_approval_store
from docapproval.repositories.approval_store import ApprovalStore
from docapproval.services.approval_service import find_overdue_stage_approvals
from docapproval.services.notification_service import APPROVAL_OVERDUE, ApprovalNotifier

logger = structlog.get_logger()
router = APIRouter()


async def _require_internal_auth(request: Request):
    """
    Verify request comes from the scheduler or an internal service.
    Validates X-Internal-Secret header against INTERNAL_JOB_SECRET from settings.
    """
    secret = settings.INTERNAL_JOB_SECRET
    if not secret:
        # In development (DEBUG=True), allow unauthenticated internal calls
        if settings.DEBUG:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="INTERNAL_JOB_SECRET is not configured",
        )
    provided = request.headers.get("X-Internal-Secret")
    if not provided or provided != secret:
        logger.warning("internal_auth_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )


@router.post("/check-approval-deadlines")
async def check_approval_deadlines(
    background_tasks: BackgroundTasks,
    store: ApprovalStore = Depends(get_approval_store),
    notifier: ApprovalNotifier = Depends(get_approval_notifier),
    _auth: None = Depends(_require_internal_auth),
):
    """Send one overdue reminder per document approval with late stage rows."""
    now = datetime.utcnow()
    overdue = await find_overdue_stage_approvals(store, now)

    notified: set[str] = set()
    for stage_approval, approval in overdue:
        started = approval.stage_started_at or approval.submitted_at
        logger.warning(
            "approval_deadline_passed",
            document_approval_id=str(approval.id),
            stage_approval_id=str(stage_approval.id),
            stage_name=stage_approval.stage.stage_name,
            deadline_hours=stage_approval.stage.deadline_hours,
            hours_pending=round((now - started).total_seconds() / 3600, 1),
        )
        approval_id = str(approval.id)
        if approval_id not in notified:
            background_tasks.add_task(notifier.notify, APPROVAL_OVERDUE, approval_id)
            notified.add(approval_id)

    logger.info(
        "approval_deadline_check_complete",
        overdue_rows=len(overdue),
        reminded=len(notified),
    )
    return {"overdue": len(overdue), "reminded": len(notified)}
