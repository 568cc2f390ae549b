from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from docapproval.database import get_db
from docapproval.repositories.approval_store import ApprovalStore
from docapproval.services.notification_service import ApprovalNotifier, get_notifier


async def get_approval_store(db: AsyncSession = Depends(get_db)) -> ApprovalStore:
    """FastAPI dependency: approval store bound to the request transaction."""
    return ApprovalStore(db)


def get_approval_notifier() -> ApprovalNotifier:
    return get_notifier()
