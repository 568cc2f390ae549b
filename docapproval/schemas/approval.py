from typing import List, Optional
from pydantic import BaseModel, Field


class DocumentSubmitRequest(BaseModel):
    document_id: str
    document_name: str = Field(..., min_length=1, max_length=255)
    workflow_id: str


class StageApprovalResponse(BaseModel):
    id: str
    document_approval_id: str
    stage_id: str
    stage_order: Optional[int] = None
    stage_name: Optional[str] = None
    required_role: Optional[str] = None
    approver_id: Optional[str] = None
    status: str
    approved_at: Optional[str] = None
    rejected_at: Optional[str] = None
    comments: Optional[str] = None
    has_signature: bool = False

    model_config = {"from_attributes": True}


class DocumentApprovalResponse(BaseModel):
    id: str
    document_id: str
    document_name: Optional[str] = None
    workflow_id: str
    current_stage_id: Optional[str] = None
    status: str
    submitted_at: str
    submitted_by: Optional[str] = None
    completed_at: Optional[str] = None
    rejection_reason: Optional[str] = None
    stage_approvals: List[StageApprovalResponse] = []

    model_config = {"from_attributes": True}


class PendingStageApprovalResponse(StageApprovalResponse):
    document_id: str
    document_name: Optional[str] = None
    submitted_at: Optional[str] = None


class StageApproveRequest(BaseModel):
    comments: Optional[str] = Field(None, max_length=1000)
    # Base64 data URL captured from the signature pad
    signature: Optional[str] = Field(None, max_length=500_000)


class StageRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=1000)
