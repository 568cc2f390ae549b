from typing import List, Optional
from pydantic import BaseModel, Field


class WorkflowStageCreate(BaseModel):
    stage_name: str = Field(..., min_length=1, max_length=255)
    required_role: str = Field(..., min_length=1, max_length=50)
    # Defaults to the stage's 1-based position when omitted
    stage_order: Optional[int] = Field(None, ge=1)
    approver_user_id: Optional[str] = None
    is_parallel: bool = False
    auto_approve: bool = False
    deadline_hours: Optional[int] = Field(None, ge=0, le=8760)


class WorkflowCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    document_type: str = Field(..., min_length=1, max_length=100)
    project_id: Optional[str] = None
    stages: List[WorkflowStageCreate] = Field(..., min_length=1, max_length=50)


class WorkflowStageResponse(BaseModel):
    id: str
    workflow_id: str
    stage_order: int
    stage_name: str
    required_role: str
    approver_user_id: Optional[str] = None
    is_parallel: bool
    auto_approve: bool
    deadline_hours: int

    model_config = {"from_attributes": True}


class WorkflowResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    document_type: str
    project_id: Optional[str] = None
    is_active: bool
    created_by: Optional[str] = None
    created_at: str
    stages: List[WorkflowStageResponse] = []

    model_config = {"from_attributes": True}
