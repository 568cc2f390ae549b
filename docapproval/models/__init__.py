"""Central model registry: import all models so Alembic autodiscover works."""

from docapproval.database import Base  # noqa: F401

from docapproval.models.workflow import ApprovalWorkflow, WorkflowStage  # noqa: F401
from docapproval.models.document_approval import DocumentApproval, StageApproval  # noqa: F401
from docapproval.models.audit_log import AuditLog  # noqa: F401
