import uuid
from typing import Optional

import pytest

from docapproval.models.audit_log import AuditLog
from docapproval.models.document_approval import DocumentApproval, StageApproval
from docapproval.models.workflow import ApprovalWorkflow, WorkflowStage
from docapproval.repositories.approval_store import ConcurrentApprovalUpdate
from docapproval.schemas.workflow import WorkflowCreate


class FakeApprovalStore:
    """In-memory stand-in for ApprovalStore with the same query semantics."""

    def __init__(self):
        self.workflows: dict[uuid.UUID, ApprovalWorkflow] = {}
        self.stages: dict[uuid.UUID, WorkflowStage] = {}
        self.approvals: dict[uuid.UUID, DocumentApproval] = {}
        self.stage_approvals: dict[uuid.UUID, StageApproval] = {}
        self.audit_logs: list[AuditLog] = []
        self.flush_count = 0
        # Set to simulate a lost compare-and-swap on the next flush
        self.conflict_on_flush = False

    async def flush(self) -> None:
        if self.conflict_on_flush:
            self.conflict_on_flush = False
            raise ConcurrentApprovalUpdate("version mismatch")
        self.flush_count += 1

    def add(self, obj) -> None:
        if isinstance(obj, AuditLog):
            self.audit_logs.append(obj)

    async def add_workflow(self, workflow, stages):
        for stage in stages:
            stage.workflow_id = workflow.id
            self.stages[stage.id] = stage
        workflow.stages = sorted(stages, key=lambda s: (s.stage_order, s.stage_name))
        self.workflows[workflow.id] = workflow
        return workflow

    async def get_workflow(self, workflow_id):
        return self.workflows.get(workflow_id)

    async def list_workflows(self, document_type=None, project_id=None):
        return [
            w for w in self.workflows.values()
            if w.is_active
            and (not document_type or w.document_type == document_type)
            and (not project_id or w.project_id == project_id)
        ]

    async def list_stages(self, workflow_id):
        return sorted(
            (s for s in self.stages.values() if s.workflow_id == workflow_id),
            key=lambda s: (s.stage_order, s.stage_name),
        )

    async def add_document_approval(self, approval):
        approval.version = 1
        self.approvals[approval.id] = approval
        return approval

    async def add_stage_approvals(self, stage_approvals):
        for sa in stage_approvals:
            self.stage_approvals[sa.id] = sa
        return list(stage_approvals)

    async def get_document_approval(self, approval_id, for_update=False):
        return self.approvals.get(approval_id)

    async def list_document_approvals(self, document_id):
        return sorted(
            (a for a in self.approvals.values() if a.document_id == document_id),
            key=lambda a: a.submitted_at,
            reverse=True,
        )

    async def find_in_progress_approval(self, document_id):
        for a in self.approvals.values():
            if a.document_id == document_id and a.status == "in_progress":
                return a
        return None

    async def get_stage_approval(self, stage_approval_id):
        return self.stage_approvals.get(stage_approval_id)

    async def list_stage_approvals(self, document_approval_id):
        return sorted(
            (sa for sa in self.stage_approvals.values()
             if sa.document_approval_id == document_approval_id),
            key=lambda sa: (sa.stage.stage_order, sa.stage.stage_name),
        )

    async def list_actionable_stage_approvals(self, approver_id=None, role=None, any_role=False):
        rows = []
        for sa in self.stage_approvals.values():
            approval = self.approvals[sa.document_approval_id]
            if sa.status != "pending" or approval.status != "in_progress":
                continue
            current = self.stages[approval.current_stage_id]
            if sa.stage.stage_order != current.stage_order:
                continue
            if approver_id is not None:
                assigned = sa.approver_id == approver_id
                open_for_role = sa.approver_id is None and (
                    any_role or sa.stage.required_role == role
                )
                if not (assigned or open_for_role):
                    continue
            rows.append((sa, approval))
        return sorted(rows, key=lambda r: (r[1].submitted_at, r[0].stage.stage_name))


class FakeNotifier:
    def __init__(self):
        self.calls: list[tuple[str, str]] = []

    async def notify(self, notification_type: str, document_approval_id: str) -> bool:
        self.calls.append((notification_type, str(document_approval_id)))
        return True

    async def aclose(self) -> None:
        pass


@pytest.fixture
def store() -> FakeApprovalStore:
    return FakeApprovalStore()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


def make_user(role: str = "site_engineer", user_id: Optional[str] = None) -> dict:
    uid = user_id or str(uuid.uuid4())
    return {"user_id": uid, "role": role, "email": f"{role}@builder.example"}


@pytest.fixture
def user_factory():
    return make_user


def workflow_payload(*stages: dict, document_type: str = "drawing") -> WorkflowCreate:
    return WorkflowCreate(
        name=f"{document_type.title()} sign-off",
        document_type=document_type,
        stages=list(stages) or [{"stage_name": "Review", "required_role": "site_engineer"}],
    )


@pytest.fixture
def payload_factory():
    return workflow_payload
