"""
Unit tests for docapproval/services/workflow_service.py
"""

import uuid

import pytest
from fastapi import HTTPException

from docapproval.config import settings
from docapproval.services.workflow_service import (
    build_stages,
    create_workflow,
    deactivate_workflow,
    get_workflow,
    get_workflows_by_type,
    parse_uuid,
)


# ---------------------------------------------------------------------------
# parse_uuid
# ---------------------------------------------------------------------------


def test_parse_uuid_accepts_string_form():
    value = uuid.uuid4()
    assert parse_uuid(str(value), "id") == value


@pytest.mark.parametrize("bad", ["", "abc", None, "1234"])
def test_parse_uuid_rejects_malformed(bad):
    with pytest.raises(HTTPException) as exc_info:
        parse_uuid(bad, "workflow_id")
    assert exc_info.value.status_code == 422
    assert exc_info.value.detail["error"]["code"] == "INVALID_IDENTIFIER"
    assert "workflow_id" in exc_info.value.detail["error"]["message"]


# ---------------------------------------------------------------------------
# build_stages
# ---------------------------------------------------------------------------


def test_build_stages_defaults_order_to_position(payload_factory):
    stages = build_stages(payload_factory(
        {"stage_name": "Engineer", "required_role": "engineer"},
        {"stage_name": "Manager", "required_role": "project_manager"},
    ))

    assert [s.stage_order for s in stages] == [1, 2]


def test_build_stages_keeps_explicit_order_and_deadline(payload_factory):
    stages = build_stages(payload_factory(
        {"stage_name": "Electrical", "required_role": "engineer", "stage_order": 3,
         "deadline_hours": 12},
        {"stage_name": "Structural", "required_role": "engineer", "stage_order": 3},
    ))

    assert [s.stage_order for s in stages] == [3, 3]
    assert stages[0].deadline_hours == 12
    assert stages[1].deadline_hours == settings.DEFAULT_STAGE_DEADLINE_HOURS


def test_build_stages_rejects_malformed_pinned_approver(payload_factory):
    with pytest.raises(HTTPException) as exc_info:
        build_stages(payload_factory(
            {"stage_name": "Engineer", "required_role": "engineer",
             "approver_user_id": "someone"},
        ))
    assert exc_info.value.status_code == 422


def test_build_stages_rejects_mixed_explicit_and_default_orders(payload_factory):
    # Without the check both stages would land in one parallel group at order 1
    with pytest.raises(HTTPException) as exc_info:
        build_stages(payload_factory(
            {"stage_name": "Engineer", "required_role": "engineer"},
            {"stage_name": "Manager", "required_role": "project_manager", "stage_order": 1},
        ))
    assert exc_info.value.status_code == 422
    assert exc_info.value.detail["error"]["code"] == "WORKFLOW_STAGE_ORDER_MIXED"


# ---------------------------------------------------------------------------
# create / get / list / deactivate
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_workflow_persists_stages_in_order(store, payload_factory):
    creator = str(uuid.uuid4())
    workflow = await create_workflow(
        store,
        payload_factory(
            {"stage_name": "Manager", "required_role": "project_manager", "stage_order": 2},
            {"stage_name": "Engineer", "required_role": "engineer", "stage_order": 1},
        ),
        created_by=creator,
    )

    assert workflow.is_active is True
    assert workflow.created_by == uuid.UUID(creator)
    assert [s.stage_name for s in workflow.stages] == ["Engineer", "Manager"]
    assert all(s.workflow_id == workflow.id for s in workflow.stages)
    assert await get_workflow(store, str(workflow.id)) is workflow


@pytest.mark.asyncio
async def test_get_unknown_workflow_raises_404(store):
    with pytest.raises(HTTPException) as exc_info:
        await get_workflow(store, str(uuid.uuid4()))
    assert exc_info.value.status_code == 404
    assert exc_info.value.detail["error"]["code"] == "WORKFLOW_NOT_FOUND"


@pytest.mark.asyncio
async def test_list_filters_by_document_type(store, payload_factory):
    drawing = await create_workflow(store, payload_factory(document_type="drawing"))
    await create_workflow(store, payload_factory(document_type="rfi"))

    found = await get_workflows_by_type(store, "drawing")

    assert [w.id for w in found] == [drawing.id]


@pytest.mark.asyncio
async def test_empty_type_lists_all_active(store, payload_factory):
    await create_workflow(store, payload_factory(document_type="drawing"))
    await create_workflow(store, payload_factory(document_type="rfi"))

    assert len(await get_workflows_by_type(store, "")) == 2


@pytest.mark.asyncio
async def test_deactivated_workflow_leaves_listing(store, payload_factory):
    workflow = await create_workflow(store, payload_factory())

    deactivated, changed = await deactivate_workflow(store, str(workflow.id))

    assert changed is True
    assert deactivated.is_active is False
    assert await get_workflows_by_type(store, "drawing") == []
    # Still retrievable for in-flight approvals
    assert await get_workflow(store, str(workflow.id)) is workflow


@pytest.mark.asyncio
async def test_deactivating_twice_reports_no_change(store, payload_factory):
    workflow = await create_workflow(store, payload_factory())
    await deactivate_workflow(store, str(workflow.id))
    flushes = store.flush_count

    again, changed = await deactivate_workflow(store, str(workflow.id))

    assert again is workflow
    assert changed is False
    assert store.flush_count == flushes
