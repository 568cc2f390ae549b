"""
Unit tests for docapproval/services/audit_service.py
"""

import uuid

import pytest
import structlog

from docapproval.services.audit_service import _compute_changed_fields, create_audit_log


def test_changed_fields_lists_differing_keys():
    before = {"status": "in_progress", "current_stage_id": "a"}
    after = {"status": "in_progress", "current_stage_id": "b"}

    assert _compute_changed_fields(before, after) == ["current_stage_id"]


def test_changed_fields_none_without_both_states():
    assert _compute_changed_fields(None, {"status": "approved"}) is None
    assert _compute_changed_fields({"status": "approved"}, {"status": "approved"}) is None


@pytest.mark.asyncio
async def test_audit_entry_added_and_flushed(store):
    actor = str(uuid.uuid4())
    entity = str(uuid.uuid4())
    structlog.contextvars.bind_contextvars(request_id="req-123")
    try:
        audit = await create_audit_log(
            store,
            actor_id=actor,
            action="STAGE_REJECTED",
            entity_type="DocumentApproval",
            entity_id=entity,
            before_state={"status": "in_progress"},
            after_state={"status": "rejected"},
            actor_email="engineer@builder.example",
        )
    finally:
        structlog.contextvars.clear_contextvars()

    assert store.audit_logs == [audit]
    assert store.flush_count == 1
    assert audit.actor_id == uuid.UUID(actor)
    assert audit.entity_id == uuid.UUID(entity)
    assert audit.changed_fields == ["status"]
    assert audit.request_id == "req-123"


@pytest.mark.asyncio
async def test_malformed_actor_is_dropped_not_fatal(store):
    audit = await create_audit_log(
        store,
        actor_id="system",
        action="DOCUMENT_SUBMITTED",
        entity_type="DocumentApproval",
        entity_id=str(uuid.uuid4()),
    )

    assert audit.actor_id is None


@pytest.mark.asyncio
async def test_entity_id_is_required(store):
    with pytest.raises(ValueError):
        await create_audit_log(
            store,
            actor_id=None,
            action="DOCUMENT_SUBMITTED",
            entity_type="DocumentApproval",
            entity_id="not-a-uuid",
        )
