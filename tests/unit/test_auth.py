"""
Unit tests for docapproval/services/auth_service.py and
docapproval/middleware/auth.py
"""

import uuid

import pytest
import structlog
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials
from jose import jwt

from docapproval.config import settings
from docapproval.middleware.auth import get_current_user
from docapproval.services.auth_service import create_access_token, verify_access_token


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


def test_access_token_carries_identity_claims_only():
    user_id = str(uuid.uuid4())
    token = create_access_token(user_id=user_id, role="site_engineer", email="se@builder.example")

    claims = verify_access_token(token)

    assert claims["sub"] == user_id
    assert claims["role"] == "site_engineer"
    assert claims["type"] == "access"
    assert "project_id" not in claims


@pytest.mark.asyncio
async def test_current_user_is_built_from_token():
    user_id = str(uuid.uuid4())
    token = create_access_token(user_id=user_id, role="project_manager", email="pm@builder.example")

    try:
        user = await get_current_user(_bearer(token))
    finally:
        structlog.contextvars.clear_contextvars()

    assert user == {
        "user_id": user_id,
        "role": "project_manager",
        "email": "pm@builder.example",
    }


@pytest.mark.asyncio
async def test_non_access_token_is_rejected():
    token = jwt.encode(
        {"sub": str(uuid.uuid4()), "role": "admin", "type": "refresh"},
        settings.JWT_SECRET_KEY,
        algorithm=settings.JWT_ALGORITHM,
    )

    with pytest.raises(HTTPException) as exc_info:
        await get_current_user(_bearer(token))

    assert exc_info.value.status_code == 401
    assert exc_info.value.detail["error"]["code"] == "AUTH_TOKEN_INVALID"
