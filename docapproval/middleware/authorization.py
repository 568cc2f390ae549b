from fastapi import Depends, HTTPException, status

from docapproval.middleware.auth import get_current_user

ADMIN_ROLE = "admin"


def require_roles(*allowed_roles: str):
    """
    FastAPI dependency factory for role-based access control.

    ``admin`` passes every check.

    Usage:
        @router.post("")
        async def create_workflow(
            current_user: dict = Depends(get_current_user),
            _auth: None = Depends(require_roles("project_manager")),
        ):
    """
    async def check_role(current_user: dict = Depends(get_current_user)):
        role = current_user["role"]
        if role != ADMIN_ROLE and role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={
                    "error": {
                        "code": "INSUFFICIENT_PERMISSIONS",
                        "message": f"Role '{role}' cannot perform this action",
                    }
                },
            )
        return None

    return check_role
