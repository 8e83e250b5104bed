"""
User management endpoints.

Accounts are created and deactivated by admins; supervisors may browse the
directory; any user may read their own record and edit their profile.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from salesdesk.auth.dependencies import (
    Principal,
    get_client_ip,
    get_context,
    get_current_principal,
    require_admin,
    require_self_or_admin,
    require_supervisor,
)
from salesdesk.core.context import AppContext
from salesdesk.core.responses import success_response
from salesdesk.models.user import UserRole, UserStatus
from salesdesk.schemas.user import ProfileUpdate, UserCreate, UserStatusUpdate, UserUpdate

router = APIRouter()


@router.post("")
async def create_user(
    request: Request,
    user_data: UserCreate,
    principal: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    """
    Create a new user.

    If no password is provided, a temporary password is generated and
    returned once in ``temporaryPassword``.

    Requires: admin
    """
    result = await ctx.directory.create_user(
        user_data,
        actor_id=principal.id,
        ip_address=get_client_ip(request),
    )
    return success_response(result, "User created", status_code=201)


@router.get("")
async def list_users(
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    role: Optional[UserRole] = None,
    status: Optional[UserStatus] = None,
    search: Optional[str] = Query(None, max_length=100),
    principal: Principal = Depends(require_supervisor),
    ctx: AppContext = Depends(get_context),
):
    """
    List users with pagination and filtering.

    Requires: supervisor or admin
    """
    result = await ctx.directory.list_users(
        page=page,
        per_page=per_page,
        role=role,
        status=status,
        search=search,
    )
    return success_response(result, "Users")


@router.get("/{user_id}")
async def get_user(
    user_id: int,
    principal: Principal = Depends(require_self_or_admin("user_id")),
    ctx: AppContext = Depends(get_context),
):
    """Requires: the user themself, or admin"""
    result = await ctx.directory.get_user(user_id)
    return success_response(result, "User")


@router.put("/profile")
async def update_profile(
    request: Request,
    profile_data: ProfileUpdate,
    principal: Principal = Depends(get_current_principal),
    ctx: AppContext = Depends(get_context),
):
    """Update the caller's own name, email or phone."""
    result = await ctx.directory.update_user(
        principal.id,
        profile_data,
        actor_id=principal.id,
        ip_address=get_client_ip(request),
    )
    return success_response(result, "Profile updated")


@router.put("/{user_id}")
async def update_user(
    request: Request,
    user_id: int,
    user_data: UserUpdate,
    principal: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    """
    Update a user's code, name, email, phone or role.

    Requires: admin
    """
    result = await ctx.directory.update_user(
        user_id,
        user_data,
        actor_id=principal.id,
        ip_address=get_client_ip(request),
    )
    return success_response(result, "User updated")


@router.patch("/{user_id}/status")
async def update_user_status(
    request: Request,
    user_id: int,
    status_data: UserStatusUpdate,
    principal: Principal = Depends(require_admin),
    ctx: AppContext = Depends(get_context),
):
    """
    Change a user's status.

    Moving a user out of ``active`` revokes all of their sessions.

    Requires: admin
    """
    result = await ctx.directory.change_status(
        user_id,
        status_data.status,
        actor_id=principal.id,
        reason=status_data.reason,
        ip_address=get_client_ip(request),
    )
    return success_response(result, "User status updated")
