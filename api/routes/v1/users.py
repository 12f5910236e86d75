"""
api/routes/v1/users.py -- Authenticated account endpoints.

Routes:
  GET    /api/v1/me                    -- caller's profile (requires auth)
  DELETE /api/v1/me                    -- soft-delete caller's account; 204
  PATCH  /api/v1/users/{user_id}/role  -- promote / demote (admin only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import ProfileResponse, RoleUpdate
from auth.dependencies import get_current_credentials, require_admin
from auth.models import Credentials, UserRecord
from auth.service import AuthService

# Auth policy:
# - GET    /api/v1/me:                    requires auth (get_current_credentials)
# - DELETE /api/v1/me:                    requires auth (get_current_credentials)
# - PATCH  /api/v1/users/{user_id}/role:  requires admin (require_admin)
router = APIRouter()


@router.get("/me", response_model=ProfileResponse)
def me(request: Request, credentials: Credentials = Depends(get_current_credentials)) -> ProfileResponse:
    """Return the live profile for the token's user.

    404 if the account has been soft-deleted since the token was minted.
    """
    service: AuthService = request.app.state.auth_service
    return ProfileResponse.from_record(service.get_profile(credentials))


@router.delete("/me", status_code=204)
def delete_me(request: Request, credentials: Credentials = Depends(get_current_credentials)) -> Response:
    """Soft-delete the caller's account. The email becomes free to register again."""
    service: AuthService = request.app.state.auth_service
    service.deactivate(credentials)
    return Response(status_code=204)


@router.patch("/users/{user_id}/role", response_model=ProfileResponse)
def update_role(
    request: Request,
    user_id: str,
    body: RoleUpdate,
    current_user: UserRecord = Depends(require_admin),
) -> ProfileResponse:
    """Change another user's role. Admin only."""
    service: AuthService = request.app.state.auth_service
    return ProfileResponse.from_record(service.set_role(user_id, body.role.value))
