"""
api/routes/v1/users.py -- User administration REST endpoints.

Routes:
  GET    /api/users          -- list users (public; no hash, no external id)
  GET    /api/users/{id}     -- one user (public)
  POST   /api/users          -- pre-provision an account (Admin)
  PUT    /api/users/{id}     -- Admin, or the user themself for name/email
  DELETE /api/users/{id}     -- Admin; the user's sessions cascade away

The self-service rule for PUT lives in AuthService.update_user() because it
depends on the target id, not just the caller's role.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, UserCreate, UserResponse, UserUpdate
from auth.dependencies import get_principal, require_roles
from auth.models import ADMIN, Principal, User
from auth.service import AuthService

router = APIRouter()

_admin_only = require_roles(ADMIN, message="Forbidden: Only Admins can manage users.")


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _to_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role_id=user.role_id,
        created_at=user.created_at or "",
        updated_at=user.updated_at or "",
    )


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request) -> list[UserResponse]:
    return [_to_response(u) for u in _service(request).list_users()]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int) -> UserResponse:
    return _to_response(_service(request).get_user(user_id))


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, body: UserCreate, principal: Principal = Depends(_admin_only)) -> UserResponse:
    user = _service(request).create_user_admin(
        body.email,
        body.name,
        body.role_id,
        password=body.password,
        external_id=body.external_id,
    )
    return _to_response(user)


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request, user_id: int, body: UserUpdate, principal: Principal = Depends(get_principal)
) -> UserResponse:
    changes = body.model_dump(exclude_unset=True, exclude_none=True)
    return _to_response(_service(request).update_user(principal, user_id, **changes))


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(request: Request, user_id: int, principal: Principal = Depends(_admin_only)) -> MessageResponse:
    _service(request).delete_user(user_id)
    return MessageResponse(message="User deleted successfully")
