"""
api/routes/v1/roles.py -- Role REST endpoints.

Routes:
  GET    /api/roles          -- list roles (public)
  GET    /api/roles/{id}     -- one role (public)
  POST   /api/roles          -- create (Admin)
  PUT    /api/roles/{id}     -- rename (Admin)
  DELETE /api/roles/{id}     -- delete (Admin); 409 while users reference it
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, RoleResponse, RoleWrite
from auth.dependencies import require_roles
from auth.models import ADMIN, Principal, Role
from auth.service import AuthService

router = APIRouter()

_admin_only = require_roles(ADMIN, message="Forbidden: Only Admins can manage roles.")


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


def _to_response(role: Role) -> RoleResponse:
    return RoleResponse(id=role.id, name=role.name)


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(request: Request) -> list[RoleResponse]:
    return [_to_response(r) for r in _service(request).list_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(request: Request, role_id: int) -> RoleResponse:
    return _to_response(_service(request).get_role(role_id))


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(request: Request, body: RoleWrite, principal: Principal = Depends(_admin_only)) -> RoleResponse:
    return _to_response(_service(request).create_role(body.name))


@router.put("/roles/{role_id}", response_model=RoleResponse)
def update_role(
    request: Request, role_id: int, body: RoleWrite, principal: Principal = Depends(_admin_only)
) -> RoleResponse:
    return _to_response(_service(request).update_role(role_id, body.name))


@router.delete("/roles/{role_id}", response_model=MessageResponse)
def delete_role(request: Request, role_id: int, principal: Principal = Depends(_admin_only)) -> MessageResponse:
    _service(request).delete_role(role_id)
    return MessageResponse(message="Role deleted successfully")
