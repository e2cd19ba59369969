"""
api/routes/v1/teams.py -- Team REST endpoints.

Routes:
  GET    /api/teams          -- list teams (public)
  GET    /api/teams/{id}     -- one team (public)
  POST   /api/teams          -- create (any authenticated user)
  PUT    /api/teams/{id}     -- update (any authenticated user)
  DELETE /api/teams/{id}     -- delete (Admin or Coach)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, TeamCreate, TeamResponse, TeamUpdate
from auth.dependencies import get_principal, require_roles
from auth.models import ADMIN, COACH, Principal
from league.models import Team
from league.service import LeagueService

router = APIRouter()

_staff_only = require_roles(ADMIN, COACH, message="Forbidden: Only Admins or Coaches can delete teams.")


def _service(request: Request) -> LeagueService:
    return request.app.state.league_service


def _to_response(team: Team) -> TeamResponse:
    return TeamResponse(
        id=team.id,
        name=team.name,
        coach_id=team.coach_id,
        created_at=team.created_at,
        updated_at=team.updated_at,
    )


@router.get("/teams", response_model=list[TeamResponse])
def list_teams(request: Request) -> list[TeamResponse]:
    return [_to_response(t) for t in _service(request).list_teams()]


@router.get("/teams/{team_id}", response_model=TeamResponse)
def get_team(request: Request, team_id: int) -> TeamResponse:
    return _to_response(_service(request).get_team(team_id))


@router.post("/teams", response_model=TeamResponse, status_code=201)
def create_team(request: Request, body: TeamCreate, principal: Principal = Depends(get_principal)) -> TeamResponse:
    return _to_response(_service(request).create_team(body.name, body.coach_id))


@router.put("/teams/{team_id}", response_model=TeamResponse)
def update_team(
    request: Request, team_id: int, body: TeamUpdate, principal: Principal = Depends(get_principal)
) -> TeamResponse:
    return _to_response(_service(request).update_team(team_id, **body.model_dump(exclude_unset=True)))


@router.delete("/teams/{team_id}", response_model=MessageResponse)
def delete_team(request: Request, team_id: int, principal: Principal = Depends(_staff_only)) -> MessageResponse:
    _service(request).delete_team(team_id)
    return MessageResponse(message="Team deleted successfully")
