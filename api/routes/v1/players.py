"""
api/routes/v1/players.py -- Player REST endpoints.

Routes:
  GET    /api/players[?team_id=]  -- list players, optionally for one team (public)
  GET    /api/players/{id}        -- one player (public)
  POST   /api/players             -- add a user to the roster (any authenticated user)
  PUT    /api/players/{id}        -- change team / captaincy (any authenticated user)
  DELETE /api/players/{id}        -- remove (Admin or Coach)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, PlayerCreate, PlayerResponse, PlayerUpdate
from auth.dependencies import get_principal, require_roles
from auth.models import ADMIN, COACH, Principal
from league.models import Player
from league.service import LeagueService

router = APIRouter()

_staff_only = require_roles(ADMIN, COACH, message="Forbidden: Only Admins or Coaches can delete players.")


def _service(request: Request) -> LeagueService:
    return request.app.state.league_service


def _to_response(player: Player) -> PlayerResponse:
    return PlayerResponse(
        id=player.id,
        user_id=player.user_id,
        team_id=player.team_id,
        is_captain=player.is_captain,
        created_at=player.created_at,
        updated_at=player.updated_at,
    )


@router.get("/players", response_model=list[PlayerResponse])
def list_players(request: Request, team_id: Optional[int] = None) -> list[PlayerResponse]:
    return [_to_response(p) for p in _service(request).list_players(team_id)]


@router.get("/players/{player_id}", response_model=PlayerResponse)
def get_player(request: Request, player_id: int) -> PlayerResponse:
    return _to_response(_service(request).get_player(player_id))


@router.post("/players", response_model=PlayerResponse, status_code=201)
def create_player(
    request: Request, body: PlayerCreate, principal: Principal = Depends(get_principal)
) -> PlayerResponse:
    return _to_response(_service(request).create_player(body.user_id, body.team_id, body.is_captain))


@router.put("/players/{player_id}", response_model=PlayerResponse)
def update_player(
    request: Request, player_id: int, body: PlayerUpdate, principal: Principal = Depends(get_principal)
) -> PlayerResponse:
    changes = body.model_dump(exclude_unset=True)
    if changes.get("is_captain", False) is None:
        changes.pop("is_captain")
    return _to_response(_service(request).update_player(player_id, **changes))


@router.delete("/players/{player_id}", response_model=MessageResponse)
def delete_player(request: Request, player_id: int, principal: Principal = Depends(_staff_only)) -> MessageResponse:
    _service(request).delete_player(player_id)
    return MessageResponse(message="Player deleted successfully")
