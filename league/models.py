"""
league/models.py -- Domain dataclasses for teams and players.

Pure data containers. All persistence lives in league/store.py and all error
translation in league/service.py.

id is None before the record is written to the database.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Team:
    name: str
    coach_id: int | None = None  # users.id; unset when the coach is deleted
    id: int | None = None
    created_at: str = ""  # ISO 8601, set by store on insert
    updated_at: str = ""


@dataclass
class Player:
    """A user's membership on the roster.

    One player row per user (UNIQUE user_id). team_id is None for players not
    yet assigned, or whose team was deleted.
    """

    user_id: int
    team_id: int | None = None
    is_captain: bool = False
    id: int | None = None
    created_at: str = ""
    updated_at: str = ""
