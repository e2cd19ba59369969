"""
league/store.py -- SQLAlchemy Core persistence layer for teams and players.

Pattern: Repository + Data Mapper (same as auth/store.py).
LeagueStore is the repository; _row_to_team / _row_to_player are the mappers.

Foreign keys carry the lifecycle rules, not this module:
  teams.coach_id   -> users.id  ON DELETE SET NULL
  players.user_id  -> users.id  ON DELETE CASCADE
  players.team_id  -> teams.id  ON DELETE SET NULL

IntegrityError propagates to league/service.py for translation.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.engine import Engine

from core.database import players as _players
from core.database import teams as _teams
from league.models import Player, Team

_TEAM_FIELDS = frozenset({"name", "coach_id"})
_PLAYER_FIELDS = frozenset({"team_id", "is_captain"})


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class LeagueStore:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def create_team(self, team: Team) -> int:
        """Insert a new team and return its assigned database ID."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _teams.insert().values(name=team.name, coach_id=team.coach_id, created_at=now, updated_at=now)
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_team(self, team_id: int) -> Optional[Team]:
        with self.engine.connect() as conn:
            row = conn.execute(_teams.select().where(_teams.c.id == team_id)).fetchone()
        return _row_to_team(row) if row is not None else None

    def list_teams(self) -> list[Team]:
        """Return all teams ordered by name."""
        with self.engine.connect() as conn:
            rows = conn.execute(_teams.select().order_by(_teams.c.name, _teams.c.id)).fetchall()
        return [_row_to_team(r) for r in rows]

    def update_team(self, team_id: int, **fields) -> bool:
        """Update name and/or coach_id. Returns False if team_id was not found."""
        unknown = set(fields) - _TEAM_FIELDS
        if unknown:
            raise ValueError(f"Unknown team fields: {sorted(unknown)!r}")
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_teams.update().where(_teams.c.id == team_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_team(self, team_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_teams.delete().where(_teams.c.id == team_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def create_player(self, player: Player) -> int:
        """Insert a player row. Raises IntegrityError if the user is already a player."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _players.insert().values(
                    user_id=player.user_id,
                    team_id=player.team_id,
                    is_captain=player.is_captain,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_player(self, player_id: int) -> Optional[Player]:
        with self.engine.connect() as conn:
            row = conn.execute(_players.select().where(_players.c.id == player_id)).fetchone()
        return _row_to_player(row) if row is not None else None

    def list_players(self, team_id: Optional[int] = None) -> list[Player]:
        """Return players ordered by ID, optionally filtered to one team."""
        stmt = _players.select().order_by(_players.c.id)
        if team_id is not None:
            stmt = stmt.where(_players.c.team_id == team_id)
        with self.engine.connect() as conn:
            rows = conn.execute(stmt).fetchall()
        return [_row_to_player(r) for r in rows]

    def update_player(self, player_id: int, **fields) -> bool:
        unknown = set(fields) - _PLAYER_FIELDS
        if unknown:
            raise ValueError(f"Unknown player fields: {sorted(unknown)!r}")
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_players.update().where(_players.c.id == player_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_player(self, player_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_players.delete().where(_players.c.id == player_id))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_team(row) -> Team:
    return Team(
        id=row.id,
        name=row.name,
        coach_id=row.coach_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_player(row) -> Player:
    return Player(
        id=row.id,
        user_id=row.user_id,
        team_id=row.team_id,
        is_captain=bool(row.is_captain),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
