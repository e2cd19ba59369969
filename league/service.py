"""
league/service.py -- Team and player operations with database error translation.

LeagueService validates input, calls LeagueStore, and turns driver-level
integrity failures into core.errors types:
  unique violation       -> ConflictError  (user is already a player)
  foreign key on write   -> ValidationError (unknown user, team or coach)

Authorization is not checked here. The routes in api/routes/v1 put the role
gate in front of every mutating call.
"""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.errors import (
    ConflictError,
    InfrastructureError,
    NotFoundError,
    ValidationError,
    translate_integrity_error,
)
from league.models import Player, Team
from league.store import LeagueStore

logger = logging.getLogger("courtstats.league")


class LeagueService:
    def __init__(self, store: LeagueStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Teams
    # ------------------------------------------------------------------

    def list_teams(self) -> list[Team]:
        return self._db(self.store.list_teams)

    def get_team(self, team_id: int) -> Team:
        team = self._db(self.store.get_team, team_id)
        if team is None:
            raise NotFoundError("Team not found.")
        return team

    def create_team(self, name: Optional[str], coach_id: Optional[int] = None) -> Team:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Missing required field: name")
        try:
            team_id = self.store.create_team(Team(name=name, coach_id=coach_id))
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc, foreign_key=ValidationError(f"User with ID {coach_id} does not exist.")
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error creating team.") from exc
        logger.info("Created team id=%s", team_id)
        return self.get_team(team_id)

    def update_team(self, team_id: int, **changes) -> Team:
        """Apply name / coach_id changes. Pass coach_id=None to unset the coach."""
        if "name" in changes:
            changes["name"] = (changes["name"] or "").strip()
            if not changes["name"]:
                raise ValidationError("Team name cannot be empty.")
        if not changes:
            raise ValidationError("No update fields provided.")
        try:
            updated = self.store.update_team(team_id, **changes)
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc, foreign_key=ValidationError(f"User with ID {changes.get('coach_id')} does not exist.")
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error updating team.") from exc
        if not updated:
            raise NotFoundError("Team not found.")
        return self.get_team(team_id)

    def delete_team(self, team_id: int) -> None:
        """Delete a team. Its players stay on the roster with team_id unset."""
        if not self._db(self.store.delete_team, team_id):
            raise NotFoundError("Team not found.")
        logger.info("Deleted team id=%s", team_id)

    # ------------------------------------------------------------------
    # Players
    # ------------------------------------------------------------------

    def list_players(self, team_id: Optional[int] = None) -> list[Player]:
        return self._db(self.store.list_players, team_id)

    def get_player(self, player_id: int) -> Player:
        player = self._db(self.store.get_player, player_id)
        if player is None:
            raise NotFoundError("Player not found.")
        return player

    def create_player(self, user_id: Optional[int], team_id: Optional[int] = None, is_captain: bool = False) -> Player:
        if not user_id:
            raise ValidationError("Missing required field: user_id")
        try:
            player_id = self.store.create_player(Player(user_id=user_id, team_id=team_id, is_captain=is_captain))
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc,
                unique=ConflictError(f"User with user_id {user_id} is already a player."),
                foreign_key=self._missing_reference(user_id, team_id),
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error creating player.") from exc
        logger.info("Created player id=%s for user id=%s", player_id, user_id)
        return self.get_player(player_id)

    def update_player(self, player_id: int, **changes) -> Player:
        """Apply team_id / is_captain changes. Pass team_id=None to unassign."""
        if not changes:
            raise ValidationError("No update fields provided.")
        try:
            updated = self.store.update_player(player_id, **changes)
        except IntegrityError as exc:
            raise translate_integrity_error(
                exc, foreign_key=ValidationError(f"Team with team_id {changes.get('team_id')} does not exist.")
            ) from exc
        except SQLAlchemyError as exc:
            raise InfrastructureError("Database error updating player.") from exc
        if not updated:
            raise NotFoundError("Player not found.")
        return self.get_player(player_id)

    def delete_player(self, player_id: int) -> None:
        if not self._db(self.store.delete_player, player_id):
            raise NotFoundError("Player not found.")
        logger.info("Deleted player id=%s", player_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _missing_reference(self, user_id: int, team_id: Optional[int]) -> ValidationError:
        # SQLite does not name the violated constraint; the team is cheap to check.
        if team_id is not None and self._db(self.store.get_team, team_id) is None:
            return ValidationError(f"Team with team_id {team_id} does not exist.")
        return ValidationError(f"User with user_id {user_id} does not exist.")

    @staticmethod
    def _db(fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            logger.exception("Database error in %s", getattr(fn, "__name__", "store call"))
            raise InfrastructureError("Database error.") from exc
