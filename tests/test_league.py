"""
tests/test_league.py -- LeagueStore and LeagueService unit tests.

Coverage:
  - Team and player CRUD through the service
  - Lifecycle rules carried by foreign keys: deleting a user removes their
    player row, deleting a team or coach unsets the reference
  - Error translation: duplicate player, unknown user/team/coach
  - Store field whitelist
"""

from __future__ import annotations

import pytest

from auth.models import User
from auth.store import UserStore
from conftest import ROLE_IDS
from core.errors import ConflictError, NotFoundError, ValidationError
from league.service import LeagueService
from league.store import LeagueStore


@pytest.fixture
def league(engine) -> LeagueService:
    return LeagueService(LeagueStore(engine))


@pytest.fixture
def user_store(engine) -> UserStore:
    return UserStore(engine)


def _user(store: UserStore, email: str, role: str = "Player") -> int:
    return store.create_user(User(email=email, name=email.split("@")[0], role_id=ROLE_IDS[role], password_hash="x"))


class TestTeams:
    def test_create_and_list(self, league: LeagueService) -> None:
        league.create_team("Varsity")
        league.create_team("JV")
        assert [t.name for t in league.list_teams()] == ["JV", "Varsity"]

    def test_create_requires_name(self, league: LeagueService) -> None:
        with pytest.raises(ValidationError, match="Missing required field: name"):
            league.create_team("   ")

    def test_unknown_coach(self, league: LeagueService) -> None:
        with pytest.raises(ValidationError, match="User with ID 42 does not exist."):
            league.create_team("Varsity", coach_id=42)

    def test_update_and_unset_coach(self, league: LeagueService, user_store: UserStore) -> None:
        coach_id = _user(user_store, "c@x.com", "Coach")
        team = league.create_team("Varsity", coach_id=coach_id)
        assert team.coach_id == coach_id
        renamed = league.update_team(team.id, name="Varsity A", coach_id=None)
        assert renamed.name == "Varsity A"
        assert renamed.coach_id is None

    def test_update_missing_team(self, league: LeagueService) -> None:
        with pytest.raises(NotFoundError, match="Team not found."):
            league.update_team(999, name="X")

    def test_deleting_coach_unsets_team_coach(self, league: LeagueService, user_store: UserStore) -> None:
        coach_id = _user(user_store, "c@x.com", "Coach")
        team = league.create_team("Varsity", coach_id=coach_id)
        user_store.delete_user(coach_id)
        assert league.get_team(team.id).coach_id is None

    def test_delete_team_twice(self, league: LeagueService) -> None:
        team = league.create_team("Varsity")
        league.delete_team(team.id)
        with pytest.raises(NotFoundError):
            league.delete_team(team.id)


class TestPlayers:
    def test_create_player(self, league: LeagueService, user_store: UserStore) -> None:
        uid = _user(user_store, "p@x.com")
        team = league.create_team("Varsity")
        player = league.create_player(uid, team.id, is_captain=True)
        assert player.user_id == uid
        assert player.team_id == team.id
        assert player.is_captain is True

    def test_one_player_row_per_user(self, league: LeagueService, user_store: UserStore) -> None:
        uid = _user(user_store, "p@x.com")
        league.create_player(uid)
        with pytest.raises(ConflictError, match=f"User with user_id {uid} is already a player."):
            league.create_player(uid)

    def test_requires_user_id(self, league: LeagueService) -> None:
        with pytest.raises(ValidationError, match="Missing required field: user_id"):
            league.create_player(None)

    def test_unknown_team(self, league: LeagueService, user_store: UserStore) -> None:
        uid = _user(user_store, "p@x.com")
        with pytest.raises(ValidationError, match="Team with team_id 77 does not exist."):
            league.create_player(uid, team_id=77)

    def test_unknown_user(self, league: LeagueService) -> None:
        with pytest.raises(ValidationError, match="User with user_id 88 does not exist."):
            league.create_player(88)

    def test_deleting_user_removes_player(self, league: LeagueService, user_store: UserStore) -> None:
        uid = _user(user_store, "p@x.com")
        player = league.create_player(uid)
        user_store.delete_user(uid)
        with pytest.raises(NotFoundError, match="Player not found."):
            league.get_player(player.id)

    def test_deleting_team_unassigns_players(self, league: LeagueService, user_store: UserStore) -> None:
        uid = _user(user_store, "p@x.com")
        team = league.create_team("Varsity")
        player = league.create_player(uid, team.id)
        league.delete_team(team.id)
        assert league.get_player(player.id).team_id is None

    def test_update_player(self, league: LeagueService, user_store: UserStore) -> None:
        uid = _user(user_store, "p@x.com")
        player = league.create_player(uid)
        team = league.create_team("Varsity")
        updated = league.update_player(player.id, team_id=team.id, is_captain=True)
        assert updated.team_id == team.id
        assert updated.is_captain is True

    def test_update_player_empty(self, league: LeagueService) -> None:
        with pytest.raises(ValidationError, match="No update fields provided."):
            league.update_player(1)

    def test_list_players_by_team(self, league: LeagueService, user_store: UserStore) -> None:
        team = league.create_team("Varsity")
        on_team = league.create_player(_user(user_store, "a@x.com"), team.id)
        league.create_player(_user(user_store, "b@x.com"))
        assert [p.id for p in league.list_players(team.id)] == [on_team.id]
        assert len(league.list_players()) == 2


def test_store_rejects_unknown_fields(engine) -> None:
    store = LeagueStore(engine)
    with pytest.raises(ValueError, match="Unknown player fields"):
        store.update_player(1, user_id=5)
    with pytest.raises(ValueError, match="Unknown team fields"):
        store.update_team(1, created_at="x")
