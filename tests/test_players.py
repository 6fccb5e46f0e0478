import pytest

from proleague.auth import Caller
from proleague.errors import AuthorizationError, NotFoundError, ValidationError
from proleague.players import RosterCache, normalize, split_aliases

from conftest import ADMIN, roster_player


def test_normalize():
    assert normalize("  Jöhn-Doe_99 ") == "jhndoe99"
    assert normalize(None) == ""


def test_split_aliases():
    assert split_aliases("Bob, Bobby ,,") == ["Bob", "Bobby"]
    assert split_aliases(["x", " ", "y"]) == ["x", "y"]
    assert split_aliases(None) == []


class TestRegistry:
    def test_register_requires_name(self, league):
        with pytest.raises(ValidationError):
            league.players.register_player("   ")

    def test_search_terms_include_aliases(self, league):
        player = league.players.register_player("Robert Lane", aliases="Bob, Bobby_L")
        assert player.search == ["robertlane", "bob", "bobbyl"]

    def test_update_recomputes_search(self, league):
        player = league.players.register_player("Robert")
        updated = league.players.update_player(ADMIN, player.id, name="Rob", aliases=["R9"])
        assert updated.search == ["rob", "r9"]
        assert league.players.resolve_player_id("r9", None) == player.id
        assert league.players.resolve_player_id("Robert", None) is None

    def test_update_is_admin_only(self, league):
        player = league.players.register_player("Robert")
        with pytest.raises(AuthorizationError):
            league.players.update_player(Caller.manager("A"), player.id, name="Rob")

    def test_unknown_player(self, league):
        with pytest.raises(NotFoundError):
            league.players.get_player("nope")


class TestSquads:
    def test_bootstrap_creates_numbered_slots(self, league):
        slots = league.players.bootstrap_squad(ADMIN, "A")
        assert [slot.slot_id for slot in slots][:3] == ["S01", "S02", "S03"]
        assert len(slots) == 15
        assert len(league.players.bootstrap_squad(ADMIN, "B", 99)) == 30
        assert len(league.players.bootstrap_squad(ADMIN, "C", "junk")) == 15

    def test_bootstrap_is_admin_only(self, league):
        with pytest.raises(AuthorizationError):
            league.players.bootstrap_squad(Caller.manager("A"), "A")

    def test_manager_fills_own_squad_by_name(self, league):
        league.players.bootstrap_squad(ADMIN, "A", 2)
        slot = league.players.assign_slot(Caller.manager("A"), "A", "S02", name="Nina")
        squad = league.players.get_squad("A")
        assert squad[0]["player"] is None
        assert squad[1]["player_id"] == slot.player_id
        assert squad[1]["player"]["name"] == "Nina"

    def test_other_manager_cannot_touch_squad(self, league):
        with pytest.raises(AuthorizationError):
            league.players.assign_slot(Caller.manager("B"), "A", "S01", name="Nina")

    def test_assign_needs_player(self, league):
        with pytest.raises(ValidationError):
            league.players.assign_slot(ADMIN, "A", "S01")
        with pytest.raises(NotFoundError):
            league.players.assign_slot(ADMIN, "A", "S01", player_id="missing")

    def test_unassign(self, league):
        player = roster_player(league, "A", "Nina")
        assert league.players.resolve_player_id("nina", "A") == player.id
        league.players.unassign_slot(ADMIN, "A", "S01")
        assert league.players.roster("A") == []
        with pytest.raises(NotFoundError):
            league.players.unassign_slot(ADMIN, "A", "S77")


class TestResolution:
    def test_roster_match_beats_global(self, league):
        outsider = league.players.register_player("Sam")
        insider = roster_player(league, "A", "SAM")
        assert league.players.resolve_player_id("sam", "A") == insider.id
        assert league.players.resolve_player_id("sam", "B") in {outsider.id, insider.id}

    def test_global_fallback_and_miss(self, league):
        zed = league.players.register_player("Zed")
        assert league.players.resolve_player_id("Z.E.D", "A") == zed.id
        assert league.players.resolve_player_id("Zeddy", "A") is None
        assert league.players.resolve_player_id("", "A") is None

    def test_alias_resolves(self, league):
        player = roster_player(league, "A", "Robert", aliases="Bobby")
        assert league.players.resolve_player_id("bobby", "A") == player.id

    def test_roster_change_invalidates_cache(self, league):
        assert league.players.roster("A") == []
        player = roster_player(league, "A", "Nina")
        assert [item.id for item in league.players.roster("A")] == [player.id]


def test_roster_cache_expires():
    now = [0.0]
    cache = RosterCache(ttl=60, clock=lambda: now[0])
    cache.put("A", [])
    assert cache.get("A") == []
    now[0] = 61.0
    assert cache.get("A") is None
    cache.put("B", [])
    cache.invalidate()
    assert cache.get("B") is None
