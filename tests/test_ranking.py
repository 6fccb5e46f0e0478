import pytest

from proleague.auth import Caller
from proleague.errors import AuthorizationError, ValidationError
from proleague.models import Ranking
from proleague.ranking import classify, cup_points, daily_payout, league_points, tier_from_points

from conftest import ADMIN, PAYOUTS


class TestPoints:
    @pytest.mark.parametrize(
        "position, expected",
        [(None, 0), (0, 0), (1, 100), (2, 80), (3, 60), (4, 60), (5, 40), (8, 40), (9, 20), (20, 20)],
    )
    def test_league_points_ladder(self, position, expected):
        assert league_points(position) == expected

    def test_cup_points(self):
        assert cup_points("winner") == 60
        assert cup_points("round_of_16") == 10
        assert cup_points("participation") == 0
        assert cup_points(None) == 0

    def test_tier_thresholds(self):
        assert tier_from_points(120) == "elite"
        assert tier_from_points(119) == "mid"
        assert tier_from_points(60) == "mid"
        assert tier_from_points(59) == "bottom"


class TestClassify:
    def test_league_leader_is_elite(self):
        ranking = classify("576007", 1, "none")
        assert ranking.points == 100
        assert ranking.tier == "elite"

    def test_runner_up_with_cup_win_is_elite(self):
        ranking = classify("c2", 2, "winner")
        assert ranking.points == 140
        assert ranking.tier == "elite"

    def test_mid_table(self):
        assert classify("c5", 5, "quarterfinal").tier == "bottom"
        assert classify("c3", 3, "none").tier == "mid"

    def test_unranked_club_is_bottom(self):
        ranking = classify("c0", 0)
        assert ranking.points == 0
        assert ranking.tier == "bottom"

    def test_explicit_tier_wins(self):
        ranking = classify("c9", 12, "none", tier="elite")
        assert ranking.points == 20
        assert ranking.tier == "elite"

    def test_unknown_tier_rejected(self):
        with pytest.raises(ValidationError):
            classify("c9", 1, tier="legendary")


def test_daily_payout_defaults_to_mid():
    assert daily_payout(None, PAYOUTS) == 800_000
    assert daily_payout(Ranking(club_id="x", tier="elite"), PAYOUTS) == 1_000_000
    assert daily_payout(Ranking(club_id="x", tier="bottom"), PAYOUTS) == 600_000


class TestRankingService:
    def test_missing_ranking_is_mid(self, league):
        assert league.rankings.get("nobody").tier == "mid"

    def test_bulk_update_accepts_aliases(self, league):
        league.rankings.bulk_update(ADMIN, {"A": {"leaguePos": 1}, "B": {"league_pos": 9, "cup": "winner"}})
        assert league.rankings.get("A").tier == "elite"
        stored = league.rankings.get("B")
        assert stored.points == 80
        assert stored.tier == "mid"

    def test_bulk_update_is_admin_only(self, league):
        with pytest.raises(AuthorizationError):
            league.rankings.bulk_update(Caller.manager("A"), {"A": {"league_pos": 1}})

    def test_bulk_update_rejects_bad_tier_without_writing(self, league):
        with pytest.raises(ValidationError):
            league.rankings.bulk_update(ADMIN, {"A": {"league_pos": 1}, "B": {"tier": "gold"}})
        assert league.rankings.list() == []

    def test_recompute_keeps_cup_stage(self, league):
        league.rankings.bulk_update(ADMIN, {"B": {"league_pos": 4, "cup": "winner"}})
        rows = [{"club_id": "A", "position": 1}, {"club_id": "B", "position": 2}]
        rankings = {item.club_id: item for item in league.rankings.recompute_from_standings(ADMIN, rows)}
        assert rankings["A"].tier == "elite"
        assert rankings["B"].cup == "winner"
        assert rankings["B"].points == 140
