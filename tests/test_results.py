import pytest

from proleague.auth import Caller
from proleague.errors import AuthorizationError, ConflictError, ValidationError
from proleague.results import coerce_details, coerce_score, parse_loose_result_text

from conftest import ADMIN, DAY_MS, T0, make_fixture, roster_player

SUMMARY = "Home, Player: Alice, 2 goals, 1 assist, Away, Player: Bob, 1 goal, score: 3-1"


class TestFreeTextParser:
    def test_round_trip_summary(self):
        parsed = parse_loose_result_text(SUMMARY)
        assert (parsed.score.home, parsed.score.away) == (3, 1)
        home, away = parsed.details["home"], parsed.details["away"]
        assert [(row.player, row.goals, row.assists) for row in home] == [("Alice", 2, 1)]
        assert [(row.player, row.goals, row.assists) for row in away] == [("Bob", 1, 0)]
        assert not parsed.is_empty

    def test_side_score_and_rating(self):
        parsed = parse_loose_result_text("score: 2\nPlayer 1: Carl\nrating: 8.5\naway\nscore: 4")
        assert (parsed.score.home, parsed.score.away) == (2, 4)
        assert parsed.details["home"][0].player == "Carl"
        assert parsed.details["home"][0].rating == 8.5

    def test_bare_name_becomes_player(self):
        parsed = parse_loose_result_text("Dana, 3 goals")
        assert [(row.player, row.goals) for row in parsed.details["home"]] == [("Dana", 3)]

    def test_stats_without_name_are_dropped(self):
        parsed = parse_loose_result_text("2 goals, 1 assist")
        assert parsed.is_empty

    def test_score_only(self):
        parsed = parse_loose_result_text("2 - 2")
        assert parsed.score.home == 2 and parsed.score.away == 2
        assert parsed.details == {"home": [], "away": []}
        assert not parsed.is_empty

    def test_club_names_switch_side(self):
        parsed = parse_loose_result_text("Lions, Player: Ann, Tigers, Player: Ben", "Lions", "Tigers")
        assert [row.player for row in parsed.details["home"]] == ["Ann"]
        assert [row.player for row in parsed.details["away"]] == ["Ben"]

    def test_numeric_club_ids_do_not_swallow_stats(self):
        parsed = parse_loose_result_text("Player: Ann, 2 goals", "2", "3")
        assert parsed.details["home"][0].goals == 2

    def test_nothing_recognised(self):
        assert parse_loose_result_text("").is_empty
        assert parse_loose_result_text("5").is_empty
        assert parse_loose_result_text(None).is_empty


class TestCoercion:
    def test_malformed_rows_become_zeros(self):
        details = coerce_details(
            {
                "home": [{"player": "X", "goals": "abc", "assists": -2, "rating": "nan"}, {}, "junk"],
                "away": "not a list",
            }
        )
        assert len(details["home"]) == 1
        row = details["home"][0]
        assert (row.goals, row.assists, row.rating) == (0, 0, 0.0)
        assert details["away"] == []

    def test_numeric_strings_are_accepted(self):
        row = coerce_details({"home": [{"displayName": "Y", "goals": "2.0", "rating": "7.25"}]})["home"][0]
        assert (row.player, row.goals, row.rating) == ("Y", 2, 7.25)

    def test_score_aliases(self):
        assert coerce_score({"hs": "3", "as": 1}).to_dict() == {"home": 3, "away": 1}
        assert coerce_score({"score": {"home": 2, "away": 0}}).to_dict() == {"home": 2, "away": 0}
        assert coerce_score({"home": -4, "away": "x"}).to_dict() == {"home": 0, "away": 0}


class TestStructuredIngestion:
    def test_manager_reports_and_names_resolve(self, league, clock):
        alice = roster_player(league, "A", "Alice")
        fixture = make_fixture(league, when=T0 + DAY_MS)
        clock.advance(2 * DAY_MS)
        result = league.results.submit_structured(
            Caller.manager("A"),
            fixture.id,
            {
                "home": 2,
                "away": 1,
                "text": "good game",
                "mvpHome": "Alice",
                "details": {
                    "home": [{"player": "alice", "goals": 2}],
                    "away": [{"player": "Stranger", "goals": 1}],
                },
            },
        )
        assert result.status == "final"
        assert result.when == T0 + DAY_MS
        assert result.reported_at == clock.now
        assert result.report.mvp_home == "Alice"
        assert result.details["home"][0].player_id == alice.id
        assert result.details["away"][0].player_id == ""
        assert result.unresolved == [{"side": "away", "name": "Stranger"}]

    def test_when_defaults_to_report_time(self, league, clock):
        fixture = make_fixture(league)
        result = league.results.submit_structured(ADMIN, fixture.id, {"home": 0, "away": 0})
        assert result.when == clock.now

    def test_score_only_correction_keeps_details(self, league):
        fixture = make_fixture(league, when=T0)
        league.results.submit_structured(
            ADMIN, fixture.id, {"home": 1, "away": 0, "details": {"home": [{"player": "Zoe", "goals": 1}]}}
        )
        corrected = league.results.submit_structured(ADMIN, fixture.id, {"home": 2, "away": 0})
        assert corrected.score.home == 2
        assert [row.player for row in corrected.details["home"]] == ["Zoe"]

    def test_re_report_overwrites_details(self, league):
        fixture = make_fixture(league, when=T0)
        league.results.submit_structured(
            ADMIN, fixture.id, {"home": 1, "away": 0, "details": {"home": [{"player": "Zoe", "goals": 1}]}}
        )
        again = league.results.submit_structured(
            ADMIN, fixture.id, {"home": 1, "away": 0, "details": {"home": [{"player": "Yan", "goals": 1}]}}
        )
        assert [row.player for row in again.details["home"]] == ["Yan"]

    def test_manager_cannot_overwrite_final_result(self, league):
        zoe = roster_player(league, "B", "Zoe")
        fixture = make_fixture(league, when=T0)
        league.results.submit_structured(
            ADMIN, fixture.id, {"home": 0, "away": 3, "details": {"away": [{"player": "Zoe", "goals": 3}]}}
        )
        with pytest.raises(ConflictError):
            league.results.submit_structured(
                Caller.manager("A"),
                fixture.id,
                {"home": 5, "away": 0, "details": {"away": [{"player": "Zoe", "goals": 0}]}},
            )
        stored = league.fixtures.get_fixture(fixture.id)
        assert (stored.score.home, stored.score.away) == (0, 3)
        assert [row.goals for row in stored.details["away"]] == [3]
        assert league.stats.get_stat("2026-01", zoe.id).goals == 3

    def test_outsider_cannot_report(self, league):
        fixture = make_fixture(league)
        with pytest.raises(AuthorizationError):
            league.results.submit_structured(Caller.manager("C"), fixture.id, {"home": 1, "away": 0})
        assert league.fixtures.get_fixture(fixture.id).status == "pending"

    def test_payload_must_be_an_object(self, league):
        fixture = make_fixture(league)
        with pytest.raises(ValidationError):
            league.results.submit_structured(ADMIN, fixture.id, ["home", 1])

    def test_notifier_failure_keeps_result(self, league, notifier):
        notifier.fail = True
        fixture = make_fixture(league, when=T0)
        league.results.submit_structured(ADMIN, fixture.id, {"home": 3, "away": 0})
        assert league.fixtures.get_fixture(fixture.id).status == "final"
        assert [item["id"] for item in league.news.list_news()] == [f"final_{fixture.id}"]


class TestTextIngestion:
    def test_admin_ingests_summary(self, league):
        alice = roster_player(league, "A", "Alice")
        bob = roster_player(league, "B", "Bob")
        fixture = make_fixture(league, when=T0)
        result = league.results.submit_text(ADMIN, fixture.id, SUMMARY)
        assert (result.score.home, result.score.away) == (3, 1)
        assert result.details["home"][0].player_id == alice.id
        assert result.details["away"][0].player_id == bob.id
        assert result.unresolved == []
        assert league.stats.get_stat("2026-01", alice.id).goals == 2

    def test_managers_cannot_ingest_text(self, league):
        fixture = make_fixture(league)
        with pytest.raises(AuthorizationError):
            league.results.submit_text(Caller.manager("A"), fixture.id, SUMMARY)

    @pytest.mark.parametrize("text", ["", "   ", None])
    def test_empty_text(self, league, text):
        fixture = make_fixture(league)
        with pytest.raises(ValidationError, match="text required"):
            league.results.submit_text(ADMIN, fixture.id, text)

    def test_unparseable_text_changes_nothing(self, league):
        fixture = make_fixture(league)
        with pytest.raises(ValidationError, match="could not parse input"):
            league.results.submit_text(ADMIN, fixture.id, "42")
        assert league.fixtures.get_fixture(fixture.id).status == "pending"
