import pytest

from proleague.cli import CommandError, main, parse_stages, parse_when

from conftest import ADMIN, T0


def run(league, capsys, *argv):
    main(list(argv), league=league)
    return capsys.readouterr().out


def test_parse_when():
    assert parse_when("2026-01-01T00:00") == T0
    assert parse_when(str(T0)) == T0
    assert parse_when(None) is None
    with pytest.raises(CommandError):
        parse_when("next friday")


def test_parse_stages():
    assert parse_stages(["A=winner", "B=semifinal"]) == {"A": "winner", "B": "semifinal"}
    with pytest.raises(CommandError):
        parse_stages(["A"])


def test_create_and_list_fixtures(league, capsys):
    out = run(league, capsys, "fixtures", "create", "A", "B", "--when", "2026-01-01T00:00")
    assert "Fixture created:" in out
    assert "scheduled" in out
    out = run(league, capsys, "fixtures", "list")
    assert "A vs B" in out


def test_errors_are_printed(league, capsys):
    out = run(league, capsys, "fixtures", "show", "missing")
    assert out.strip() == "Error: Fixture missing not found"


def test_ingest_text_and_standings(league, capsys):
    fixture = league.fixtures.create_fixture(ADMIN, home="A", away="B", when=T0)
    out = run(league, capsys, "fixtures", "ingest-text", fixture.id, "Home, Player: Ann, 1 goal, score: 1-0")
    assert "A 1-0 B" in out
    assert "Unresolved players: Ann (home)" in out
    out = run(league, capsys, "standings", "--recompute")
    assert out.splitlines()[1].split()[:2] == ["1", "A"]


def test_wallet_and_bonuses(league, capsys):
    out = run(league, capsys, "bonuses", "apply", "2026", "A=winner", "--dry-run")
    assert "dry run" in out
    out = run(league, capsys, "bonuses", "apply", "2026", "A=winner")
    assert "| paid" in out
    out = run(league, capsys, "wallets", "show", "A")
    assert "balance 16,000,000" in out


def test_rankings_set(league, capsys):
    out = run(league, capsys, "rankings", "set", "A", "--pos", "1")
    assert out.strip() == "A: 100 pts, tier elite"


def test_stats_rebuild(league, capsys):
    out = run(league, capsys, "stats", "rebuild")
    assert out.strip() == "Rebuilt 0 player record(s)."


def test_feed_sync_without_provider(league, capsys):
    out = run(league, capsys, "feed", "sync", "A")
    assert out.startswith("Error: No statistics provider configured")


def test_rotate_code(league, capsys):
    out = run(league, capsys, "codes", "rotate", "A", "--code", "abcd")
    assert out.strip() == "New code for A: abcd"
    assert league.codes.claim("A", "abcd").club_id == "A"
