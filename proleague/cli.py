"""Command line interface for league administration."""
from __future__ import annotations

import argparse
import shlex
import sys
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from . import __version__, config
from .auth import Caller
from .errors import LeagueError
from .models import Fixture
from .services import League

ADMIN = Caller.admin()
WHEN_HELP = "Kickoff as epoch milliseconds or ISO datetime (YYYY-MM-DDTHH:MM, UTC)."


class CommandError(RuntimeError):
    """Raised when CLI validation fails."""


def parse_when(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    if value.isdigit():
        return int(value)
    try:
        moment = datetime.fromisoformat(value)
    except ValueError as exc:
        raise CommandError(f"Invalid kickoff: {value}") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return int(moment.timestamp() * 1000)


def parse_stages(pairs: List[str]) -> Dict[str, str]:
    stages: Dict[str, str] = {}
    for pair in pairs:
        club_id, sep, stage = pair.partition("=")
        if not sep or not club_id or not stage:
            raise CommandError(f"Expected CLUB=STAGE, got: {pair}")
        stages[club_id] = stage
    return stages


def _fmt_when(ms: Optional[int]) -> str:
    if not ms:
        return "TBD"
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M")


def _format_fixture_line(fixture: Fixture) -> str:
    score = f"{fixture.score.home}-{fixture.score.away}" if fixture.is_final() else "vs"
    group = f" [{fixture.group}]" if fixture.group else ""
    return (
        f"[{fixture.id}] {fixture.cup}{group} {fixture.round} | {fixture.home} {score} {fixture.away} | "
        f"{fixture.status} | {_fmt_when(fixture.when)}"
    )


def _guarded(handler: Callable[[argparse.Namespace], None]) -> Callable[[argparse.Namespace], None]:
    def run(args: argparse.Namespace) -> None:
        try:
            handler(args)
        except (LeagueError, CommandError) as exc:
            print(f"Error: {exc}")

    return run


def _configure_fixture_commands(subparsers: argparse._SubParsersAction, league: League) -> None:
    fixture_parser = subparsers.add_parser("fixtures", help="Manage fixtures")
    fixture_sub = fixture_parser.add_subparsers(dest="fixtures_command", required=True)

    list_fixtures = fixture_sub.add_parser("list", help="List fixtures")
    list_fixtures.add_argument("--cup", help="Competition tag")
    list_fixtures.add_argument("--club", help="Only fixtures of this club")

    def handle_list(args: argparse.Namespace) -> None:
        fixtures = league.fixtures.list_fixtures(args.cup, args.club)
        if not fixtures:
            print("No fixtures.")
            return
        for fixture in fixtures:
            print(f"- {_format_fixture_line(fixture)}")

    list_fixtures.set_defaults(func=_guarded(handle_list))

    show = fixture_sub.add_parser("show", help="Show one fixture")
    show.add_argument("fixture_id")

    def handle_show(args: argparse.Namespace) -> None:
        fixture = league.fixtures.get_fixture(args.fixture_id)
        print(_format_fixture_line(fixture))
        for proposal in fixture.proposals:
            ballot = fixture.votes.get(proposal.at, {})
            votes = ", ".join(f"{owner}={'yes' if agree else 'no'}" for owner, agree in sorted(ballot.items())) or "no votes"
            print(f"  proposed {_fmt_when(proposal.at)} by {proposal.by}: {votes}")
        for side in ("home", "away"):
            for row in fixture.details.get(side, []):
                who = row.player or row.player_id
                print(f"  {side}: {who} | G {row.goals} | A {row.assists} | R {row.rating:g}")
        for item in fixture.unresolved:
            print(f"  unresolved ({item['side']}): {item['name']}")

    show.set_defaults(func=_guarded(handle_show))

    create = fixture_sub.add_parser("create", help="Create a fixture")
    create.add_argument("home", help="Home club id")
    create.add_argument("away", help="Away club id")
    create.add_argument("--cup", default=config.DEFAULT_CUP, help="Competition tag")
    create.add_argument("--round", default="Round", help="Round label")
    create.add_argument("--group", help="Group label (Champions Cup)")
    create.add_argument("--when", help=WHEN_HELP)

    def handle_create(args: argparse.Namespace) -> None:
        fixture = league.fixtures.create_fixture(
            ADMIN,
            home=args.home,
            away=args.away,
            round=args.round,
            cup=args.cup,
            group=args.group,
            when=parse_when(args.when),
        )
        print("Fixture created:")
        print(f"  {_format_fixture_line(fixture)}")

    create.set_defaults(func=_guarded(handle_create))

    ingest = fixture_sub.add_parser("ingest-text", help="Record a result from a pasted summary")
    ingest.add_argument("fixture_id")
    ingest.add_argument("text", nargs="?", help="Summary text; read from stdin when omitted")
    ingest.add_argument("--home-name", dest="home_name", help="Home club display name")
    ingest.add_argument("--away-name", dest="away_name", help="Away club display name")

    def handle_ingest(args: argparse.Namespace) -> None:
        text = args.text if args.text is not None else sys.stdin.read()
        fixture = league.results.submit_text(
            ADMIN, args.fixture_id, text, home_name=args.home_name, away_name=args.away_name
        )
        print("Result recorded:")
        print(f"  {_format_fixture_line(fixture)}")
        if fixture.unresolved:
            names = ", ".join(f"{item['name']} ({item['side']})" for item in fixture.unresolved)
            print(f"  Unresolved players: {names}")

    ingest.set_defaults(func=_guarded(handle_ingest))


def _configure_standings_commands(subparsers: argparse._SubParsersAction, league: League) -> None:
    standings = subparsers.add_parser("standings", help="Show the league table")
    standings.add_argument("--cup", default=config.DEFAULT_CUP, help="Competition tag")
    standings.add_argument("--recompute", action="store_true", help="Store a fresh snapshot first")

    def handle_standings(args: argparse.Namespace) -> None:
        snapshot = league.standings.recompute(ADMIN, args.cup) if args.recompute else league.standings.get(args.cup)
        rows = snapshot["rows"]
        if not rows:
            print("No finished fixtures yet.")
            return
        print(f"{'#':>3} {'Club':<16} {'P':>3} {'W':>3} {'D':>3} {'L':>3} {'GF':>4} {'GA':>4} {'GD':>4} {'Pts':>4}")
        for row in rows:
            print(
                f"{row['position']:>3} {row['club_id']:<16} {row['P']:>3} {row['W']:>3} {row['D']:>3} "
                f"{row['L']:>3} {row['GF']:>4} {row['GA']:>4} {row['GD']:>4} {row['Pts']:>4}"
            )

    standings.set_defaults(func=_guarded(handle_standings))


def _configure_stats_commands(subparsers: argparse._SubParsersAction, league: League) -> None:
    stats_parser = subparsers.add_parser("stats", help="Season player statistics")
    stats_sub = stats_parser.add_subparsers(dest="stats_command", required=True)

    rebuild = stats_sub.add_parser("rebuild", help="Recompute every record from finished fixtures")

    def handle_rebuild(_: argparse.Namespace) -> None:
        count = league.rebuild_stats(ADMIN)
        print(f"Rebuilt {count} player record(s).")

    rebuild.set_defaults(func=_guarded(handle_rebuild))

    reset = stats_sub.add_parser("reset", help="Clear one season")
    reset.add_argument("season", help="Season key (YYYY-MM)")

    def handle_reset(args: argparse.Namespace) -> None:
        removed = league.stats.reset_season(ADMIN, args.season)
        print(f"Removed {removed} player record(s) for {args.season}.")

    reset.set_defaults(func=_guarded(handle_reset))

    show = stats_sub.add_parser("list", help="List season records")
    show.add_argument("--season", help="Season key (YYYY-MM)")

    def handle_list(args: argparse.Namespace) -> None:
        stats = league.stats.list_stats(args.season)
        if not stats:
            print("No statistics recorded.")
            return
        for stat in stats:
            print(
                f"- {stat.season} | {stat.player_id} | G {stat.goals} | A {stat.assists} | "
                f"M {stat.matches} | Avg {stat.average_rating:.2f} | streak {stat.goal_streak}"
            )

    show.set_defaults(func=_guarded(handle_list))


def _configure_ranking_commands(subparsers: argparse._SubParsersAction, league: League) -> None:
    ranking_parser = subparsers.add_parser("rankings", help="Club rankings and tiers")
    ranking_sub = ranking_parser.add_subparsers(dest="rankings_command", required=True)

    set_ranking = ranking_sub.add_parser("set", help="Set a club's position and cup stage")
    set_ranking.add_argument("club_id")
    set_ranking.add_argument("--pos", type=int, default=0, help="League position (0 = unranked)")
    set_ranking.add_argument("--cup", default="none", help="Cup stage reached")
    set_ranking.add_argument("--tier", choices=["elite", "mid", "bottom"], help="Explicit tier override")

    def handle_set(args: argparse.Namespace) -> None:
        (ranking,) = league.rankings.bulk_update(
            ADMIN, {args.club_id: {"league_pos": args.pos, "cup": args.cup, "tier": args.tier}}
        )
        print(f"{ranking.club_id}: {ranking.points} pts, tier {ranking.tier}")

    set_ranking.set_defaults(func=_guarded(handle_set))

    list_rankings = ranking_sub.add_parser("list", help="List rankings")

    def handle_list(_: argparse.Namespace) -> None:
        rankings = league.rankings.list()
        if not rankings:
            print("No rankings recorded.")
            return
        for ranking in sorted(rankings, key=lambda item: (-item.points, item.club_id)):
            print(f"- {ranking.club_id} | pos {ranking.league_pos} | cup {ranking.cup} | {ranking.points} pts | {ranking.tier}")

    list_rankings.set_defaults(func=_guarded(handle_list))


def _configure_wallet_commands(subparsers: argparse._SubParsersAction, league: League) -> None:
    wallet_parser = subparsers.add_parser("wallets", help="Club wallets")
    wallet_sub = wallet_parser.add_subparsers(dest="wallets_command", required=True)

    show = wallet_sub.add_parser("show", help="Show a club wallet")
    show.add_argument("club_id")

    def handle_show(args: argparse.Namespace) -> None:
        summary = league.club_summary(args.club_id)
        wallet = summary["wallet"]
        quote = summary["next_collect"]
        print(f"{wallet['club_id']}: balance {wallet['balance']:,}")
        print(f"  Tier: {summary['ranking']['tier']} ({quote['per_day']:,}/day)")
        print(f"  Collectable now: {quote['amount']:,} for {quote['days']} day(s)")

    show.set_defaults(func=_guarded(handle_show))

    adjust = wallet_sub.add_parser("adjust", help="Administrative balance change")
    adjust.add_argument("club_id")
    adjust.add_argument("delta", type=int)
    adjust.add_argument("--reason", default="", help="Reason kept in the log")

    def handle_adjust(args: argparse.Namespace) -> None:
        wallet = league.wallets.adjust(ADMIN, args.club_id, args.delta, args.reason)
        print(f"{wallet.club_id}: balance {wallet.balance:,}")

    adjust.set_defaults(func=_guarded(handle_adjust))


def _configure_bonus_commands(subparsers: argparse._SubParsersAction, league: League) -> None:
    bonus_parser = subparsers.add_parser("bonuses", help="Season cup bonuses")
    bonus_sub = bonus_parser.add_subparsers(dest="bonuses_command", required=True)

    apply = bonus_sub.add_parser("apply", help="Pay cup bonuses once per club and season")
    apply.add_argument("season")
    apply.add_argument("stages", nargs="+", help="CLUB=STAGE pairs, e.g. 576007=winner")
    apply.add_argument("--dry-run", action="store_true", dest="dry_run", help="Only show what would be paid")

    def handle_apply(args: argparse.Namespace) -> None:
        results = league.wallets.apply_cup_bonuses(ADMIN, args.season, parse_stages(args.stages), dry_run=args.dry_run)
        for item in results:
            state = "paid" if item["paid"] else item["reason"]
            print(f"- {item['club_id']} | {item['stage']} | {item['amount']:,} | {state}")

    apply.set_defaults(func=_guarded(handle_apply))


def _configure_feed_commands(subparsers: argparse._SubParsersAction, league: League) -> None:
    feed_parser = subparsers.add_parser("feed", help="External match feed")
    feed_sub = feed_parser.add_subparsers(dest="feed_command", required=True)

    sync = feed_sub.add_parser("sync", help="Fetch recent matches for clubs")
    sync.add_argument("club_ids", nargs="*", help="Club ids (default: every known club)")

    def handle_sync(args: argparse.Namespace) -> None:
        outcome = league.feed.sync(ADMIN, args.club_ids or league.clubs())
        print(f"Synced {len(outcome['clubs'])} club(s): {outcome['seen']} match(es) seen, {outcome['inserted']} new.")

    sync.set_defaults(func=_guarded(handle_sync))


def _configure_code_commands(subparsers: argparse._SubParsersAction, league: League) -> None:
    code_parser = subparsers.add_parser("codes", help="Manager claim codes")
    code_sub = code_parser.add_subparsers(dest="codes_command", required=True)

    rotate = code_sub.add_parser("rotate", help="Issue a new claim code for a club")
    rotate.add_argument("club_id")
    rotate.add_argument("--code", help="Use this code instead of a generated one")

    def handle_rotate(args: argparse.Namespace) -> None:
        code = league.codes.rotate(ADMIN, args.club_id, args.code)
        print(f"New code for {args.club_id}: {code}")

    rotate.set_defaults(func=_guarded(handle_rotate))


def build_parser(league: League) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pro Clubs league administration")
    parser.add_argument("--version", action="version", version=f"proleague {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    _configure_fixture_commands(subparsers, league)
    _configure_standings_commands(subparsers, league)
    _configure_stats_commands(subparsers, league)
    _configure_ranking_commands(subparsers, league)
    _configure_wallet_commands(subparsers, league)
    _configure_bonus_commands(subparsers, league)
    _configure_feed_commands(subparsers, league)
    _configure_code_commands(subparsers, league)

    return parser


def dispatch_command(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if getattr(args, "command", None) is None:
        parser.print_help()
        return
    handler: Callable[[argparse.Namespace], None] = getattr(args, "func", None)
    if handler is None:
        parser.print_help()
        return
    handler(args)


def run_interactive_shell(parser: argparse.ArgumentParser) -> None:
    print("proleague interactive mode.")
    print("Type commands as you would on the command line (e.g. 'fixtures list').")
    print("Use 'help' for the overview and 'exit' or 'quit' to leave.\n")
    while True:
        try:
            raw = input("proleague> ").strip()
        except EOFError:
            print()
            break
        except KeyboardInterrupt:
            print("\nInterrupted. Leaving interactive mode.")
            break
        if not raw:
            continue
        lowered = raw.lower()
        if lowered in {"exit", "quit"}:
            print("Bye!")
            break
        if lowered in {"help", "?"}:
            parser.print_help()
            continue
        try:
            args = parser.parse_args(shlex.split(raw))
        except SystemExit:
            # argparse already printed the error or help
            continue
        dispatch_command(parser, args)


def main(argv: Optional[list[str]] = None, *, league: Optional[League] = None) -> None:
    settings = config.Settings()
    config.configure_logging(settings.log_level)
    league = league or League(settings)
    parser = build_parser(league)

    if argv is None:
        actual_args = sys.argv[1:]
    else:
        actual_args = argv

    if not actual_args:
        run_interactive_shell(parser)
        return

    args = parser.parse_args(actual_args)
    dispatch_command(parser, args)


if __name__ == "__main__":
    main()
