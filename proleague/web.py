"""JSON API for the league engine."""
from __future__ import annotations

import argparse
import logging
from typing import Any, Callable, Dict, Optional

from flask import Flask, jsonify, request, session

from . import __version__, config, storage
from .auth import Caller, check_admin_password, require_admin
from .errors import LeagueError, ValidationError
from .fixtures import public_view
from .models import to_int
from .services import League

logger = logging.getLogger(__name__)

HOUR_MS = 3_600_000


def _body() -> Dict[str, Any]:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def _flag(value: Optional[str]) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "on"}


def create_app(
    settings: Optional[config.Settings] = None,
    *,
    store: Optional[storage.Storage] = None,
    notifier: Any = None,
    provider: Any = None,
    clock: Optional[Callable[[], int]] = None,
) -> Flask:
    """Create and configure the Flask application."""

    settings = settings or config.Settings()
    league_kwargs: Dict[str, Any] = {"store": store, "notifier": notifier, "provider": provider}
    if clock is not None:
        league_kwargs["clock"] = clock
    league = League(settings, **league_kwargs)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = settings.secret_key
    app.config["LEAGUE"] = league

    def current_caller() -> Caller:
        role = session.get("role")
        if role == "admin":
            return Caller.admin()
        if role == "manager" and session.get("club_id"):
            if to_int(session.get("expires_at")) > league.clock():
                return Caller.manager(session["club_id"])
            session.clear()
        return Caller.anonymous()

    @app.errorhandler(LeagueError)
    def handle_league_error(exc: LeagueError):
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.path, exc)
        return jsonify({"error": str(exc)}), exc.status_code

    @app.get("/api/healthz")
    def healthz():
        return jsonify({"ok": True, "version": __version__})

    # Identity ---------------------------------------------------------
    @app.post("/api/admin/login")
    def admin_login():
        if not check_admin_password(settings.admin_password, _body().get("password")):
            return jsonify({"error": "Invalid password"}), 401
        session.clear()
        session["role"] = "admin"
        return jsonify({"ok": True, "caller": Caller.admin().to_dict()})

    @app.post("/api/admin/logout")
    def admin_logout():
        session.clear()
        return jsonify({"ok": True})

    @app.get("/api/auth/me")
    def auth_me():
        return jsonify(current_caller().to_dict())

    @app.post("/api/clubs/<club_id>/claim-manager")
    def claim_manager(club_id: str):
        caller = league.codes.claim(club_id, _body().get("code"))
        session.clear()
        session["role"] = "manager"
        session["club_id"] = caller.club_id
        session["expires_at"] = league.clock() + settings.manager_session_hours * HOUR_MS
        return jsonify({"ok": True, "caller": caller.to_dict(), "expires_at": session["expires_at"]})

    @app.post("/api/clubs/<club_id>/manager-code")
    def rotate_manager_code(club_id: str):
        code = league.codes.rotate(current_caller(), club_id, _body().get("code"))
        return jsonify({"club_id": club_id, "code": code})

    @app.get("/api/clubs/<club_id>")
    def club_summary(club_id: str):
        return jsonify(league.club_summary(club_id))

    # Fixtures ---------------------------------------------------------
    @app.get("/api/fixtures")
    def list_fixtures():
        caller = current_caller()
        fixtures = league.fixtures.list_fixtures(request.args.get("cup"), request.args.get("club_id"))
        return jsonify(
            [fixture.to_dict() if caller.can_act_for_fixture(fixture) else public_view(fixture) for fixture in fixtures]
        )

    @app.get("/api/fixtures/public")
    def public_fixtures():
        fixtures = league.fixtures.list_fixtures(request.args.get("cup"), request.args.get("club_id"))
        return jsonify([public_view(fixture) for fixture in fixtures])

    @app.post("/api/fixtures")
    def create_fixture():
        data = _body()
        fixture = league.fixtures.create_fixture(
            current_caller(),
            home=data.get("home"),
            away=data.get("away"),
            round=data.get("round"),
            cup=data.get("cup"),
            group=data.get("group"),
            when=data.get("when"),
        )
        return jsonify(fixture.to_dict()), 201

    @app.get("/api/fixtures/<fixture_id>")
    def get_fixture(fixture_id: str):
        fixture = league.fixtures.get_fixture(fixture_id)
        if current_caller().can_act_for_fixture(fixture):
            return jsonify(fixture.to_dict())
        return jsonify(public_view(fixture, include_lineups=True))

    @app.post("/api/fixtures/<fixture_id>/propose")
    def propose_time(fixture_id: str):
        fixture = league.fixtures.propose(current_caller(), fixture_id, _body().get("at"))
        return jsonify(fixture.to_dict())

    @app.post("/api/fixtures/<fixture_id>/vote")
    def vote_time(fixture_id: str):
        data = _body()
        if "agree" not in data:
            raise ValidationError("agree required")
        fixture = league.fixtures.vote(current_caller(), fixture_id, data.get("at"), data.get("agree") is True)
        return jsonify(fixture.to_dict())

    @app.post("/api/fixtures/<fixture_id>/unlock")
    def unlock_fixture(fixture_id: str):
        return jsonify(league.fixtures.unlock(current_caller(), fixture_id).to_dict())

    @app.post("/api/fixtures/<fixture_id>/lineup")
    def set_lineup(fixture_id: str):
        data = _body()
        fixture = league.fixtures.set_lineup(current_caller(), fixture_id, data.get("formation"), data.get("assignments"))
        return jsonify(fixture.to_dict())

    @app.post("/api/fixtures/<fixture_id>/report")
    def report_result(fixture_id: str):
        fixture = league.results.submit_structured(current_caller(), fixture_id, _body())
        return jsonify(fixture.to_dict())

    @app.post("/api/fixtures/<fixture_id>/ingest-text")
    def ingest_text(fixture_id: str):
        data = _body()
        fixture = league.results.submit_text(
            current_caller(),
            fixture_id,
            data.get("text"),
            home_name=data.get("home_name"),
            away_name=data.get("away_name"),
        )
        return jsonify(fixture.to_dict())

    # Players and squads -----------------------------------------------
    @app.get("/api/players")
    def list_players():
        return jsonify([player.to_dict() for player in league.players.list_players()])

    @app.post("/api/players")
    def register_player():
        data = _body()
        require_admin(current_caller())
        player = league.players.register_player(data.get("name"), data.get("platform") or "manual", data.get("aliases"))
        return jsonify(player.to_dict()), 201

    @app.patch("/api/players/<player_id>")
    def update_player(player_id: str):
        data = _body()
        player = league.players.update_player(
            current_caller(),
            player_id,
            name=data.get("name"),
            aliases=data.get("aliases"),
            platform=data.get("platform"),
        )
        return jsonify(player.to_dict())

    @app.get("/api/clubs/<club_id>/squad")
    def get_squad(club_id: str):
        return jsonify({"club_id": club_id, "slots": league.players.get_squad(club_id)})

    @app.post("/api/clubs/<club_id>/squad/bootstrap")
    def bootstrap_squad(club_id: str):
        slots = league.players.bootstrap_squad(current_caller(), club_id, _body().get("size", 15))
        return jsonify({"club_id": club_id, "slots": [slot.to_dict() for slot in slots]}), 201

    @app.put("/api/clubs/<club_id>/squad/<slot_id>")
    def assign_slot(club_id: str, slot_id: str):
        data = _body()
        slot = league.players.assign_slot(
            current_caller(),
            club_id,
            slot_id,
            player_id=data.get("player_id"),
            name=data.get("name"),
            platform=data.get("platform") or "manual",
            aliases=data.get("aliases"),
        )
        return jsonify(slot.to_dict())

    @app.delete("/api/clubs/<club_id>/squad/<slot_id>")
    def unassign_slot(club_id: str, slot_id: str):
        return jsonify(league.players.unassign_slot(current_caller(), club_id, slot_id).to_dict())

    # Rankings and wallets ---------------------------------------------
    @app.get("/api/rankings")
    def list_rankings():
        return jsonify([ranking.to_dict() for ranking in league.rankings.list()])

    @app.post("/api/rankings/bulk")
    def bulk_rankings():
        data = _body()
        rankings = league.rankings.bulk_update(current_caller(), data.get("rankings", data))
        return jsonify([ranking.to_dict() for ranking in rankings])

    @app.post("/api/rankings/recompute")
    def recompute_rankings():
        return jsonify(league.refresh_rankings(current_caller(), request.args.get("cup") or config.DEFAULT_CUP))

    @app.get("/api/wallets/<club_id>")
    def get_wallet(club_id: str):
        return jsonify(league.club_summary(club_id))

    @app.post("/api/wallets/<club_id>/collect")
    def collect_wallet(club_id: str):
        return jsonify(league.wallets.collect(current_caller(), club_id))

    @app.post("/api/wallets/<club_id>/adjust")
    def adjust_wallet(club_id: str):
        data = _body()
        wallet = league.wallets.adjust(current_caller(), club_id, data.get("delta"), str(data.get("reason") or ""))
        return jsonify(wallet.to_dict())

    @app.get("/api/bonuses/<season>")
    def list_bonuses(season: str):
        return jsonify({"season": season, "paid": league.wallets.awards(season)})

    @app.post("/api/bonuses/<season>/apply")
    def apply_bonuses(season: str):
        data = _body()
        results = league.wallets.apply_cup_bonuses(
            current_caller(), season, data.get("stages", {}), dry_run=_flag(request.args.get("dry"))
        )
        return jsonify({"season": season, "results": results})

    # Standings and statistics -----------------------------------------
    @app.get("/api/standings/<cup>")
    def get_standings(cup: str):
        return jsonify(league.standings.get(cup))

    @app.post("/api/standings/<cup>/recompute")
    def recompute_standings(cup: str):
        return jsonify(league.standings.recompute(current_caller(), cup))

    @app.post("/api/champions/<cup>/groups")
    def set_groups(cup: str):
        data = _body()
        return jsonify(league.standings.set_groups(current_caller(), cup, data.get("groups", data)))

    @app.get("/api/champions/<cup>/tables")
    def group_tables(cup: str):
        return jsonify(league.standings.group_tables(cup))

    @app.get("/api/stats")
    def list_stats():
        return jsonify([stat.to_dict() for stat in league.stats.list_stats(request.args.get("season"))])

    @app.get("/api/stats/<season>/<player_id>")
    def get_stat(season: str, player_id: str):
        stat = league.stats.get_stat(season, player_id)
        if stat is None:
            return jsonify({"error": "No statistics for this player and season"}), 404
        return jsonify(stat.to_dict())

    @app.post("/api/stats/rebuild")
    def rebuild_stats():
        return jsonify({"ok": True, "records": league.rebuild_stats(current_caller())})

    @app.post("/api/stats/reset")
    def reset_stats():
        season = str(_body().get("season") or "").strip()
        if not season:
            raise ValidationError("season required")
        return jsonify({"ok": True, "removed": league.stats.reset_season(current_caller(), season)})

    # News and feed ----------------------------------------------------
    @app.get("/api/news")
    def list_news():
        return jsonify(league.news.list_news(to_int(request.args.get("limit"), 20), request.args.get("kind")))

    @app.post("/api/feed/sync")
    def feed_sync():
        club_ids = _body().get("club_ids") or league.clubs()
        return jsonify(league.feed.sync(current_caller(), club_ids))

    @app.get("/api/feed")
    def feed_matches():
        return jsonify(league.feed.list_matches(request.args.get("club_id")))

    return app


def main() -> None:
    parser = argparse.ArgumentParser(description="Start the league engine web API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind")
    parser.add_argument("--port", type=int, default=5000, help="Server port")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    args = parser.parse_args()
    settings = config.Settings()
    config.configure_logging(settings.log_level)
    app = create_app(settings)
    app.run(host=args.host, port=args.port, debug=args.debug, threaded=True)


if __name__ == "__main__":
    main()
