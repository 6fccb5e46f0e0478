"""Result ingestion: structured reports and pasted free text.

Both paths produce a score plus per-side detail rows, resolve player names,
finalise the fixture and fold it into the season statistics in one
transaction. News is published afterwards and never undoes the result.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from . import storage
from .auth import Caller, require_admin, require_fixture_party
from .errors import ConflictError, ValidationError
from .fixtures import FIXTURES, FixtureService
from .models import SIDES, STATUS_FINAL, DetailRow, Fixture, Report, Score, now_ms, to_int
from .news import NewsService
from .players import PlayerRegistry, normalize
from .stats import StatisticsAggregator

logger = logging.getLogger(__name__)

_SCORE_PAIR = re.compile(r"(\d+)\s*[-–]\s*(\d+)")
_SCORE_SIDE = re.compile(r"score\s*:\s*(\d+)", re.IGNORECASE)
_PLAYER = re.compile(r"player\s*\d*\s*:\s*(.+)", re.IGNORECASE)
_GOALS = re.compile(r"(\d+)\s*goal", re.IGNORECASE)
_ASSISTS = re.compile(r"(\d+)\s*assist", re.IGNORECASE)
_RATING = re.compile(r"rating\s*:\s*([0-9]+(?:\.[0-9]+)?)", re.IGNORECASE)
_NUMBER = re.compile(r"^\d+(\.\d+)?$")
_KEYWORD = re.compile(r"^(score|rating|goal|assist)", re.IGNORECASE)


@dataclass
class ParsedResult:
    score: Score = field(default_factory=Score)
    details: Dict[str, List[DetailRow]] = field(default_factory=lambda: {"home": [], "away": []})
    score_seen: bool = False

    @property
    def is_empty(self) -> bool:
        """True when the text yielded neither a score nor a single player line."""
        return not self.score_seen and not any(self.details[side] for side in SIDES)


def _side_switch(token: str, home_name: Optional[str], away_name: Optional[str]) -> Optional[str]:
    low = token.lower()
    if "home" in low:
        return "home"
    if "away" in low:
        return "away"
    squashed = normalize(token)
    for side, name in (("home", home_name), ("away", away_name)):
        wanted = normalize(name)
        # bare numbers and very short names would swallow score and stat tokens
        if len(wanted) >= 3 and not wanted.isdigit() and wanted in squashed:
            return side
    return None


def parse_loose_result_text(
    text: Any, home_name: Optional[str] = None, away_name: Optional[str] = None
) -> ParsedResult:
    """Best-effort parse of a pasted match summary.

    Tokens are split on commas and newlines and read in order:
      * ``home`` / ``away`` (or the club names, when given) switch side
      * ``3-1`` sets both scores, ``score: 3`` sets the active side
      * ``player: Name`` starts a new player line
      * ``2 goals``, ``1 assist``, ``rating: 8.5`` fill the current line
      * any other word before a name is known becomes the name
    Never raises; check :attr:`ParsedResult.is_empty` for "nothing parsed".
    """
    result = ParsedResult()
    tokens = [token.strip() for token in re.split(r"[,\n]", str(text or "")) if token.strip()]
    side = "home"
    current: Optional[Dict[str, Any]] = None

    def commit() -> None:
        nonlocal current
        if current and str(current.get("player") or "").strip():
            result.details[side].append(DetailRow.from_dict(current))
        current = None

    for token in tokens:
        switched = _side_switch(token, home_name, away_name)
        if switched:
            commit()
            side = switched
            continue

        match = _SCORE_PAIR.search(token)
        if match:
            result.score.home, result.score.away = int(match.group(1)), int(match.group(2))
            result.score_seen = True
            continue
        match = _SCORE_SIDE.search(token)
        if match:
            setattr(result.score, side, int(match.group(1)))
            result.score_seen = True
            continue

        match = _PLAYER.search(token)
        if match:
            commit()
            current = {"player": match.group(1).strip()}
            continue

        match = _GOALS.search(token)
        if match:
            current = current or {}
            current["goals"] = int(match.group(1))
            continue
        match = _ASSISTS.search(token)
        if match:
            current = current or {}
            current["assists"] = int(match.group(1))
            continue
        match = _RATING.search(token)
        if match:
            current = current or {}
            current["rating"] = float(match.group(1))
            continue

        if (current is None or not current.get("player")) and not _NUMBER.match(token) and not _KEYWORD.match(token):
            current = current or {}
            current["player"] = token
    commit()
    return result


def coerce_details(raw: Any) -> Dict[str, List[DetailRow]]:
    """Detail rows from an untrusted payload; malformed rows become zeros, blank rows are dropped."""
    details: Dict[str, List[DetailRow]] = {"home": [], "away": []}
    if not isinstance(raw, Mapping):
        return details
    for side in SIDES:
        rows = raw.get(side)
        if not isinstance(rows, list):
            continue
        for item in rows:
            row = DetailRow.from_dict(item if isinstance(item, Mapping) else {})
            if row.player_id or row.player:
                details[side].append(row)
    return details


def coerce_score(payload: Mapping[str, Any]) -> Score:
    nested = payload.get("score") if isinstance(payload.get("score"), Mapping) else {}
    home = payload.get("home", payload.get("hs", nested.get("home", nested.get("hs"))))
    away = payload.get("away", payload.get("as", nested.get("away", nested.get("as"))))
    return Score(home=max(0, to_int(home)), away=max(0, to_int(away)))


class ResultService:
    def __init__(
        self,
        store: storage.Storage,
        fixtures: FixtureService,
        players: PlayerRegistry,
        stats: StatisticsAggregator,
        news: Optional[NewsService] = None,
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.fixtures = fixtures
        self.players = players
        self.stats = stats
        self.news = news
        self.clock = clock

    def _resolve(
        self, fixture: Fixture, details: Dict[str, List[DetailRow]]
    ) -> Tuple[Dict[str, List[DetailRow]], List[Dict[str, str]]]:
        unresolved: List[Dict[str, str]] = []
        for side in SIDES:
            for row in details[side]:
                if row.player_id or not row.player:
                    continue
                player_id = self.players.resolve_player_id(row.player, fixture.club_for_side(side))
                if player_id:
                    row.player_id = player_id
                else:
                    unresolved.append({"side": side, "name": row.player})
        return details, unresolved

    def _finalise(
        self,
        caller: Caller,
        fixture_id: str,
        score: Score,
        details: Optional[Dict[str, List[DetailRow]]],
        report: Optional[Report] = None,
    ) -> Fixture:
        with self.store.locked(FIXTURES, fixture_id):
            fixture = self.fixtures.get_fixture(fixture_id)
            require_fixture_party(caller, fixture)
            if fixture.is_final() and not caller.is_admin:
                raise ConflictError(f"Fixture {fixture_id} is already final; only an admin can re-report it")
            reported = self.clock()
            fixture.score = score
            if report is not None:
                fixture.report = report
            if details is not None:
                fixture.details, fixture.unresolved = self._resolve(fixture, details)
            fixture.status = STATUS_FINAL
            if not fixture.when:
                fixture.when = reported
            fixture.reported_at = reported
            with self.store.transaction():
                self.fixtures.save(fixture)
                stats = self.stats.fold_fixture(fixture)
        logger.info(
            "Final %s: %s %d-%d %s (%d unresolved)",
            fixture.id, fixture.home, score.home, score.away, fixture.away, len(fixture.unresolved),
        )
        if self.news is not None:
            self.news.from_final(fixture, stats)
        return fixture

    def submit_structured(self, caller: Caller, fixture_id: str, payload: Any) -> Fixture:
        if not isinstance(payload, Mapping):
            raise ValidationError("result payload must be an object")
        report = Report(
            text=str(payload.get("text") or ""),
            mvp_home=str(payload.get("mvp_home") or payload.get("mvpHome") or ""),
            mvp_away=str(payload.get("mvp_away") or payload.get("mvpAway") or ""),
            message_url=str(payload.get("message_url") or payload.get("discordMsgUrl") or ""),
        )
        details = coerce_details(payload["details"]) if isinstance(payload.get("details"), Mapping) else None
        return self._finalise(caller, fixture_id, coerce_score(payload), details, report)

    def submit_text(
        self,
        caller: Caller,
        fixture_id: str,
        text: Any,
        *,
        home_name: Optional[str] = None,
        away_name: Optional[str] = None,
    ) -> Fixture:
        require_admin(caller)
        if not str(text or "").strip():
            raise ValidationError("text required")
        self.fixtures.get_fixture(fixture_id)
        parsed = parse_loose_result_text(text, home_name, away_name)
        if parsed.is_empty:
            raise ValidationError("could not parse input")
        return self._finalise(caller, fixture_id, parsed.score, parsed.details)
