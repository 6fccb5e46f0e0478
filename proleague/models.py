"""Domain models for the league engine."""
from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

ADMIN_OWNER = "admin"

STATUS_PENDING = "pending"
STATUS_SCHEDULED = "scheduled"
STATUS_FINAL = "final"

SIDES = ("home", "away")

TIERS = ("elite", "mid", "bottom")


def now_ms() -> int:
    return int(time.time() * 1000)


def to_int(value: Any, default: int = 0) -> int:
    """Coerce loose input to an int, falling back to ``default``."""
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return int(number)


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or number in (float("inf"), float("-inf")):
        return default
    return number


@dataclass
class Proposal:
    at: int
    by: str

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Lineup:
    formation: str = ""
    assignments: Dict[str, Any] = field(default_factory=dict)
    at: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class DetailRow:
    """One player's line in a reported result."""

    player_id: str = ""
    player: str = ""
    goals: int = 0
    assists: int = 0
    rating: float = 0.0

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "DetailRow":
        payload = payload or {}
        name = payload.get("player", payload.get("display_name", payload.get("displayName", "")))
        player_id = payload.get("player_id", payload.get("playerId", ""))
        return cls(
            player_id=str(player_id or "").strip(),
            player=str(name or "").strip(),
            goals=max(0, to_int(payload.get("goals"))),
            assists=max(0, to_int(payload.get("assists"))),
            rating=max(0.0, to_float(payload.get("rating"))),
        )

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Score:
    home: int = 0
    away: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Report:
    text: str = ""
    mvp_home: str = ""
    mvp_away: str = ""
    message_url: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Fixture:
    id: str
    home: str
    away: str
    cup: str = "UPCL"
    round: str = "Round"
    group: Optional[str] = None
    status: str = STATUS_PENDING
    when: Optional[int] = None
    time_locked_at: Optional[int] = None
    proposals: List[Proposal] = field(default_factory=list)
    # timestamp (ms) -> owner -> agree
    votes: Dict[int, Dict[str, bool]] = field(default_factory=dict)
    # owner (club id or "admin") -> lineup
    lineups: Dict[str, Lineup] = field(default_factory=dict)
    score: Score = field(default_factory=Score)
    report: Report = field(default_factory=Report)
    details: Dict[str, List[DetailRow]] = field(default_factory=lambda: {"home": [], "away": []})
    unresolved: List[Dict[str, str]] = field(default_factory=list)
    created_at: int = 0
    reported_at: Optional[int] = None

    @property
    def teams(self) -> List[str]:
        return [self.home, self.away]

    def club_for_side(self, side: str) -> str:
        return self.home if side == "home" else self.away

    def is_final(self) -> bool:
        return self.status == STATUS_FINAL

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "cup": self.cup,
            "round": self.round,
            "group": self.group,
            "home": self.home,
            "away": self.away,
            "teams": self.teams,
            "status": self.status,
            "when": self.when,
            "time_locked_at": self.time_locked_at,
            "proposals": [proposal.to_dict() for proposal in self.proposals],
            "votes": {str(at): dict(ballot) for at, ballot in self.votes.items()},
            "lineups": {owner: lineup.to_dict() for owner, lineup in self.lineups.items()},
            "score": self.score.to_dict(),
            "report": self.report.to_dict(),
            "details": {side: [row.to_dict() for row in self.details.get(side, [])] for side in SIDES},
            "unresolved": [dict(item) for item in self.unresolved],
            "created_at": self.created_at,
            "reported_at": self.reported_at,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Fixture":
        votes: Dict[int, Dict[str, bool]] = {}
        for raw_at, ballot in (payload.get("votes") or {}).items():
            at = to_int(raw_at)
            if at > 0:
                votes[at] = {str(owner): bool(agree) for owner, agree in (ballot or {}).items()}
        lineups = {
            str(owner): Lineup(
                formation=str(item.get("formation", "")),
                assignments=dict(item.get("assignments") or {}),
                at=to_int(item.get("at")),
            )
            for owner, item in (payload.get("lineups") or {}).items()
        }
        score = payload.get("score") or {}
        report = payload.get("report") or {}
        details = payload.get("details") or {}
        when = payload.get("when")
        locked_at = payload.get("time_locked_at")
        reported_at = payload.get("reported_at")
        return cls(
            id=str(payload["id"]),
            home=str(payload["home"]),
            away=str(payload["away"]),
            cup=str(payload.get("cup") or "UPCL"),
            round=str(payload.get("round") or "Round"),
            group=payload.get("group"),
            status=str(payload.get("status") or STATUS_PENDING),
            when=to_int(when) if when is not None else None,
            time_locked_at=to_int(locked_at) if locked_at is not None else None,
            proposals=[
                Proposal(at=to_int(item.get("at")), by=str(item.get("by", "")))
                for item in payload.get("proposals") or []
            ],
            votes=votes,
            lineups=lineups,
            score=Score(home=to_int(score.get("home")), away=to_int(score.get("away"))),
            report=Report(
                text=str(report.get("text", "")),
                mvp_home=str(report.get("mvp_home", "")),
                mvp_away=str(report.get("mvp_away", "")),
                message_url=str(report.get("message_url", "")),
            ),
            details={side: [DetailRow.from_dict(row) for row in details.get(side) or []] for side in SIDES},
            unresolved=[dict(item) for item in payload.get("unresolved") or []],
            created_at=to_int(payload.get("created_at")),
            reported_at=to_int(reported_at) if reported_at is not None else None,
        )


@dataclass
class Wallet:
    club_id: str
    balance: int
    last_collected_at: int

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Ranking:
    club_id: str
    league_pos: int = 0
    cup: str = "none"
    points: int = 0
    tier: str = "mid"

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Player:
    id: str
    name: str
    platform: str = "manual"
    aliases: List[str] = field(default_factory=list)
    search: List[str] = field(default_factory=list)
    created_at: int = 0

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class SquadSlot:
    slot_id: str
    club_id: str
    label: str = ""
    player_id: str = ""

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class Contribution:
    """A player's line for one finalised fixture, keyed by fixture, player and club."""

    fixture_id: str
    player_id: str
    club_id: str
    season: str
    when: int
    goals: int = 0
    assists: int = 0
    rating: float = 0.0

    @property
    def key(self) -> str:
        return contribution_key(self.fixture_id, self.player_id, self.club_id)

    def to_dict(self) -> Dict:
        return asdict(self)


@dataclass
class PlayerStat:
    season: str
    player_id: str
    goals: int = 0
    assists: int = 0
    ratings_sum: float = 0.0
    ratings_count: int = 0
    matches: int = 0
    goal_streak: int = 0
    assist_streak: int = 0
    contribution_streak: int = 0
    updated_at: int = 0

    @property
    def key(self) -> str:
        return stat_key(self.season, self.player_id)

    @property
    def average_rating(self) -> float:
        if not self.ratings_count:
            return 0.0
        return round(self.ratings_sum / self.ratings_count, 2)

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["average_rating"] = self.average_rating
        return data


@dataclass
class NewsEvent:
    id: str
    kind: str
    ts: int
    cup: str = ""
    group: Optional[str] = None
    round: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return asdict(self)


def contribution_key(fixture_id: str, player_id: str, club_id: str) -> str:
    return f"{fixture_id}:{player_id}:{club_id}"


def stat_key(season: str, player_id: str) -> str:
    return f"{season}:{player_id}"
