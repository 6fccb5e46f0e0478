"""Newsworthy events derived from fixtures, stored once per id and forwarded to the notifier."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional

from . import config, storage
from .errors import LeagueError
from .models import SIDES, Fixture, NewsEvent, PlayerStat, now_ms
from .players import normalize

logger = logging.getLogger(__name__)

NEWS = "news"
MILESTONES = (5, 10, 15, 20, 30, 40, 50)
HAT_TRICK = 3
HOT_STREAK = 3


def _base(fixture: Fixture, event_id: str, kind: str, ts: int, payload: Dict[str, Any]) -> NewsEvent:
    return NewsEvent(id=event_id, kind=kind, ts=ts, cup=fixture.cup, group=fixture.group, round=fixture.round, payload=payload)


def final_events(fixture: Fixture, stats: Iterable[PlayerStat], ts: int) -> List[NewsEvent]:
    names: Dict[str, str] = {}
    scorers: List[str] = []
    events: List[NewsEvent] = []
    for side in SIDES:
        for row in fixture.details.get(side, []):
            label = row.player or f"#{row.player_id[:6]}"
            if row.player_id:
                names[row.player_id] = label
            if row.goals > 0:
                scorers.append(f"{label} ({row.goals})")
            if row.goals >= HAT_TRICK:
                who = row.player_id or normalize(row.player)
                events.append(
                    _base(
                        fixture,
                        f"hattrick_{fixture.id}_{side}_{who}",
                        "hattrick",
                        ts,
                        {"club": fixture.club_for_side(side), "player_id": row.player_id, "player": label, "goals": row.goals},
                    )
                )
    events.insert(
        0,
        _base(
            fixture,
            f"final_{fixture.id}",
            "final",
            ts,
            {"fixture_id": fixture.id, "home": fixture.home, "away": fixture.away, "score": fixture.score.to_dict(), "scorers": scorers},
        ),
    )
    for stat in stats:
        label = names.get(stat.player_id, f"#{stat.player_id[:6]}")
        for name, value in (("goals", stat.goals), ("assists", stat.assists)):
            if value in MILESTONES:
                events.append(
                    _base(
                        fixture,
                        f"milestone_{stat.season}_{stat.player_id}_{name}_{value}",
                        "milestone",
                        ts,
                        {"player_id": stat.player_id, "player": label, "stat": name, "value": value},
                    )
                )
        if stat.goal_streak >= HOT_STREAK:
            events.append(
                _base(
                    fixture,
                    f"streak_{stat.season}_{stat.player_id}_{stat.goal_streak}",
                    "hot_streak",
                    ts,
                    {"player_id": stat.player_id, "player": label, "streak": stat.goal_streak},
                )
            )
    return events


def scheduled_event(fixture: Fixture, ts: int) -> NewsEvent:
    return _base(
        fixture,
        f"scheduled_{fixture.id}_{fixture.when}",
        "scheduled",
        ts,
        {"fixture_id": fixture.id, "home": fixture.home, "away": fixture.away, "when": fixture.when},
    )


class NewsService:
    def __init__(self, store: storage.Storage, notifier: Any, *, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self.notifier = notifier
        self.clock = clock

    def publish(self, events: Iterable[NewsEvent]) -> List[NewsEvent]:
        """Store events not seen before and hand them to the notifier."""
        fresh = []
        for event in events:
            if self.store.insert_if_absent(NEWS, event.id, event.to_dict()):
                fresh.append(event)
        for event in fresh:
            try:
                self.notifier.deliver(event.to_dict())
            except LeagueError as exc:
                logger.warning("Could not deliver %s: %s", event.id, exc)
        return fresh

    def from_final(self, fixture: Fixture, stats: Iterable[PlayerStat]) -> List[NewsEvent]:
        return self.publish(final_events(fixture, stats, self.clock()))

    def from_scheduled(self, fixture: Fixture) -> List[NewsEvent]:
        # only Champions Cup kick-offs are announced
        if not fixture.cup.startswith(config.CHAMPIONS_CUP_PREFIX):
            return []
        return self.publish([scheduled_event(fixture, self.clock())])

    def list_news(self, limit: int = 20, kind: Optional[str] = None) -> List[Dict[str, Any]]:
        items = self.store.all(NEWS)
        if kind:
            items = [item for item in items if item.get("kind") == kind]
        items.sort(key=lambda item: (item.get("ts", 0), item.get("id", "")), reverse=True)
        return items[: max(1, min(50, limit))]
