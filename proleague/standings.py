"""League tables derived from finalised fixtures.

Tables are always rebuilt from the full set of final fixtures and never
patched in place.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from . import storage
from .auth import Caller, require_admin
from .models import Fixture, now_ms

logger = logging.getLogger(__name__)

STANDINGS = "standings"
CHAMPIONS = "champions"
GROUP_LABELS = ("A", "B", "C", "D")


def _blank_row(club_id: str) -> Dict[str, Any]:
    return {"club_id": club_id, "P": 0, "W": 0, "D": 0, "L": 0, "GF": 0, "GA": 0, "GD": 0, "Pts": 0}


def compute_standings(fixtures: Iterable[Fixture], clubs: Optional[Sequence[str]] = None) -> List[Dict[str, Any]]:
    """Win 3, draw 1, loss 0; ordered by points, goal difference, goals for.

    Further ties keep first-appearance order (``clubs`` first, then fixtures
    ordered by creation).
    """
    table: Dict[str, Dict[str, Any]] = {}
    for club_id in clubs or []:
        table.setdefault(str(club_id), _blank_row(str(club_id)))

    finals = sorted(
        (fixture for fixture in fixtures if fixture.is_final()),
        key=lambda fixture: (fixture.created_at, fixture.id),
    )
    for fixture in finals:
        home = table.setdefault(fixture.home, _blank_row(fixture.home))
        away = table.setdefault(fixture.away, _blank_row(fixture.away))
        hs, as_ = fixture.score.home, fixture.score.away
        home["P"] += 1
        away["P"] += 1
        home["GF"] += hs
        home["GA"] += as_
        away["GF"] += as_
        away["GA"] += hs
        if hs > as_:
            home["W"] += 1
            home["Pts"] += 3
            away["L"] += 1
        elif hs < as_:
            away["W"] += 1
            away["Pts"] += 3
            home["L"] += 1
        else:
            home["D"] += 1
            away["D"] += 1
            home["Pts"] += 1
            away["Pts"] += 1

    rows = list(table.values())
    for row in rows:
        row["GD"] = row["GF"] - row["GA"]
    rows.sort(key=lambda row: (-row["Pts"], -row["GD"], -row["GF"]))
    for position, row in enumerate(rows, start=1):
        row["position"] = position
    return rows


def compute_group_tables(
    fixtures: Iterable[Fixture], groups: Mapping[str, Sequence[str]]
) -> Dict[str, List[Dict[str, Any]]]:
    """One table per group label; fixtures without a known group are ignored."""
    labels = list(groups.keys()) or list(GROUP_LABELS)
    by_group: Dict[str, List[Fixture]] = {label: [] for label in labels}
    for fixture in fixtures:
        if fixture.group in by_group:
            by_group[fixture.group].append(fixture)
    return {
        label: compute_standings(by_group[label], clubs=groups.get(label, []))
        for label in labels
    }


class StandingsService:
    """Stores a snapshot per competition, always rebuilt wholesale."""

    def __init__(
        self,
        store: storage.Storage,
        list_fixtures: Callable[[Optional[str]], List[Fixture]],
        *,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.store = store
        self.list_fixtures = list_fixtures
        self.clock = clock

    def recompute(self, caller: Caller, cup: str) -> Dict[str, Any]:
        require_admin(caller)
        snapshot = {"cup": cup, "rows": compute_standings(self.list_fixtures(cup)), "computed_at": self.clock()}
        self.store.put(STANDINGS, cup, snapshot)
        logger.info("Recomputed standings for %s (%d clubs)", cup, len(snapshot["rows"]))
        return snapshot

    def get(self, cup: str) -> Dict[str, Any]:
        """Last stored snapshot, or a freshly computed one when none exists."""
        snapshot = self.store.get(STANDINGS, cup)
        if snapshot is None:
            return {"cup": cup, "rows": compute_standings(self.list_fixtures(cup)), "computed_at": None}
        return snapshot

    # Champions Cup groups --------------------------------------------
    def set_groups(self, caller: Caller, cup: str, groups: Mapping[str, Sequence[str]]) -> Dict[str, Any]:
        require_admin(caller)
        record = {
            "cup": cup,
            "groups": {label: [str(club) for club in (groups or {}).get(label) or []] for label in GROUP_LABELS},
            "created_at": self.clock(),
        }
        self.store.put(CHAMPIONS, cup, record)
        return record

    def group_tables(self, cup: str) -> Dict[str, Any]:
        record = self.store.get(CHAMPIONS, cup) or {"cup": cup, "groups": {label: [] for label in GROUP_LABELS}}
        return {
            "cup": cup,
            "groups": record["groups"],
            "tables": compute_group_tables(self.list_fixtures(cup), record["groups"]),
        }
