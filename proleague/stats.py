"""Per-season player totals and streaks built from finalised fixtures.

Each finalised fixture leaves one contribution per (fixture, player, club).
Reporting a fixture again replaces its contributions wholesale and the
affected season records are recomputed from their full contribution history,
so re-ingesting the same result never double counts.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set, Tuple

from . import storage
from .auth import Caller, require_admin
from .models import SIDES, Contribution, Fixture, PlayerStat, now_ms, stat_key

logger = logging.getLogger(__name__)

CONTRIBUTIONS = "contributions"
PLAYER_STATS = "player_stats"


def season_key(timestamp_ms: Optional[int]) -> str:
    moment = datetime.fromtimestamp((timestamp_ms or 0) / 1000, tz=timezone.utc)
    return moment.strftime("%Y-%m")


def contributions_for(fixture: Fixture) -> List[Contribution]:
    """Resolved detail rows of a fixture, merged per (player, club)."""
    season = season_key(fixture.when or fixture.reported_at)
    merged: Dict[Tuple[str, str], Contribution] = {}
    for side in SIDES:
        club_id = fixture.club_for_side(side)
        for row in fixture.details.get(side, []):
            if not row.player_id:
                continue
            key = (row.player_id, club_id)
            current = merged.get(key)
            if current is None:
                merged[key] = Contribution(
                    fixture_id=fixture.id,
                    player_id=row.player_id,
                    club_id=club_id,
                    season=season,
                    when=fixture.when or 0,
                    goals=row.goals,
                    assists=row.assists,
                    rating=row.rating,
                )
            else:
                current.goals += row.goals
                current.assists += row.assists
                current.rating = max(current.rating, row.rating)
    return list(merged.values())


def fold(season: str, player_id: str, history: Iterable[Contribution], updated_at: int = 0) -> PlayerStat:
    """Cumulative record for one player from contributions in match order."""
    stat = PlayerStat(season=season, player_id=player_id, updated_at=updated_at)
    for item in sorted(history, key=lambda entry: (entry.when, entry.fixture_id)):
        stat.matches += 1
        stat.goals += item.goals
        stat.assists += item.assists
        if item.rating > 0:
            stat.ratings_sum += item.rating
            stat.ratings_count += 1
        stat.goal_streak = stat.goal_streak + 1 if item.goals > 0 else 0
        stat.assist_streak = stat.assist_streak + 1 if item.assists > 0 else 0
        contributed = item.goals > 0 or item.assists > 0
        stat.contribution_streak = stat.contribution_streak + 1 if contributed else 0
    stat.ratings_sum = round(stat.ratings_sum, 4)
    return stat


class StatisticsAggregator:
    def __init__(self, store: storage.Storage, *, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self.clock = clock

    def _contributions(self) -> List[Contribution]:
        return [storage.instantiate(Contribution, item) for item in self.store.all(CONTRIBUTIONS)]

    def _recompute(self, pairs: Set[Tuple[str, str]]) -> List[PlayerStat]:
        by_pair: Dict[Tuple[str, str], List[Contribution]] = defaultdict(list)
        for item in self._contributions():
            pair = (item.season, item.player_id)
            if pair in pairs:
                by_pair[pair].append(item)
        stats = []
        stamp = self.clock()
        for season, player_id in sorted(pairs):
            history = by_pair.get((season, player_id))
            if not history:
                self.store.delete(PLAYER_STATS, stat_key(season, player_id))
                continue
            stat = fold(season, player_id, history, stamp)
            self.store.put(PLAYER_STATS, stat.key, stat.to_dict())
            stats.append(stat)
        return stats

    def fold_fixture(self, fixture: Fixture) -> List[PlayerStat]:
        """Replace the fixture's contributions and refresh the affected totals."""
        fresh = contributions_for(fixture) if fixture.is_final() else []
        with self.store.transaction():
            previous = [item for item in self._contributions() if item.fixture_id == fixture.id]
            for item in previous:
                self.store.delete(CONTRIBUTIONS, item.key)
            for item in fresh:
                self.store.put(CONTRIBUTIONS, item.key, item.to_dict())
            affected = {(item.season, item.player_id) for item in [*previous, *fresh]}
            stats = self._recompute(affected)
        logger.debug("Folded fixture %s into %d player records", fixture.id, len(stats))
        return stats

    def rebuild(self, caller: Caller, fixtures: Iterable[Fixture]) -> int:
        """Recompute every record from the finalised fixtures."""
        require_admin(caller)
        contributions: Dict[str, dict] = {}
        for fixture in fixtures:
            if not fixture.is_final():
                continue
            for item in contributions_for(fixture):
                contributions[item.key] = item.to_dict()
        with self.store.transaction():
            self.store.replace_collection(CONTRIBUTIONS, contributions)
            self.store.replace_collection(PLAYER_STATS, {})
            pairs = {(item["season"], item["player_id"]) for item in contributions.values()}
            stats = self._recompute(pairs)
        logger.info("Rebuilt %d player records from %d contributions", len(stats), len(contributions))
        return len(stats)

    def reset_season(self, caller: Caller, season: str) -> int:
        require_admin(caller)
        removed = 0
        with self.store.transaction():
            for item in self._contributions():
                if item.season == season:
                    self.store.delete(CONTRIBUTIONS, item.key)
            for stat in self.list_stats(season):
                self.store.delete(PLAYER_STATS, stat.key)
                removed += 1
        logger.info("Reset season %s (%d player records)", season, removed)
        return removed

    def get_stat(self, season: str, player_id: str) -> Optional[PlayerStat]:
        record = self.store.get(PLAYER_STATS, stat_key(season, player_id))
        return storage.instantiate(PlayerStat, record) if record is not None else None

    def list_stats(self, season: Optional[str] = None) -> List[PlayerStat]:
        stats = [storage.instantiate(PlayerStat, item) for item in self.store.all(PLAYER_STATS)]
        if season:
            stats = [stat for stat in stats if stat.season == season]
        return sorted(stats, key=lambda stat: (stat.season, -stat.goals, -stat.assists, stat.player_id))
