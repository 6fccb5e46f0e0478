"""Rank and tier classification plus the admin operations that store rankings."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from . import config, storage
from .auth import Caller, require_admin
from .errors import ValidationError
from .models import TIERS, Ranking, to_int

logger = logging.getLogger(__name__)


def league_points(position: Optional[int]) -> int:
    pos = to_int(position)
    if pos <= 0:
        return 0
    if pos == 1:
        return 100
    if pos == 2:
        return 80
    if pos <= 4:
        return 60
    if pos <= 8:
        return 40
    return 20


def cup_points(stage: Optional[str]) -> int:
    return config.CUP_POINTS.get(str(stage or "none"), 0)


def tier_from_points(points: int) -> str:
    if points >= 120:
        return "elite"
    if points >= 60:
        return "mid"
    return "bottom"


def classify(club_id: str, position: Optional[int], cup: Optional[str] = "none", tier: Optional[str] = None) -> Ranking:
    """Build a ranking from league position and cup progress.

    An explicit ``tier`` overrides the threshold ladder; the points are still
    derived from the inputs. Without an override the ladder decides, except
    that first place always classifies as elite.
    """
    stage = str(cup or "none")
    points = league_points(position) + cup_points(stage)
    if tier is not None and tier not in TIERS:
        raise ValidationError(f"Unknown tier: {tier}")
    if tier is None:
        tier = tier_from_points(points)
        # the league leader is never paid below the elite rate
        if to_int(position) == 1:
            tier = "elite"
    return Ranking(
        club_id=str(club_id),
        league_pos=max(0, to_int(position)),
        cup=stage,
        points=points,
        tier=tier,
    )


def daily_payout(ranking: Optional[Ranking], payouts: Optional[Mapping[str, int]] = None) -> int:
    table = payouts or config.PAYOUTS
    tier = ranking.tier if ranking is not None else "mid"
    return int(table.get(tier, table["mid"]))


class RankingService:
    def __init__(self, store: storage.Storage) -> None:
        self.store = store

    def get(self, club_id: str) -> Ranking:
        record = self.store.get("rankings", club_id)
        if record is None:
            return Ranking(club_id=str(club_id))
        return storage.instantiate(Ranking, record)

    def list(self) -> List[Ranking]:
        return [storage.instantiate(Ranking, item) for item in self.store.all("rankings")]

    def bulk_update(self, caller: Caller, payload: Mapping[str, Mapping[str, Any]]) -> List[Ranking]:
        require_admin(caller)
        if not isinstance(payload, Mapping):
            raise ValidationError("rankings must be an object keyed by club id")
        rankings = [
            classify(
                club_id,
                (source or {}).get("league_pos", (source or {}).get("leaguePos")),
                (source or {}).get("cup"),
                (source or {}).get("tier") or None,
            )
            for club_id, source in payload.items()
        ]
        with self.store.transaction():
            for ranking in rankings:
                self.store.put("rankings", ranking.club_id, ranking.to_dict())
        logger.info("Updated %d rankings", len(rankings))
        return rankings

    def recompute_from_standings(self, caller: Caller, rows: List[Dict[str, Any]]) -> List[Ranking]:
        """Reclassify every club from a standings table, keeping cup progress."""
        require_admin(caller)
        rankings = []
        for row in rows:
            current = self.get(row["club_id"])
            rankings.append(classify(row["club_id"], row["position"], current.cup))
        with self.store.transaction():
            for ranking in rankings:
                self.store.put("rankings", ranking.club_id, ranking.to_dict())
        return rankings
