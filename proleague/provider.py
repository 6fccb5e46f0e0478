"""Recent-match feed from the external statistics provider.

The provider is slow and flaky, so every request has a timeout and a short
retry ladder. A sync pulls every requested club before touching storage.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import requests

from . import storage
from .auth import Caller, require_admin
from .errors import UpstreamUnavailable, ValidationError
from .models import now_ms

logger = logging.getLogger(__name__)

RAW_MATCHES = "raw_matches"
TIMEOUT_SECONDS = 30
RETRY_DELAYS = (2.0, 5.0)
HEADERS = {
    "User-Agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
    "Accept": "application/json",
}


class StatsProvider:
    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        retry_delays: Sequence[float] = RETRY_DELAYS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.retry_delays = list(retry_delays)
        self.sleep = sleep

    def _get(self, params: Dict[str, Any]) -> Any:
        last_error = "no attempt made"
        for attempt in range(len(self.retry_delays) + 1):
            try:
                resp = self.session.get(self.base_url, params=params, headers=HEADERS, timeout=TIMEOUT_SECONDS)
                resp.raise_for_status()
                return resp.json()
            except (requests.RequestException, ValueError) as exc:
                last_error = str(exc)
                logger.warning("Provider attempt %d failed (%s): %s", attempt + 1, params, exc)
            if attempt < len(self.retry_delays):
                self.sleep(self.retry_delays[attempt])
        raise UpstreamUnavailable(f"Statistics provider unavailable: {last_error}")

    def fetch_recent_matches(self, club_ids: Iterable[str]) -> Dict[str, List[Dict[str, Any]]]:
        """Recent league matches per club id; raises if any club cannot be fetched."""
        ids = [str(club) for club in club_ids if str(club).strip()]
        if not ids:
            raise ValidationError("clubIds required")
        results: Dict[str, List[Dict[str, Any]]] = {}
        for club_id in ids:
            body = self._get({"matchType": "leagueMatch", "platform": "common-gen5", "clubIds": club_id})
            if isinstance(body, dict):
                body = body.get(club_id, [])
            results[club_id] = [item for item in body or [] if isinstance(item, dict)]
            logger.info("Fetched %d match(es) for club %s", len(results[club_id]), club_id)
        return results


class MatchFeedService:
    def __init__(self, store: storage.Storage, provider: Optional[StatsProvider], *, clock: Callable[[], int] = now_ms) -> None:
        self.store = store
        self.provider = provider
        self.clock = clock

    def sync(self, caller: Caller, club_ids: Iterable[str]) -> Dict[str, Any]:
        """Store matches not seen before. A provider failure stores nothing."""
        require_admin(caller)
        if self.provider is None:
            raise UpstreamUnavailable("No statistics provider configured")
        fetched = self.provider.fetch_recent_matches(club_ids)

        inserted = 0
        seen = 0
        fetched_at = self.clock()
        with self.store.transaction():
            for club_id, matches in fetched.items():
                for match in matches:
                    match_id = str(match.get("matchId") or match.get("match_id") or "")
                    if not match_id:
                        continue
                    seen += 1
                    if self.store.get(RAW_MATCHES, match_id) is not None:
                        continue
                    self.store.put(
                        RAW_MATCHES,
                        match_id,
                        {"match_id": match_id, "club_id": club_id, "fetched_at": fetched_at, "raw": match},
                    )
                    inserted += 1
        logger.info("Match feed sync: %d seen, %d new", seen, inserted)
        return {"clubs": sorted(fetched), "seen": seen, "inserted": inserted}

    def list_matches(self, club_id: Optional[str] = None) -> List[Dict[str, Any]]:
        items = self.store.all(RAW_MATCHES)
        if club_id:
            items = [item for item in items if item.get("club_id") == str(club_id)]
        items.sort(key=lambda item: (item.get("fetched_at", 0), item.get("match_id", "")))
        return items
