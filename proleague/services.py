"""Wiring of the league services around one storage file.

The web app and the CLI both build a :class:`League` and talk to its
services; nothing in here holds state of its own beyond the references.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from . import config, storage
from .auth import Caller, ManagerCodes, require_admin
from .fixtures import FixtureService
from .models import Fixture, now_ms
from .news import NewsService
from .notify import BackgroundNotifier, NullNotifier, WebhookNotifier
from .players import PlayerRegistry
from .provider import MatchFeedService, StatsProvider
from .ranking import RankingService
from .results import ResultService
from .standings import StandingsService
from .stats import StatisticsAggregator
from .wallets import WalletLedger

logger = logging.getLogger(__name__)


class League:
    def __init__(
        self,
        settings: Optional[config.Settings] = None,
        *,
        store: Optional[storage.Storage] = None,
        notifier: Any = None,
        provider: Optional[StatsProvider] = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.settings = settings or config.Settings()
        self.clock = clock
        self.store = store or storage.Storage(self.settings.data_file)
        self.store.ensure_storage()

        if notifier is None:
            if self.settings.notify_webhook_url:
                notifier = BackgroundNotifier(WebhookNotifier(self.settings.notify_webhook_url))
            else:
                notifier = NullNotifier()
        if provider is None and self.settings.stats_provider_url:
            provider = StatsProvider(self.settings.stats_provider_url)

        self.codes = ManagerCodes(self.store, clock=clock)
        self.rankings = RankingService(self.store)
        self.players = PlayerRegistry(self.store, cache_ttl=self.settings.roster_cache_ttl)
        self.news = NewsService(self.store, notifier, clock=clock)
        self.fixtures = FixtureService(self.store, clock=clock, on_scheduled=self._announce)
        self.stats = StatisticsAggregator(self.store, clock=clock)
        self.results = ResultService(self.store, self.fixtures, self.players, self.stats, self.news, clock=clock)
        self.standings = StandingsService(self.store, lambda cup: self.fixtures.list_fixtures(cup), clock=clock)
        self.wallets = WalletLedger(
            self.store,
            self.rankings,
            clock=clock,
            payouts=self.settings.payouts,
            starting_balance=self.settings.starting_balance,
        )
        self.feed = MatchFeedService(self.store, provider, clock=clock)

    def _announce(self, fixture: Fixture) -> None:
        self.news.from_scheduled(fixture)

    def rebuild_stats(self, caller: Caller) -> int:
        return self.stats.rebuild(caller, self.fixtures.list_fixtures())

    def refresh_rankings(self, caller: Caller, cup: str = config.DEFAULT_CUP) -> Dict[str, Any]:
        """Recompute the league table, then reclassify every club from it."""
        require_admin(caller)
        snapshot = self.standings.recompute(caller, cup)
        rankings = self.rankings.recompute_from_standings(caller, snapshot["rows"])
        return {"standings": snapshot, "rankings": [ranking.to_dict() for ranking in rankings]}

    def club_summary(self, club_id: str) -> Dict[str, Any]:
        wallet = self.wallets.ensure(club_id)
        return {
            "wallet": wallet.to_dict(),
            "ranking": self.rankings.get(club_id).to_dict(),
            "next_collect": self.wallets.preview_collect(club_id),
        }

    def clubs(self) -> List[str]:
        """Every club id seen in fixtures, rankings or wallets."""
        seen: Dict[str, None] = {}
        for fixture in self.fixtures.list_fixtures():
            seen.setdefault(fixture.home)
            seen.setdefault(fixture.away)
        for ranking in self.rankings.list():
            seen.setdefault(ranking.club_id)
        for club_id in self.store.keys("wallets"):
            seen.setdefault(club_id)
        return list(seen)
