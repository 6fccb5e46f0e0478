from typing import Any, Dict, List

import pytest

from proleague import config
from proleague.auth import Caller
from proleague.errors import UpstreamUnavailable
from proleague.services import League
from proleague.storage import Storage
from proleague.web import create_app

# 2026-01-01T00:00:00Z
T0 = 1_767_225_600_000
DAY_MS = config.DAY_MS
PAYOUTS = {"elite": 1_000_000, "mid": 800_000, "bottom": 600_000}
ADMIN = Caller.admin()


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: List[Dict[str, Any]] = []
        self.fail = False

    def deliver(self, event: Dict[str, Any]) -> bool:
        if self.fail:
            raise UpstreamUnavailable("sink down")
        self.events.append(event)
        return True

    def kinds(self) -> List[str]:
        return [event["kind"] for event in self.events]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def settings(tmp_path):
    return config.Settings(
        data_file=tmp_path / "league.json",
        secret_key="test-secret",
        admin_password="letmein",
        notify_webhook_url=None,
        stats_provider_url=None,
        payouts=dict(PAYOUTS),
        starting_balance=10_000_000,
        manager_session_hours=12,
        roster_cache_ttl=60,
    )


@pytest.fixture
def store(settings):
    return Storage(settings.data_file)


@pytest.fixture
def league(settings, store, notifier, clock):
    return League(settings, store=store, notifier=notifier, clock=clock)


@pytest.fixture
def app(settings, store, notifier, clock):
    flask_app = create_app(settings, store=store, notifier=notifier, clock=clock)
    flask_app.config["TESTING"] = True
    return flask_app


@pytest.fixture
def client(app):
    return app.test_client()


def make_fixture(league, home="A", away="B", *, when=None, cup="UPCL", group=None):
    return league.fixtures.create_fixture(ADMIN, home=home, away=away, cup=cup, group=group, when=when)


def roster_player(league, club_id, name, slot_id="S01", aliases=None):
    player = league.players.register_player(name, aliases=aliases)
    league.players.assign_slot(ADMIN, club_id, slot_id, player_id=player.id)
    return player
