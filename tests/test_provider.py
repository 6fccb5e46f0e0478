import pytest
import requests

from proleague.auth import Caller
from proleague.errors import AuthorizationError, UpstreamUnavailable, ValidationError
from proleague.provider import MatchFeedService, StatsProvider

from conftest import ADMIN


class FakeResponse:
    def __init__(self, body, status=200):
        self.body = body
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status}")

    def json(self):
        return self.body


class FakeSession:
    """Answers per club id; a list of answers is consumed one call at a time."""

    def __init__(self, answers):
        self.answers = answers
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append(params["clubIds"])
        answer = self.answers[params["clubIds"]]
        if isinstance(answer, list) and answer and isinstance(answer[0], FakeResponse):
            answer = answer.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer


def provider_for(answers):
    session = FakeSession(answers)
    return StatsProvider("https://stats.example/matches", session=session, sleep=lambda _: None), session


class TestStatsProvider:
    def test_accepts_list_and_keyed_bodies(self):
        provider, _ = provider_for(
            {
                "1": FakeResponse([{"matchId": "m1"}, "junk"]),
                "2": FakeResponse({"2": [{"matchId": "m2"}]}),
            }
        )
        assert provider.fetch_recent_matches(["1", "2"]) == {"1": [{"matchId": "m1"}], "2": [{"matchId": "m2"}]}

    def test_retries_transient_failures(self):
        provider, session = provider_for({"1": [FakeResponse(None, 500), FakeResponse([{"matchId": "m1"}])]})
        assert provider.fetch_recent_matches(["1"]) == {"1": [{"matchId": "m1"}]}
        assert session.calls == ["1", "1"]

    def test_gives_up_after_ladder(self):
        provider, session = provider_for({"1": requests.Timeout("slow")})
        with pytest.raises(UpstreamUnavailable):
            provider.fetch_recent_matches(["1"])
        assert len(session.calls) == 3

    def test_requires_club_ids(self):
        provider, _ = provider_for({})
        with pytest.raises(ValidationError):
            provider.fetch_recent_matches([])


class TestMatchFeed:
    def test_sync_inserts_only_new_matches(self, store, clock):
        provider, _ = provider_for({"1": FakeResponse([{"matchId": "m1"}, {"matchId": "m2"}, {"noId": True}])})
        feed = MatchFeedService(store, provider, clock=clock)
        assert feed.sync(ADMIN, ["1"]) == {"clubs": ["1"], "seen": 2, "inserted": 2}
        assert feed.sync(ADMIN, ["1"])["inserted"] == 0
        assert [item["match_id"] for item in feed.list_matches("1")] == ["m1", "m2"]

    def test_failure_stores_nothing(self, store, clock):
        provider, _ = provider_for({"1": FakeResponse([{"matchId": "m1"}]), "2": requests.ConnectionError("down")})
        feed = MatchFeedService(store, provider, clock=clock)
        with pytest.raises(UpstreamUnavailable):
            feed.sync(ADMIN, ["1", "2"])
        assert feed.list_matches() == []

    def test_without_provider(self, store):
        with pytest.raises(UpstreamUnavailable):
            MatchFeedService(store, None).sync(ADMIN, ["1"])

    def test_admin_only(self, store):
        provider, _ = provider_for({})
        with pytest.raises(AuthorizationError):
            MatchFeedService(store, provider).sync(Caller.manager("1"), ["1"])
