"""Fixture store and the propose/vote/lock scheduling protocol.

A fixture moves ``pending -> scheduled -> final``. It becomes ``scheduled``
only when both participating clubs vote ``True`` for the same proposed
kickoff. Every mutation of one fixture runs under that fixture's record lock.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from . import config, storage
from .auth import Caller, require_admin, require_fixture_party
from .errors import ConflictError, NotFoundError, ValidationError
from .models import (
    STATUS_PENDING,
    STATUS_SCHEDULED,
    Fixture,
    Lineup,
    Proposal,
    now_ms,
    to_int,
)

logger = logging.getLogger(__name__)

FIXTURES = "fixtures"


def parse_timestamp(value: Any) -> int:
    """Return a positive ms timestamp or raise ValidationError."""
    at = to_int(value)
    if at <= 0:
        raise ValidationError("timestamp (ms) required")
    return at


def public_view(fixture: Fixture, *, include_lineups: bool = False) -> Dict[str, Any]:
    """Sanitised projection without the vote ledger or unresolved names."""
    data = {
        "id": fixture.id,
        "cup": fixture.cup,
        "round": fixture.round,
        "group": fixture.group,
        "home": fixture.home,
        "away": fixture.away,
        "when": fixture.when,
        "status": fixture.status,
        "score": fixture.score.to_dict(),
        "details": {side: [row.to_dict() for row in rows] for side, rows in fixture.details.items()},
        "created_at": fixture.created_at,
    }
    if include_lineups:
        data["lineups"] = {owner: lineup.to_dict() for owner, lineup in fixture.lineups.items()}
    return data


class FixtureService:
    def __init__(
        self,
        store: storage.Storage,
        *,
        clock: Callable[[], int] = now_ms,
        on_scheduled: Optional[Callable[[Fixture], None]] = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.on_scheduled = on_scheduled

    # Store -----------------------------------------------------------
    def get_fixture(self, fixture_id: str) -> Fixture:
        record = self.store.get(FIXTURES, fixture_id)
        if record is None:
            raise NotFoundError(f"Fixture {fixture_id} not found")
        return Fixture.from_dict(record)

    def list_fixtures(self, cup: Optional[str] = None, club_id: Optional[str] = None) -> List[Fixture]:
        fixtures = [Fixture.from_dict(item) for item in self.store.all(FIXTURES)]
        if cup:
            fixtures = [fixture for fixture in fixtures if fixture.cup == cup]
        if club_id:
            fixtures = [fixture for fixture in fixtures if club_id in fixture.teams]
        return sorted(fixtures, key=lambda fixture: (fixture.created_at, fixture.id))

    def save(self, fixture: Fixture) -> Fixture:
        self.store.put(FIXTURES, fixture.id, fixture.to_dict())
        return fixture

    def create_fixture(
        self,
        caller: Caller,
        *,
        home: Any,
        away: Any,
        round: Optional[str] = None,
        cup: Optional[str] = None,
        group: Optional[str] = None,
        when: Any = None,
    ) -> Fixture:
        require_admin(caller)
        home_id = str(home or "").strip()
        away_id = str(away or "").strip()
        if not home_id or not away_id:
            raise ValidationError("home and away required")
        if home_id == away_id:
            raise ValidationError("home and away cannot match")
        locked_when = parse_timestamp(when) if when not in (None, "") else None
        created = self.clock()
        fixture = Fixture(
            id=uuid4().hex,
            home=home_id,
            away=away_id,
            cup=str(cup or config.DEFAULT_CUP).strip(),
            round=str(round or "Round"),
            group=str(group) if group else None,
            status=STATUS_SCHEDULED if locked_when else STATUS_PENDING,
            when=locked_when,
            time_locked_at=created if locked_when else None,
            created_at=created,
        )
        self.save(fixture)
        logger.info("Created fixture %s: %s vs %s (%s)", fixture.id, home_id, away_id, fixture.cup)
        return fixture

    # Scheduling ------------------------------------------------------
    def propose(self, caller: Caller, fixture_id: str, at: Any) -> Fixture:
        timestamp = parse_timestamp(at)
        with self.store.locked(FIXTURES, fixture_id):
            fixture = self.get_fixture(fixture_id)
            require_fixture_party(caller, fixture)
            if fixture.is_final():
                raise ConflictError("Fixture already final")
            if not any(proposal.at == timestamp for proposal in fixture.proposals):
                fixture.proposals.append(Proposal(at=timestamp, by=caller.owner_tag))
            fixture.votes.setdefault(timestamp, {})
            return self.save(fixture)

    def vote(self, caller: Caller, fixture_id: str, at: Any, agree: Any) -> Fixture:
        timestamp = parse_timestamp(at)
        with self.store.locked(FIXTURES, fixture_id):
            fixture = self.get_fixture(fixture_id)
            require_fixture_party(caller, fixture)
            if fixture.is_final():
                raise ConflictError("Fixture already final")
            ballot = dict(fixture.votes.get(timestamp, {}))
            ballot[caller.owner_tag] = bool(agree)
            both_agree = ballot.get(fixture.home) is True and ballot.get(fixture.away) is True
            if both_agree and fixture.status == STATUS_SCHEDULED and fixture.when != timestamp:
                raise ConflictError("Fixture already locked to another time; an admin must unlock it first")
            fixture.votes[timestamp] = ballot
            locked_now = both_agree and not (fixture.status == STATUS_SCHEDULED and fixture.when == timestamp)
            if locked_now:
                fixture.status = STATUS_SCHEDULED
                fixture.when = timestamp
                fixture.time_locked_at = self.clock()
            self.save(fixture)
        if locked_now:
            logger.info("Fixture %s locked for %s", fixture.id, timestamp)
            if self.on_scheduled is not None:
                self.on_scheduled(fixture)
        return fixture

    def unlock(self, caller: Caller, fixture_id: str) -> Fixture:
        """Administrative override: drop the locked kickoff so a new round of votes can lock."""
        require_admin(caller)
        with self.store.locked(FIXTURES, fixture_id):
            fixture = self.get_fixture(fixture_id)
            if fixture.is_final():
                raise ConflictError("Fixture already final")
            fixture.status = STATUS_PENDING
            fixture.when = None
            fixture.time_locked_at = None
            return self.save(fixture)

    def set_lineup(self, caller: Caller, fixture_id: str, formation: Any, assignments: Any) -> Fixture:
        with self.store.locked(FIXTURES, fixture_id):
            fixture = self.get_fixture(fixture_id)
            require_fixture_party(caller, fixture)
            fixture.lineups[caller.owner_tag] = Lineup(
                formation=str(formation or ""),
                assignments=dict(assignments) if isinstance(assignments, dict) else {},
                at=self.clock(),
            )
            return self.save(fixture)

