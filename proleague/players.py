"""Player registry, club squads and name resolution."""
from __future__ import annotations

import logging
import re
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from uuid import uuid4

from . import config, storage
from .auth import Caller, require_admin, require_manager_of
from .errors import NotFoundError, ValidationError
from .models import Player, SquadSlot, now_ms, to_int

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")

MAX_SQUAD_SIZE = 30


def normalize(name: Any) -> str:
    return _NON_ALNUM.sub("", str(name or "").lower())


def split_aliases(aliases: Any) -> List[str]:
    if aliases is None:
        return []
    if isinstance(aliases, (list, tuple)):
        items = aliases
    else:
        items = str(aliases).split(",")
    return [str(item).strip() for item in items if str(item).strip()]


class RosterCache:
    """Club id -> roster players, held for ``ttl`` seconds.

    Owned by :class:`PlayerRegistry`, which invalidates a club whenever one of
    its slots changes and drops everything when a player record changes.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._entries: Dict[str, Tuple[float, List[Player]]] = {}
        self._lock = threading.Lock()

    def get(self, club_id: str) -> Optional[List[Player]]:
        with self._lock:
            entry = self._entries.get(club_id)
            if entry is None:
                return None
            stored_at, players = entry
            if self._clock() - stored_at > self.ttl:
                del self._entries[club_id]
                return None
            return list(players)

    def put(self, club_id: str, players: List[Player]) -> None:
        with self._lock:
            self._entries[club_id] = (self._clock(), list(players))

    def invalidate(self, club_id: Optional[str] = None) -> None:
        with self._lock:
            if club_id is None:
                self._entries.clear()
            else:
                self._entries.pop(club_id, None)


class PlayerRegistry:
    """Facade over the player and squad collections."""

    def __init__(self, store: storage.Storage, *, cache_ttl: Optional[float] = None) -> None:
        self.store = store
        self.roster_cache = RosterCache(config.ROSTER_CACHE_TTL if cache_ttl is None else cache_ttl)

    # Players ---------------------------------------------------------
    def register_player(self, name: str, platform: str = "manual", aliases: Any = None) -> Player:
        clean = str(name or "").strip()
        if not clean:
            raise ValidationError("Player name required")
        alias_list = split_aliases(aliases)
        player = Player(
            id=uuid4().hex,
            name=clean,
            platform=str(platform or "manual"),
            aliases=alias_list,
            search=[normalize(item) for item in [clean, *alias_list] if normalize(item)],
            created_at=now_ms(),
        )
        self.store.put("players", player.id, player.to_dict())
        self.roster_cache.invalidate()
        return player

    def get_player(self, player_id: str) -> Player:
        record = self.store.get("players", player_id)
        if record is None:
            raise NotFoundError(f"Player {player_id} not found")
        return storage.instantiate(Player, record)

    def list_players(self) -> List[Player]:
        return [storage.instantiate(Player, item) for item in self.store.all("players")]

    def update_player(
        self,
        caller: Caller,
        player_id: str,
        *,
        name: Optional[str] = None,
        aliases: Any = None,
        platform: Optional[str] = None,
    ) -> Player:
        require_admin(caller)
        with self.store.locked("players", player_id):
            player = self.get_player(player_id)
            if name is not None:
                clean = str(name).strip()
                if not clean:
                    raise ValidationError("Player name cannot be empty")
                player.name = clean
            if aliases is not None:
                player.aliases = split_aliases(aliases)
            if platform is not None:
                player.platform = str(platform)
            player.search = [normalize(item) for item in [player.name, *player.aliases] if normalize(item)]
            self.store.put("players", player.id, player.to_dict())
        self.roster_cache.invalidate()
        return player

    # Squads ----------------------------------------------------------
    def _load_slots(self, club_id: str) -> Dict[str, Dict[str, Any]]:
        record = self.store.get("squads", club_id) or {"club_id": club_id, "slots": {}}
        return record.get("slots") or {}

    def _save_slots(self, club_id: str, slots: Dict[str, Dict[str, Any]]) -> None:
        self.store.put("squads", club_id, {"club_id": club_id, "slots": slots})
        self.roster_cache.invalidate(club_id)

    def bootstrap_squad(self, caller: Caller, club_id: str, size: Any = 15) -> List[SquadSlot]:
        require_admin(caller)
        count = max(1, min(MAX_SQUAD_SIZE, to_int(size, 15) or 15))
        slots = {}
        for index in range(1, count + 1):
            slot = SquadSlot(slot_id=f"S{index:02d}", club_id=club_id, label=f"Slot {index}")
            slots[slot.slot_id] = slot.to_dict()
        with self.store.locked("squads", club_id):
            self._save_slots(club_id, slots)
        return [storage.instantiate(SquadSlot, item) for item in slots.values()]

    def get_squad(self, club_id: str) -> List[Dict[str, Any]]:
        """Return the club's slots, each hydrated with its player (or None)."""
        hydrated = []
        slots = self._load_slots(club_id)
        for slot_id in sorted(slots):
            slot = slots[slot_id]
            player = self.store.get("players", slot["player_id"]) if slot.get("player_id") else None
            hydrated.append({**slot, "player": player})
        return hydrated

    def assign_slot(
        self,
        caller: Caller,
        club_id: str,
        slot_id: str,
        *,
        player_id: Optional[str] = None,
        name: Optional[str] = None,
        platform: str = "manual",
        aliases: Any = None,
    ) -> SquadSlot:
        if not caller.is_admin:
            require_manager_of(caller, club_id)
        if not player_id and not name:
            raise ValidationError("player_id or name required")
        if player_id:
            self.get_player(player_id)
        else:
            player_id = self.register_player(name or "", platform, aliases).id
        with self.store.locked("squads", club_id):
            slots = self._load_slots(club_id)
            current = slots.get(slot_id) or SquadSlot(slot_id=slot_id, club_id=club_id, label=slot_id).to_dict()
            current["player_id"] = player_id
            slots[slot_id] = current
            self._save_slots(club_id, slots)
        return storage.instantiate(SquadSlot, current)

    def unassign_slot(self, caller: Caller, club_id: str, slot_id: str) -> SquadSlot:
        if not caller.is_admin:
            require_manager_of(caller, club_id)
        with self.store.locked("squads", club_id):
            slots = self._load_slots(club_id)
            if slot_id not in slots:
                raise NotFoundError(f"Slot {slot_id} not found")
            slots[slot_id]["player_id"] = ""
            self._save_slots(club_id, slots)
        return storage.instantiate(SquadSlot, slots[slot_id])

    def roster(self, club_id: str) -> List[Player]:
        cached = self.roster_cache.get(club_id)
        if cached is not None:
            return cached
        players = []
        for slot in self._load_slots(club_id).values():
            if not slot.get("player_id"):
                continue
            record = self.store.get("players", slot["player_id"])
            if record is not None:
                players.append(storage.instantiate(Player, record))
        self.roster_cache.put(club_id, players)
        return players

    # Resolution ------------------------------------------------------
    def resolve_player_id(self, name: Any, club_id: Optional[str]) -> Optional[str]:
        """Exact normalised match: the club roster first, then every player.

        An unmatched name resolves to None; nothing is guessed.
        """
        wanted = normalize(name)
        if not wanted:
            return None
        if club_id:
            for player in self.roster(club_id):
                if wanted in player.search:
                    return player.id
        for player in _by_creation(self.list_players()):
            if wanted in player.search:
                return player.id
        return None


def _by_creation(players: Iterable[Player]) -> List[Player]:
    return sorted(players, key=lambda player: (player.created_at, player.id))
