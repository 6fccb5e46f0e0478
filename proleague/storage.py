"""Persistent storage helpers for the league engine.

All records live in a single JSON document split into collections, each one a
mapping of record id to payload. Writes go through one store-wide lock and are
flushed with an atomic file replace. Read-modify-write sequences on a single
record are serialised with :meth:`Storage.locked`.
"""
from __future__ import annotations

import copy
import json
import logging
import os
import threading
from contextlib import contextmanager
from dataclasses import asdict, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple, Type, TypeVar

from . import config

logger = logging.getLogger(__name__)

DEFAULT_STRUCTURE: Dict[str, Any] = {
    "fixtures": {},
    "wallets": {},
    "rankings": {},
    "awards": {},
    "players": {},
    "squads": {},
    "player_stats": {},
    "contributions": {},
    "standings": {},
    "champions": {},
    "news": {},
    "raw_matches": {},
    "manager_codes": {},
}

T = TypeVar("T")


class Storage:
    """JSON document store shared by every service of one process."""

    def __init__(self, path: Optional[Path | str] = None) -> None:
        self.path = Path(path) if path is not None else config.DATA_FILE
        self._lock = threading.RLock()
        self._record_locks: Dict[Tuple[str, str], List[Any]] = {}
        self._data: Optional[Dict[str, Any]] = None
        self._batch_depth = 0

    # File handling ----------------------------------------------------
    def ensure_storage(self) -> None:
        """Create the storage file if it does not exist."""
        if not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.write_text(json.dumps(DEFAULT_STRUCTURE, indent=2), encoding="utf-8")

    def _load(self) -> Dict[str, Any]:
        if self._data is not None:
            return self._data
        with self._lock:
            if self._data is None:
                self.ensure_storage()
                data = json.loads(self.path.read_text(encoding="utf-8"))
                for key, default in DEFAULT_STRUCTURE.items():
                    if not isinstance(data.get(key), dict):
                        data[key] = copy.deepcopy(default)
                self._data = data
        return self._data

    def _flush(self) -> None:
        if self._batch_depth:
            return
        self.ensure_storage()
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self._data, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)

    def reload(self) -> None:
        """Drop the in-memory copy so the next read goes back to disk."""
        with self._lock:
            self._data = None

    # Locking ----------------------------------------------------------
    @contextmanager
    def locked(self, collection: str, key: str) -> Iterator[None]:
        """Serialise a read-modify-write on one record.

        A record lock lives only while someone holds or waits for it.
        """
        name = (collection, str(key))
        with self._lock:
            entry = self._record_locks.get(name)
            if entry is None:
                entry = self._record_locks[name] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if not entry[1]:
                    del self._record_locks[name]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes into one flush; roll back on error."""
        with self._lock:
            data = self._load()
            snapshot = copy.deepcopy(data)
            self._batch_depth += 1
            try:
                yield
            except Exception:
                self._data = snapshot
                raise
            finally:
                self._batch_depth -= 1
            self._flush()

    # Record access ----------------------------------------------------
    def get(self, collection: str, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._load()[collection].get(str(key))
            return copy.deepcopy(record) if record is not None else None

    def all(self, collection: str) -> List[Dict[str, Any]]:
        with self._lock:
            return [copy.deepcopy(item) for item in self._load()[collection].values()]

    def keys(self, collection: str) -> List[str]:
        with self._lock:
            return list(self._load()[collection].keys())

    def put(self, collection: str, key: str, record: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            self._load()[collection][str(key)] = copy.deepcopy(record)
            self._flush()
        return record

    def insert_if_absent(self, collection: str, key: str, record: Dict[str, Any]) -> bool:
        with self._lock:
            items = self._load()[collection]
            if str(key) in items:
                return False
            items[str(key)] = copy.deepcopy(record)
            self._flush()
        return True

    def delete(self, collection: str, key: str) -> bool:
        with self._lock:
            removed = self._load()[collection].pop(str(key), None)
            if removed is not None:
                self._flush()
            return removed is not None

    def replace_collection(self, collection: str, records: Dict[str, Dict[str, Any]]) -> None:
        with self._lock:
            self._load()[collection] = copy.deepcopy(records)
            self._flush()


def serialize_entity(entity: Any) -> Dict[str, Any]:
    if hasattr(entity, "to_dict"):
        return entity.to_dict()  # type: ignore[return-value]
    return asdict(entity)


def instantiate(model_cls: Type[T], payload: Dict[str, Any]) -> T:
    """Create a dataclass instance from the stored payload, ignoring unknown keys."""

    if hasattr(model_cls, "from_dict"):
        return model_cls.from_dict(payload)  # type: ignore[attr-defined]
    if not is_dataclass(model_cls):
        raise TypeError(f"{model_cls!r} is not a dataclass")
    names = {item.name for item in fields(model_cls)}
    kwargs = {key: value for key, value in payload.items() if key in names}
    return model_cls(**kwargs)  # type: ignore[arg-type]
