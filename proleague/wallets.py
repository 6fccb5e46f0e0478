"""Club wallets: time-accrued payouts, cup bonuses and admin adjustments.

A wallet accrues its club's per-day tier rate for every whole day since
``last_collected_at``. Collecting pays the whole days only and moves the
marker forward by exactly that many days, so a partial day carries over.
Every balance change runs under the wallet's record lock.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional

from . import config, storage
from .auth import Caller, require_admin, require_manager_of
from .config import DAY_MS
from .errors import ValidationError
from .models import Wallet, now_ms, to_int
from .ranking import RankingService, daily_payout

logger = logging.getLogger(__name__)

WALLETS = "wallets"
AWARDS = "awards"


class WalletLedger:
    def __init__(
        self,
        store: storage.Storage,
        rankings: RankingService,
        *,
        clock: Callable[[], int] = now_ms,
        payouts: Optional[Mapping[str, int]] = None,
        starting_balance: int = config.STARTING_BALANCE,
    ) -> None:
        self.store = store
        self.rankings = rankings
        self.clock = clock
        self.payouts = dict(payouts or config.PAYOUTS)
        self.starting_balance = starting_balance

    def _seed(self, club_id: str) -> Wallet:
        return Wallet(
            club_id=str(club_id),
            balance=self.starting_balance,
            last_collected_at=self.clock() - DAY_MS,
        )

    def ensure(self, club_id: str) -> Wallet:
        """Return the club's wallet, creating it with a one-day backlog."""
        record = self.store.get(WALLETS, club_id)
        if record is not None:
            return storage.instantiate(Wallet, record)
        with self.store.locked(WALLETS, club_id):
            record = self.store.get(WALLETS, club_id)
            if record is not None:
                return storage.instantiate(Wallet, record)
            wallet = self._seed(club_id)
            self.store.put(WALLETS, wallet.club_id, wallet.to_dict())
            logger.info("Opened wallet for %s", club_id)
            return wallet

    def per_day(self, club_id: str) -> int:
        return daily_payout(self.rankings.get(club_id), self.payouts)

    def _quote(self, wallet: Wallet) -> Dict[str, int]:
        per_day = self.per_day(wallet.club_id)
        days = max(0, (self.clock() - wallet.last_collected_at) // DAY_MS)
        return {"days": days, "per_day": per_day, "amount": max(0, days * per_day)}

    def preview_collect(self, club_id: str) -> Dict[str, int]:
        return self._quote(self.ensure(club_id))

    def collect(self, caller: Caller, club_id: str) -> Dict[str, Any]:
        require_manager_of(caller, club_id)
        self.ensure(club_id)
        with self.store.locked(WALLETS, club_id):
            wallet = storage.instantiate(Wallet, self.store.get(WALLETS, club_id))
            quote = self._quote(wallet)
            if quote["amount"] <= 0:
                return {"ok": False, "message": "No payout available yet", "collected": 0, "wallet": wallet.to_dict()}
            wallet.balance += quote["amount"]
            wallet.last_collected_at += quote["days"] * DAY_MS
            self.store.put(WALLETS, wallet.club_id, wallet.to_dict())
        logger.info("%s collected %d for %d day(s)", club_id, quote["amount"], quote["days"])
        return {"ok": True, "collected": quote["amount"], "days": quote["days"], "wallet": wallet.to_dict()}

    def adjust(self, caller: Caller, club_id: str, delta: Any, reason: str = "") -> Wallet:
        """Administrative balance change; the only path that can lower a balance."""
        require_admin(caller)
        amount = to_int(delta)
        if amount == 0:
            raise ValidationError("delta must be a non-zero integer")
        self.ensure(club_id)
        with self.store.locked(WALLETS, club_id):
            wallet = storage.instantiate(Wallet, self.store.get(WALLETS, club_id))
            if wallet.balance + amount < 0:
                raise ValidationError("Adjustment would make the balance negative")
            wallet.balance += amount
            self.store.put(WALLETS, wallet.club_id, wallet.to_dict())
        logger.info("Adjusted %s by %d (%s)", club_id, amount, reason or "no reason given")
        return wallet

    # Cup bonuses -----------------------------------------------------
    def awards(self, season: str) -> Dict[str, int]:
        record = self.store.get(AWARDS, season) or {}
        return {str(club): to_int(amount) for club, amount in (record.get("paid") or {}).items()}

    def apply_cup_bonus(
        self, caller: Caller, club_id: str, season: str, amount: Any, *, dry_run: bool = False
    ) -> Dict[str, Any]:
        """Pay a season bonus once per (season, club); repeats and dry runs never mutate."""
        require_admin(caller)
        bonus = to_int(amount)
        if bonus < 0:
            raise ValidationError("Bonus amount cannot be negative")
        if not season:
            raise ValidationError("season required")
        result = {"club_id": club_id, "season": season, "amount": bonus, "dry_run": dry_run}
        if club_id in self.awards(season):
            return {**result, "paid": False, "reason": "already paid"}
        if dry_run or bonus == 0:
            return {**result, "paid": False, "reason": "dry run" if dry_run else "nothing to pay"}

        self.ensure(club_id)
        with self.store.locked(AWARDS, season), self.store.locked(WALLETS, club_id):
            ledger = self.store.get(AWARDS, season) or {"season": season, "paid": {}}
            if club_id in ledger["paid"]:
                return {**result, "paid": False, "reason": "already paid"}
            wallet = storage.instantiate(Wallet, self.store.get(WALLETS, club_id))
            wallet.balance += bonus
            ledger["paid"][club_id] = bonus
            with self.store.transaction():
                self.store.put(WALLETS, wallet.club_id, wallet.to_dict())
                self.store.put(AWARDS, season, ledger)
        logger.info("Paid %s cup bonus of %d for %s", club_id, bonus, season)
        return {**result, "paid": True, "balance": wallet.balance}

    def apply_cup_bonuses(
        self, caller: Caller, season: str, stages: Mapping[str, str], *, dry_run: bool = False
    ) -> List[Dict[str, Any]]:
        require_admin(caller)
        if not isinstance(stages, Mapping):
            raise ValidationError("stages must be an object keyed by club id")
        results = []
        for club_id, stage in stages.items():
            if stage not in config.CUP_BONUSES:
                raise ValidationError(f"Unknown cup stage: {stage}")
        for club_id, stage in stages.items():
            outcome = self.apply_cup_bonus(caller, club_id, season, config.CUP_BONUSES[stage], dry_run=dry_run)
            results.append({**outcome, "stage": stage})
        return results
