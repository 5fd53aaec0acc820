from __future__ import annotations

import logging
import threading
from copy import deepcopy
from decimal import Decimal
from typing import Dict, List, Optional

from .contracts import PlayerRecord

logger = logging.getLogger(__name__)


class PlayerLedger:
    """
    Cumulative win/loss/earnings per wallet.

    Records are created on the first finished battle for a key and are never
    removed. Updates to one key are serialized by that key's lock.
    """

    def __init__(self):
        self._records: Dict[str, PlayerRecord] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._index_lock = threading.Lock()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._index_lock:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _record_for(self, key: str) -> PlayerRecord:
        # caller holds the key lock
        with self._index_lock:
            record = self._records.get(key)
            if record is None:
                record = self._records[key] = PlayerRecord(key=key)
            return record

    def record_result(self, winner_key: str, loser_key: str, reward_unit: Decimal) -> None:
        # sorted acquisition keeps two results over the same pair deadlock-free
        keys = sorted({winner_key, loser_key})
        locks = [self._lock_for(k) for k in keys]
        for lock in locks:
            lock.acquire()
        try:
            winner = self._record_for(winner_key)
            winner.wins += 1
            winner.total_battles += 1
            winner.total_earnings += reward_unit

            loser = self._record_for(loser_key)
            loser.losses += 1
            loser.total_battles += 1
        finally:
            for lock in reversed(locks):
                lock.release()

        logger.info("Ledger: %s beat %s (+%s)", winner_key, loser_key, reward_unit)

    def get(self, key: str) -> Optional[PlayerRecord]:
        with self._lock_for(key):
            with self._index_lock:
                record = self._records.get(key)
            return deepcopy(record) if record else None

    def records(self) -> List[PlayerRecord]:
        with self._index_lock:
            keys = list(self._records)

        out = []
        for key in keys:
            record = self.get(key)
            if record is not None:
                out.append(record)
        return out

    def get_top(self, n: int) -> List[PlayerRecord]:
        if n <= 0:
            return []
        ranked = sorted(self.records(), key=lambda r: (-r.wins, -r.total_earnings, r.key))
        return ranked[:n]

    def __len__(self):
        with self._index_lock:
            return len(self._records)
