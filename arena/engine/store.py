from __future__ import annotations

import itertools
import logging
import threading
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .contracts import Battle
from .rules import NotFound

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    battle: Battle
    seq: int
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)


class BattleStore:
    """
    In-memory battle registry.

    Every battle has its own lock; the index lock is only held long enough to
    look an entry up or insert one, so work on one battle never waits on
    another. Callers always get copies back, never the stored object.
    """

    def __init__(self):
        self._entries: Dict[str, _Entry] = {}
        self._index_lock = threading.Lock()
        self._seq = itertools.count()

    def _entry(self, battle_id: str) -> _Entry:
        with self._index_lock:
            entry = self._entries.get(battle_id)
        if entry is None:
            raise NotFound(details={"battle_id": battle_id})
        return entry

    def create(self, battle: Battle) -> str:
        with self._index_lock:
            if battle.id in self._entries:
                raise ValueError(f"duplicate battle id {battle.id}")
            self._entries[battle.id] = _Entry(battle=deepcopy(battle), seq=next(self._seq))
        logger.debug("Stored battle %s", battle.id)
        return battle.id

    def get(self, battle_id: str) -> Battle:
        entry = self._entry(battle_id)
        with entry.lock:
            return deepcopy(entry.battle)

    def mutate(self, battle_id: str, fn: Callable[[Battle], None]) -> Battle:
        """
        Run fn on a draft of the battle while holding its lock. The draft
        replaces the stored battle only if fn returns normally, so a failed
        mutation leaves nothing behind.
        """
        entry = self._entry(battle_id)
        with entry.lock:
            draft = deepcopy(entry.battle)
            fn(draft)
            entry.battle = draft
            return deepcopy(draft)

    def list_where(self, predicate: Optional[Callable[[Battle], bool]] = None) -> List[Battle]:
        with self._index_lock:
            entries = list(self._entries.values())

        snapshot = []
        for entry in entries:
            with entry.lock:
                battle = deepcopy(entry.battle)
            if predicate is None or predicate(battle):
                snapshot.append((battle.created_at, entry.seq, battle))

        snapshot.sort(key=lambda row: (row[0], row[1]), reverse=True)
        return [battle for _, _, battle in snapshot]

    def __len__(self):
        with self._index_lock:
            return len(self._entries)

    def __contains__(self, battle_id):
        with self._index_lock:
            return battle_id in self._entries
