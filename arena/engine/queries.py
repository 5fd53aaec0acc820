from __future__ import annotations

from decimal import Decimal
from typing import List

from .contracts import PlayerRecord, STATUS_COMPLETED
from .ledger import PlayerLedger
from .rules import LEADERBOARD_SIZE
from .store import BattleStore


def leaderboard(ledger: PlayerLedger, n: int = LEADERBOARD_SIZE) -> List[PlayerRecord]:
    """Top n by wins, then earnings, then key."""
    return ledger.get_top(n)


def aggregate_stats(store: BattleStore, ledger: PlayerLedger) -> dict:
    """
    totals across the arena, read fresh on every call:
      total_battles        completed battles (knockout or forfeit)
      active_players       wallets with at least one finished battle
      total_prize_awarded  sum of prizes of completed battles
    """
    completed = store.list_where(lambda b: b.status == STATUS_COMPLETED)
    return {
        "total_battles": len(completed),
        "active_players": len(ledger),
        "total_prize_awarded": sum((b.prize for b in completed), Decimal("0")),
    }
