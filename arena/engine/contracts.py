from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

STATUS_WAITING = "waiting"
STATUS_ACTIVE = "active"
STATUS_COMPLETED = "completed"
STATUS_EXPIRED = "expired"

OPEN_STATUSES = (STATUS_WAITING, STATUS_ACTIVE)

OUTCOME_KNOCKOUT = "knockout"
OUTCOME_FORFEIT = "forfeit"
OUTCOME_EXPIRED = "expired"


@dataclass
class Combatant:
    participant_key: str  # wallet address, opaque to the engine
    asset_ref: str  # coin mint, carried as-is
    power: int
    health: int

    @property
    def alive(self):
        return self.health > 0


@dataclass(frozen=True)
class RoundOutcome:
    p1_attack: int
    p2_attack: int
    health1: int
    health2: int


@dataclass
class Round:
    round: int
    p1_attack: int
    p2_attack: int
    p1_health: int
    p2_health: int


@dataclass
class Battle:
    id: str
    side1: Combatant
    entry_fee: Decimal
    created_at: datetime
    side2: Optional[Combatant] = None
    status: str = STATUS_WAITING
    prize: Decimal = Decimal("0")
    rounds: List[Round] = field(default_factory=list)
    winner: Optional[Combatant] = None
    loser: Optional[Combatant] = None
    outcome: Optional[str] = None
    completed_at: Optional[datetime] = None
    payment_confirmed: bool = False
    payment_ref: Optional[str] = None

    @property
    def is_open(self):
        return self.status in OPEN_STATUSES

    def side_of(self, participant_key: str) -> Optional[str]:
        if self.side1.participant_key == participant_key:
            return "side1"
        if self.side2 is not None and self.side2.participant_key == participant_key:
            return "side2"
        return None


@dataclass
class PlayerRecord:
    key: str
    wins: int = 0
    losses: int = 0
    total_battles: int = 0
    total_earnings: Decimal = Decimal("0")
