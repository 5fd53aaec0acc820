# arena/engine/rules.py

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Dict, Any


# ============================================================
# EASY TO CHANGE STUFF (keep it here)
# ============================================================

DEFAULT_ENTRY_FEE = Decimal("0.001")   # SOL
MIN_ENTRY_FEE = Decimal("0.001")
MAX_ENTRY_FEE = Decimal("0.1")
REWARD_UNIT = Decimal("0.001")         # credited to the winner's ledger record

BATTLE_TIMEOUT = 300.0                 # seconds a battle may sit in "waiting"
WARMUP_DELAY = 2.0                     # seconds between join and first round
ROUND_DELAY = 1.0                      # seconds between rounds

STARTING_HEALTH = 100
POWER_MIN = 50
POWER_MAX = 149                        # inclusive

TIE_WINNER = "side1"                   # who wins when both hit 0 in one round
ALLOW_SELF_JOIN = False

LEADERBOARD_SIZE = 10


@dataclass(frozen=True)
class EngineConfig:
    default_entry_fee: Decimal = DEFAULT_ENTRY_FEE
    min_entry_fee: Decimal = MIN_ENTRY_FEE
    max_entry_fee: Decimal = MAX_ENTRY_FEE
    reward_unit: Decimal = REWARD_UNIT
    warmup_delay: float = WARMUP_DELAY
    round_delay: float = ROUND_DELAY
    starting_health: int = STARTING_HEALTH
    power_min: int = POWER_MIN
    power_max: int = POWER_MAX
    tie_winner: str = TIE_WINNER
    allow_self_join: bool = ALLOW_SELF_JOIN

    def __post_init__(self):
        if self.tie_winner not in ("side1", "side2"):
            raise ValueError(f"tie_winner must be 'side1' or 'side2', got {self.tie_winner!r}")
        if self.min_entry_fee > self.max_entry_fee:
            raise ValueError("min_entry_fee is greater than max_entry_fee")


# ============================================================
# ERRORS
# ============================================================

@dataclass
class ArenaError(Exception):
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None

    def __str__(self):
        return self.message


@dataclass
class NotFound(ArenaError):
    code: str = "NOT_FOUND"
    message: str = "Battle not found"


@dataclass
class NotJoinable(ArenaError):
    code: str = "NOT_JOINABLE"
    message: str = "Battle is not available"


@dataclass
class InvalidEntryFee(ArenaError):
    code: str = "INVALID_ENTRY_FEE"
    message: str = "Entry fee is out of range"


@dataclass
class SelfJoin(ArenaError):
    code: str = "SELF_JOIN"
    message: str = "You cannot join your own battle"


@dataclass
class NotParticipant(ArenaError):
    code: str = "NOT_PARTICIPANT"
    message: str = "Wallet is not part of this battle"


# ============================================================
# VALIDATION
# ============================================================

def validate_entry_fee(entry_fee, config: EngineConfig) -> Decimal:
    """
    Normalizes the fee to a Decimal and enforces the configured bounds.
    Both bounds are inclusive.
    """
    if entry_fee is None:
        return config.default_entry_fee

    try:
        fee = Decimal(str(entry_fee))
    except ArithmeticError:
        raise InvalidEntryFee(details={"entry_fee": str(entry_fee)})

    if not fee.is_finite() or fee < config.min_entry_fee or fee > config.max_entry_fee:
        raise InvalidEntryFee(
            message=f"Entry fee must be between {config.min_entry_fee} and {config.max_entry_fee}.",
            details={
                "entry_fee": str(entry_fee),
                "min": str(config.min_entry_fee),
                "max": str(config.max_entry_fee),
            },
        )
    return fee
