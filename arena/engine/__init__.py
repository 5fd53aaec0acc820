from .battle import BattleEngine, new_ref
from .contracts import (
    Battle,
    Combatant,
    PlayerRecord,
    Round,
    RoundOutcome,
    STATUS_WAITING,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_EXPIRED,
)
from .ledger import PlayerLedger
from .rules import (
    ArenaError,
    EngineConfig,
    InvalidEntryFee,
    NotFound,
    NotJoinable,
    NotParticipant,
    SelfJoin,
)
from .scheduler import ManualScheduler, ThreadScheduler
from .simulator import simulate_round
from .store import BattleStore
