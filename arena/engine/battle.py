from __future__ import annotations

import logging
import random
import secrets
import string
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .contracts import (
    Battle,
    Combatant,
    Round,
    STATUS_WAITING,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_EXPIRED,
    OUTCOME_KNOCKOUT,
    OUTCOME_FORFEIT,
    OUTCOME_EXPIRED,
)
from .ledger import PlayerLedger
from .rules import (
    EngineConfig,
    NotJoinable,
    NotFound,
    NotParticipant,
    SelfJoin,
    validate_entry_fee,
)
from .scheduler import TaskHandle, ThreadScheduler
from .simulator import simulate_round
from .store import BattleStore

logger = logging.getLogger(__name__)

# =========================
# HELPERS
# =========================

_REF_ALPHABET = string.digits + string.ascii_lowercase


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_ref(prefix: str, now: Optional[datetime] = None) -> str:
    """
    "<prefix>_<epoch ms>_<9 base36 chars>", e.g. battle_1718000000000_k3j9x0a1b
    """
    now = now or utc_now()
    suffix = "".join(secrets.choice(_REF_ALPHABET) for _ in range(9))
    return f"{prefix}_{int(now.timestamp() * 1000)}_{suffix}"


def _other(side: str) -> str:
    return "side2" if side == "side1" else "side1"


# =========================
# ENGINE
# =========================

class BattleEngine:
    """
    Owns the battle lifecycle:

        waiting --join--> active --knockout/forfeit--> completed
        waiting --expire--> expired

    Every transition runs inside ``BattleStore.mutate`` so it holds that
    battle's lock from read to write. Rounds are chained through the
    scheduler: a tick either queues the next tick or finishes the battle,
    so only one tick per battle is ever queued or running.
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        store: Optional[BattleStore] = None,
        ledger: Optional[PlayerLedger] = None,
        scheduler=None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or EngineConfig()
        self.store = store if store is not None else BattleStore()
        self.ledger = ledger if ledger is not None else PlayerLedger()
        self.scheduler = scheduler if scheduler is not None else ThreadScheduler()
        self.rng = rng or random.Random()
        self.clock = clock

        # queued tick and expiry handles per battle id
        self._pending: Dict[str, TaskHandle] = {}
        self._expiry: Dict[str, TaskHandle] = {}
        self._pending_lock = threading.Lock()

    # -------------------------
    # PUBLIC API
    # -------------------------

    def create_battle(self, participant_key: str, asset_ref: str, entry_fee=None) -> Battle:
        fee = validate_entry_fee(entry_fee, self.config)
        now = self.clock()

        battle = Battle(
            id=new_ref("battle", now),
            side1=self._new_combatant(participant_key, asset_ref),
            entry_fee=fee,
            created_at=now,
        )
        self.store.create(battle)

        logger.info(
            "Battle %s created by %s (fee=%s, power=%s)",
            battle.id, participant_key, fee, battle.side1.power,
        )
        return self.store.get(battle.id)

    def join_battle(self, battle_id: str, participant_key: str, asset_ref: str) -> Battle:
        def join(battle: Battle):
            if battle.status != STATUS_WAITING or battle.side2 is not None:
                raise NotJoinable(details={"battle_id": battle_id, "status": battle.status})
            if not self.config.allow_self_join and battle.side1.participant_key == participant_key:
                raise SelfJoin(details={"battle_id": battle_id})

            battle.side2 = self._new_combatant(participant_key, asset_ref)
            battle.prize = battle.entry_fee * 2  # winner takes all
            battle.status = STATUS_ACTIVE
            self._drop_expiry(battle.id)
            self._schedule_tick(battle.id, self.config.warmup_delay)

        battle = self.store.mutate(battle_id, join)
        logger.info(
            "Battle %s joined by %s (power=%s), prize=%s",
            battle.id, participant_key, battle.side2.power, battle.prize,
        )
        return battle

    def expire(self, battle_id: str) -> Battle:
        """Closes a battle nobody joined. Only valid while waiting."""
        def close(battle: Battle):
            if battle.status != STATUS_WAITING:
                raise NotJoinable(
                    message="Only waiting battles can expire",
                    details={"battle_id": battle_id, "status": battle.status},
                )
            battle.status = STATUS_EXPIRED
            battle.outcome = OUTCOME_EXPIRED
            battle.completed_at = self.clock()
            self._drop_expiry(battle.id)

        battle = self.store.mutate(battle_id, close)
        logger.info("Battle %s expired without an opponent", battle_id)
        return battle

    def schedule_expiry(self, battle_id: str, delay: float, reaper: Callable[..., object]) -> TaskHandle:
        """
        Queues ``reaper(engine, battle_id)`` after ``delay`` seconds. The task
        is cancelled as soon as the battle is joined or expired, and by
        ``shutdown()``.
        """
        armed = []

        def arm(battle: Battle):
            if battle.status != STATUS_WAITING:
                raise NotJoinable(details={"battle_id": battle_id, "status": battle.status})
            handle = self.scheduler.call_later(
                delay, reaper, self, battle.id, label=f"expire:{battle.id}"
            )
            with self._pending_lock:
                self._expiry[battle.id] = handle
            armed.append(handle)

        self.store.mutate(battle_id, arm)
        return armed[0]

    def forfeit(self, battle_id: str, participant_key: str) -> Battle:
        """Ends an active battle early; the forfeiting side loses."""
        def concede(battle: Battle):
            if battle.status != STATUS_ACTIVE:
                raise NotJoinable(
                    message="Only active battles can be forfeited",
                    details={"battle_id": battle_id, "status": battle.status},
                )
            side = battle.side_of(participant_key)
            if side is None:
                raise NotParticipant(details={"battle_id": battle_id})

            self._cancel_tick(battle.id)
            self._finish(battle, winner_side=_other(side), outcome=OUTCOME_FORFEIT)

        battle = self.store.mutate(battle_id, concede)
        logger.info("Battle %s forfeited by %s", battle_id, participant_key)
        return battle

    def confirm_payment(self, battle_id: str, payment_ref: str) -> Battle:
        def record(battle: Battle):
            battle.payment_confirmed = True
            battle.payment_ref = payment_ref

        battle = self.store.mutate(battle_id, record)
        logger.info("Battle %s payment confirmed (%s)", battle_id, payment_ref)
        return battle

    def get_battle(self, battle_id: str) -> Battle:
        return self.store.get(battle_id)

    def list_active(self) -> List[Battle]:
        return self.store.list_where(lambda b: b.is_open)

    def shutdown(self) -> int:
        """Drops every queued tick and expiry. Battles stay where they are."""
        with self._pending_lock:
            handles = list(self._pending.values()) + list(self._expiry.values())
            self._pending.clear()
            self._expiry.clear()
        cancelled = sum(1 for h in handles if h.cancel())
        logger.info("Engine shutdown: %s queued task(s) cancelled", cancelled)
        return cancelled

    # -------------------------
    # INTERNAL LOGIC
    # -------------------------

    def _new_combatant(self, participant_key: str, asset_ref: str) -> Combatant:
        return Combatant(
            participant_key=participant_key,
            asset_ref=asset_ref,
            power=self.rng.randint(self.config.power_min, self.config.power_max),
            health=self.config.starting_health,
        )

    def _schedule_tick(self, battle_id: str, delay: float) -> None:
        # called with the battle's lock held
        handle = self.scheduler.call_later(delay, self._tick, battle_id, label=f"tick:{battle_id}")
        with self._pending_lock:
            previous = self._pending.get(battle_id)
            self._pending[battle_id] = handle
        if previous is not None:
            previous.cancel()

    def _cancel_tick(self, battle_id: str) -> None:
        with self._pending_lock:
            handle = self._pending.pop(battle_id, None)
        if handle is not None:
            handle.cancel()

    def _drop_expiry(self, battle_id: str) -> None:
        with self._pending_lock:
            handle = self._expiry.pop(battle_id, None)
        if handle is not None:
            handle.cancel()

    def _tick(self, battle_id: str) -> None:
        aborted = []

        def step(battle: Battle):
            # _pending[id] only changes under this battle's lock, so a started
            # handle there is this tick; a queued one is left for its owner
            with self._pending_lock:
                handle = self._pending.get(battle.id)
                if handle is not None and handle.done:
                    del self._pending[battle.id]

            if battle.status != STATUS_ACTIVE or battle.side2 is None:
                aborted.append(battle.status)
                return

            s1, s2 = battle.side1, battle.side2
            outcome = simulate_round(s1.power, s2.power, s1.health, s2.health, self.rng)
            s1.health = outcome.health1
            s2.health = outcome.health2

            battle.rounds.append(Round(
                round=len(battle.rounds) + 1,
                p1_attack=outcome.p1_attack,
                p2_attack=outcome.p2_attack,
                p1_health=s1.health,
                p2_health=s2.health,
            ))
            logger.debug(
                "Battle %s round %s: %s/%s dmg, health %s/%s",
                battle.id, len(battle.rounds), outcome.p1_attack, outcome.p2_attack,
                s1.health, s2.health,
            )

            if s1.alive and s2.alive:
                self._schedule_tick(battle.id, self.config.round_delay)
                return

            if s1.alive:
                winner_side = "side1"
            elif s2.alive:
                winner_side = "side2"
            else:
                winner_side = self.config.tie_winner
            self._finish(battle, winner_side=winner_side, outcome=OUTCOME_KNOCKOUT)

        try:
            battle = self.store.mutate(battle_id, step)
        except NotFound:
            logger.warning("Tick for %s aborted: battle no longer exists", battle_id)
            return

        if aborted:
            logger.warning("Tick for %s aborted: status is %s", battle_id, aborted[0])
        elif battle.status == STATUS_COMPLETED:
            logger.info(
                "Battle %s completed after %s round(s): %s wins",
                battle.id, len(battle.rounds), battle.winner.participant_key,
            )

    def _finish(self, battle: Battle, winner_side: str, outcome: str) -> None:
        winner = getattr(battle, winner_side)
        loser = getattr(battle, _other(winner_side))

        battle.status = STATUS_COMPLETED
        battle.outcome = outcome
        battle.winner = replace(winner)
        battle.loser = replace(loser)
        battle.completed_at = self.clock()

        # keep last
        self.ledger.record_result(winner.participant_key, loser.participant_key, self.config.reward_unit)
