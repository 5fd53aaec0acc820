"""
Process-wide wiring between Django and the battle engine.

The engine itself knows nothing about Django; this module builds one from
``settings.ARENA``, keeps it for the life of the process, and runs the expiry
reaper that closes battles nobody joined within ``BATTLE_TIMEOUT``.
"""

import logging
import threading
from decimal import Decimal
from typing import Optional

from django.conf import settings

from .engine import BattleEngine, EngineConfig, NotFound, NotJoinable
from .engine import rules

logger = logging.getLogger(__name__)

_engine: Optional[BattleEngine] = None
_engine_lock = threading.Lock()


def _arena_setting(name: str, default):
    return getattr(settings, "ARENA", {}).get(name, default)


def engine_config_from_settings() -> EngineConfig:
    return EngineConfig(
        default_entry_fee=Decimal(str(_arena_setting("DEFAULT_ENTRY_FEE", rules.DEFAULT_ENTRY_FEE))),
        min_entry_fee=Decimal(str(_arena_setting("MIN_ENTRY_FEE", rules.MIN_ENTRY_FEE))),
        max_entry_fee=Decimal(str(_arena_setting("MAX_ENTRY_FEE", rules.MAX_ENTRY_FEE))),
        reward_unit=Decimal(str(_arena_setting("REWARD_UNIT", rules.REWARD_UNIT))),
        warmup_delay=float(_arena_setting("WARMUP_DELAY", rules.WARMUP_DELAY)),
        round_delay=float(_arena_setting("ROUND_DELAY", rules.ROUND_DELAY)),
        tie_winner=_arena_setting("TIE_WINNER", rules.TIE_WINNER),
        allow_self_join=bool(_arena_setting("ALLOW_SELF_JOIN", rules.ALLOW_SELF_JOIN)),
    )


def battle_timeout() -> float:
    return float(_arena_setting("BATTLE_TIMEOUT", rules.BATTLE_TIMEOUT))


def leaderboard_size() -> int:
    return int(_arena_setting("LEADERBOARD_SIZE", rules.LEADERBOARD_SIZE))


def get_engine() -> BattleEngine:
    global _engine
    with _engine_lock:
        if _engine is None:
            _engine = BattleEngine(config=engine_config_from_settings())
            logger.info("Battle engine started (%s)", _engine.config)
        return _engine


def reset_engine(engine: Optional[BattleEngine] = None) -> BattleEngine:
    """
    Replaces the process-wide engine, cancelling whatever the old one had
    queued. With no argument a fresh engine is built from settings.
    """
    global _engine
    with _engine_lock:
        old, _engine = _engine, engine
    if old is not None:
        old.shutdown()
    return get_engine()


# =========================
# WRITE HELPERS
# =========================

def create_battle(participant_key: str, asset_ref: str, entry_fee=None):
    engine = get_engine()
    battle = engine.create_battle(participant_key, asset_ref, entry_fee)
    engine.schedule_expiry(battle.id, battle_timeout(), expire_if_waiting)
    return battle


def expire_if_waiting(engine: BattleEngine, battle_id: str) -> bool:
    """Reaper callback. A battle that already started is left alone."""
    try:
        engine.expire(battle_id)
    except NotJoinable:
        logger.debug("Reaper skipped %s: battle already started", battle_id)
        return False
    except NotFound:
        logger.warning("Reaper skipped %s: battle no longer exists", battle_id)
        return False
    return True
