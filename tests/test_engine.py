import threading
import time
from decimal import Decimal

import pytest

from arena.engine import (
    InvalidEntryFee,
    NotFound,
    NotJoinable,
    NotParticipant,
    SelfJoin,
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_EXPIRED,
    STATUS_WAITING,
)
from tests.conftest import ScriptedRng


def play_out(engine, scheduler, battle_id):
    scheduler.run_until_idle()
    return engine.get_battle(battle_id)


# =========================
# CREATE
# =========================

def test_create_starts_waiting_with_no_prize(engine):
    battle = engine.create_battle("alice", "mintA", Decimal("0.001"))

    assert battle.status == STATUS_WAITING
    assert battle.prize == 0
    assert battle.side2 is None
    assert battle.side1.health == 100
    assert 50 <= battle.side1.power <= 149
    assert battle.id.startswith("battle_")
    assert battle.rounds == []


def test_create_without_fee_uses_default(engine):
    battle = engine.create_battle("alice", "mintA")
    assert battle.entry_fee == Decimal("0.001")


@pytest.mark.parametrize("fee", ["0.0009", "0.11", "-1", "0"])
def test_create_rejects_fee_out_of_bounds(engine, fee):
    with pytest.raises(InvalidEntryFee):
        engine.create_battle("alice", "mintA", Decimal(fee))
    assert len(engine.store) == 0


@pytest.mark.parametrize("fee", ["0.001", "0.1"])
def test_create_accepts_boundary_fees(engine, fee):
    battle = engine.create_battle("alice", "mintA", Decimal(fee))
    assert battle.entry_fee == Decimal(fee)


def test_each_create_is_a_new_battle(engine):
    a = engine.create_battle("alice", "mintA")
    b = engine.create_battle("alice", "mintA")
    assert a.id != b.id
    assert len(engine.store) == 2


# =========================
# JOIN
# =========================

def test_join_activates_and_sets_prize(engine, scheduler):
    battle = engine.create_battle("alice", "mintA", Decimal("0.001"))
    joined = engine.join_battle(battle.id, "bob", "mintB")

    assert joined.status == STATUS_ACTIVE
    assert joined.prize == Decimal("0.002")
    assert joined.side2.participant_key == "bob"
    assert joined.side2.health == 100
    assert 50 <= joined.side2.power <= 149
    assert scheduler.pending_count() == 1


def test_join_unknown_battle(engine):
    with pytest.raises(NotFound):
        engine.join_battle("battle_nope", "bob", "mintB")


def test_join_active_battle_fails_and_changes_nothing(engine):
    battle = engine.create_battle("alice", "mintA")
    before = engine.join_battle(battle.id, "bob", "mintB")

    with pytest.raises(NotJoinable):
        engine.join_battle(battle.id, "carol", "mintC")

    assert engine.get_battle(battle.id) == before


def test_join_completed_battle_fails_and_changes_nothing(engine, scheduler):
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")
    done = play_out(engine, scheduler, battle.id)
    assert done.status == STATUS_COMPLETED

    with pytest.raises(NotJoinable):
        engine.join_battle(battle.id, "carol", "mintC")

    assert engine.get_battle(battle.id) == done


def test_self_join_is_rejected(engine):
    battle = engine.create_battle("alice", "mintA")
    with pytest.raises(SelfJoin):
        engine.join_battle(battle.id, "alice", "mintA")
    assert engine.get_battle(battle.id).status == STATUS_WAITING


def test_self_join_allowed_by_config(make_engine):
    engine = make_engine(allow_self_join=True)
    battle = engine.create_battle("alice", "mintA")
    assert engine.join_battle(battle.id, "alice", "mintB").status == STATUS_ACTIVE


def test_only_one_concurrent_join_wins(engine):
    battle = engine.create_battle("alice", "mintA")
    results = []
    start = threading.Barrier(16)

    def attempt(i):
        start.wait()
        try:
            engine.join_battle(battle.id, f"p{i}", "mint")
            results.append("ok")
        except NotJoinable:
            results.append("refused")

    threads = [threading.Thread(target=attempt, args=(i,)) for i in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count("ok") == 1
    assert results.count("refused") == 15


# =========================
# SIMULATION
# =========================

def test_scripted_battle_matches_hand_computed_rounds(make_engine, scheduler):
    rng = ScriptedRng(powers=[80, 90], attacks=[40, 30, 35, 50, 30, 25])
    engine = make_engine(rng=rng)

    battle = engine.create_battle("alice", "mintA", Decimal("0.001"))
    assert (battle.status, battle.prize) == (STATUS_WAITING, 0)

    battle = engine.join_battle(battle.id, "bob", "mintB")
    assert (battle.status, battle.prize) == (STATUS_ACTIVE, Decimal("0.002"))

    # nothing happens during warm-up
    scheduler.advance(1.5)
    assert engine.get_battle(battle.id).rounds == []

    scheduler.advance(0.5)
    battle = engine.get_battle(battle.id)
    assert [(r.p1_health, r.p2_health) for r in battle.rounds] == [(70, 60)]

    scheduler.advance(1)
    scheduler.advance(1)
    battle = engine.get_battle(battle.id)

    assert [(r.round, r.p1_attack, r.p2_attack) for r in battle.rounds] == [
        (1, 40, 30), (2, 35, 50), (3, 30, 25),
    ]
    assert [(r.p1_health, r.p2_health) for r in battle.rounds] == [(70, 60), (20, 25), (0, 0)]
    assert battle.status == STATUS_COMPLETED
    assert battle.outcome == "knockout"
    assert battle.winner.participant_key == "alice"  # tie goes to side1
    assert battle.loser.participant_key == "bob"
    assert battle.completed_at is not None
    assert rng.randrange_calls == [80, 90, 80, 90, 80, 90]
    assert scheduler.pending_count() == 0


def test_tie_winner_is_configurable(make_engine, scheduler):
    rng = ScriptedRng(powers=[80, 90], attacks=[79, 89, 30, 30])
    engine = make_engine(rng=rng, tie_winner="side2")
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")

    done = play_out(engine, scheduler, battle.id)
    assert [(r.p1_health, r.p2_health) for r in done.rounds] == [(11, 21), (0, 0)]
    assert done.winner.participant_key == "bob"


def test_knockout_winner_keeps_health(make_engine, scheduler):
    rng = ScriptedRng(powers=[120, 60], attacks=[100, 10])
    engine = make_engine(rng=rng)
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")

    done = play_out(engine, scheduler, battle.id)
    assert len(done.rounds) == 1
    assert done.winner.participant_key == "alice"
    assert done.winner.health == 90
    assert done.loser.health == 0


def test_side2_can_win(make_engine, scheduler):
    rng = ScriptedRng(powers=[60, 120], attacks=[5, 100])
    engine = make_engine(rng=rng)
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")

    done = play_out(engine, scheduler, battle.id)
    assert done.winner.participant_key == "bob"
    assert done.winner.health == 95
    assert done.loser.participant_key == "alice"


def test_random_battles_always_end_consistently(engine, scheduler):
    ids = []
    for i in range(25):
        battle = engine.create_battle(f"a{i}", "mintA")
        engine.join_battle(battle.id, f"b{i}", "mintB")
        ids.append(battle.id)

    scheduler.run_until_idle()

    for battle_id in ids:
        battle = engine.get_battle(battle_id)
        assert battle.status == STATUS_COMPLETED
        assert battle.winner.health > 0 or (battle.winner.health == 0 and battle.loser.health == 0)
        assert battle.loser.health == 0
        assert [r.round for r in battle.rounds] == list(range(1, len(battle.rounds) + 1))
        healths = [(100, 100)] + [(r.p1_health, r.p2_health) for r in battle.rounds]
        for (h1, h2), (n1, n2) in zip(healths, healths[1:]):
            assert 0 <= n1 <= h1 and 0 <= n2 <= h2


def test_completion_updates_ledger(make_engine, scheduler):
    rng = ScriptedRng(powers=[120, 60], attacks=[100, 10])
    engine = make_engine(rng=rng, reward_unit=Decimal("0.005"))
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")
    play_out(engine, scheduler, battle.id)

    alice, bob = engine.ledger.get("alice"), engine.ledger.get("bob")
    assert (alice.wins, alice.losses, alice.total_battles, alice.total_earnings) == (1, 0, 1, Decimal("0.005"))
    assert (bob.wins, bob.losses, bob.total_battles, bob.total_earnings) == (0, 1, 1, Decimal("0"))


def test_ledger_totals_after_many_battles(make_engine, scheduler):
    # K wins when the script lets side1 knock out in one round, loses otherwise
    wins_for_k = [True, False, True, True, False, True]
    powers, attacks = [], []
    for k_wins in wins_for_k:
        powers += [120, 120]
        attacks += [100, 10] if k_wins else [10, 100]

    engine = make_engine(rng=ScriptedRng(powers=powers, attacks=attacks))
    for i, _ in enumerate(wins_for_k):
        battle = engine.create_battle("K", "mint")
        engine.join_battle(battle.id, f"rival{i}", "mint")
        play_out(engine, scheduler, battle.id)

    k = engine.ledger.get("K")
    w = sum(wins_for_k)
    assert k.wins == w
    assert k.losses == len(wins_for_k) - w
    assert k.total_battles == len(wins_for_k)
    assert k.total_earnings == w * Decimal("0.001")


def test_ticks_for_one_battle_never_interleave(make_engine):
    class OverlapDetectingRng:
        def __init__(self):
            self.inside = 0
            self.max_inside = 0
            self._lock = threading.Lock()

        def randint(self, a, b):
            return 149

        def randrange(self, stop):
            with self._lock:
                self.inside += 1
                self.max_inside = max(self.max_inside, self.inside)
            time.sleep(0.001)
            with self._lock:
                self.inside -= 1
            return 1

    rng = OverlapDetectingRng()
    engine = make_engine(rng=rng)
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")

    go = threading.Barrier(8)

    def hammer():
        go.wait()
        for _ in range(10):
            engine._tick(battle.id)

    threads = [threading.Thread(target=hammer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    battle = engine.get_battle(battle.id)
    assert rng.max_inside == 1
    assert [r.round for r in battle.rounds] == list(range(1, 81))
    assert [r.p1_health for r in battle.rounds] == list(range(99, 19, -1))
    assert battle.side1.health == battle.side2.health == 20


def test_tick_for_missing_battle_is_ignored(engine):
    engine._tick("battle_gone")  # must not raise


def test_tick_after_completion_is_a_no_op(engine, scheduler):
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")
    done = play_out(engine, scheduler, battle.id)

    engine._tick(battle.id)
    assert engine.get_battle(battle.id) == done


# =========================
# EXPIRE / FORFEIT / PAYMENT
# =========================

def test_expire_waiting_battle(engine):
    battle = engine.create_battle("alice", "mintA")
    expired = engine.expire(battle.id)

    assert expired.status == STATUS_EXPIRED
    assert expired.outcome == "expired"
    assert engine.list_active() == []
    with pytest.raises(NotJoinable):
        engine.join_battle(battle.id, "bob", "mintB")
    assert engine.ledger.get("alice") is None


def test_expire_rejects_started_battles(engine):
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")
    with pytest.raises(NotJoinable):
        engine.expire(battle.id)
    with pytest.raises(NotFound):
        engine.expire("battle_nope")


def test_forfeit_ends_battle_and_cancels_tick(engine, scheduler):
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")

    done = engine.forfeit(battle.id, "bob")
    assert done.status == STATUS_COMPLETED
    assert done.outcome == "forfeit"
    assert done.winner.participant_key == "alice"
    assert done.loser.participant_key == "bob"
    assert scheduler.pending_count() == 0

    scheduler.advance(60)
    assert engine.get_battle(battle.id).rounds == []
    assert engine.ledger.get("alice").wins == 1
    assert engine.ledger.get("bob").losses == 1


def test_forfeit_rules(engine):
    battle = engine.create_battle("alice", "mintA")
    with pytest.raises(NotJoinable):
        engine.forfeit(battle.id, "alice")

    engine.join_battle(battle.id, "bob", "mintB")
    with pytest.raises(NotParticipant):
        engine.forfeit(battle.id, "mallory")
    assert engine.get_battle(battle.id).status == STATUS_ACTIVE


def test_confirm_payment_leaves_status_alone(engine):
    battle = engine.create_battle("alice", "mintA")
    paid = engine.confirm_payment(battle.id, "tx_1")

    assert paid.payment_confirmed is True
    assert paid.payment_ref == "tx_1"
    assert paid.status == STATUS_WAITING
    with pytest.raises(NotFound):
        engine.confirm_payment("battle_nope", "tx_2")


# =========================
# QUERIES
# =========================

def test_get_battle_unknown(engine):
    with pytest.raises(NotFound):
        engine.get_battle("battle_nope")


def test_list_active_is_newest_first_and_open_only(engine, scheduler):
    first = engine.create_battle("a", "m")
    second = engine.create_battle("b", "m")
    third = engine.create_battle("c", "m")
    engine.join_battle(second.id, "d", "m")
    engine.expire(first.id)

    assert [b.id for b in engine.list_active()] == [third.id, second.id]

    scheduler.run_until_idle()
    assert [b.id for b in engine.list_active()] == [third.id]


def test_shutdown_cancels_queued_ticks(engine, scheduler):
    for i in range(3):
        battle = engine.create_battle(f"a{i}", "m")
        engine.join_battle(battle.id, f"b{i}", "m")

    assert engine.shutdown() == 3
    assert scheduler.run_until_idle() == 0


# =========================
# QUEUED TASKS
# =========================

def test_expiry_cannot_be_armed_on_started_battle(engine, scheduler):
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")

    with pytest.raises(NotJoinable):
        engine.schedule_expiry(battle.id, 300, lambda eng, battle_id: None)
    assert scheduler.pending_count() == 1


def test_shutdown_cancels_expiry_tasks(engine, scheduler):
    reaped = []
    for i in range(2):
        battle = engine.create_battle(f"a{i}", "m")
        engine.schedule_expiry(battle.id, 300, lambda eng, battle_id: reaped.append(battle_id))

    assert engine.shutdown() == 2
    scheduler.advance(600)
    assert reaped == []


def test_stray_tick_keeps_the_queued_tick_tracked(make_engine, scheduler):
    engine = make_engine(rng=ScriptedRng(powers=[80, 90, 80, 90], attacks=[10, 10]))
    battle = engine.create_battle("alice", "mintA")
    engine.join_battle(battle.id, "bob", "mintB")
    queued = engine._pending[battle.id]

    engine.forfeit(battle.id, "alice")
    assert not queued.pending
    assert battle.id not in engine._pending

    other = engine.create_battle("carol", "mintC")
    engine.join_battle(other.id, "dave", "mintD")
    warmup = engine._pending[other.id]

    # an out-of-band tick replaces the queued one instead of orphaning it
    engine._tick(other.id)
    assert warmup.cancelled
    assert engine._pending[other.id] is not warmup
    assert scheduler.pending_count() == 1
