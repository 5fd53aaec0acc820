from __future__ import annotations

from .contracts import RoundOutcome


def roll_attack(power: int, rng) -> int:
    """
    Damage for one swing: uniform in [0, power).
    A side with no power never calls the rng and always deals 0.
    """
    if power <= 0:
        return 0
    return rng.randrange(power)


def simulate_round(power1: int, power2: int, health1: int, health2: int, rng) -> RoundOutcome:
    """
    One simultaneous exchange. Each side's damage comes from its own power and
    lands on the opponent; both hits are applied before anyone is checked.
    """
    p1_attack = roll_attack(power1, rng)
    p2_attack = roll_attack(power2, rng)

    return RoundOutcome(
        p1_attack=p1_attack,
        p2_attack=p2_attack,
        health1=max(0, health1 - p2_attack),
        health2=max(0, health2 - p1_attack),
    )
