import random
from datetime import datetime, timedelta, timezone

import pytest

from arena import services
from arena.engine import BattleEngine, EngineConfig, ManualScheduler


class ScriptedRng:
    """
    Deterministic stand-in for random.Random.
    ``powers`` feed randint (power assignment), ``attacks`` feed randrange
    (damage rolls), both consumed in order.
    """

    def __init__(self, powers=(), attacks=()):
        self.powers = list(powers)
        self.attacks = list(attacks)
        self.randrange_calls = []

    def randint(self, a, b):
        value = self.powers.pop(0)
        assert a <= value <= b
        return value

    def randrange(self, stop):
        self.randrange_calls.append(stop)
        value = self.attacks.pop(0)
        assert 0 <= value < stop
        return value


class StepClock:
    """Each call is one second later than the previous one."""

    def __init__(self, start=None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        self.now = self.now + timedelta(seconds=1)
        return self.now


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def make_engine(scheduler):
    def build(rng=None, **config):
        return BattleEngine(
            config=EngineConfig(**config),
            scheduler=scheduler,
            rng=rng or random.Random(1337),
            clock=StepClock(),
        )
    return build


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def installed_engine(make_engine):
    """The engine the views see, driven by a manual scheduler."""
    eng = services.reset_engine(make_engine())
    yield eng
    services.reset_engine()


@pytest.fixture
def api():
    from rest_framework.test import APIClient
    return APIClient()
