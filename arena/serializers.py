from rest_framework import serializers


def _money(**kwargs):
    # unquantized, so 0.001 renders as "0.001" rather than "0.001000000"
    return serializers.DecimalField(max_digits=None, decimal_places=None, **kwargs)


# =========================
# REQUESTS
# =========================

class CreateBattleSerializer(serializers.Serializer):
    player_wallet = serializers.CharField(max_length=128)
    coin_mint = serializers.CharField(max_length=128)
    entry_fee = _money(required=False, allow_null=True)


class JoinBattleSerializer(serializers.Serializer):
    player_wallet = serializers.CharField(max_length=128)
    coin_mint = serializers.CharField(max_length=128)


class ForfeitSerializer(serializers.Serializer):
    player_wallet = serializers.CharField(max_length=128)


class PaymentSerializer(serializers.Serializer):
    battle_id = serializers.CharField(max_length=64)
    from_wallet = serializers.CharField(max_length=128)
    to_wallet = serializers.CharField(max_length=128, required=False, allow_blank=True)
    amount = _money(required=False, allow_null=True)


class LeaderboardQuerySerializer(serializers.Serializer):
    limit = serializers.IntegerField(min_value=1, max_value=100, required=False)


# =========================
# RESPONSES
# =========================

class CombatantSerializer(serializers.Serializer):
    wallet = serializers.CharField(source="participant_key")
    coin_mint = serializers.CharField(source="asset_ref")
    power = serializers.IntegerField()
    health = serializers.IntegerField()


class RoundSerializer(serializers.Serializer):
    round = serializers.IntegerField()
    p1_attack = serializers.IntegerField()
    p2_attack = serializers.IntegerField()
    p1_health = serializers.IntegerField()
    p2_health = serializers.IntegerField()


class BattleSerializer(serializers.Serializer):
    id = serializers.CharField()
    status = serializers.CharField()
    outcome = serializers.CharField(allow_null=True)
    player1 = CombatantSerializer(source="side1")
    player2 = CombatantSerializer(source="side2", allow_null=True)
    entry_fee = _money()
    prize = _money()
    rounds = RoundSerializer(many=True)
    winner = CombatantSerializer(allow_null=True)
    loser = CombatantSerializer(allow_null=True)
    created_at = serializers.DateTimeField()
    completed_at = serializers.DateTimeField(allow_null=True)
    payment_confirmed = serializers.BooleanField()
    transaction_id = serializers.CharField(source="payment_ref", allow_null=True)


class PlayerRecordSerializer(serializers.Serializer):
    wallet = serializers.CharField(source="key")
    wins = serializers.IntegerField()
    losses = serializers.IntegerField()
    total_battles = serializers.IntegerField()
    total_earnings = _money()


class StatsSerializer(serializers.Serializer):
    total_battles = serializers.IntegerField()
    active_players = serializers.IntegerField()
    total_prize_awarded = _money()
