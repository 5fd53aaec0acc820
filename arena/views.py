import logging

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from . import services
from .assets import AssetClient, AssetLookupError, AssetNotFound
from .engine import ArenaError, NotFound, NotJoinable, new_ref
from .engine.queries import aggregate_stats, leaderboard
from .serializers import (
    BattleSerializer,
    CreateBattleSerializer,
    ForfeitSerializer,
    JoinBattleSerializer,
    LeaderboardQuerySerializer,
    PaymentSerializer,
    PlayerRecordSerializer,
    StatsSerializer,
)

logger = logging.getLogger(__name__)


def _error_response(exc: ArenaError) -> Response:
    if isinstance(exc, NotFound):
        status = 404
    elif isinstance(exc, NotJoinable):
        status = 409
    else:
        status = 400
    return Response({"ok": False, "error": exc.message, "code": exc.code}, status=status)


# =========================
# BATTLES
# =========================

@api_view(["POST"])
@permission_classes([AllowAny])
def api_battle_create(request):
    payload = CreateBattleSerializer(data=request.data)
    payload.is_valid(raise_exception=True)
    data = payload.validated_data

    try:
        battle = services.create_battle(data["player_wallet"], data["coin_mint"], data.get("entry_fee"))
    except ArenaError as e:
        return _error_response(e)

    return Response({"ok": True, "battle_id": battle.id, "battle": BattleSerializer(battle).data}, status=201)


@api_view(["POST"])
@permission_classes([AllowAny])
def api_battle_join(request, battle_id):
    payload = JoinBattleSerializer(data=request.data)
    payload.is_valid(raise_exception=True)
    data = payload.validated_data

    try:
        battle = services.get_engine().join_battle(battle_id, data["player_wallet"], data["coin_mint"])
    except ArenaError as e:
        return _error_response(e)

    return Response({"ok": True, "battle": BattleSerializer(battle).data})


@api_view(["POST"])
@permission_classes([AllowAny])
def api_battle_forfeit(request, battle_id):
    payload = ForfeitSerializer(data=request.data)
    payload.is_valid(raise_exception=True)

    try:
        battle = services.get_engine().forfeit(battle_id, payload.validated_data["player_wallet"])
    except ArenaError as e:
        return _error_response(e)

    return Response({"ok": True, "battle": BattleSerializer(battle).data})


@api_view(["GET"])
@permission_classes([AllowAny])
def api_battle_detail(request, battle_id):
    try:
        battle = services.get_engine().get_battle(battle_id)
    except ArenaError as e:
        return _error_response(e)
    return Response({"battle": BattleSerializer(battle).data})


@api_view(["GET"])
@permission_classes([AllowAny])
def api_battles_active(request):
    battles = services.get_engine().list_active()
    return Response({"battles": BattleSerializer(battles, many=True).data})


# =========================
# STANDINGS
# =========================

@api_view(["GET"])
@permission_classes([AllowAny])
def api_leaderboard(request):
    query = LeaderboardQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)
    limit = query.validated_data.get("limit", services.leaderboard_size())

    top = leaderboard(services.get_engine().ledger, limit)
    return Response({"leaderboard": PlayerRecordSerializer(top, many=True).data})


@api_view(["GET"])
@permission_classes([AllowAny])
def api_stats(request):
    engine = services.get_engine()
    return Response(StatsSerializer(aggregate_stats(engine.store, engine.ledger)).data)


# =========================
# EXTERNAL COLLABORATORS
# =========================

@api_view(["GET"])
@permission_classes([AllowAny])
def api_coin(request, asset_ref):
    try:
        coin = AssetClient().lookup(asset_ref)
    except AssetNotFound as e:
        return Response({"ok": False, "error": str(e)}, status=404)
    except AssetLookupError:
        return Response({"ok": False, "error": "Failed to fetch coin data"}, status=502)
    return Response(coin)


@api_view(["POST"])
@permission_classes([AllowAny])
def api_payment_process(request):
    """
    Settlement is not performed here: no on-chain verification, no signature
    checks. A transaction reference is minted and recorded on the battle.
    """
    payload = PaymentSerializer(data=request.data)
    payload.is_valid(raise_exception=True)
    battle_id = payload.validated_data["battle_id"]

    transaction_id = new_ref("tx")
    try:
        services.get_engine().confirm_payment(battle_id, transaction_id)
    except ArenaError as e:
        return _error_response(e)

    return Response({
        "success": True,
        "transaction_id": transaction_id,
        "message": "Payment processed successfully",
    })
