from django.urls import path
from . import views

urlpatterns = [
    path("api/battle/create/", views.api_battle_create, name="api-battle-create"),
    path("api/battle/<str:battle_id>/", views.api_battle_detail, name="api-battle-detail"),
    path("api/battle/<str:battle_id>/join/", views.api_battle_join, name="api-battle-join"),
    path("api/battle/<str:battle_id>/forfeit/", views.api_battle_forfeit, name="api-battle-forfeit"),
    path("api/battles/active/", views.api_battles_active, name="api-battles-active"),

    path("api/leaderboard/", views.api_leaderboard, name="api-leaderboard"),
    path("api/stats/", views.api_stats, name="api-stats"),

    path("api/coin/<str:asset_ref>/", views.api_coin, name="api-coin"),
    path("api/payment/process/", views.api_payment_process, name="api-payment-process"),
]
