import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.environ.get("DJANGO_DEBUG", "1") == "1"
ALLOWED_HOSTS = [h for h in os.environ.get("DJANGO_ALLOWED_HOSTS", "*").split(",") if h]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "rest_framework",
    "arena.apps.ArenaConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "coin_battle.urls"
WSGI_APPLICATION = "coin_battle.wsgi.application"

# battles and standings live in memory only; the DB is never queried
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

USE_TZ = True
TIME_ZONE = "UTC"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": ["rest_framework.permissions.AllowAny"],
    "DEFAULT_RENDERER_CLASSES": ["rest_framework.renderers.JSONRenderer"],
    "DEFAULT_PARSER_CLASSES": ["rest_framework.parsers.JSONParser"],
    "UNAUTHENTICATED_USER": None,
}

# =========================
# GAME
# =========================

PUMP_FUN_API = os.environ.get("PUMP_FUN_API", "https://frontend-api.pump.fun")

ARENA = {
    "DEFAULT_ENTRY_FEE": "0.001",  # SOL
    "MIN_ENTRY_FEE": "0.001",
    "MAX_ENTRY_FEE": "0.1",
    "REWARD_UNIT": "0.001",
    "BATTLE_TIMEOUT": 300,  # seconds
    "WARMUP_DELAY": 2,
    "ROUND_DELAY": 1,
    "TIE_WINNER": "side1",
    "ALLOW_SELF_JOIN": False,
    "LEADERBOARD_SIZE": 10,
}

# =========================
# LOGGING
# =========================

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "arena": {
            "handlers": ["console"],
            "level": os.environ.get("ARENA_LOG_LEVEL", "INFO"),
            "propagate": True,
        },
    },
}
