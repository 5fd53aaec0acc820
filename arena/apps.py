from django.apps import AppConfig


class ArenaConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "arena"

    def ready(self):
        from . import services

        # fail at boot, not on the first request, if ARENA is misconfigured
        services.engine_config_from_settings()
