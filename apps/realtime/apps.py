from django.apps import AppConfig


class RealtimeConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "apps.realtime"
    verbose_name = "Realtime"

    def ready(self):
        # Import signals to ensure signal handlers are registered
        import apps.realtime.signals  # noqa: F401
