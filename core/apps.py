from django.apps import AppConfig


class CoreConfig(AppConfig):
    name = 'core'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self) -> None:
        # Row-change publishers for the realtime feed
        from . import signals  # noqa: F401
