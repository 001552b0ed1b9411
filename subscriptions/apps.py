from django.apps import AppConfig


class SubscriptionsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'subscriptions'
    verbose_name = 'Subscriptions & Usage Limits'

    def ready(self):
        """Register signal handlers when app is ready"""
        import subscriptions.signals  # noqa
