import logging

from django.apps import AppConfig
from django.conf import settings

log = logging.getLogger(__name__)


class OrdersConfig(AppConfig):
    name = "apps.orders"
    label = "orders"
    default_auto_field = "django.db.models.BigAutoField"

    def ready(self):
        # Mirror the credential warnings the service prints at boot; the
        # app still starts so health checks and the admin listing work.
        if not getattr(settings, "USE_HTTP_ADAPTERS", True):
            return
        if not settings.GENERATION_API_KEY:
            log.warning("GENERATION_API_KEY not set; deliverables will carry fallback content.")
        if not settings.PAYMENT_GATEWAY_SECRET_KEY:
            log.warning("PAYMENT_GATEWAY_SECRET_KEY not set; checkout won't work without it.")
