"""Service provider helpers for wiring FulfillmentService with ports.

``get_fulfillment_service`` returns a configured ``FulfillmentService``.
When ``settings.USE_HTTP_ADAPTERS`` is truthy it uses the HTTP clients and
the PDF packager; otherwise it uses the in-process stubs suitable for tests
and local development.

The order store and the stub gateway are process-wide singletons: a
checkout request and the later finalize request must see the same orders
and sessions.
"""

from django.conf import settings

from .adapters import ContentGeneratorStub, PackagerStub, PaymentGatewayStub
from .domain import FulfillmentService, GenerationOptions, OrderStore
from .http_adapters import HttpContentGenerator, HttpPaymentGatewayClient
from .packaging import PdfPackager
from .repository import DjangoOrderStore
from .store import InMemoryOrderStore

_memory_store = InMemoryOrderStore()
_gateway_stub = PaymentGatewayStub()


def get_order_store() -> OrderStore:
    """Return the store selected by ``settings.ORDER_STORE`` (``memory`` or ``db``)."""
    if getattr(settings, "ORDER_STORE", "memory") == "db":
        return DjangoOrderStore()
    return _memory_store


def get_generation_options() -> GenerationOptions:
    return GenerationOptions(
        model=getattr(settings, "GENERATION_MODEL", "gpt-4o-mini"),
        max_output_tokens=getattr(settings, "GENERATION_MAX_OUTPUT_TOKENS", 900),
        temperature=getattr(settings, "GENERATION_TEMPERATURE", 0.2),
    )


def get_fulfillment_service() -> FulfillmentService:
    """Return a FulfillmentService wired for the current settings.

    Returns:
        FulfillmentService: A service instance with appropriate ports.
    """
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        payments, generator, packager = HttpPaymentGatewayClient(), HttpContentGenerator(), PdfPackager()
    else:
        payments, generator, packager = _gateway_stub, ContentGeneratorStub(), PackagerStub()

    return FulfillmentService(
        store=get_order_store(),
        payments=payments,
        generator=generator,
        packager=packager,
        public_base_url=settings.PUBLIC_BASE_URL,
        generation_options=get_generation_options(),
    )
