"""In-process stub adapters for the fulfillment ports.

These stubs implement ``PaymentGatewayPort``, ``ContentGeneratorPort`` and
``PackagerPort`` without any network or disk I/O. They are intended for
unit tests and local development where deterministic behavior is useful
and external services are not required.
"""

import threading
import uuid
from typing import Dict, List, Optional, Tuple

from .domain import (
    CheckoutSession,
    ContentGeneratorPort,
    Generated,
    GenerationOptions,
    GenerationResult,
    Order,
    PackagerPort,
    PaymentGatewayPort,
    PaymentVerification,
    Product,
)
from .errors import PaymentGatewayError


class PaymentGatewayStub(PaymentGatewayPort):
    """Stub implementation of ``PaymentGatewayPort``.

    Sessions live in memory. Every known session reports ``paid_by_default``
    unless ``set_paid`` overrides it; unknown sessions raise
    ``PaymentGatewayError`` like a real gateway's 404.
    """

    PAY_URL = "https://pay.example/session/{sid}"

    def __init__(self, paid_by_default: bool = True, contact_email: Optional[str] = "buyer@example.com"):
        self.paid_by_default = paid_by_default
        self.contact_email = contact_email
        self._lock = threading.Lock()
        self._sessions: Dict[str, dict] = {}

    def create_session(self, product: Product, success_url: str, cancel_url: str,
                       customer_email: Optional[str] = None, reference_id: Optional[str] = None) -> CheckoutSession:
        sid = f"cs_test_{uuid.uuid4().hex}"
        with self._lock:
            self._sessions[sid] = {
                "paid": self.paid_by_default,
                "email": customer_email or self.contact_email,
                "reference_id": reference_id,
                "success_url": success_url.replace("{CHECKOUT_SESSION_ID}", sid),
            }
        return CheckoutSession(session_id=sid, url=self.PAY_URL.format(sid=sid))

    def set_paid(self, session_id: str, paid: bool = True) -> None:
        with self._lock:
            self._sessions[session_id]["paid"] = paid

    def verify_payment(self, session_id: str) -> PaymentVerification:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise PaymentGatewayError("unknown checkout session")
        return PaymentVerification(paid=session["paid"], contact_email=session["email"])


class ContentGeneratorStub(ContentGeneratorPort):
    """Stub implementation of ``ContentGeneratorPort``.

    Returns a short fixed article that echoes the prompt, so the same
    inputs always produce the same deliverable.
    """

    def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        return Generated(
            "Quick Productivity Systems\n\n"
            f"{prompt}\n\n"
            f"(offline draft, model={options.model}, max_tokens={options.max_output_tokens})"
        )


class PackagerStub(PackagerPort):
    """Stub implementation of ``PackagerPort``.

    Records each ``(order_id, content)`` it is asked to package and returns
    the same public path the PDF packager would, without writing a file.
    """

    def __init__(self):
        self.calls: List[Tuple[str, str]] = []

    def package(self, order: Order, content: str) -> str:
        self.calls.append((order.id, content))
        return f"/downloads/bundle-{order.id}.pdf"
