"""Domain models, ports and service for order fulfillment.

This module contains the order entity and its state machine, small value
objects exchanged with the external collaborators, protocol definitions
(ports) for the order store, payment gateway, content generator and
deliverable packager, and the domain service that drives the fulfillment
pipeline: checkout → verify payment → generate content → package
deliverable → complete.
"""

import logging
from contextlib import AbstractContextManager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Protocol, Union

from .errors import (
    InvalidTransition,
    PackagingError,
    PaymentGatewayError,
    PaymentNotConfirmed,
)

log = logging.getLogger(__name__)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Enumeration of the possible order statuses.

    ``payment_failed`` and ``generation_failed`` are failure states reached
    from ``pending_payment`` and ``paid`` respectively; ``completed`` is
    final.
    """

    PENDING_PAYMENT = "pending_payment"
    PAYMENT_FAILED = "payment_failed"
    PAID = "paid"
    COMPLETED = "completed"
    GENERATION_FAILED = "generation_failed"


# Allowed status changes. The failure states re-enter the pipeline through
# a later finalize call: payment_failed when the gateway now reports the
# session paid, generation_failed straight back to paid.
TRANSITIONS = {
    OrderStatus.PENDING_PAYMENT: {OrderStatus.PAID, OrderStatus.PAYMENT_FAILED},
    OrderStatus.PAYMENT_FAILED: {OrderStatus.PAID},
    OrderStatus.PAID: {OrderStatus.COMPLETED, OrderStatus.GENERATION_FAILED},
    OrderStatus.GENERATION_FAILED: {OrderStatus.PAID},
    OrderStatus.COMPLETED: set(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class Product:
    """A purchasable digital product with a fixed price in minor units."""

    id: str
    name: str
    description: str
    amount_cents: int
    currency: str


BUNDLE = Product(
    id="ultimate-mega-bundle",
    name="Ultimate Digital Bundle (Planner + Templates + Guides)",
    description="Instant-download digital business & lifestyle bundle.",
    amount_cents=1999,
    currency="usd",
)


def resolve_product(product_id: Optional[str] = None) -> Product:
    """Return the catalog product for a requested id.

    The store sells a single product, so every request resolves to it.
    """
    return BUNDLE


@dataclass
class Order:
    """Fulfillment record for one purchase attempt.

    Attributes:
        id: Opaque unique identifier (UUID4 string), immutable.
        product_id: Purchased product, immutable.
        status: Current OrderStatus.
        email: Buyer contact, set at creation or backfilled once from the
            payment session.
        payment_session_id: Gateway session linked at checkout.
        download_path: Public path of the deliverable, present only once
            the order is completed.
        failure_stage: Stage that moved the order into a failure state.
        failure_reason: Short diagnostic message for that failure.
        created_at: Creation timestamp (UTC).
        updated_at: Timestamp of the last change (UTC).
    """

    id: str
    product_id: str
    status: OrderStatus = OrderStatus.PENDING_PAYMENT
    email: Optional[str] = None
    payment_session_id: Optional[str] = None
    download_path: Optional[str] = None
    failure_stage: Optional[str] = None
    failure_reason: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


UPDATABLE_FIELDS = frozenset(
    {"status", "email", "payment_session_id", "download_path", "failure_stage", "failure_reason"}
)


def apply_changes(order: Order, changes: dict) -> Order:
    """Return a copy of ``order`` with ``changes`` applied.

    Enforces the state machine and the write-once fields shared by every
    OrderStore implementation.

    Raises:
        InvalidTransition: For an unknown field, a status change not listed
            in ``TRANSITIONS``, a second write of a write-once field, or a
            download path that does not match a completed status.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise InvalidTransition(f"fields not updatable: {sorted(unknown)}", order_id=order.id)

    new_status = OrderStatus(changes.get("status", order.status))
    if new_status != order.status and new_status not in TRANSITIONS[order.status]:
        raise InvalidTransition(f"{order.status.value} -> {new_status.value}", order_id=order.id)

    for name in ("payment_session_id", "download_path"):
        if changes.get(name) is not None and getattr(order, name) is not None:
            raise InvalidTransition(f"{name} is already set", order_id=order.id)
    if changes.get("email") and order.email:
        raise InvalidTransition("email is already set", order_id=order.id)

    updated = replace(order, **changes, updated_at=_utcnow())
    updated.status = new_status
    if (updated.download_path is not None) != (updated.status == OrderStatus.COMPLETED):
        raise InvalidTransition("download path must be set exactly when completed", order_id=order.id)
    return updated


@dataclass(frozen=True)
class CheckoutSession:
    """Gateway-issued checkout session handle and the URL to send the buyer to."""

    session_id: str
    url: str


@dataclass(frozen=True)
class PaymentVerification:
    """Outcome of looking up a checkout session."""

    paid: bool
    contact_email: Optional[str] = None


@dataclass(frozen=True)
class GenerationOptions:
    """Knobs forwarded to the text generation backend.

    Attributes:
        model: Backend model identifier.
        max_output_tokens: Upper bound on the response length.
        temperature: Randomness in [0, 1].
    """

    model: str = "gpt-4o-mini"
    max_output_tokens: int = 900
    temperature: float = 0.2

    def __post_init__(self):
        if not 0.0 <= self.temperature <= 1.0:
            raise ValueError("temperature must be within [0, 1]")
        if self.max_output_tokens <= 0:
            raise ValueError("max_output_tokens must be positive")


@dataclass(frozen=True)
class Generated:
    """Successful generation result."""

    text: str


@dataclass(frozen=True)
class Degraded:
    """Generation failed; the pipeline substitutes fallback content."""

    reason: str


GenerationResult = Union[Generated, Degraded]


@dataclass(frozen=True)
class CheckoutResult:
    order_id: str
    url: str


@dataclass(frozen=True)
class FinalizeResult:
    order_id: str
    download_path: str
    download_url: str


# ---- Ports (DIP) ----
class OrderStore(Protocol):
    """Port describing the keyed order registry.

    Implementations must apply ``update`` atomically per order id and
    expose ``lock`` so the orchestrator can serialize finalize calls on the
    same order without blocking unrelated orders.
    """

    def create(self, product_id: str, email: Optional[str] = None) -> Order:
        raise NotImplementedError()

    def get(self, order_id: str) -> Order:
        """Return the order or raise ``OrderNotFound``."""
        raise NotImplementedError()

    def update(self, order_id: str, **changes) -> Order:
        """Apply field changes (see ``apply_changes``) and return the new state.

        Raises:
            OrderNotFound: When the id is unknown.
            InvalidTransition: When the change breaks the state machine.
        """
        raise NotImplementedError()

    def list_orders(self) -> List[Order]:
        """Return every order ordered by creation time."""
        raise NotImplementedError()

    def lock(self, order_id: str) -> AbstractContextManager:
        raise NotImplementedError()


class PaymentGatewayPort(Protocol):
    """Port describing hosted checkout session operations."""

    def create_session(
        self,
        product: Product,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
        reference_id: Optional[str] = None,
    ) -> CheckoutSession:
        """Create a single line item checkout session at the product's price.

        Raises:
            PaymentGatewayError: On any transport or API failure.
        """
        raise NotImplementedError()

    def verify_payment(self, session_id: str) -> PaymentVerification:
        """Look up a session and report whether it reached the paid state.

        Raises:
            PaymentGatewayError: When the session is unknown or the lookup
                fails. An existing but unpaid session is ``paid=False``.
        """
        raise NotImplementedError()


class ContentGeneratorPort(Protocol):
    """Port describing the text generation backend. Never raises."""

    def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        raise NotImplementedError()


class PackagerPort(Protocol):
    """Port describing deliverable assembly."""

    def package(self, order: Order, content: str) -> str:
        """Produce the artifact and return its public download path.

        Raises:
            PackagingError: When the artifact cannot be produced or written.
        """
        raise NotImplementedError()


# ---- Domain service ----
FULFILLMENT_PROMPT = (
    'Create a high-quality 800-word article titled "Quick Productivity Systems" '
    "with headings, intro, conclusion, and a 1-line meta description. "
    "Keep it friendly and actionable."
)
FALLBACK_CONTENT = "Generated content not available."


class FulfillmentService:
    """Domain service driving checkout and fulfillment of orders.

    The service sequences the external collaborators through their ports
    and records every boundary on the order via the store. It performs no
    HTTP handling itself.
    """

    def __init__(
        self,
        store: OrderStore,
        payments: PaymentGatewayPort,
        generator: ContentGeneratorPort,
        packager: PackagerPort,
        public_base_url: str,
        generation_options: GenerationOptions | None = None,
    ):
        """Initialize the service with its collaborators.

        Args:
            store: OrderStore holding order state.
            payments: PaymentGatewayPort for session creation and lookup.
            generator: ContentGeneratorPort producing the deliverable text.
            packager: PackagerPort writing the deliverable.
            public_base_url: Externally visible base URL used for redirect
                links and download URLs.
            generation_options: Options forwarded to the generator.
        """
        self.store = store
        self.payments = payments
        self.generator = generator
        self.packager = packager
        self.public_base_url = public_base_url.rstrip("/")
        self.generation_options = generation_options or GenerationOptions()

    def initiate_checkout(self, product_id: str | None = None, buyer_email: str | None = None) -> CheckoutResult:
        """Create an order and a payment session for it.

        On gateway failure the order is moved to ``payment_failed`` so it
        never lingers in ``pending_payment`` without a session.

        Returns:
            CheckoutResult with the new order id and the gateway URL the
            buyer must be redirected to.

        Raises:
            PaymentGatewayError: When the session cannot be created.
        """
        product = resolve_product(product_id)
        order = self.store.create(product.id, email=buyer_email)
        log.info("order created", extra={"order_id": order.id, "stage": "checkout"})

        success_url = (
            f"{self.public_base_url}/success.html"
            f"?session_id={{CHECKOUT_SESSION_ID}}&orderId={order.id}"
        )
        try:
            session = self.payments.create_session(
                product,
                success_url=success_url,
                cancel_url=f"{self.public_base_url}/",
                customer_email=buyer_email,
                reference_id=order.id,
            )
        except PaymentGatewayError as e:
            e.order_id = order.id
            self.store.update(
                order.id,
                status=OrderStatus.PAYMENT_FAILED,
                failure_stage="payment",
                failure_reason=str(e),
            )
            log.error(
                "checkout session creation failed: %s", e,
                extra={"order_id": order.id, "stage": "payment"},
            )
            raise

        self.store.update(order.id, payment_session_id=session.session_id)
        log.info(
            "checkout session created",
            extra={"order_id": order.id, "stage": "payment", "session_id": session.session_id},
        )
        return CheckoutResult(order_id=order.id, url=session.url)

    def finalize(self, order_id: str, session_id: str | None = None) -> FinalizeResult:
        """Verify payment, generate and package the deliverable.

        Safe to call repeatedly: a completed order returns its existing
        deliverable without touching any collaborator, and concurrent calls
        for the same order are serialized so at most one of them generates
        and packages. An order in ``paid`` or ``generation_failed`` resumes
        at generation without verifying the payment again.

        Args:
            order_id: Order to finalize.
            session_id: Session id reported by the gateway redirect. When
                given it must match the session linked to the order.

        Returns:
            FinalizeResult with the download path and absolute URL.

        Raises:
            OrderNotFound: When the order id is unknown.
            PaymentNotConfirmed: When the session is not paid or does not
                belong to the order.
            PaymentGatewayError: When the session lookup fails.
            PackagingError: When the deliverable cannot be written.
        """
        self.store.get(order_id)

        with self.store.lock(order_id):
            order = self.store.get(order_id)
            if order.status == OrderStatus.COMPLETED:
                log.info("order already completed", extra={"order_id": order_id, "stage": "finalize"})
                return self._result(order)

            if order.status == OrderStatus.GENERATION_FAILED:
                log.info("retrying generation from paid", extra={"order_id": order_id, "stage": "generation"})
                order = self.store.update(
                    order_id, status=OrderStatus.PAID, failure_stage=None, failure_reason=None
                )
            elif order.status == OrderStatus.PAID:
                # an earlier finalize confirmed payment and stopped before packaging finished
                log.info("resuming paid order", extra={"order_id": order_id, "stage": "generation"})
            else:
                order = self._confirm_payment(order, session_id)

            content = self._generate(order)
            return self._package(order, content)

    # ---- pipeline stages ----
    def _confirm_payment(self, order: Order, session_id: str | None) -> Order:
        if session_id and order.payment_session_id and session_id != order.payment_session_id:
            log.warning(
                "session id does not match order", extra={"order_id": order.id, "stage": "payment"}
            )
            raise PaymentNotConfirmed(order_id=order.id, code="SESSION_MISMATCH")
        if not order.payment_session_id:
            raise PaymentNotConfirmed("order has no payment session", order_id=order.id)

        try:
            verification = self.payments.verify_payment(order.payment_session_id)
        except PaymentGatewayError as e:
            e.order_id = order.id
            self._fail(order, OrderStatus.PAYMENT_FAILED, "payment", str(e))
            log.error("payment verification failed: %s", e, extra={"order_id": order.id, "stage": "payment"})
            raise

        if not verification.paid:
            self._fail(order, OrderStatus.PAYMENT_FAILED, "payment", "payment not confirmed")
            log.warning("payment not confirmed", extra={"order_id": order.id, "stage": "payment"})
            raise PaymentNotConfirmed(order_id=order.id)

        changes = {"status": OrderStatus.PAID, "failure_stage": None, "failure_reason": None}
        if not order.email and verification.contact_email:
            changes["email"] = verification.contact_email
        order = self.store.update(order.id, **changes)
        log.info("payment confirmed", extra={"order_id": order.id, "stage": "payment"})
        return order

    def _generate(self, order: Order) -> str:
        result = self.generator.generate(FULFILLMENT_PROMPT, self.generation_options)
        if isinstance(result, Degraded):
            log.warning(
                "generation degraded, using fallback content: %s", result.reason,
                extra={"order_id": order.id, "stage": "generation"},
            )
            return FALLBACK_CONTENT
        return result.text

    def _package(self, order: Order, content: str) -> FinalizeResult:
        try:
            path = self.packager.package(order, content)
        except Exception as e:
            err = e if isinstance(e, PackagingError) else PackagingError(f"packaging crashed: {e!r}")
            err.order_id = order.id
            self._fail(order, OrderStatus.GENERATION_FAILED, "packaging", str(err))
            log.error("packaging failed: %s", err, extra={"order_id": order.id, "stage": "packaging"})
            if err is e:
                raise
            raise err from e

        order = self.store.update(order.id, status=OrderStatus.COMPLETED, download_path=path)
        log.info("order completed", extra={"order_id": order.id, "stage": "packaging"})
        return self._result(order)

    def _fail(self, order: Order, status: OrderStatus, stage: str, reason: str) -> None:
        self.store.update(order.id, status=status, failure_stage=stage, failure_reason=reason)

    def _result(self, order: Order) -> FinalizeResult:
        return FinalizeResult(
            order_id=order.id,
            download_path=order.download_path,
            download_url=f"{self.public_base_url}{order.download_path}",
        )
