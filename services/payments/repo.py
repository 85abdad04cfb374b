"""SQLAlchemy repository for sandbox checkout sessions.

This module persists the checkout sessions created by the sandbox gateway
together with the idempotency keys used to deduplicate session creation.

Database connection parameters are read from the ``DATABASE_URL`` environment
variable, defaulting to a local SQLite file suitable for development.
"""

import os, uuid
import hashlib, json
import time
from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine, Integer, String
from sqlalchemy.orm import DeclarativeBase, mapped_column, Session
from sqlalchemy import UniqueConstraint

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./payments-sandbox.sqlite3")
# sqlite connections are shared across uvicorn's threadpool
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, connect_args=_connect_args)

class Base(DeclarativeBase):
    pass

class CheckoutSession(Base):
    """SQLAlchemy model representing a hosted checkout session.

    Attributes:
        id: Public session id (``cs_test_<hex>``).
        amount_total: Amount to collect in minor units (cents).
        currency: Lowercase three-letter ISO currency code.
        product_name: Display name of the single line item.
        success_url: Redirect target after payment, may contain the
            ``{CHECKOUT_SESSION_ID}`` placeholder.
        cancel_url: Redirect target when the buyer abandons the payment.
        customer_email: Buyer email given at creation or at payment time.
        client_reference_id: Caller's own reference (the storefront order id).
        payment_status: ``unpaid`` until the session is paid, then ``paid``.
        created: Unix timestamp of creation.
    """

    __tablename__ = "checkout_sessions"

    id = mapped_column(String(80), primary_key=True)
    amount_total = mapped_column(Integer, nullable=False)
    currency = mapped_column(String(3), nullable=False)
    product_name = mapped_column(String(200), nullable=False, default="")
    success_url = mapped_column(String(2000), nullable=False)
    cancel_url = mapped_column(String(2000), nullable=False)
    customer_email = mapped_column(String(254), nullable=True)
    client_reference_id = mapped_column(String(200), nullable=True)
    payment_status = mapped_column(String(16), nullable=False, default="unpaid")
    created = mapped_column(Integer, nullable=False)

def canonical_hash(payload: dict) -> str:
    """Compute a deterministic SHA-256 hash of a request payload.

    The payload is serialized to JSON with sorted keys and compact
    separators to ensure canonical representation across callers.

    Args:
        payload: JSON-serializable dict to hash.

    Returns:
        str: Hex-encoded SHA-256 digest of the canonical JSON body.
    """
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(body.encode("utf-8")).hexdigest()

class IdempotencyKey(Base):
    """Persisted idempotency records to deduplicate session creation.

    Attributes:
        key: Unique idempotency key provided by the client.
        request_hash: Canonical SHA-256 hex digest of the original form.
        session_id: Id of the session created for this key, once created.
    """
    __tablename__ = "idempotency_keys"
    key = mapped_column(String(200), primary_key=True)
    request_hash = mapped_column(String(64), nullable=False)
    session_id = mapped_column(String(80), nullable=True)

    __table_args__ = (
        UniqueConstraint("key", name="ux_idempotency_key"),
    )

@contextmanager
def get_session():
    """Yield a SQLAlchemy session bound to the configured engine.

    The session is automatically closed on context exit.

    Yields:
        Session: Active SQLAlchemy session.
    """
    with Session(engine) as s:
        yield s

class SessionsRepo:
    """Repository for creating, reading and paying checkout sessions."""

    def create_session(self, *, amount_total: int, currency: str, product_name: str,
                       success_url: str, cancel_url: str,
                       customer_email: Optional[str] = None,
                       client_reference_id: Optional[str] = None) -> str:
        """Create and persist a new unpaid session.

        Returns:
            str: The public id of the created session.
        """
        with get_session() as s:
            cs = CheckoutSession(
                id=f"cs_test_{uuid.uuid4().hex}",
                amount_total=amount_total,
                currency=currency,
                product_name=product_name,
                success_url=success_url,
                cancel_url=cancel_url,
                customer_email=customer_email,
                client_reference_id=client_reference_id,
                payment_status="unpaid",
                created=int(time.time()),
            )
            s.add(cs)
            s.commit()
            return cs.id

    def get(self, session_id: str) -> Optional[CheckoutSession]:
        with get_session() as s:
            cs = s.get(CheckoutSession, session_id)
            if cs is not None:
                s.expunge(cs)
            return cs

    def mark_paid(self, session_id: str, email: Optional[str] = None) -> Optional[CheckoutSession]:
        """Mark a session paid, keeping the first known customer email.

        Paying an already paid session is a no-op.

        Returns:
            CheckoutSession | None: The updated session, or None when the
            id is unknown.
        """
        with get_session() as s:
            cs = s.get(CheckoutSession, session_id, with_for_update=True)
            if cs is None:
                return None
            cs.payment_status = "paid"
            if email and not cs.customer_email:
                cs.customer_email = email
            s.commit()
            s.refresh(cs)
            s.expunge(cs)
            return cs

Base.metadata.create_all(engine)
