"""Sandbox payment gateway built with FastAPI.

This module emulates the checkout-session subset of a Stripe-compatible
gateway so the storefront can run end to end without real payments:

- ``POST /v1/checkout/sessions`` creates an unpaid session from a form body.
- ``GET /v1/checkout/sessions/{id}`` reads a session back.
- ``POST /v1/checkout/sessions/{id}/pay`` marks a session paid.
- ``GET /checkout/{id}`` is the hosted "payment page": it pays the session
  and redirects the buyer to the session's success URL.

Validation is performed with Pydantic models, while persistence is
delegated to the SQLAlchemy-backed repository in ``repo.SessionsRepo``.
"""

import os
import uuid
import logging
import time
from typing import Annotated, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, OperationalError

from repo import CheckoutSession, IdempotencyKey, SessionsRepo, canonical_hash, engine, get_session

app = FastAPI(title="Sandbox Payment Gateway")

PUBLIC_URL = os.getenv("SANDBOX_PUBLIC_URL", f"http://localhost:{os.getenv('PORT', '9001')}").rstrip("/")
SECRET_KEY = os.getenv("SANDBOX_SECRET_KEY", "")

Currency = constr(pattern=r"^[A-Za-z]{3}$")

@app.on_event("startup")
def _startup_db():
    # espera activa breve hasta que la DB acepte conexiones
    deadline = time.time() + 30  # 30s
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.time() > deadline:
                raise
            time.sleep(1)


logger = logging.getLogger("payments")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


class GatewayError(Exception):
    """Error rendered in the gateway's ``{"error": {type, message}}`` shape."""

    def __init__(self, status_code: int, message: str, type_: str = "invalid_request_error"):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.type = type_


@app.exception_handler(GatewayError)
async def _gateway_error(request: Request, exc: GatewayError):
    return JSONResponse({"error": {"type": exc.type, "message": exc.message}}, status_code=exc.status_code)


class SessionCreateForm(BaseModel):
    """Form fields accepted by the create-session endpoint.

    Field names are the bracketed form keys of a single line item, as
    sent by the storefront's gateway client.
    """
    model_config = ConfigDict(populate_by_name=True)

    mode: str = "payment"
    currency: Currency = Field(alias="line_items[0][price_data][currency]")
    product_name: str = Field(default="", alias="line_items[0][price_data][product_data][name]", max_length=200)
    unit_amount: int = Field(gt=0, alias="line_items[0][price_data][unit_amount]")
    quantity: int = Field(default=1, gt=0, alias="line_items[0][quantity]")
    success_url: str = Field(min_length=1, max_length=2000)
    cancel_url: str = Field(min_length=1, max_length=2000)
    customer_email: Optional[str] = Field(default=None, max_length=254)
    client_reference_id: Optional[str] = Field(default=None, max_length=200)


def require_secret_key(authorization: Annotated[Optional[str], Header()] = None):
    """Check the bearer key when ``SANDBOX_SECRET_KEY`` is configured."""
    if SECRET_KEY and authorization != f"Bearer {SECRET_KEY}":
        raise GatewayError(401, "Invalid API Key provided", "authentication_error")


def session_payload(cs: CheckoutSession) -> dict:
    """Render a stored session the way the real gateway does."""
    return {
        "id": cs.id,
        "object": "checkout.session",
        "mode": "payment",
        "url": f"{PUBLIC_URL}/checkout/{cs.id}",
        "status": "complete" if cs.payment_status == "paid" else "open",
        "payment_status": cs.payment_status,
        "amount_total": cs.amount_total,
        "currency": cs.currency,
        "client_reference_id": cs.client_reference_id,
        "customer_email": cs.customer_email,
        "customer_details": {"email": cs.customer_email} if cs.payment_status == "paid" else None,
        "success_url": cs.success_url,
        "cancel_url": cs.cancel_url,
        "created": cs.created,
    }


@app.get("/health")
def health():
    """Liveness/health probe endpoint.

    Returns:
        dict: A small JSON payload indicating service health.
    """
    return {"ok": True}


def _create(form: SessionCreateForm, idempotency_key: Optional[str]) -> dict:
    fields = dict(
        amount_total=form.unit_amount * form.quantity,
        currency=form.currency.lower(),
        product_name=form.product_name,
        success_url=form.success_url,
        cancel_url=form.cancel_url,
        customer_email=form.customer_email or None,
        client_reference_id=form.client_reference_id,
    )

    # Without key: every call creates a new session
    if not idempotency_key:
        return session_payload(SessionsRepo().get(SessionsRepo().create_session(**fields)))

    payload_hash = canonical_hash(form.model_dump())
    with get_session() as s:
        # Optimistic reservation attempt
        try:
            s.add(IdempotencyKey(key=idempotency_key, request_hash=payload_hash))
            s.commit()
        except IntegrityError:
            s.rollback()
            rec = s.execute(
                select(IdempotencyKey).where(IdempotencyKey.key == idempotency_key).with_for_update()
            ).scalars().first()
            if not rec:
                raise GatewayError(500, "Idempotency lookup failed", "api_error")
            if rec.request_hash != payload_hash:
                raise GatewayError(409, "Keys for idempotent requests can only be used with the same parameters",
                                   "idempotency_error")
            # Retry: return the session already created for this key
            if rec.session_id:
                return session_payload(SessionsRepo().get(rec.session_id))

        session_id = SessionsRepo().create_session(**fields)
        rec = s.get(IdempotencyKey, idempotency_key)
        rec.session_id = session_id
        s.commit()

    return session_payload(SessionsRepo().get(session_id))


@app.post("/v1/checkout/sessions", dependencies=[Depends(require_secret_key)])
async def create_checkout_session(
    request: Request,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Create an unpaid checkout session with optional idempotency.

    When an ``Idempotency-Key`` header is provided, retries with the same
    form return the session created by the first request; reusing the key
    with a different form responds with HTTP 409.

    Raises:
        GatewayError: 400 for an invalid form, 409 on an idempotency
            conflict.
    """
    raw = dict((await request.form()).items())
    try:
        form = SessionCreateForm.model_validate(raw)
    except ValidationError as e:
        first = e.errors(include_url=False)[0]
        raise GatewayError(400, f"Invalid {'.'.join(str(p) for p in first['loc'])}: {first['msg']}")
    if form.mode != "payment":
        raise GatewayError(400, "Only mode=payment is supported")

    result = await run_in_threadpool(_create, form, idempotency_key)
    logger.info("checkout session created", extra={"request_id": request.state.request_id,
                                                     "session_id": result["id"]})
    return result


@app.get("/v1/checkout/sessions/{session_id}", dependencies=[Depends(require_secret_key)])
def retrieve_checkout_session(session_id: str):
    cs = SessionsRepo().get(session_id)
    if cs is None:
        raise GatewayError(404, f"No such checkout.session: '{session_id}'")
    return session_payload(cs)


class PayRequest(BaseModel):
    email: Optional[str] = Field(default=None, max_length=254)


@app.post("/v1/checkout/sessions/{session_id}/pay", dependencies=[Depends(require_secret_key)])
def pay_checkout_session(session_id: str, body: Optional[PayRequest] = None):
    """Mark a session paid, as if the buyer completed the payment page."""
    cs = SessionsRepo().mark_paid(session_id, email=body.email if body else None)
    if cs is None:
        raise GatewayError(404, f"No such checkout.session: '{session_id}'")
    return session_payload(cs)


@app.get("/checkout/{session_id}")
def hosted_checkout(session_id: str, email: Optional[str] = None):
    """Pay the session and send the buyer back to the storefront."""
    cs = SessionsRepo().mark_paid(session_id, email=email)
    if cs is None:
        raise GatewayError(404, f"No such checkout.session: '{session_id}'")
    return RedirectResponse(cs.success_url.replace("{CHECKOUT_SESSION_ID}", cs.id), status_code=303)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
