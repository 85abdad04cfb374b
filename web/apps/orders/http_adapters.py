"""HTTP adapter clients with retries, circuit breakers, and context headers.

This module implements concrete HTTP clients for the domain ports using
``httpx``:

- ``HttpPaymentGatewayClient`` talks to a Stripe-compatible checkout
  sessions API (form-encoded requests, bearer secret key).
- ``HttpContentGenerator`` talks to an OpenAI-compatible chat completions
  API and turns every failure into a ``Degraded`` result.

Shared plumbing:

- Request correlation: propagates ``X-Request-ID`` from a ContextVar set by
    the gateway middleware.
- Circuit breaker per downstream service to avoid hammering unhealthy
    dependencies, with HALF_OPEN probing after a timeout.
- Retry policy with exponential backoff for connection errors and 5xx.
    Timeouts are never retried: a timed-out call fails its stage.
- Checkout idempotency: session creation sends an ``Idempotency-Key``
    derived from the order id so a retried POST cannot open a second session.
"""

import logging
import threading
import time
from typing import Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from .domain import (
    CheckoutSession,
    ContentGeneratorPort,
    Degraded,
    Generated,
    GenerationOptions,
    GenerationResult,
    PaymentGatewayPort,
    PaymentVerification,
    Product,
)
from .errors import PaymentGatewayError

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")

log = logging.getLogger(__name__)


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when consecutive failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; only one probe may be in
      flight; a failed probe reopens the circuit.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Admit a call or refuse it.

        Returns:
            str: The state at call time.

        Raises:
            RuntimeError: If the circuit is OPEN or a HALF_OPEN probe is busy.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise RuntimeError(f"CIRCUIT_OPEN:{self.name}")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise RuntimeError(f"CIRCUIT_HALF_OPEN_BUSY:{self.name}")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False
            if self._state == "OPEN":
                log.warning("circuit %s open after %d failures", self.name, self._failures)

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False


def _breaker(name: str) -> CircuitBreaker:
    return CircuitBreaker(
        name,
        getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
        getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
    )


# Per-service instances
_gateway_cb = _breaker("payment-gateway")
_generation_cb = _breaker("generation")


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Build outgoing headers: ``X-Request-ID`` (when bound) plus extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy():
    """Return retry configuration as (max_retries, backoff_base_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 2),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
    )


def _send(breaker: CircuitBreaker, method: str, url: str, *, timeout: float, headers: dict,
          deadline: Optional[float] = None, **kwargs) -> httpx.Response:
    """Send one logical request with circuit breaker and retries.

    Connection errors and 5xx responses are retried up to ``HTTP_RETRY_MAX``
    times with exponential backoff. Responses below 500 are returned to the
    caller as-is (4xx is a business answer and does not trip the breaker).

    ``timeout`` bounds each attempt. ``deadline`` (seconds) bounds all
    attempts together: later attempts only get the time left, and no
    attempt starts once it is spent.

    Raises:
        RuntimeError: When the circuit refuses the call.
        httpx.TimeoutException: On timeout, without retrying.
        httpx.TransportError: When retries are exhausted on transport errors.
        httpx.HTTPStatusError: When retries are exhausted on 5xx.
    """
    max_retries, backoff = _retry_policy()
    state = breaker.before_call()
    headers = _request_headers({**headers, "X-Circuit-State": state, "X-Retry-Count": "0"})
    tries = 0
    expires_at = time.monotonic() + deadline if deadline else None

    try:
        with httpx.Client(timeout=timeout) as client:
            while True:
                resp = None
                exc = None
                attempt_timeout = timeout
                if expires_at is not None:
                    remaining = expires_at - time.monotonic()
                    if remaining <= 0:
                        breaker.on_failure()
                        raise httpx.TimeoutException(f"{breaker.name} exceeded its {deadline}s deadline")
                    attempt_timeout = min(timeout, remaining)
                try:
                    resp = client.request(method, url, headers=headers, timeout=attempt_timeout, **kwargs)
                    if resp.status_code < 500:
                        breaker.on_success()
                        return resp
                except httpx.TimeoutException:
                    breaker.on_failure()
                    raise
                except httpx.TransportError as e:
                    exc = e

                tries += 1
                headers["X-Retry-Count"] = str(tries)
                if tries > max_retries:
                    breaker.on_failure()
                    if exc:
                        raise exc
                    raise httpx.HTTPStatusError(
                        f"{breaker.name} returned HTTP {resp.status_code}",
                        request=getattr(resp, "request", None),
                        response=resp,
                    )

                sleep_s = backoff * (2 ** (tries - 1))
                time.sleep(min(sleep_s, getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5)))
    finally:
        breaker.on_finish()


# ---------------- Payment Gateway Adapter ---------------- #

class HttpPaymentGatewayClient(PaymentGatewayPort):
    """HTTP client for a Stripe-compatible checkout sessions API."""

    def __init__(self, base_url: str | None = None, secret_key: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.PAYMENT_GATEWAY_BASE_URL).rstrip("/")
        self.secret_key = secret_key if secret_key is not None else settings.PAYMENT_GATEWAY_SECRET_KEY
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def create_session(self, product: Product, success_url: str, cancel_url: str,
                       customer_email: str | None = None, reference_id: str | None = None) -> CheckoutSession:
        """Create a card checkout session for one unit of ``product``.

        Returns:
            CheckoutSession: The gateway session id and hosted payment URL.

        Raises:
            PaymentGatewayError: On transport errors, timeouts, an open
                circuit, non-2xx responses or a malformed body.
        """
        form = {
            "mode": "payment",
            "payment_method_types[0]": "card",
            "line_items[0][price_data][currency]": product.currency,
            "line_items[0][price_data][product_data][name]": product.name,
            "line_items[0][price_data][product_data][description]": product.description,
            "line_items[0][price_data][unit_amount]": str(product.amount_cents),
            "line_items[0][quantity]": "1",
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        extras = {}
        if customer_email:
            form["customer_email"] = customer_email
        if reference_id:
            form["client_reference_id"] = reference_id
            extras["Idempotency-Key"] = f"checkout-{reference_id}"

        data = self._call("POST", "/v1/checkout/sessions", extras, data=form)
        try:
            return CheckoutSession(session_id=data["id"], url=data["url"])
        except (KeyError, TypeError) as e:
            raise PaymentGatewayError("malformed checkout session response") from e

    def verify_payment(self, session_id: str) -> PaymentVerification:
        """Retrieve a session and report whether ``payment_status`` is ``paid``.

        Raises:
            PaymentGatewayError: When the session is unknown (404) or the
                lookup fails for any other reason.
        """
        if not session_id:
            raise PaymentGatewayError("missing session id")
        data = self._call("GET", f"/v1/checkout/sessions/{session_id}", {})
        if not isinstance(data, dict):
            raise PaymentGatewayError("malformed checkout session response")
        details = data.get("customer_details") or {}
        return PaymentVerification(
            paid=data.get("payment_status") == "paid",
            contact_email=details.get("email") or data.get("customer_email"),
        )

    def _call(self, method: str, path: str, extra_headers: dict, **kwargs):
        headers = {"Authorization": f"Bearer {self.secret_key}", **extra_headers}
        try:
            resp = _send(_gateway_cb, method, f"{self.base_url}{path}",
                         timeout=self.timeout, headers=headers, **kwargs)
        except RuntimeError as e:
            raise PaymentGatewayError(str(e)) from e
        except httpx.TimeoutException as e:
            raise PaymentGatewayError("payment gateway timed out") from e
        except httpx.HTTPError as e:
            raise PaymentGatewayError(f"payment gateway unavailable: {e}") from e

        if resp.status_code == 404:
            raise PaymentGatewayError("unknown checkout session")
        if resp.status_code >= 400:
            raise PaymentGatewayError(f"payment gateway rejected request (HTTP {resp.status_code})")
        try:
            return resp.json()
        except ValueError as e:
            raise PaymentGatewayError("payment gateway returned invalid JSON") from e


# ---------------- Content Generator Adapter ---------------- #

SYSTEM_PROMPT = "You are a helpful assistant that writes articles."


class HttpContentGenerator(ContentGeneratorPort):
    """HTTP client for an OpenAI-compatible chat completions API.

    Every call is bounded by ``deadline`` across retries. ``generate``
    never raises: timeouts, transport errors, non-2xx
    responses, an open circuit and malformed or empty completions all come
    back as ``Degraded``.
    """

    def __init__(self, base_url: str | None = None, api_key: str | None = None, timeout: float | None = None,
                 deadline: float | None = None):
        self.base_url = (base_url or settings.GENERATION_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.GENERATION_API_KEY
        self.timeout = timeout or settings.GENERATION_TIMEOUT_SECS
        # covers every retry; keep below the gunicorn worker timeout
        self.deadline = deadline or getattr(settings, "GENERATION_DEADLINE_SECS", 60.0)

    def generate(self, prompt: str, options: GenerationOptions) -> GenerationResult:
        payload = {
            "model": options.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "max_tokens": options.max_output_tokens,
            "temperature": options.temperature,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            resp = _send(_generation_cb, "POST", f"{self.base_url}/chat/completions",
                         timeout=self.timeout, deadline=self.deadline, headers=headers, json=payload)
            if resp.status_code >= 400:
                return Degraded(f"generation backend returned HTTP {resp.status_code}")
            content = resp.json()["choices"][0]["message"]["content"]
        except httpx.TimeoutException:
            return Degraded("generation timed out")
        except RuntimeError as e:
            return Degraded(str(e))
        except httpx.HTTPError as e:
            return Degraded(f"generation backend unavailable: {e}")
        except (ValueError, KeyError, IndexError, TypeError) as e:
            return Degraded(f"malformed completion: {e!r}")

        if not isinstance(content, str) or not content.strip():
            return Degraded("empty completion")
        return Generated(content)
