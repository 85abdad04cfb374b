"""Error taxonomy for the fulfillment pipeline.

Every error carries a short machine-readable ``code``, the pipeline
``stage`` it belongs to (``order``, ``payment`` or ``packaging``) and the
HTTP status the API layer reports by default. Views translate these into
``{"error": code, "stage": stage}`` responses so callers can tell whether
to retry the payment or just retry the finalize call.

Content generation has no exception here: a failed generation is a
``Degraded`` result value (see ``domain.py``) and never aborts the pipeline.
"""


class FulfillmentError(Exception):
    """Base class for every failure surfaced by the fulfillment pipeline."""

    code = "FULFILLMENT_ERROR"
    stage = "order"
    http_status = 500

    def __init__(self, message: str | None = None, *, order_id: str | None = None, code: str | None = None):
        super().__init__(message or code or self.code)
        self.order_id = order_id
        if code:
            self.code = code


class OrderNotFound(FulfillmentError):
    """The order id is unknown to the order store."""

    code = "ORDER_NOT_FOUND"
    http_status = 404


class InvalidTransition(FulfillmentError):
    """A status change that the order state machine does not allow."""

    code = "INVALID_TRANSITION"
    http_status = 409


class PaymentGatewayError(FulfillmentError):
    """The payment gateway could not be reached or rejected the call.

    Reported as 503 on checkout initiation; on finalize the view reports it
    as a payment-stage 402 since the buyer can recover by retrying.
    """

    code = "PAYMENT_GATEWAY_ERROR"
    stage = "payment"
    http_status = 503


class PaymentNotConfirmed(FulfillmentError):
    """The payment session exists but is not paid (business rejection)."""

    code = "PAYMENT_NOT_CONFIRMED"
    stage = "payment"
    http_status = 402


class PackagingError(FulfillmentError):
    """The deliverable could not be rendered or written."""

    code = "PACKAGING_FAILED"
    stage = "packaging"
    http_status = 500
