"""HTTP views for the orders app.

This module contains the DRF API views of the storefront. Views are kept
intentionally small: they validate requests (via Pydantic), delegate to the
``FulfillmentService`` obtained from ``providers.get_fulfillment_service()``
and translate domain errors into JSON responses.

Every error body has the shape ``{"error": CODE, "stage": STAGE}`` where
``stage`` is ``order``, ``payment`` or ``packaging``, so the caller can
decide whether to retry the payment or only the finalize call.
"""

import logging

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .errors import FulfillmentError, PaymentGatewayError
from .schemas import CreateCheckoutDTO, OrderReadDTO

log = logging.getLogger(__name__)


def _error_response(exc: FulfillmentError, status_code: int | None = None) -> Response:
    body = {"error": exc.code, "stage": exc.stage}
    if exc.order_id:
        body["orderId"] = exc.order_id
    return Response(body, status=status_code or exc.http_status)


class CheckoutSessionView(APIView):
    """Start a checkout: create an order and a payment session for it."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "checkout"

    def post(self, request):
        """Create an order and return the payment redirect URL.

        Args:
            request (Request): DRF request with an optional JSON body
                ``{productId?, buyerEmail?}``.

        Returns:
            Response: One of the following responses.
            - 200 with {url, orderId} when the session is created.
            - 400 with {error: "VALIDATION_ERROR", detail} for a bad body.
            - 503 with {error: "PAYMENT_GATEWAY_ERROR", stage: "payment"}
              when the gateway cannot create the session.
        """
        try:
            dto = CreateCheckoutDTO.model_validate(request.data or {})
        except ValidationError as e:
            return Response(
                {"error": "VALIDATION_ERROR", "detail": e.errors(include_url=False, include_context=False)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        service = providers.get_fulfillment_service()
        try:
            result = service.initiate_checkout(product_id=dto.product_id, buyer_email=dto.buyer_email)
        except PaymentGatewayError as e:
            return _error_response(e, status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response({"url": result.url, "orderId": result.order_id}, status=status.HTTP_200_OK)


class FinalizeOrderView(APIView):
    """Finalize an order after the buyer returns from the payment page."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "finalize"

    def get(self, request):
        """Verify payment and produce the deliverable.

        Query parameters: ``orderId`` (required) and ``session_id``.

        Returns:
            Response: One of the following responses.
            - 200 with {ok: true, orderId, downloadUrl}.
            - 400 with {error: "MISSING_ORDER_ID"}.
            - 404 with {error: "ORDER_NOT_FOUND"}.
            - 402 with {error: "PAYMENT_NOT_CONFIRMED" | "SESSION_MISMATCH"
              | "PAYMENT_GATEWAY_ERROR", stage: "payment"}.
            - 500 with {error: "PACKAGING_FAILED", stage: "packaging"}.
        """
        order_id = request.query_params.get("orderId")
        if not order_id:
            return Response({"error": "MISSING_ORDER_ID", "stage": "order"}, status=status.HTTP_400_BAD_REQUEST)
        session_id = request.query_params.get("session_id") or None

        service = providers.get_fulfillment_service()
        try:
            result = service.finalize(order_id, session_id=session_id)
        except PaymentGatewayError as e:
            # the buyer can recover by paying again, so report it like a rejection
            return _error_response(e, status.HTTP_402_PAYMENT_REQUIRED)
        except FulfillmentError as e:
            return _error_response(e)

        return Response(
            {"ok": True, "orderId": result.order_id, "downloadUrl": result.download_url},
            status=status.HTTP_200_OK,
        )


class AdminOrdersView(APIView):
    """Read-only listing of every order, oldest first.

    No access control here: protect this route (proxy or auth middleware)
    before exposing it.
    """

    def get(self, request):
        orders = providers.get_order_store().list_orders()
        return Response(
            [OrderReadDTO.from_order(o).model_dump(by_alias=True, exclude_none=True, mode="json") for o in orders],
            status=status.HTTP_200_OK,
        )
