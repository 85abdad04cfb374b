"""Edge middleware for the storefront API.

``RequestIdMiddleware`` gives every request an identifier: the incoming
``X-Request-Id`` header when the client (or a proxy) sent one, a fresh
UUIDv4 otherwise. The id is stored on ``request.request_id`` and in the
``REQUEST_ID_CTX`` context variable, so log records (see
``logging_filters.RequestIdFilter``) and outgoing calls to the payment
gateway and the generation backend carry it without passing it around. It
is echoed back in the ``X-Request-ID`` response header.

``BodySizeLimitMiddleware`` rejects write requests whose declared body is
larger than ``API_MAX_BYTES`` before any view parses them.
"""

import contextvars
import os
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(64 * 1024)))


class RequestIdMiddleware(MiddlewareMixin):
    HEADER = "HTTP_X_REQUEST_ID"       # incoming header as found in request.META
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER) or str(uuid.uuid4())
        request.request_id = rid
        request._request_id_token = REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        response[self.RESPONSE_HEADER] = getattr(request, "request_id", REQUEST_ID_CTX.get())
        token = getattr(request, "_request_id_token", None)
        if token is not None:
            REQUEST_ID_CTX.reset(token)
        return response


class BodySizeLimitMiddleware(MiddlewareMixin):
    def process_request(self, request):
        if request.method not in ("POST", "PUT", "PATCH"):
            return None
        clen = request.META.get("CONTENT_LENGTH")
        if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
            return JsonResponse({"error": "PAYLOAD_TOO_LARGE"}, status=413)
        return None
