"""Logging filters that enrich records for the JSON formatter."""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX

# Context keys the fulfillment code passes through ``extra``.
CONTEXT_FIELDS = ("order_id", "stage")


class RequestIdFilter(Filter):
    """Attach ``request_id`` and default the order context fields.

    ``request_id`` comes from the ContextVar set by ``RequestIdMiddleware``
    ("-" outside a request). ``order_id`` and ``stage`` default to "-" so
    format strings can reference them on every record.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        for name in CONTEXT_FIELDS:
            if not hasattr(record, name):
                setattr(record, name, "-")
        return True
