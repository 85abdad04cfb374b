from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse


def health_view(_request):
    """Liveness probe; also pings the database when orders are stored there."""
    components = {"orders": {"store": getattr(settings, "ORDER_STORE", "memory")}}
    ok = True
    if components["orders"]["store"] == "db":
        try:
            with connection.cursor() as cur:
                cur.execute("SELECT 1;")
            db_ok = True
        except DatabaseError:
            db_ok = False
        components["db"] = {"ok": db_ok}
        ok = db_ok

    return JsonResponse({"ok": ok, "components": components}, status=200 if ok else 503)
