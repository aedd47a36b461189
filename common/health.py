"""
common.health
~~~~~~~~~~~~~
GET /health/ – liveness + readiness probe.

Returns:
    200  {"status": "ok", "db": "ok", "active_schema": "1.0.0"}
    200  {"status": "ok", "db": "ok", "active_schema": null}   – nothing activated yet
    503  {"status": "degraded", "db": "error: <msg>", "active_schema": null}
"""
import structlog
from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.schema_registry.models import SettingsSchema

logger = structlog.get_logger(__name__)


def health_check(request):
    """Report database connectivity and the active settings schema version."""
    active_version = None

    try:
        connection.ensure_connection()
        active_version = (
            SettingsSchema.objects.filter(is_active=True)
            .values_list("schema_version", flat=True)
            .first()
        )
        db_status = "ok"
        http_status = 200
    except DatabaseError as exc:
        db_status = f"error: {exc}"
        http_status = 503
        logger.error("health_check_db_failure", error=str(exc))

    payload = {
        "status": "ok" if http_status == 200 else "degraded",
        "db": db_status,
        "active_schema": active_version,
    }
    return JsonResponse(payload, status=http_status)
