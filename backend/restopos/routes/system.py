# backend/restopos/routes/system.py
"""
System health and version endpoints.

/health pings the default database and every registered tenant database
with SELECT 1.
"""

import sys
import time
from flask import Blueprint, current_app

from ..services.tenant_service import get_registry
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200 "healthy":  default and all tenant databases answer
    - 200 "degraded": default answers, at least one tenant does not
    - 503 "unhealthy": the default database does not answer
    """
    start_time = time.time()
    registry = get_registry()

    checks = registry.health_check()
    failed_tenants = sorted(t for t, ok in checks["tenants"].items() if not ok)

    if not checks["default"]:
        overall_status = "unhealthy"
        http_status = 503
    elif failed_tenants:
        overall_status = "degraded"
        http_status = 200
        current_app.logger.warning("Tenant databases unreachable: %s", ", ".join(failed_tenants))
    else:
        overall_status = "healthy"
        http_status = 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": checks["default"],
            "tenants": checks["tenants"],
        },
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
