# Overview: Request decorators for API routes.

from functools import wraps
from flask import current_app, g, jsonify, request

from .services.tenant_service import get_registry, resolve_tenant_key
from .validation import ServiceError


def with_tenant_session(f):
    """
    Open a session on the requesting tenant's database for the view.

    Sets the following Flask g attributes:
    - g.tenant: tenant key from X-Tenant-ID / subdomain (None = default)
    - g.db_session: SQLAlchemy session bound to that tenant's engine

    The session is closed after the view returns; anything the view did not
    commit is rolled back. An unknown tenant (fallback disabled) answers 404,
    an unreachable database 503.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        tenant = resolve_tenant_key(request)
        try:
            session = get_registry().open_session(tenant)
        except ServiceError as e:
            current_app.logger.warning("Cannot open session for tenant %r: %s", tenant, e)
            return jsonify(e.to_dict()), e.status_code

        g.tenant = tenant
        g.db_session = session
        try:
            return f(*args, **kwargs)
        finally:
            session.close()
            g.pop("db_session", None)

    return decorated_function
