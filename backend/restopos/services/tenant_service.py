"""
Tenant database gateway.

Each tenant (one restaurant) may live in its own database. TenantRegistry is
a Flask extension, wired up by create_app like db and migrate, that maps a
tenant key to a SQLAlchemy engine and hands out sessions bound to it.

RESOLUTION:
- no tenant key             -> the default handle (db.engine)
- registered tenant key     -> that tenant's engine
- unknown tenant key        -> default handle with a warning when
                               TENANT_FALLBACK_TO_DEFAULT is on, else
                               TenantNotFoundError

USAGE:
    registry = get_registry()
    with registry.session_scope(g.tenant) as session:
        order_service.create_order(session, header, items)
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from flask import Flask, current_app
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..extensions import db
from ..validation import DatabaseUnavailableError, NotFoundError

logger = logging.getLogger(__name__)

TENANT_HEADER = "X-Tenant-ID"
DEFAULT_TENANT = "default"


class TenantNotFoundError(NotFoundError):
    """Raised when an unknown tenant is requested and fallback is disabled."""
    pass


class TenantRegistry:
    def __init__(self, app: Optional[Flask] = None):
        self._urls: dict[str, str] = {}
        self._engines: dict[str, Engine] = {}
        self.fallback_to_default = True
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> "TenantRegistry":
        self.fallback_to_default = bool(app.config.get("TENANT_FALLBACK_TO_DEFAULT", True))
        for tenant, url in (app.config.get("TENANT_DATABASES") or {}).items():
            self.register(tenant, url)
        app.extensions["tenant_registry"] = self
        return self

    # -- registration -----------------------------------------------------

    def register(self, tenant: str, url: str, **engine_options) -> Engine:
        """Register (or re-point) a tenant. The previous engine, if any, is disposed."""
        if not tenant or tenant == DEFAULT_TENANT:
            raise ValueError(f"invalid tenant key: {tenant!r}")

        engine_options.setdefault("pool_pre_ping", True)
        engine = create_engine(url, **engine_options)

        old = self._engines.pop(tenant, None)
        if old is not None:
            old.dispose()

        self._urls[tenant] = url
        self._engines[tenant] = engine
        logger.info("Registered tenant database %s", tenant)
        return engine

    def remove(self, tenant: str) -> bool:
        engine = self._engines.pop(tenant, None)
        self._urls.pop(tenant, None)
        if engine is None:
            return False
        engine.dispose()
        logger.info("Removed tenant database %s", tenant)
        return True

    def tenants(self) -> list[str]:
        return sorted(self._engines)

    # -- resolution -------------------------------------------------------

    def engine_for(self, tenant: Optional[str] = None) -> Engine:
        if not tenant or tenant == DEFAULT_TENANT:
            return db.engine

        engine = self._engines.get(tenant)
        if engine is not None:
            return engine

        if self.fallback_to_default:
            logger.warning("Unknown tenant %r, using the default database", tenant)
            return db.engine

        raise TenantNotFoundError(f"Unknown tenant: {tenant}", details={"tenant": tenant})

    def open_session(self, tenant: Optional[str] = None) -> Session:
        """
        New session bound to the tenant's engine. The caller owns it and must
        close it. A database that cannot be reached raises
        DatabaseUnavailableError here, before any work is attempted.
        """
        engine = self.engine_for(tenant)
        session = Session(bind=engine)
        try:
            session.connection()
        except SQLAlchemyError as exc:
            session.close()
            logger.error("Database for tenant %r is unavailable: %s", tenant or DEFAULT_TENANT, exc)
            raise DatabaseUnavailableError(
                "Database unavailable",
                details={"tenant": tenant or DEFAULT_TENANT},
            ) from exc
        return session

    @contextmanager
    def session_scope(self, tenant: Optional[str] = None) -> Iterator[Session]:
        """Commit on success, roll back on any exception, always close."""
        session = self.open_session(tenant)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- health -----------------------------------------------------------

    def health_check(self) -> dict:
        return {
            "default": _ping(db.engine, DEFAULT_TENANT),
            "tenants": {tenant: _ping(engine, tenant) for tenant, engine in sorted(self._engines.items())},
        }


def _ping(engine: Engine, name: str) -> bool:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError as exc:
        logger.warning("Health check failed for %s: %s", name, exc)
        return False


def get_registry() -> TenantRegistry:
    return current_app.extensions["tenant_registry"]


def resolve_tenant_key(request) -> Optional[str]:
    """
    Tenant key for an incoming request: the X-Tenant-ID header, else the
    subdomain of a host with three or more labels (hazkitchen.pos.example.com).
    """
    header = (request.headers.get(TENANT_HEADER) or "").strip()
    if header:
        return header

    host = (request.host or "").split(":", 1)[0].lower()
    labels = [label for label in host.split(".") if label]
    if len(labels) >= 3 and labels[0] != "www" and not host.replace(".", "").isdigit():
        return labels[0]
    return None
