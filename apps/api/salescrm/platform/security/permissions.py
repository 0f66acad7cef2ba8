"""Dynamic permission resolution with a TTL cache.

The cache has no subscription to the role/permission tables: after an
administrative edit callers must invalidate it, otherwise staleness is
bounded by the TTL.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from threading import Lock
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from salescrm.authz.models import Permission, Role, RolePermission
from salescrm.core.roles import is_admin, parse_role
from salescrm.metrics import observe_permission_cache_hit, observe_permission_cache_miss, observe_permission_store_query
from salescrm.otel import get_tracer
from salescrm.platform.security.errors import PermissionResolutionError


logger = logging.getLogger("salescrm.authz")
tracer = get_tracer("salescrm.authz")

DEFAULT_CACHE_TTL_SECONDS = 300.0


class PermissionCacheBackend(Protocol):
    def get(self, actor_id: str) -> frozenset[str] | None:
        ...

    def set(self, actor_id: str, permissions: Iterable[str]) -> None:
        ...

    def invalidate(self, actor_id: str | None = None) -> None:
        ...


@dataclass(frozen=True, slots=True)
class _CacheEntry:
    permissions: frozenset[str]
    expires_at: float


class PermissionCache:
    """In-process map of actor id to permission codes with per-entry expiry."""

    def __init__(self, ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, actor_id: str) -> frozenset[str] | None:
        with self._lock:
            entry = self._entries.get(actor_id)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[actor_id]
                return None
            return entry.permissions

    def set(self, actor_id: str, permissions: Iterable[str]) -> None:
        entry = _CacheEntry(permissions=frozenset(permissions), expires_at=self._clock() + self._ttl)
        with self._lock:
            self._entries[actor_id] = entry

    def invalidate(self, actor_id: str | None = None) -> None:
        with self._lock:
            if actor_id is None:
                self._entries.clear()
            else:
                self._entries.pop(actor_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class PermissionResolver:
    """Computes an actor's effective permission codes from the role tables.

    The top role bypasses the association table and receives every
    permission code. Other roles are served from the cache when possible.
    Concurrent misses for one actor may both query the store; they write
    equivalent results.
    """

    def __init__(self, cache: PermissionCacheBackend, session_factory: sessionmaker[Session]) -> None:
        self._cache = cache
        self._session_factory = session_factory

    @property
    def cache(self) -> PermissionCacheBackend:
        return self._cache

    def resolve(self, actor_id: str, role: object) -> frozenset[str]:
        if is_admin(role):
            return self._load_all_codes()

        cached = self._cache.get(actor_id)
        if cached is not None:
            observe_permission_cache_hit()
            return cached

        observe_permission_cache_miss()
        parsed = parse_role(role)
        if parsed is None:
            # No role row can match, so there is nothing to look up.
            permissions: frozenset[str] = frozenset()
        else:
            permissions = self._load_role_codes(parsed.value)
        self._cache.set(actor_id, permissions)
        return permissions

    def invalidate(self, actor_id: str | None = None) -> None:
        self._cache.invalidate(actor_id)
        logger.info("authz.permission_cache_invalidated", extra={"actor_id": actor_id or "*"})

    def _load_all_codes(self) -> frozenset[str]:
        with tracer.start_as_current_span("authz.resolve_permissions") as span:
            span.set_attribute("authz.top_role", True)
            return self._query(select(Permission.code))

    def _load_role_codes(self, role_name: str) -> frozenset[str]:
        with tracer.start_as_current_span("authz.resolve_permissions") as span:
            span.set_attribute("authz.role", role_name)
            stmt = (
                select(Permission.code)
                .join(RolePermission, RolePermission.permission_id == Permission.id)
                .join(Role, Role.id == RolePermission.role_id)
                .where(Role.name == role_name)
                .distinct()
            )
            return self._query(stmt)

    def _query(self, stmt) -> frozenset[str]:  # type: ignore[no-untyped-def]
        try:
            with self._session_factory() as session:
                codes = session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            logger.error("authz.permission_resolution_failed", exc_info=True, extra={"error": str(exc)[:500]})
            raise PermissionResolutionError() from exc
        finally:
            observe_permission_store_query()
        return frozenset(str(code) for code in codes)
