"""
In-process TTL cache for identity lookups.

Holds mirrored user records and organization metadata so that repeated
requests do not re-read the membership mirror. Session claims are never
cached; they are merged with the mirrored record on every request. One
instance is owned by the application (``app.state.auth_cache``); tests build
their own. Entries are idempotent re-fetches of upstream truth, so interleaved
writes to the same key are last-write-wins.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar

import structlog
from fastapi import Request

from fleetfusion_shared.schemas.auth import MirroredUser
from fleetfusion_shared.schemas.organizations import OrganizationMetadata

log = structlog.get_logger()

T = TypeVar("T")


@dataclass
class _Entry(Generic[T]):
    value: T
    expires_at: float


class _Bucket(Generic[T]):
    """One keyed map with a fixed TTL."""

    def __init__(self, ttl: float, clock: Callable[[], float]):
        self.ttl = ttl
        self._clock = clock
        self._items: dict[str, _Entry[T]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[T]:
        entry = self._items.get(key)
        if entry is None:
            self.misses += 1
            return None
        if entry.expires_at <= self._clock():
            del self._items[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.value

    def set(self, key: str, value: T) -> None:
        self._items[key] = _Entry(value=value, expires_at=self._clock() + self.ttl)

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def items(self) -> list[tuple[str, T]]:
        return [(key, entry.value) for key, entry in self._items.items()]

    def purge(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._items.items() if entry.expires_at <= now]
        for key in expired:
            del self._items[key]
        return len(expired)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class AuthCache:
    """Mirrored user / organization cache with explicit invalidation."""

    def __init__(
        self,
        user_ttl: float = 300,
        organization_ttl: float = 600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._users: _Bucket[MirroredUser] = _Bucket(user_ttl, clock)
        self._organizations: _Bucket[OrganizationMetadata] = _Bucket(organization_ttl, clock)

    # --- Users ---

    def get_user(self, user_id: str) -> Optional[MirroredUser]:
        return self._users.get(user_id)

    def set_user(self, user_id: str, user: MirroredUser) -> None:
        self._users.set(user_id, user)

    def invalidate_user(self, user_id: str) -> None:
        self._users.delete(user_id)

    # --- Organizations ---

    def get_organization(self, org_id: str) -> Optional[OrganizationMetadata]:
        return self._organizations.get(org_id)

    def set_organization(self, org_id: str, org: OrganizationMetadata) -> None:
        self._organizations.set(org_id, org)

    def invalidate_organization(self, org_id: str) -> None:
        """Drop the organization and every cached user that belongs to it."""
        self._organizations.delete(org_id)
        for user_id, user in self._users.items():
            if user.organization_id == org_id:
                self.invalidate_user(user_id)

    # --- Maintenance ---

    def purge_expired(self) -> int:
        removed = self._users.purge() + self._organizations.purge()
        if removed:
            log.debug("cache.purged", removed=removed)
        return removed

    def clear(self) -> None:
        self._users.clear()
        self._organizations.clear()

    def stats(self) -> dict[str, Any]:
        buckets = {
            "user": self._users,
            "organization": self._organizations,
        }
        stats: dict[str, Any] = {}
        for name, bucket in buckets.items():
            stats[f"{name}_cache_size"] = len(bucket)
            stats[f"{name}_cache_hits"] = bucket.hits
            stats[f"{name}_cache_misses"] = bucket.misses
        return stats


async def run_periodic_purge(cache: AuthCache, interval_seconds: float) -> None:
    """Purge expired entries until cancelled."""
    while True:
        await asyncio.sleep(interval_seconds)
        cache.purge_expired()


def get_auth_cache(request: Request) -> AuthCache:
    """FastAPI dependency: the application's cache instance."""
    return request.app.state.auth_cache
