"""
Tests for the AuthCache: TTL expiry, invalidation and stats.
"""

from __future__ import annotations

import asyncio

import pytest

from app.core.cache import AuthCache, run_periodic_purge
from fleetfusion_shared.schemas.auth import MirroredUser
from fleetfusion_shared.schemas.organizations import OrganizationMetadata


def _org(org_id: str = "org_1") -> OrganizationMetadata:
    return OrganizationMetadata(id=org_id, name="Acme Freight")


def _mirrored(user_id: str = "user_1", org_id: str = "org_1") -> MirroredUser:
    return MirroredUser(user_id=user_id, organization_id=org_id, membership_role="dispatcher")


class TestExpiry:
    def test_hit_before_ttl(self, cache, clock):
        cache.set_user("user_1", _mirrored())
        clock.advance(299)
        assert cache.get_user("user_1") is not None

    def test_miss_after_ttl(self, cache, clock):
        cache.set_user("user_1", _mirrored())
        clock.advance(300)
        assert cache.get_user("user_1") is None

    def test_buckets_have_independent_ttls(self, cache, clock):
        cache.set_organization("org_1", _org())
        cache.set_user("user_1", _mirrored())
        clock.advance(400)
        assert cache.get_user("user_1") is None
        assert cache.get_organization("org_1") is not None

    def test_purge_expired(self, cache, clock):
        cache.set_user("user_1", _mirrored())
        cache.set_organization("org_1", _org())
        clock.advance(300)
        assert cache.purge_expired() == 1
        assert cache.stats()["user_cache_size"] == 0
        assert cache.stats()["organization_cache_size"] == 1


class TestInvalidation:
    def test_invalidate_user(self, cache):
        cache.set_user("user_1", _mirrored())
        cache.invalidate_user("user_1")
        assert cache.get_user("user_1") is None

    def test_invalidate_organization_cascades_to_members(self, cache):
        cache.set_organization("org_1", _org())
        cache.set_user("user_1", _mirrored("user_1", "org_1"))
        cache.set_user("user_2", _mirrored("user_2", "org_2"))

        cache.invalidate_organization("org_1")

        assert cache.get_organization("org_1") is None
        assert cache.get_user("user_1") is None
        assert cache.get_user("user_2") is not None

    def test_invalidate_unknown_keys_is_noop(self, cache):
        cache.invalidate_user("nobody")
        cache.invalidate_organization("nowhere")

    def test_instances_are_isolated(self):
        a = AuthCache()
        b = AuthCache()
        a.set_user("user_1", _mirrored())
        assert b.get_user("user_1") is None

    def test_clear(self, cache):
        cache.set_user("user_1", _mirrored())
        cache.set_organization("org_1", _org())
        cache.clear()
        assert cache.stats()["user_cache_size"] == 0
        assert cache.stats()["organization_cache_size"] == 0


class TestStats:
    def test_hits_and_misses(self, cache):
        cache.get_user("user_1")
        cache.set_user("user_1", _mirrored())
        cache.get_user("user_1")
        cache.get_user("user_1")
        stats = cache.stats()
        assert stats["user_cache_hits"] == 2
        assert stats["user_cache_misses"] == 1
        assert stats["user_cache_size"] == 1
        assert stats["organization_cache_hits"] == 0
        assert "permission_cache_hits" not in stats


class TestPeriodicPurge:
    @pytest.mark.asyncio
    async def test_purge_task_runs_until_cancelled(self, cache, clock):
        cache.set_user("user_1", _mirrored())
        clock.advance(301)
        task = asyncio.create_task(run_periodic_purge(cache, 0.01))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert cache.stats()["user_cache_size"] == 0
