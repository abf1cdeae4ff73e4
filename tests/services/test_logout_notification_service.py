"""
Tests for provider-initiated logout notifications and the session-store purge adapter.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import LOGOUT_SECRET, make_token

from sso_gateway.common.exceptions import LogoutAdapterError, ProviderNotFoundError, UnauthorizedException
from sso_gateway.core.session import Session
from sso_gateway.services import LogoutNotificationService, SessionStorePurgeAdapter
from sso_gateway.services.logout_notification_service import notified_user_id


class TestLogoutNotificationService:
    @pytest.mark.asyncio
    async def test_unknown_provider(self, registry, logout_hash):
        adapter = AsyncMock()
        service = LogoutNotificationService(registry, security_hash=logout_hash, adapter=adapter)

        with pytest.raises(ProviderNotFoundError):
            await service.handle("nope", LOGOUT_SECRET, {})
        adapter.assert_not_called()

    @pytest.mark.asyncio
    async def test_without_adapter_is_a_noop(self, registry, logout_hash):
        service = LogoutNotificationService(registry, security_hash=logout_hash)
        # Not even the secret is checked
        await service.handle("foo", "wrong", {})

    @pytest.mark.asyncio
    async def test_wrong_secret(self, registry, logout_hash):
        adapter = AsyncMock()
        service = LogoutNotificationService(registry, security_hash=logout_hash, adapter=adapter)

        with pytest.raises(UnauthorizedException):
            await service.handle("foo", "wrong", {})
        with pytest.raises(UnauthorizedException):
            await service.handle("foo", None, {})
        adapter.assert_not_called()

    @pytest.mark.asyncio
    async def test_calls_async_adapter(self, registry, logout_hash):
        adapter = AsyncMock()
        service = LogoutNotificationService(registry, security_hash=logout_hash, adapter=adapter)

        await service.handle("citizen", LOGOUT_SECRET, {"user_id": "c-1"})

        adapter.assert_awaited_once_with("citizen", "citizenToken", {"user_id": "c-1"})

    @pytest.mark.asyncio
    async def test_calls_sync_adapter(self, registry, logout_hash):
        adapter = MagicMock(return_value=None)
        service = LogoutNotificationService(registry, security_hash=logout_hash, adapter=adapter)

        await service.handle("foo", LOGOUT_SECRET, {"user_id": "u-1"})

        adapter.assert_called_once_with("user", "userToken", {"user_id": "u-1"})

    @pytest.mark.asyncio
    async def test_adapter_failure(self, registry, logout_hash):
        adapter = AsyncMock(side_effect=ConnectionError("store down"))
        service = LogoutNotificationService(registry, security_hash=logout_hash, adapter=adapter)

        with pytest.raises(LogoutAdapterError) as exc_info:
            await service.handle("foo", LOGOUT_SECRET, {})

        assert exc_info.value.status_code == 500
        assert exc_info.value.data == {"error": "store down", "error_type": "ConnectionError"}


# ---------------------------------------------------------------------------
# Purge adapter
# ---------------------------------------------------------------------------


class TestSessionStorePurgeAdapter:
    def test_notified_user_id(self):
        assert notified_user_id({"user_id": "a"}) == "a"
        assert notified_user_id({"userId": 5}) == "5"
        assert notified_user_id({"user": {"id": "b"}}) == "b"
        assert notified_user_id({}) is None
        assert notified_user_id(["a"]) is None

    @pytest.mark.asyncio
    async def test_purges_matching_identities(self, store):
        alice = Session(store, ttl=60)
        alice.data.set_identity("user", {"id": "alice"}, make_token())
        alice.data.set_identity("citizen", {"id": "alice"}, make_token())
        await alice.save()
        bob = Session(store, ttl=60)
        bob.data.set_identity("user", {"id": "bob"}, make_token())
        await bob.save()
        carol = Session(store, ttl=60)
        carol.data.set_identity("user", {"profile": {"id": "alice"}}, make_token())
        await carol.save()
        alice_expiry = store._sessions[alice.id][0]

        purged = await SessionStorePurgeAdapter(store)("user", "userToken", {"user_id": "alice"})

        assert purged == 2
        assert store._sessions[alice.id][0] == alice_expiry
        assert set((await store.load(alice.id))["identities"]) == {"citizen"}
        assert set((await store.load(bob.id))["identities"]) == {"user"}
        assert (await store.load(carol.id))["identities"] == {}

    @pytest.mark.asyncio
    async def test_body_without_user(self, store):
        with pytest.raises(ValueError):
            await SessionStorePurgeAdapter(store)("user", "userToken", {"nothing": True})
