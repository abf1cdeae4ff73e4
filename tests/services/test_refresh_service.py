"""
Tests for proactive token refresh.
"""

import asyncio
from datetime import timedelta

import pytest
from conftest import FakeExchange, make_token

from sso_gateway.common.exceptions import TokenExchangeError
from sso_gateway.core.oauth import ProviderConfig, ProviderRegistry
from sso_gateway.core.session import TokenRecord, utc_now
from sso_gateway.services import RefreshScheduler, should_refresh

PROVIDER = ProviderConfig(name="foo", refresh=True, refresh_max=3600)


class TestShouldRefresh:
    def test_near_expiry_inside_window(self):
        assert should_refresh(make_token(expires_in=timedelta(minutes=4)), PROVIDER)

    def test_already_expired_inside_window(self):
        assert should_refresh(make_token(expires_in=timedelta(minutes=-1)), PROVIDER)

    def test_not_near_expiry(self):
        assert not should_refresh(make_token(expires_in=timedelta(minutes=6)), PROVIDER)

    def test_outside_refresh_window(self):
        token = make_token(expires_in=timedelta(minutes=1), issued_ago=timedelta(hours=2))
        assert not should_refresh(token, PROVIDER)

    def test_no_refresh_max_means_unbounded_window(self):
        token = make_token(expires_in=timedelta(minutes=1), issued_ago=timedelta(days=30))
        assert should_refresh(token, ProviderConfig(name="foo", refresh=True))

    def test_no_issued_date_means_inside_window(self):
        token = make_token(expires_in=timedelta(minutes=1), issued_ago=None)
        assert should_refresh(token, PROVIDER)

    def test_no_expiry_is_never_refreshed(self):
        assert not should_refresh(make_token(expires_in=None), PROVIDER)

    def test_margin_boundary(self):
        now = utc_now()
        token = TokenRecord(access_token="a", issued_date=now, expires_in=now + timedelta(minutes=5))
        assert should_refresh(token, PROVIDER, now=now)
        token = TokenRecord(access_token="a", issued_date=now, expires_in=now + timedelta(minutes=5, seconds=1))
        assert not should_refresh(token, PROVIDER, now=now)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class TestRefreshScheduler:
    @pytest.mark.asyncio
    async def test_refreshes_due_tokens_and_saves(self, registry, exchange, session, store):
        session.data.set_identity("user", {"id": "u-1"}, make_token(expires_in=timedelta(minutes=1)))
        session.data.set_identity("citizen", {"id": "c-1"}, make_token(expires_in=timedelta(minutes=2)))

        refreshed = await RefreshScheduler(registry, exchange).refresh_session_tokens(session)

        assert refreshed is True
        assert sorted(exchange.refresh_calls) == ["citizen", "foo"]
        assert session.data.get_token("user").access_token == "refreshed-foo"
        assert session.data.get_token("citizen").access_token == "refreshed-citizen"
        assert session.data.get_user("user") == {"id": "u-1"}
        stored = await store.load(session.id)
        assert stored["identities"]["user"]["token"]["access_token"] == "refreshed-foo"

    @pytest.mark.asyncio
    async def test_nothing_due(self, registry, exchange, session, store):
        session.data.set_identity("user", {"id": "u-1"}, make_token(expires_in=timedelta(hours=1)))

        assert await RefreshScheduler(registry, exchange).refresh_session_tokens(session) is False
        assert exchange.refresh_calls == []
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_anonymous_session(self, registry, exchange, session):
        assert await RefreshScheduler(registry, exchange).refresh_session_tokens(session) is False

    @pytest.mark.asyncio
    async def test_failure_fails_open(self, registry, exchange, session, store):
        session.data.set_identity("user", {"id": "u-1"}, make_token("old-user", expires_in=timedelta(minutes=1)))
        session.data.set_identity("citizen", {"id": "c-1"}, make_token("old-citizen", expires_in=timedelta(minutes=1)))
        exchange.refresh_errors["citizen"] = TokenExchangeError("invalid_grant", provider="citizen")

        refreshed = await RefreshScheduler(registry, exchange).refresh_session_tokens(session)

        assert refreshed is False
        assert session.data.get_token("user").access_token == "old-user"
        assert session.data.get_token("citizen").access_token == "old-citizen"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_first_failure_does_not_wait_for_slow_refresh(self, session, store):
        registry = ProviderRegistry(
            [
                ProviderConfig(name="fast", key="fast", refresh=True),
                ProviderConfig(name="slow", key="slow", refresh=True),
            ]
        )
        slow_cancelled = asyncio.Event()

        class SlowAndFailing(FakeExchange):
            async def refresh(self, token, provider):
                if provider.name == "fast":
                    raise TokenExchangeError("invalid_grant", provider="fast")
                try:
                    await asyncio.sleep(10)
                except asyncio.CancelledError:
                    slow_cancelled.set()
                    raise
                return make_token("refreshed-slow")

        session.data.set_identity("fast", {"id": "u-1"}, make_token("old-fast", expires_in=timedelta(minutes=1)))
        session.data.set_identity("slow", {"id": "u-1"}, make_token("old-slow", expires_in=timedelta(minutes=1)))

        refreshed = await asyncio.wait_for(
            RefreshScheduler(registry, SlowAndFailing()).refresh_session_tokens(session), timeout=1
        )

        assert refreshed is False
        assert slow_cancelled.is_set()
        assert session.data.get_token("slow").access_token == "old-slow"
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_shared_session_key_refreshed_once(self, exchange, session):
        registry = ProviderRegistry(
            [ProviderConfig(name="foo", refresh=True), ProviderConfig(name="bar", refresh=True)]
        )
        session.data.set_identity("user", {"id": "u-1"}, make_token(expires_in=timedelta(minutes=1)))

        assert await RefreshScheduler(registry, exchange).refresh_session_tokens(session) is True

        assert exchange.refresh_calls == ["foo"]
        assert session.data.get_token("user").access_token == "refreshed-foo"

    @pytest.mark.asyncio
    async def test_providers_without_refresh_are_skipped(self, exchange, session):
        registry = ProviderRegistry([ProviderConfig(name="foo", refresh=False)])
        session.data.set_identity("user", {"id": "u-1"}, make_token(expires_in=timedelta(minutes=1)))

        assert await RefreshScheduler(registry, exchange).refresh_session_tokens(session) is False
        assert exchange.refresh_calls == []
