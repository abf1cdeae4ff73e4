"""
Tests for the hook runner: ordering, sync/async hooks and short-circuiting.
"""

import pytest

from sso_gateway.common.exceptions import HookError
from sso_gateway.core.oauth import HookContext, HookRunner, HookSet, HookStage, ProviderConfig
from sso_gateway.utils.imports import import_callable


@pytest.fixture
def context(session):
    provider = ProviderConfig(name="foo")
    return HookContext(HookStage.PRE_LOGIN, provider, session)


class TestHookRunner:
    @pytest.mark.asyncio
    async def test_runs_sync_and_async_hooks_in_order(self, context):
        calls = []

        def first(ctx):
            calls.append(("first", ctx.stage))

        async def second(ctx):
            calls.append(("second", ctx.stage))

        def third(ctx):
            calls.append(("third", ctx.provider.name))

        await HookRunner().run_hooks([first, second, third], context)

        assert calls == [("first", HookStage.PRE_LOGIN), ("second", HookStage.PRE_LOGIN), ("third", "foo")]

    @pytest.mark.asyncio
    async def test_first_failure_stops_the_chain(self, context):
        calls = []

        def ok(ctx):
            calls.append("ok")

        async def broken(ctx):
            raise RuntimeError("no roles")

        def never(ctx):
            calls.append("never")

        with pytest.raises(HookError) as exc_info:
            await HookRunner().run_hooks([ok, broken, never], context)

        assert calls == ["ok"]
        assert exc_info.value.stage == "pre_login"
        assert exc_info.value.hook_name.endswith("broken")
        assert isinstance(exc_info.value.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_empty_list_is_a_noop(self, context):
        await HookRunner().run_hooks([], context)

    @pytest.mark.asyncio
    async def test_hooks_can_mutate_the_session(self, context):
        def mark(ctx):
            ctx.session.data.extra["marked"] = True

        await HookRunner().run_hooks([mark], context)
        assert context.session.data.extra == {"marked": True}

    @pytest.mark.asyncio
    async def test_run_uses_provider_hooks_for_stage(self, session):
        calls = []
        hooks = HookSet(
            pre_login=(lambda ctx: calls.append("pre_login"),),
            pre_logout=(lambda ctx: calls.append("pre_logout"),),
        )
        provider = ProviderConfig(name="foo", hooks=hooks)

        await HookRunner().run(HookContext(HookStage.PRE_LOGOUT, provider, session))

        assert calls == ["pre_logout"]


# ---------------------------------------------------------------------------
# HookSet / references
# ---------------------------------------------------------------------------


class TestHookSet:
    def test_from_mapping_accepts_callables(self):
        def hook(ctx):
            return None

        hooks = HookSet.from_mapping({"logout_success": [hook]})
        assert hooks.logout_success == (hook,)
        assert hooks.pre_login == ()

    def test_from_mapping_empty(self):
        assert HookSet.from_mapping(None) == HookSet()

    def test_unknown_stage(self):
        with pytest.raises(ValueError):
            HookSet.from_mapping({"after_everything": []})


class TestImportCallable:
    def test_colon_and_dotted_forms(self):
        assert import_callable("sso_gateway.core.security:generate_logout_state").__name__ == "generate_logout_state"
        assert import_callable("sso_gateway.core.security.generate_logout_state").__name__ == "generate_logout_state"

    def test_dotted_attribute(self):
        assert import_callable("sso_gateway.core.oauth.hooks:HookSet.from_mapping") == HookSet.from_mapping

    def test_missing_attribute(self):
        with pytest.raises(ImportError):
            import_callable("sso_gateway.core.security:nothing")

    def test_not_callable(self):
        with pytest.raises(TypeError):
            import_callable("sso_gateway.core.security:STATE_SEPARATOR")
