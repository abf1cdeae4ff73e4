"""
Tests for the provider registry and its YAML loader.
"""

import json
import textwrap

import pytest

from sso_gateway.common.exceptions import ProviderConfigError, ProviderNotFoundError
from sso_gateway.core.oauth import HookStage, ProviderConfig, ProviderConfigLoader, ProviderRegistry


def _write(tmp_path, content: str):
    path = tmp_path / "providers.yaml"
    path.write_text(textwrap.dedent(content), encoding="utf-8")
    return path


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


class TestProviderConfigLoader:
    def test_loads_providers_with_defaults(self, tmp_path):
        path = _write(
            tmp_path,
            """
            providers:
              profile:
                identifier: profile-svc
                scopes: [name, email, phone]
                refresh: true
                refresh_max: "28800"
              citizen:
                identifier: citizen-svc
                version: v2
                key: citizen
                auth_methods: [eid, itsme]
                minimal_assurance_level: low
            """,
        )

        registry = ProviderConfigLoader(str(path)).load()

        assert list(registry) == ["profile", "citizen"]
        profile = registry["profile"]
        assert profile.version == "v1"
        assert profile.key == "user"
        assert profile.scopes == "name email phone"
        assert profile.refresh is True
        assert profile.refresh_max == 28800
        assert profile.redirect_uri is None

        citizen = registry["citizen"]
        assert citizen.is_v2
        assert citizen.session_key == "citizen"
        assert citizen.auth_methods == "eid,itsme"
        assert citizen.minimal_assurance_level == "low"
        assert citizen.refresh is False

    def test_expands_env_vars(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PROFILE_SERVICE_ID", "from-env")
        path = _write(
            tmp_path,
            """
            providers:
              profile:
                identifier: ${PROFILE_SERVICE_ID}
                profile_url: ${UNSET_PROFILE_URL_FOR_TEST}
            """,
        )

        provider = ProviderConfigLoader(str(path)).load()["profile"]

        assert provider.identifier == "from-env"
        # Unset variables expand to "", which means "not configured"
        assert provider.profile_url is None

    def test_skips_disabled_providers(self, tmp_path):
        path = _write(
            tmp_path,
            """
            providers:
              profile:
                identifier: profile-svc
              legacy:
                identifier: legacy-svc
                enabled: false
            """,
        )

        registry = ProviderConfigLoader(str(path)).load()

        assert "legacy" not in registry
        assert len(registry) == 1

    def test_missing_file_gives_empty_registry(self, tmp_path):
        registry = ProviderConfigLoader(str(tmp_path / "nope.yaml")).load()
        assert len(registry) == 0

    def test_empty_file_gives_empty_registry(self, tmp_path):
        registry = ProviderConfigLoader(str(_write(tmp_path, ""))).load()
        assert len(registry) == 0

    def test_invalid_yaml_raises(self, tmp_path):
        path = _write(tmp_path, "providers: [unclosed\n")
        with pytest.raises(ProviderConfigError):
            ProviderConfigLoader(str(path)).load()

    def test_resolves_hook_references(self):
        registry = ProviderConfigLoader().parse(
            {"providers": {"profile": {"hooks": {"pre_login": "json:dumps", "login_success": ["json.loads"]}}}}
        )

        hooks = registry["profile"].hooks
        assert hooks.for_stage(HookStage.PRE_LOGIN) == (json.dumps,)
        assert hooks.for_stage(HookStage.LOGIN_SUCCESS) == (json.loads,)
        assert hooks.for_stage(HookStage.PRE_LOGOUT) == ()

    def test_hooks_are_not_env_expanded(self, monkeypatch):
        monkeypatch.setenv("HOOK_MODULE", "json")
        with pytest.raises(ProviderConfigError):
            ProviderConfigLoader().parse({"providers": {"profile": {"hooks": {"pre_login": ["${HOOK_MODULE}:dumps"]}}}})

    def test_unresolvable_hook_fails_load(self):
        with pytest.raises(ProviderConfigError, match="profile"):
            ProviderConfigLoader().parse(
                {"providers": {"profile": {"hooks": {"pre_login": ["sso_gateway.nothing_here:hook"]}}}}
            )

    def test_unknown_hook_stage_fails_load(self):
        with pytest.raises(ProviderConfigError, match="before_login"):
            ProviderConfigLoader().parse({"providers": {"profile": {"hooks": {"before_login": ["json:dumps"]}}}})

    def test_unsupported_version_fails_load(self):
        with pytest.raises(ProviderConfigError):
            ProviderConfigLoader().parse({"providers": {"profile": {"version": "v3"}}})

    def test_shipped_example_config_loads(self):
        registry = ProviderConfigLoader().load()
        assert "profile" in registry
        assert registry["citizen"].is_v2


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestProviderRegistry:
    def test_require_unknown_provider(self, registry):
        with pytest.raises(ProviderNotFoundError) as exc_info:
            registry.require("nope")
        assert exc_info.value.status_code == 404
        assert exc_info.value.data == {"provider": "nope"}

    def test_rejects_separator_in_name(self):
        with pytest.raises(ProviderConfigError):
            ProviderRegistry([ProviderConfig(name="my_provider")])

    def test_is_read_only(self, registry):
        with pytest.raises(TypeError):
            registry["new"] = ProviderConfig(name="new")  # type: ignore[index]

    def test_session_keys_are_distinct(self, registry):
        assert registry.session_keys() == ["user", "citizen"]

    def test_accepts_mapping(self, providers):
        registry = ProviderRegistry({p.name: p for p in providers})
        assert list(registry) == ["foo", "citizen", "bar"]
