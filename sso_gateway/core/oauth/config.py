"""
OAuth provider registry and YAML loader.

Providers are read once at startup into an immutable `ProviderRegistry`, which is handed to
every component that needs it. Supported config features:
- env var expansion ${VAR_NAME}
- `enabled: false` to switch a provider off
- v1 / v2 authorization protocol
- hooks as `module:attribute` references
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Union

import yaml
from loguru import logger

from sso_gateway.common.exceptions import ProviderConfigError, ProviderNotFoundError
from sso_gateway.core.oauth.hooks import HookSet
from sso_gateway.core.security import STATE_SEPARATOR

LOG_PREFIX = "[OAuthConfig]"

DEFAULT_SESSION_KEY = "user"
SUPPORTED_VERSIONS = ("v1", "v2")


@dataclass(frozen=True)
class ProviderConfig:
    """Single provider config."""

    name: str  # Provider key, also the login state prefix
    identifier: str = ""  # `service` id sent to v1 endpoints
    version: str = "v1"
    scopes: str = ""
    authentication_type: Optional[str] = None
    key: str = DEFAULT_SESSION_KEY  # Session slot for user + token
    redirect_uri: Optional[str] = None
    # v2 only
    minimal_assurance_level: Optional[str] = None
    auth_methods: Optional[str] = None
    hooks: HookSet = field(default_factory=HookSet)
    # Refresh policy
    refresh: bool = False
    refresh_max: Optional[int] = None  # seconds after issue during which refresh is allowed
    profile_url: Optional[str] = None

    @property
    def is_v2(self) -> bool:
        return self.version == "v2"

    @property
    def session_key(self) -> str:
        return self.key or DEFAULT_SESSION_KEY


class ProviderRegistry(Mapping[str, ProviderConfig]):
    """Read-only provider name -> ProviderConfig mapping."""

    def __init__(self, providers: Union[Iterable[ProviderConfig], Mapping[str, ProviderConfig]] = ()):
        if isinstance(providers, Mapping):
            providers = providers.values()
        items: Dict[str, ProviderConfig] = {}
        for provider in providers:
            if STATE_SEPARATOR in provider.name:
                raise ProviderConfigError(f"Provider name '{provider.name}' must not contain '{STATE_SEPARATOR}'")
            if provider.version not in SUPPORTED_VERSIONS:
                raise ProviderConfigError(f"Provider '{provider.name}' has unsupported version '{provider.version}'")
            items[provider.name] = provider
        self._providers = MappingProxyType(items)

    def __getitem__(self, name: str) -> ProviderConfig:
        return self._providers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._providers)

    def __len__(self) -> int:
        return len(self._providers)

    def __repr__(self) -> str:
        return f"<ProviderRegistry {list(self._providers)}>"

    def require(self, name: str) -> ProviderConfig:
        """
        Get a provider or fail with 404.

        Raises:
            ProviderNotFoundError: unknown provider
        """
        provider = self._providers.get(name)
        if provider is None:
            raise ProviderNotFoundError(name)
        return provider

    def session_keys(self) -> List[str]:
        """Distinct session keys, in provider order."""
        keys: List[str] = []
        for provider in self._providers.values():
            if provider.session_key not in keys:
                keys.append(provider.session_key)
        return keys


class ProviderConfigLoader:
    """Provider YAML loader."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Args:
            config_path: Config file path; defaults to config/oauth_providers.yaml in the project root
        """
        if config_path:
            self.config_path = Path(config_path)
        else:
            self.config_path = Path(__file__).resolve().parents[3] / "config" / "oauth_providers.yaml"

    def load(self) -> ProviderRegistry:
        """
        Read the YAML file.

        A missing or empty file yields an empty registry. A malformed provider entry
        aborts the load: silently dropping a provider would also drop its hooks.

        Raises:
            ProviderConfigError: unreadable YAML or invalid provider entry
        """
        if not self.config_path.exists():
            logger.warning(f"{LOG_PREFIX} Config file not found: {self.config_path}")
            return ProviderRegistry()

        try:
            with open(self.config_path, encoding="utf-8") as f:
                raw = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ProviderConfigError(f"Failed to read {self.config_path}: {e}") from e

        if not raw:
            logger.warning(f"{LOG_PREFIX} Config file is empty: {self.config_path}")
            return ProviderRegistry()

        return self.parse(raw)

    def parse(self, raw: Mapping[str, Any]) -> ProviderRegistry:
        """Build a registry from an already-loaded `{"providers": {...}}` mapping."""
        providers: List[ProviderConfig] = []
        for name, config in (raw.get("providers") or {}).items():
            config = config or {}
            if not config.get("enabled", True):
                logger.debug(f"{LOG_PREFIX} Provider '{name}' is disabled, skipping")
                continue
            try:
                providers.append(self._parse_provider(str(name), config))
            except (ImportError, TypeError, ValueError) as e:
                raise ProviderConfigError(f"Invalid provider '{name}': {e}") from e
            logger.info(f"{LOG_PREFIX} Loaded provider: {name}")

        registry = ProviderRegistry(providers)
        logger.info(f"{LOG_PREFIX} Loaded {len(registry)} OAuth providers")
        return registry

    def _parse_provider(self, name: str, config: Dict[str, Any]) -> ProviderConfig:
        """Parse a single provider config."""
        hooks_raw = config.get("hooks")
        config = self._expand_env_vars({k: v for k, v in config.items() if k != "hooks"})

        refresh_max = config.get("refresh_max")
        return ProviderConfig(
            name=name,
            identifier=str(config.get("identifier") or ""),
            version=str(config.get("version") or "v1"),
            scopes=_join(config.get("scopes"), " "),
            authentication_type=config.get("authentication_type") or None,
            key=config.get("key") or DEFAULT_SESSION_KEY,
            redirect_uri=config.get("redirect_uri") or None,
            minimal_assurance_level=_optional_str(config.get("minimal_assurance_level")),
            auth_methods=_join(config.get("auth_methods"), ",") or None,
            hooks=HookSet.from_mapping(hooks_raw),
            refresh=bool(config.get("refresh", False)),
            refresh_max=int(refresh_max) if refresh_max not in (None, "") else None,
            profile_url=config.get("profile_url") or None,
        )

    def _expand_env_vars(self, obj: Any) -> Any:
        """Recursively replace ${VAR_NAME} with env var values."""
        if isinstance(obj, str):
            return re.sub(r"\$\{(\w+)\}", lambda m: os.environ.get(m.group(1), ""), obj)
        elif isinstance(obj, dict):
            return {k: self._expand_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._expand_env_vars(i) for i in obj]
        return obj


def _join(value: Any, separator: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return separator.join(str(v) for v in value if v not in (None, ""))
    return str(value)


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def load_provider_registry(config_path: Optional[str] = None) -> ProviderRegistry:
    """Load the provider registry from YAML."""
    return ProviderConfigLoader(config_path).load()
