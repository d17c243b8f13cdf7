"""Gateway configuration loading utilities."""

from __future__ import annotations

import os
import pathlib
from functools import lru_cache
from typing import Any, Callable, Dict, List

import yaml
from pydantic import BaseModel, Field, model_validator

from chat_gateway.providers.hooks import POST_SANITIZERS, REQUEST_TRANSFORMS, resolve_hook
from chat_gateway.providers.openai_compatible import FixedEndpoint, ModelEndpoint, ProviderConfig
from chat_gateway.storage.credentials import resolve_api_key

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
DEFAULT_CONFIG_PATH = BASE_DIR.parent / "config" / "providers.yaml"


class ProviderSettings(BaseModel):
    name: str
    endpoint: str | None = None
    endpoint_template: str | None = None
    auth_header_name: str = "Authorization"
    auth_scheme: str | None = "Bearer"
    api_key_env: str | None = None
    model_mapping: Dict[str, str] = Field(default_factory=dict)
    system_prompts: Dict[str, str] = Field(default_factory=dict)
    default_options: Dict[str, Any] = Field(default_factory=dict)
    additional_headers: Dict[str, str] = Field(default_factory=dict)
    transform_request: str | None = None
    post_sanitize: str | None = None

    @model_validator(mode="after")
    def _check_endpoint(self) -> "ProviderSettings":
        if bool(self.endpoint) == bool(self.endpoint_template):
            raise ValueError(
                f"provider '{self.name}' needs exactly one of endpoint or endpoint_template"
            )
        return self

    def credential_accessor(self) -> Callable[[], str | None]:
        name, env_var, scheme = self.name, self.api_key_env, self.auth_scheme

        def _accessor() -> str | None:
            api_key = resolve_api_key(name, env_var)
            if not api_key:
                return None
            return f"{scheme} {api_key}" if scheme else api_key

        return _accessor

    def to_provider_config(self) -> ProviderConfig:
        """Build the immutable adapter configuration; unknown hook names fail here."""
        if self.endpoint_template:
            endpoint = ModelEndpoint.from_template(os.path.expandvars(self.endpoint_template))
        else:
            endpoint = FixedEndpoint(os.path.expandvars(self.endpoint or ""))
        return ProviderConfig(
            endpoint=endpoint,
            auth_header_value=self.credential_accessor(),
            provider_name=self.name,
            auth_header_name=self.auth_header_name,
            model_mapping=self.model_mapping,
            system_prompts=self.system_prompts,
            default_options=self.default_options,
            additional_headers=self.additional_headers,
            transform_request=resolve_hook(REQUEST_TRANSFORMS, self.transform_request, self.name),
            post_sanitize=resolve_hook(POST_SANITIZERS, self.post_sanitize, self.name),
        )


class GatewaySettings(BaseModel):
    default_provider: str | None = None
    providers: List[ProviderSettings]

    @model_validator(mode="after")
    def _check_default(self) -> "GatewaySettings":
        names = {provider.name.lower() for provider in self.providers}
        if self.default_provider and self.default_provider.lower() not in names:
            raise ValueError(f"default_provider '{self.default_provider}' is not configured")
        return self


def _config_path() -> pathlib.Path:
    configured = os.getenv("GATEWAY_CONFIG")
    return pathlib.Path(configured) if configured else DEFAULT_CONFIG_PATH


@lru_cache(maxsize=1)
def load_config(path: pathlib.Path | None = None) -> GatewaySettings:
    """Load provider configuration from YAML."""
    config_path = path or _config_path()
    raw = yaml.safe_load(config_path.read_text())
    return GatewaySettings(**raw)
