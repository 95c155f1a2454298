"""Process configuration loaded once at startup."""
import os
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from .errors import ConfigurationMissing


class BackendKind(str, Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"


class ExclusionRule(BaseModel):
    """Drop ``parameter`` from submitted overrides depending on the value of ``when``."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    parameter: str
    when: str
    equals: List[Any] = Field(default_factory=list)
    not_equals: List[Any] = Field(default_factory=list, alias='notEquals')

    def applies(self, value: Any) -> bool:
        if self.equals and value in self.equals:
            return True
        if self.not_equals and value not in self.not_equals:
            return True
        return False


DEFAULT_EXCLUSION_RULES = [
    ExclusionRule(parameter="sshPublicKey", when="authenticationType", equals=["password"]),
]


class GitHubSettings(BaseModel):
    """Workflow dispatch target for the indirect backend."""
    model_config = ConfigDict(frozen=True)

    owner: str = ""
    repo: str = ""
    token: SecretStr = SecretStr("")
    workflow_file: str = "deploy-vm.yml"
    ref: str = "main"
    api_url: str = "https://api.github.com"


class AzureSettings(BaseModel):
    """Service principal for the direct backend."""
    model_config = ConfigDict(frozen=True)

    tenant_id: str = ""
    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    subscription_id: str = ""


class Settings(BaseModel):
    """Root configuration."""
    model_config = ConfigDict(frozen=True)

    backend: BackendKind = BackendKind.INDIRECT
    template_location: str = "azuredeploy.json"
    parameters_location: Optional[str] = "azuredeploy.parameters.json"
    request_timeout: float = Field(default=30.0, gt=0)
    deployment_timeout: float = Field(default=600.0, gt=0)
    cache_ttl: float = Field(default=0.0, ge=0)
    allow_local_overrides: bool = False
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    azure: AzureSettings = Field(default_factory=AzureSettings)
    exclusion_rules: List[ExclusionRule] = Field(default_factory=lambda: list(DEFAULT_EXCLUSION_RULES))
    host: str = "0.0.0.0"
    port: int = 8080

    def require_backend(self) -> "Settings":
        """Check the active backend has everything it needs.

        Raises:
            ConfigurationMissing: Listing the environment variables left unset.
        """
        if self.backend == BackendKind.INDIRECT:
            required = {
                "GITHUB_OWNER": self.github.owner,
                "GITHUB_REPO": self.github.repo,
                "PERSONAL_ACCESS_TOKEN": self.github.token.get_secret_value(),
                "WORKFLOW_FILE": self.github.workflow_file,
                "WORKFLOW_REF": self.github.ref,
            }
        else:
            required = {
                "AZURE_TENANT_ID": self.azure.tenant_id,
                "AZURE_CLIENT_ID": self.azure.client_id,
                "AZURE_CLIENT_SECRET": self.azure.client_secret.get_secret_value(),
                "AZURE_SUBSCRIPTION_ID": self.azure.subscription_id,
            }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationMissing(self.backend.value, missing)
        return self

    def secret_values(self) -> List[str]:
        """Credential values that must never appear in responses."""
        secrets = [self.github.token.get_secret_value(), self.azure.client_secret.get_secret_value()]
        return [s for s in secrets if s]


# Environment variable -> dotted settings path. First match wins for duplicates.
ENV_MAPPING = [
    ("LAUNCHPAD_BACKEND", "backend"),
    ("TEMPLATE_LOCATION", "template_location"),
    ("GITHUB_RAW_TEMPLATE_URL", "template_location"),
    ("PARAMETERS_LOCATION", "parameters_location"),
    ("GITHUB_RAW_PARAMETERS_URL", "parameters_location"),
    ("LAUNCHPAD_TIMEOUT", "request_timeout"),
    ("LAUNCHPAD_DEPLOYMENT_TIMEOUT", "deployment_timeout"),
    ("LAUNCHPAD_CACHE_TTL", "cache_ttl"),
    ("LAUNCHPAD_ALLOW_LOCAL_OVERRIDES", "allow_local_overrides"),
    ("GITHUB_OWNER", "github.owner"),
    ("GITHUB_REPO", "github.repo"),
    ("PERSONAL_ACCESS_TOKEN", "github.token"),
    ("WORKFLOW_FILE", "github.workflow_file"),
    ("WORKFLOW_REF", "github.ref"),
    ("GITHUB_API_URL", "github.api_url"),
    ("AZURE_TENANT_ID", "azure.tenant_id"),
    ("AZURE_CLIENT_ID", "azure.client_id"),
    ("AZURE_CLIENT_SECRET", "azure.client_secret"),
    ("AZURE_SUBSCRIPTION_ID", "azure.subscription_id"),
    ("HOST", "host"),
    ("PORT", "port"),
]


def _apply_env(data: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    applied = set()
    for var, field_path in ENV_MAPPING:
        value = environ.get(var)
        if not value or field_path in applied:
            continue
        applied.add(field_path)
        parts = field_path.split('.')
        current = data
        for part in parts[:-1]:
            current = current.setdefault(part, {})
        current[parts[-1]] = value.strip()
    return data


def load_settings(file_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from an optional YAML file overlaid with environment variables.

    Args:
        file_path: Path to a YAML configuration file.
        environ: Environment mapping, defaults to ``os.environ``.

    Returns:
        Settings: Validated settings. Backend credentials are not checked
        here; call ``require_backend`` once the process is starting.

    Raises:
        FileNotFoundError: If the configuration file doesn't exist.
        pydantic.ValidationError: If a value has the wrong shape.
    """
    data: Dict[str, Any] = {}
    if file_path:
        with open(file_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    data = _apply_env(data, os.environ if environ is None else environ)
    return Settings.model_validate(data)
