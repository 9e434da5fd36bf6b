# src/flowdeck/core/config.py
"""
Configuration schema and loading for flowdeck.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.
"""

import os
import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator

from flowdeck.contracts.enums import ApiVersion

# ${NAME} references inside endpoint, proxy and credential strings
_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def default_config_path() -> Path:
    """Location of the config file when --file is not given."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "flowdeck" / "config.yaml"


def default_state_dir() -> Path:
    """Directory for debug logs and archived task logs."""
    state_home = os.environ.get("XDG_STATE_HOME")
    base = Path(state_home) if state_home else Path.home() / ".local" / "state"
    return base / "flowdeck"


def expand_env_references(value: str) -> str:
    """Replace ${NAME} references with environment variable values.

    Raises:
        ValueError: If a referenced variable is not set
    """

    def _lookup(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in os.environ:
            raise ValueError(f"Environment variable '{name}' is not set")
        return os.environ[name]

    return _ENV_REFERENCE.sub(_lookup, value)


class BasicAuthSettings(BaseModel):
    """Username/password authentication."""

    model_config = {"frozen": True}

    username: str = Field(min_length=1)
    password: str


class TokenAuthSettings(BaseModel):
    """Bearer-token authentication.

    Either a literal token or a shell command whose stdout is the token.

    Example YAML:
        auth:
          token:
            cmd: "gcloud auth print-access-token"
    """

    model_config = {"frozen": True}

    token: str | None = Field(default=None, description="Literal bearer token")
    cmd: str | None = Field(
        default=None, description="Shell command printing the bearer token"
    )

    @model_validator(mode="after")
    def validate_exactly_one_source(self) -> "TokenAuthSettings":
        """Exactly one of token or cmd must be given."""
        if (self.token is None) == (self.cmd is None):
            raise ValueError("exactly one of 'token' or 'cmd' must be set")
        return self


class AuthSettings(BaseModel):
    """Authentication for one server (exactly one mechanism)."""

    model_config = {"frozen": True}

    basic: BasicAuthSettings | None = None
    token: TokenAuthSettings | None = None

    @model_validator(mode="after")
    def validate_exactly_one_mechanism(self) -> "AuthSettings":
        if (self.basic is None) == (self.token is None):
            raise ValueError("exactly one of 'basic' or 'token' must be configured")
        return self


class ServerSettings(BaseModel):
    """One configured orchestration server (an environment).

    Example YAML:
        servers:
          - name: local
            endpoint: http://localhost:8080
            version: v2
            auth:
              basic:
                username: airflow
                password: ${AIRFLOW_PASSWORD}
    """

    model_config = {"frozen": True}

    name: str = Field(min_length=1, description="Unique environment name")
    endpoint: str = Field(min_length=1, description="Base URL of the webserver")
    version: ApiVersion = Field(
        default=ApiVersion.V2, description="Airflow major version (v2 or v3)"
    )
    auth: AuthSettings
    proxy: str | None = Field(default=None, description="HTTP(S) proxy URL")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")


class FlowdeckSettings(BaseModel):
    """Top-level flowdeck configuration.

    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    servers: list[ServerSettings] = Field(
        default_factory=list, description="Configured servers"
    )
    active_server: str | None = Field(
        default=None, description="Server activated on startup"
    )
    state_dir: Path = Field(
        default_factory=default_state_dir,
        description="Directory for debug logs and archived task logs",
    )
    tick_rate_ms: int = Field(default=200, gt=0, description="Render tick interval")
    request_timeout_seconds: float = Field(
        default=5.0, gt=0, description="Timeout for every outbound request"
    )
    worker_queue_size: int = Field(
        default=100, gt=0, description="Capacity of the worker command queue"
    )
    dag_page_size: int = Field(default=10, gt=0, description="DAGs per page fetch")
    run_page_size: int = Field(default=40, gt=0, description="DAG runs per page")
    health_window: int = Field(
        default=7, gt=0, description="Recent runs considered for DAG health"
    )
    log_lru_size: int = Field(
        default=5, gt=0, description="Cached log attempts per task instance"
    )
    log_level: str | None = Field(
        default=None, description="Debug log level (WARNING when unset)"
    )

    @field_validator("state_dir")
    @classmethod
    def expand_state_dir(cls, v: Path) -> Path:
        return v.expanduser()

    @model_validator(mode="after")
    def validate_unique_server_names(self) -> "FlowdeckSettings":
        """Server names identify environments, so they must be unique."""
        names = [server.name for server in self.servers]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate server names: {duplicates}")
        return self

    @model_validator(mode="after")
    def validate_active_server_exists(self) -> "FlowdeckSettings":
        """Ensure active_server references a configured server."""
        if self.active_server is not None and self.active_server not in self.server_names:
            raise ValueError(
                f"active_server '{self.active_server}' not found in servers. "
                f"Available servers: {self.server_names}"
            )
        return self

    @property
    def server_names(self) -> list[str]:
        return [server.name for server in self.servers]

    def get_server(self, name: str) -> ServerSettings:
        """Look up a server by name.

        Raises:
            KeyError: If no server has that name
        """
        for server in self.servers:
            if server.name == name:
                return server
        raise KeyError(f"Unknown server: {name}")


def load_settings(config_path: Path) -> FlowdeckSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (FLOWDECK_*) - highest priority
    2. Config file (config.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: FLOWDECK_TICK_RATE_MS=100, nested keys
    as FLOWDECK_SECTION__KEY.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated FlowdeckSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Explicit check for file existence (Dynaconf silently accepts missing files)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="FLOWDECK",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; convert to lowercase for Pydantic
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {
        k.lower(): v
        for k, v in dynaconf_settings.as_dict().items()
        if k not in internal_keys
    }
    return FlowdeckSettings(**raw_config)
