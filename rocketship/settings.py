"""
Rocketship Settings - Configuration management using Pydantic Settings.

Loads configuration from environment variables and .env files.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Find project root (where .env file is located)
PROJECT_ROOT = Path(__file__).parent.parent


class RocketshipSettings(BaseSettings):
    """
    Rocketship configuration settings.

    Settings are loaded from:
    1. Environment variables (highest priority)
    2. .env file in the project root
    3. Default values (lowest priority)
    """

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="RS_",  # All Rocketship env vars must start with RS_
    )

    # Credentials
    ssh_key_name: str = Field(
        default="deploy",
        description="Name of the SSH key registered with DigitalOcean (env: RS_SSH_KEY_NAME)",
    )
    private_key_path: Path = Field(
        default=Path("~/.ssh/id_rsa"),
        description="Local private key matching ssh_key_name (env: RS_PRIVATE_KEY_PATH)",
    )
    ssh_user: str = Field(
        default="root",
        description="User for remote commands (env: RS_SSH_USER)",
    )

    # DNS
    domain: str = Field(
        default="robbiemckinstry.tech",
        description="Domain managed by DigitalOcean (env: RS_DOMAIN)",
    )
    subdomain: str = Field(
        default="pulumi",
        description="Record name pointed at the load balancer (env: RS_SUBDOMAIN)",
    )

    # Droplet
    region: str = Field(default="nyc3", description="Region slug (env: RS_REGION)")
    droplet_name: str = Field(default="rust-web", description="Droplet resource name (env: RS_DROPLET_NAME)")
    droplet_size: str = Field(default="s-1vcpu-1gb", description="Droplet size slug (env: RS_DROPLET_SIZE)")
    droplet_image: str = Field(default="docker-20-04", description="Droplet image slug (env: RS_DROPLET_IMAGE)")
    load_balancer_name: str = Field(default="rocket-lb", description="Load balancer name (env: RS_LOAD_BALANCER_NAME)")

    # Service activation
    service_name: str = Field(
        default="rocket.service",
        description="systemd unit copied to and started on the droplet (env: RS_SERVICE_NAME)",
    )
    service_file: Path = Field(
        default=Path("rocket.service"),
        description="Local path of the unit file to upload (env: RS_SERVICE_FILE)",
    )
    remote_service_dir: str = Field(
        default="/etc/systemd/system",
        description="Directory the unit file is copied into (env: RS_REMOTE_SERVICE_DIR)",
    )
    firewall_port: int = Field(default=80, description="Port opened with ufw (env: RS_FIREWALL_PORT)")

    # Settling before the first remote connection
    settle_mode: Literal["sleep", "probe"] = Field(
        default="sleep",
        description="Fixed sleep or bounded readiness probe (env: RS_SETTLE_MODE)",
    )
    settle_seconds: int = Field(default=30, description="Fixed settle delay in seconds (env: RS_SETTLE_SECONDS)")
    probe_attempts: int = Field(default=8, description="Readiness probe attempts (env: RS_PROBE_ATTEMPTS)")
    probe_base_delay: float = Field(default=1.0, description="First probe backoff delay (env: RS_PROBE_BASE_DELAY)")
    probe_max_delay: float = Field(default=30.0, description="Probe backoff cap (env: RS_PROBE_MAX_DELAY)")

    # Pulumi Configuration
    project_name: str = Field(default="rocketship", description="Pulumi project name (env: RS_PROJECT_NAME)")
    stack_name: str = Field(default="dev", description="Pulumi stack name (env: RS_STACK_NAME)")
    pulumi_state_dir: Path = Field(
        default=PROJECT_ROOT / ".rocketship" / "state",
        description="Local file backend for Pulumi state (env: RS_PULUMI_STATE_DIR)",
    )
    pulumi_config_passphrase: str = Field(
        default="rocketship",
        description="Pulumi passphrase for state encryption (env: RS_PULUMI_CONFIG_PASSPHRASE or PULUMI_CONFIG_PASSPHRASE)",
        validation_alias=AliasChoices(
            "RS_PULUMI_CONFIG_PASSPHRASE", "PULUMI_CONFIG_PASSPHRASE"
        ),  # Also accept standard Pulumi env var
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR) (env: RS_LOG_LEVEL)",
    )

    @property
    def fqdn(self) -> str:
        return f"{self.subdomain}.{self.domain}"

    @property
    def url(self) -> str:
        return f"https://{self.fqdn}"

    @property
    def remote_service_path(self) -> str:
        return f"{self.remote_service_dir.rstrip('/')}/{self.service_name}"


# Global settings instance
_settings: RocketshipSettings | None = None


def get_settings() -> RocketshipSettings:
    """
    Get the global settings instance.

    Creates the settings instance on first call, then returns cached instance.

    Returns:
        RocketshipSettings instance
    """
    global _settings
    if _settings is None:
        _settings = RocketshipSettings()
    return _settings


def reload_settings() -> RocketshipSettings:
    """
    Reload settings from environment/files.

    Useful for testing or when .env file changes.

    Returns:
        Fresh RocketshipSettings instance
    """
    global _settings
    _settings = RocketshipSettings()
    return _settings
