"""
Configuration for the Access Provisioner.

The target group and its administrator policies are fixed constants; the
runtime knobs (input file, pacing, settle delay, connector selection) live in
ProvisioningConfig and can be loaded from a YAML file.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .models import PolicyDefinition, PolicyScope, RoleName

logger = logging.getLogger(__name__)

ACCESS_GROUP_NAME = "Admin-Full-Access-Group"
ACCESS_GROUP_DESCRIPTION = "Full administrator access to all IBM Cloud services"

ADMINISTRATOR_POLICIES: List[PolicyDefinition] = [
    PolicyDefinition(
        label="Account Management",
        roles=frozenset({RoleName.ADMINISTRATOR}),
        scope=PolicyScope.account_management(),
    ),
    PolicyDefinition(
        label="All IAM-enabled services",
        roles=frozenset({RoleName.ADMINISTRATOR}),
        scope=PolicyScope.service("*"),
    ),
    PolicyDefinition(
        label="IAM Identity",
        roles=frozenset({RoleName.ADMINISTRATOR, RoleName.MANAGER}),
        scope=PolicyScope.service("iam-identity"),
    ),
    PolicyDefinition(
        label="Resource Controller",
        roles=frozenset({RoleName.ADMINISTRATOR}),
        scope=PolicyScope.service("resource-controller"),
    ),
]

DEFAULT_EMAIL_FILE = "user_emails.txt"


class RateLimitConfig(BaseModel):
    """Pacing between provider calls."""
    strategy: Literal["fixed", "token_bucket", "none"] = "fixed"
    interval_seconds: float = Field(1.0, ge=0, description="Minimum gap for the fixed strategy")
    capacity: int = Field(5, ge=1, description="Bucket size for the token_bucket strategy")
    refill_per_second: float = Field(1.0, gt=0, description="Refill rate for the token_bucket strategy")


class ProvisioningConfig(BaseModel):
    """Runtime settings for a provisioning run."""
    email_file: Path = Path(DEFAULT_EMAIL_FILE)
    settle_delay_seconds: float = Field(10.0, ge=0, description="Wait between invitations and group adds")
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    deduplicate_emails: bool = False
    mock_mode: bool = False
    audit_dir: Optional[Path] = None
    cli_path: str = "ibmcloud"
    command_timeout: Optional[float] = Field(None, gt=0)


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ProvisioningConfig:
    """
    Load configuration from a YAML file and apply overrides.

    Args:
        config_path: Optional YAML file; missing path means defaults
        overrides: Values taking precedence over the file (None values are ignored)

    Returns:
        Validated ProvisioningConfig
    """
    data: Dict[str, Any] = {}

    if config_path:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file '{path}' not found")
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {path} must contain a mapping")
        logger.debug(f"Loaded configuration from {path}")

    for key, value in (overrides or {}).items():
        if value is not None:
            data[key] = value

    try:
        return ProvisioningConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
