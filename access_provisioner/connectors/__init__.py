"""
Connectors Package for the Access Provisioner.

This package provides the identity-provider capability interface and its
implementations: the IBM Cloud CLI connector and an in-memory mock.
"""

from typing import Any, Dict, Optional

from .base_connector import MUTATING_OPERATIONS, BaseConnector, ConnectorResult, MockConnector
from .ibmcloud_connector import IBMCloudConnector, classify_cli_failure, parse_policy


def _get_connector_class(mock: bool = False):
    """Get the connector class for the requested mode."""
    if mock:
        return MockConnector
    return IBMCloudConnector


def create_connector(config: Any) -> BaseConnector:
    """
    Build the connector described by a ProvisioningConfig.

    Args:
        config: ProvisioningConfig instance

    Returns:
        A ready-to-use connector
    """
    connector_config: Dict[str, Optional[Any]] = {
        "cli_path": config.cli_path,
        "command_timeout": config.command_timeout,
    }
    connector_class = _get_connector_class(mock=config.mock_mode)
    return connector_class(connector_config, mock_mode=config.mock_mode)


__all__ = [
    "BaseConnector",
    "ConnectorResult",
    "MockConnector",
    "IBMCloudConnector",
    "MUTATING_OPERATIONS",
    "classify_cli_failure",
    "parse_policy",
    "create_connector",
]
