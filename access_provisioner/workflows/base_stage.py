"""
Base Stage Classes for the Access Provisioner.

This module provides the foundation shared by the provisioning stages:
calling the connector through the rate limiter, turning unexpected
exceptions into counted failures, and writing audit records.
"""

import logging
from typing import Any, Callable, Optional

from ..audit.audit_logger import AuditLogger
from ..connectors import BaseConnector, ConnectorResult
from ..engine.rate_limiter import NoDelayLimiter, RateLimiter
from ..models import ResultStatus

logger = logging.getLogger(__name__)


class ProvisioningStage:
    """
    Common plumbing for one stage of a provisioning run.

    Stages are independent: each takes a connector and returns its own
    result value, so they can be exercised one at a time.
    """

    stage_name = "stage"

    def __init__(
        self,
        connector: BaseConnector,
        rate_limiter: Optional[RateLimiter] = None,
        audit_logger: Optional[AuditLogger] = None,
        run_id: Optional[str] = None,
    ):
        """
        Initialize the stage.

        Args:
            connector: Identity-provider connector
            rate_limiter: Pacing for per-item calls; no pacing if omitted
            audit_logger: Optional audit trail for mutating calls
            run_id: ID of the run, copied into audit records
        """
        self.connector = connector
        self.rate_limiter = rate_limiter or NoDelayLimiter()
        self.audit_logger = audit_logger
        self.run_id = run_id

    def _invoke(self, operation: str, func: Callable[..., ConnectorResult], *args: Any,
                paced: bool = False) -> ConnectorResult:
        """
        Call a connector method.

        Args:
            operation: Operation name for log lines
            func: Bound connector method
            *args: Arguments for the method
            paced: Route the call through the rate limiter

        Returns:
            The ConnectorResult; exceptions become FAILED results
        """
        try:
            if paced:
                return self.rate_limiter.call(func, *args)
            return func(*args)
        except Exception as e:
            error_msg = f"Exception during {self.connector.get_system_name()}.{operation}: {e}"
            logger.error(error_msg)
            return ConnectorResult.failure(error_msg)

    def _log_audit_event(self, action: str, resource: str, result: ConnectorResult,
                         target: Optional[str] = None) -> None:
        """Record a mutating call in the audit trail, if one is configured."""
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.record(
                action=action,
                resource=resource,
                target=target,
                status=result.status,
                error=None if result.status == ResultStatus.SUCCESS else result.message,
                run_id=self.run_id,
            )
        except OSError as e:
            logger.warning(f"Could not write audit record for {action} {target or resource}: {e}")
