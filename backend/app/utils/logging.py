"""Structured logging for authorization events."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Set the root log level, adding a handler if none is configured."""
    logging.basicConfig(level=level.upper())
    logging.getLogger().setLevel(level.upper())


class StructuredAuthzLogger:
    """Structured logger for authorization decisions and fallbacks.

    Payloads go to operators only; clients never see which rule decided.
    """

    def log_decision(
        self,
        action: str,
        subject_type: str,
        outcome: str,
        caller_id: int | None,
        ident: Any = None,
    ) -> None:
        """Log a per-instance or type-level allow/deny decision."""
        log_data: dict[str, Any] = {
            "action": action,
            "subject": subject_type,
            "outcome": outcome,
            "caller_id": caller_id,
        }
        if ident is not None:
            log_data["ident"] = ident

        log_msg = f"Authorization {outcome}: {action} {subject_type}"

        if outcome == "allow":
            logger.debug(log_msg, extra={"structured": log_data})
        else:
            logger.warning(log_msg, extra={"structured": log_data})

    def log_filter(self, action: str, subject_type: str, operation: str) -> None:
        """Log a row filter injected into a data-access statement."""
        logger.debug(
            f"Row filter applied: {operation} {subject_type} ({action})",
            extra={"structured": {"action": action, "subject": subject_type, "operation": operation}},
        )

    def log_context_missing(self, operation: str) -> None:
        """Log a data access made outside any installed request context."""
        logger.warning(
            f"No authorization context for {operation}, using anonymous rules",
            extra={"structured": {"operation": operation}},
        )

    def log_identity_fallback(self, reason: str, detail: str) -> None:
        """Log a caller resolution failure and the fallback taken."""
        logger.warning(
            f"Caller resolution fallback: {reason}",
            extra={"structured": {"reason": reason, "detail": detail}},
        )
