"""
Structured operation logging for the rotation service.
Secret values are redacted before anything reaches a handler.
"""

import logging
from typing import Any, Dict, List

SENSITIVE_FIELDS = ['value', 'values', 'salts', 'secret', 'password', 'token']


class StructuredLogger:
    """Structured logger for rotation, backup, command and scheduler operations."""

    def __init__(self, name: str = "salt_rotation"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {sanitize_payload(details)}"

        self.logger.log(level, message)

    def log_rotation_attempt(self, status: str, triggered_by: str, snapshot_id: str = None,
                             duration: float = 0.0, error: str = ""):
        """Log the outcome of a rotation attempt."""
        details = {
            "triggered_by": triggered_by,
            "snapshot_id": snapshot_id,
            "duration_ms": round(duration * 1000, 2),
        }
        if error:
            details["error"] = error[:100] + "..." if len(error) > 100 else error

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation("rotation.attempt", status, details, level)

    def log_snapshot(self, snapshot_id: str, key_count: int, encrypted: bool, status: str = "success"):
        """Log a snapshot write. Only key counts are logged, never values."""
        self.log_operation("snapshot.saved", status, {
            "snapshot_id": snapshot_id,
            "key_count": key_count,
            "encrypted": encrypted,
        })

    def log_prune(self, keep: int, deleted: List[str]):
        self.log_operation("snapshot.pruned", "success", {
            "keep": keep,
            "deleted_count": len(deleted),
            "deleted": deleted,
        })

    def log_command(self, command: List[str], succeeded: bool, error_kind: str = None, duration: float = None):
        """Log an external command invocation."""
        details = {"command": " ".join(command)}
        if error_kind:
            details["error_kind"] = error_kind
        if duration is not None:
            details["duration_ms"] = round(duration * 1000, 2)

        status = "success" if succeeded else "failed"
        self.log_operation("command.run", status, details, logging.INFO if succeeded else logging.WARNING)

    def log_notification(self, recipient: str, status: str, error: str = None):
        details = {"recipient": recipient}
        if error:
            details["error"] = error
        self.log_operation("notification.failure_alert", status, details,
                           logging.INFO if status == "sent" else logging.ERROR)

    def log_scheduler_task(self, task_name: str, start_time: float, end_time: float, status: str = "success",
                           details: Dict[str, Any] = None):
        """Log scheduler task execution."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        elif status == "success":
            log_details["message"] = f"Scheduled task '{task_name}' completed in {duration_ms}ms"
        elif status == "failed":
            log_details["message"] = f"Scheduled task '{task_name}' failed after {duration_ms}ms"

        self.log_operation(f"scheduler.{task_name}", status,
                           log_details, logging.INFO if status == "success" else logging.ERROR)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def exception(self, message: str) -> None:
        self.logger.exception(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload


# Global logger instance
logger = StructuredLogger()


def audit_event(event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None):
    """General audit event logging with secret values redacted."""
    log_details = identifiers.copy() if identifiers else {}
    if payload:
        log_details["payload"] = payload

    logger.log_operation(event_type.replace(".", "_"), "audit", log_details)
