"""Audit logging package."""

from home_ledger.audit.logger import AuditLogger, configure_logging

__all__ = ["AuditLogger", "configure_logging"]
