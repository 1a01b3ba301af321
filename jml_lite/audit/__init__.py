"""
Audit Package for JML Lite.

Handles activity logging to the audit trail list.
"""

from .audit_trail import AuditTrailService

__all__ = ["AuditTrailService"]
