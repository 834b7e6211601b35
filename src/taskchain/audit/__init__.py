"""Audit trail views — activity log projections and reconciliation."""

from taskchain.audit.reconciler import (
    AuditReconciler,
    ReconciledCompletion,
    ReconciliationReport,
    ReconciliationState,
)

__all__ = [
    "AuditReconciler",
    "ReconciledCompletion",
    "ReconciliationReport",
    "ReconciliationState",
]
