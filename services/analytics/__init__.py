"""Activity aggregation and vendor reconciliation engines."""

from .activity import (
    CategoryMonthStats,
    MonthlyStats,
    NonOrderingPatient,
    NonOrderingReport,
    PatientActivity,
    classify_non_ordering,
    compute_monthly_stats,
    summarize_patient_activity,
)
from .dashboard import DashboardSummary, compute_dashboard_summary
from .months import month_index, month_key, months_between
from .policy import CategoryPolicy
from .reconciliation import ReconciliationResult, reconcile_vendor_month
from .service import ActivityReportService, VendorReconciliationService

__all__ = [
    "ActivityReportService",
    "CategoryMonthStats",
    "CategoryPolicy",
    "DashboardSummary",
    "MonthlyStats",
    "NonOrderingPatient",
    "NonOrderingReport",
    "PatientActivity",
    "ReconciliationResult",
    "VendorReconciliationService",
    "classify_non_ordering",
    "compute_dashboard_summary",
    "compute_monthly_stats",
    "month_index",
    "month_key",
    "months_between",
    "reconcile_vendor_month",
    "summarize_patient_activity",
]
