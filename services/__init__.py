"""Service modules for the clinic dashboard."""

__all__ = [
    "analytics",
    "dashboard_api",
    "ingestion",
    "records",
]
