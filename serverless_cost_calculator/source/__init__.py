"""
Statistics sources for Serverless Cost Calculator.

Reads table metadata, statement summaries and system metrics from a
running MySQL-compatible database.
"""

from .reader import (
    MetricsUnavailable,
    PerformanceSchemaDisabled,
    StatisticsReader,
    WorkloadSourceError,
    load_workload,
)

__all__ = [
    "MetricsUnavailable",
    "PerformanceSchemaDisabled",
    "StatisticsReader",
    "WorkloadSourceError",
    "load_workload",
]
