"""
Usage normalization.

Turns engine-specific raw statistics into a canonical WorkloadDescription
expressed in hourly rates, so that pricing never depends on the engine.

Two source shapes are supported:
1. MySQL/MariaDB - statement digests from the performance schema plus table metadata
2. TiDB - system throughput metrics, optionally refined by the statement summary

Raw statistics never cause an error. Missing values count as zero, divisors clamp
to one, and anything that makes the estimate less trustworthy is reported
as an Advisory instead of being printed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional, Union

from .workload import RequestDescription, StorageDescription, WorkloadDescription

TARGET_REGION_SIZE = 256 * 1024 * 1024  # Bytes per storage region
MINUTES_PER_HOUR = 60
HOURS_PER_DAY = 24

STATEMENT_SUMMARY_DOCS_URL = (
    "https://docs.pingcap.com/tidb/stable/statement-summary-tables#parameter-configuration"
)


class AdvisorySeverity(Enum):
    """How much an advisory undermines the estimate."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Advisory:
    """A diagnostic produced while normalizing statistics."""
    severity: AdvisorySeverity
    message: str


@dataclass(frozen=True)
class TablesInformation:
    """Aggregated table metadata for one schema; any field may be unknown."""
    total_rows: Optional[int] = None
    total_data_in_bytes: Optional[int] = None
    total_index_in_bytes: Optional[int] = None


@dataclass(frozen=True)
class MySQLStatementsSummary:
    """Statement digests aggregated over the sampling window."""
    start_time: datetime
    end_time: datetime
    read_queries: int = 0
    read_rows: int = 0
    sent_rows: int = 0
    write_queries: int = 0
    write_rows: int = 0


@dataclass(frozen=True)
class TiDBStatementsSummary:
    """TiDB statement summary aggregated over the sampling window."""
    start_time: datetime
    end_time: datetime
    read_queries: int = 0
    read_rows: int = 0
    sent_rows: int = 0
    write_queries: int = 0
    write_bytes: int = 0


@dataclass(frozen=True)
class TiDBSystemMetrics:
    """Hourly throughput read from the TiDB metrics schema."""
    write_bytes_per_hour: int = 0
    write_requests_per_hour: int = 0
    read_bytes_per_hour: int = 0
    read_requests_per_hour: int = 0


@dataclass(frozen=True)
class MySQLWorkloadStatistics:
    """Raw statistics from a server with the performance schema enabled."""
    tables: TablesInformation
    summary: MySQLStatementsSummary


@dataclass(frozen=True)
class TiDBWorkloadStatistics:
    """Raw statistics from a self-hosted or dedicated TiDB cluster."""
    tables: TablesInformation
    metrics: TiDBSystemMetrics
    summary: Optional[TiDBStatementsSummary] = None


WorkloadStatistics = Union[MySQLWorkloadStatistics, TiDBWorkloadStatistics]


@dataclass(frozen=True)
class NormalizationResult:
    """Normalized workload and the advisories raised while building it."""
    workload: WorkloadDescription
    advisories: List[Advisory] = field(default_factory=list)


def summary_duration_in_minutes(start_time: datetime, end_time: datetime) -> int:
    """Length of a sampling window in whole minutes, at least one."""
    minutes = int((end_time - start_time).total_seconds() // 60)
    return max(minutes, 1)


def check_summary_duration(duration_in_minutes: int) -> List[Advisory]:
    """Flag sampling windows too short to represent the workload."""
    if duration_in_minutes < MINUTES_PER_HOUR:
        return [Advisory(
            AdvisorySeverity.ERROR,
            f"The statement summary, covering only {duration_in_minutes} minute(s), "
            "is less than an hour's workload. It is highly recommended to collect at "
            "least a day's worth of data before running the estimation to prevent distortion."
        )]
    if duration_in_minutes < MINUTES_PER_HOUR * HOURS_PER_DAY:
        return [Advisory(
            AdvisorySeverity.WARNING,
            f"The statement summary, covering only {duration_in_minutes // MINUTES_PER_HOUR} "
            "hour(s), is less than a full day's workload and may not reflect the full "
            "business. Consider running the tool after collecting data for a longer "
            "period to ensure accuracy."
        )]
    return []


def _storage(tables: TablesInformation) -> StorageDescription:
    return StorageDescription(
        data_in_bytes=tables.total_data_in_bytes or 0,
        index_in_bytes=tables.total_index_in_bytes or 0
    )


def _total_storage_in_bytes(tables: TablesInformation) -> int:
    return max((tables.total_data_in_bytes or 0) + (tables.total_index_in_bytes or 0), 1)


def _average_row_size_in_bytes(tables: TablesInformation) -> int:
    return _total_storage_in_bytes(tables) // max(tables.total_rows or 0, 1)


def _per_hour(amount: int, duration_in_minutes: int) -> int:
    return MINUTES_PER_HOUR * amount // duration_in_minutes


def _amplified_requests(
    bytes_per_hour: int,
    queries: int,
    duration_in_minutes: int,
    total_storage_in_bytes: int,
    estimated_number_of_regions: int
) -> int:
    """Hourly requests scaled by the number of regions each query touches.

    A query scanning more data than fits in one region fans out to several
    regions, and each region visit is billed as a request.
    """
    queries_per_hour = max(_per_hour(queries, duration_in_minutes), 1)
    bytes_per_query = bytes_per_hour // queries_per_hour
    regions_per_query = max(
        bytes_per_query * estimated_number_of_regions // total_storage_in_bytes,
        1
    )
    return queries_per_hour * regions_per_query


def normalize_mysql(
    tables: TablesInformation,
    summary: MySQLStatementsSummary
) -> NormalizationResult:
    """Normalize performance-schema statement digests (MySQL and MariaDB).

    Row counts are converted to bytes using the average row size of the
    schema, and request counts are amplified by the number of storage
    regions each statement is expected to touch.

    Args:
        tables: Aggregated table metadata for the schema
        summary: Statement digests aggregated over the sampling window

    Returns:
        NormalizationResult with the workload and duration advisories
    """
    duration_in_minutes = summary_duration_in_minutes(summary.start_time, summary.end_time)
    advisories = check_summary_duration(duration_in_minutes)

    total_storage_in_bytes = _total_storage_in_bytes(tables)
    average_row_size_in_bytes = _average_row_size_in_bytes(tables)
    estimated_number_of_regions = total_storage_in_bytes // TARGET_REGION_SIZE

    read_bytes_per_hour = _per_hour(average_row_size_in_bytes * summary.read_rows, duration_in_minutes)
    write_bytes_per_hour = _per_hour(average_row_size_in_bytes * summary.write_rows, duration_in_minutes)
    sent_bytes_per_hour = _per_hour(average_row_size_in_bytes * summary.sent_rows, duration_in_minutes)

    workload = WorkloadDescription(
        read=RequestDescription(
            requests_per_hour=_amplified_requests(
                read_bytes_per_hour,
                summary.read_queries,
                duration_in_minutes,
                total_storage_in_bytes,
                estimated_number_of_regions
            ),
            bytes_per_hour=read_bytes_per_hour
        ),
        write=RequestDescription(
            requests_per_hour=_amplified_requests(
                write_bytes_per_hour,
                summary.write_queries,
                duration_in_minutes,
                total_storage_in_bytes,
                estimated_number_of_regions
            ),
            bytes_per_hour=write_bytes_per_hour
        ),
        egress=RequestDescription(bytes_per_hour=sent_bytes_per_hour),
        storage=_storage(tables)
    )
    return NormalizationResult(workload=workload, advisories=advisories)


def normalize_tidb(
    tables: TablesInformation,
    metrics: TiDBSystemMetrics,
    summary: Optional[TiDBStatementsSummary] = None
) -> NormalizationResult:
    """Normalize TiDB system metrics, refined by the statement summary when present.

    Metrics are already counted per storage request, so no region
    amplification is applied. Without a statement summary the written
    bytes come from the metrics and egress cannot be estimated.

    Args:
        tables: Aggregated table metadata for the schema
        metrics: Hourly throughput from the metrics schema
        summary: Statement summary, or None when it is disabled

    Returns:
        NormalizationResult with the workload and any advisories
    """
    advisories: List[Advisory] = []
    if summary is not None:
        duration_in_minutes = summary_duration_in_minutes(summary.start_time, summary.end_time)
        advisories.extend(check_summary_duration(duration_in_minutes))
        write_bytes_per_hour = _per_hour(summary.write_bytes, duration_in_minutes)
        sent_bytes_per_hour = _per_hour(
            summary.sent_rows * _average_row_size_in_bytes(tables),
            duration_in_minutes
        )
    else:
        advisories.append(Advisory(
            AdvisorySeverity.WARNING,
            "The 'Statement Summary Tables' are disabled; when they are available, "
            "estimations can be more accurate."
        ))
        advisories.append(Advisory(
            AdvisorySeverity.WARNING,
            f"For detailed instruction, visit {STATEMENT_SUMMARY_DOCS_URL}"
        ))
        write_bytes_per_hour = metrics.write_bytes_per_hour
        sent_bytes_per_hour = 0

    workload = WorkloadDescription(
        read=RequestDescription(
            requests_per_hour=metrics.read_requests_per_hour,
            bytes_per_hour=metrics.read_bytes_per_hour
        ),
        write=RequestDescription(
            requests_per_hour=metrics.write_requests_per_hour,
            bytes_per_hour=write_bytes_per_hour
        ),
        egress=RequestDescription(bytes_per_hour=sent_bytes_per_hour),
        storage=_storage(tables)
    )
    return NormalizationResult(workload=workload, advisories=advisories)


def normalize(statistics: WorkloadStatistics) -> NormalizationResult:
    """Normalize whichever statistics shape the reader produced.

    Raises:
        TypeError: If the statistics are not a known shape
    """
    if isinstance(statistics, MySQLWorkloadStatistics):
        return normalize_mysql(statistics.tables, statistics.summary)
    if isinstance(statistics, TiDBWorkloadStatistics):
        return normalize_tidb(statistics.tables, statistics.metrics, statistics.summary)
    raise TypeError(f"Unsupported workload statistics: {type(statistics).__name__}")

