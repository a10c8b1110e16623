"""
Unit tests for usage normalization.

Tests the MySQL and TiDB normalization formulas, window advisories and
graceful handling of missing statistics.
"""

from datetime import datetime, timedelta

import pytest

from serverless_cost_calculator.core.normalizer import (
    AdvisorySeverity,
    MySQLStatementsSummary,
    MySQLWorkloadStatistics,
    TablesInformation,
    TiDBStatementsSummary,
    TiDBSystemMetrics,
    TiDBWorkloadStatistics,
    check_summary_duration,
    normalize,
    normalize_mysql,
    normalize_tidb,
    summary_duration_in_minutes,
)
from serverless_cost_calculator.core.workload import StorageDescription

START = datetime(2024, 3, 1, 0, 0, 0)
WEEK_IN_MINUTES = 7 * 24 * 60
GIB = 1024 * 1024 * 1024
MIB = 1024 * 1024

# 1,000 rows of 1,000 bytes each, far below one 256 MiB region
SMALL_TABLES = TablesInformation(
    total_rows=1000,
    total_data_in_bytes=900_000,
    total_index_in_bytes=100_000
)


def _mysql_summary(minutes: int, **counts) -> MySQLStatementsSummary:
    return MySQLStatementsSummary(
        start_time=START,
        end_time=START + timedelta(minutes=minutes),
        **counts
    )


def _tidb_summary(minutes: int, **counts) -> TiDBStatementsSummary:
    return TiDBStatementsSummary(
        start_time=START,
        end_time=START + timedelta(minutes=minutes),
        **counts
    )


class TestSummaryDuration:
    """Test sampling window length and advisories."""

    def test_duration_in_whole_minutes(self):
        """Verify partial minutes are truncated."""
        assert summary_duration_in_minutes(START, START + timedelta(minutes=90, seconds=59)) == 90

    def test_empty_window_clamps_to_one_minute(self):
        """Verify a zero-length window counts as one minute."""
        assert summary_duration_in_minutes(START, START) == 1

    def test_reversed_window_clamps_to_one_minute(self):
        """Verify an end before the start counts as one minute."""
        assert summary_duration_in_minutes(START, START - timedelta(hours=2)) == 1

    def test_under_an_hour_is_error(self):
        """Verify windows under an hour raise an ERROR advisory."""
        advisories = check_summary_duration(30)
        assert len(advisories) == 1
        assert advisories[0].severity == AdvisorySeverity.ERROR
        assert "30 minute(s)" in advisories[0].message

    def test_under_a_day_is_warning(self):
        """Verify windows under a day raise a WARNING advisory in hours."""
        advisories = check_summary_duration(150)
        assert len(advisories) == 1
        assert advisories[0].severity == AdvisorySeverity.WARNING
        assert "2 hour(s)" in advisories[0].message

    def test_exactly_one_hour_is_warning(self):
        """Verify the hour boundary is no longer an error."""
        advisories = check_summary_duration(60)
        assert advisories[0].severity == AdvisorySeverity.WARNING

    def test_full_day_has_no_advisory(self):
        """Verify a day or more is considered representative."""
        assert check_summary_duration(24 * 60) == []
        assert check_summary_duration(WEEK_IN_MINUTES) == []


class TestNormalizeMySQL:
    """Test normalization of performance-schema statistics."""

    def test_hourly_rates(self):
        """Verify counts over a week are turned into hourly rates."""
        summary = _mysql_summary(
            WEEK_IN_MINUTES,
            read_queries=100_800,  # 600/h
            read_rows=100_800,  # 600 rows/h of 1,000 bytes
            write_queries=16_800,  # 100/h
            write_rows=33_600,  # 200 rows/h
            sent_rows=50_400  # 300 rows/h
        )
        result = normalize_mysql(SMALL_TABLES, summary)
        workload = result.workload

        assert result.advisories == []
        assert workload.read.requests_per_hour == 600
        assert workload.read.bytes_per_hour == 600_000
        assert workload.write.requests_per_hour == 100
        assert workload.write.bytes_per_hour == 200_000
        assert workload.egress.bytes_per_hour == 300_000
        assert workload.egress.requests_per_hour is None

    def test_storage_is_raw_table_size(self):
        """Verify storage is copied from table metadata unscaled."""
        result = normalize_mysql(SMALL_TABLES, _mysql_summary(WEEK_IN_MINUTES))
        assert result.workload.storage == StorageDescription(
            data_in_bytes=900_000,
            index_in_bytes=100_000
        )

    def test_requests_amplified_by_regions_touched(self):
        """Verify queries scanning several regions count once per region."""
        # 1 GiB over 1 Mi rows: 1 KiB rows and 4 regions of 256 MiB
        tables = TablesInformation(
            total_rows=1024 * 1024,
            total_data_in_bytes=GIB,
            total_index_in_bytes=0
        )
        # One query per hour reading half of the table
        summary = _mysql_summary(
            24 * 60,
            read_queries=24,
            read_rows=24 * 512 * 1024,
            write_queries=24,
            write_rows=24 * 10
        )
        workload = normalize_mysql(tables, summary).workload

        assert workload.read.bytes_per_hour == 512 * MIB
        assert workload.read.requests_per_hour == 2
        # A small write touches a single region
        assert workload.write.requests_per_hour == 1
        assert workload.write.bytes_per_hour == 10 * 1024

    def test_request_rate_clamps_to_one(self):
        """Verify a silent workload still counts one request per hour."""
        result = normalize_mysql(SMALL_TABLES, _mysql_summary(WEEK_IN_MINUTES))
        assert result.workload.read.requests_per_hour == 1
        assert result.workload.write.requests_per_hour == 1
        assert result.workload.read.bytes_per_hour == 0

    def test_missing_statistics_do_not_fail(self):
        """Verify absent metadata and an empty window produce a clamped workload."""
        result = normalize_mysql(TablesInformation(), _mysql_summary(0))
        workload = result.workload

        assert workload.read.requests_per_hour == 1
        assert workload.write.requests_per_hour == 1
        assert workload.read.bytes_per_hour == 0
        assert workload.write.bytes_per_hour == 0
        assert workload.egress.bytes_per_hour == 0
        assert workload.storage == StorageDescription(0, 0)
        assert [a.severity for a in result.advisories] == [AdvisorySeverity.ERROR]

    def test_rows_without_table_metadata(self):
        """Verify rows are priced at one byte when the table size is unknown."""
        summary = _mysql_summary(60, read_queries=60, read_rows=6000)
        workload = normalize_mysql(TablesInformation(), summary).workload
        assert workload.read.bytes_per_hour == 6000

    def test_short_window_warns_but_computes(self):
        """Verify advisories do not stop the computation."""
        summary = _mysql_summary(10, read_queries=10, read_rows=10)
        result = normalize_mysql(SMALL_TABLES, summary)
        assert result.advisories[0].severity == AdvisorySeverity.ERROR
        assert result.workload.read.requests_per_hour == 60
        assert result.workload.read.bytes_per_hour == 60_000

    def test_idempotent(self):
        """Verify normalizing the same snapshot twice gives identical results."""
        summary = _mysql_summary(
            3 * 24 * 60, read_queries=12345, read_rows=678910, sent_rows=111, write_queries=7, write_rows=99
        )
        assert normalize_mysql(SMALL_TABLES, summary) == normalize_mysql(SMALL_TABLES, summary)


class TestNormalizeTiDB:
    """Test normalization of TiDB metrics and statement summaries."""

    METRICS = TiDBSystemMetrics(
        write_bytes_per_hour=4096,
        write_requests_per_hour=40,
        read_bytes_per_hour=65536,
        read_requests_per_hour=500
    )

    def test_with_statement_summary(self):
        """Verify the summary refines written and sent bytes."""
        summary = _tidb_summary(
            24 * 60,
            write_bytes=1_440_000,
            sent_rows=1440,
            read_queries=99,
            write_queries=99
        )
        result = normalize_tidb(SMALL_TABLES, self.METRICS, summary)
        workload = result.workload

        assert result.advisories == []
        assert workload.write.bytes_per_hour == 60_000
        assert workload.egress.bytes_per_hour == 60_000
        assert workload.egress.requests_per_hour is None

    def test_request_rates_come_from_metrics(self):
        """Verify metrics are used without region amplification."""
        summary = _tidb_summary(24 * 60, read_queries=1_000_000, write_queries=1_000_000)
        workload = normalize_tidb(SMALL_TABLES, self.METRICS, summary).workload

        assert workload.read.requests_per_hour == 500
        assert workload.read.bytes_per_hour == 65536
        assert workload.write.requests_per_hour == 40

    def test_without_statement_summary(self):
        """Verify fallback to metrics and zero egress when the summary is disabled."""
        result = normalize_tidb(SMALL_TABLES, self.METRICS)
        workload = result.workload

        assert workload.write.bytes_per_hour == 4096
        assert workload.egress.bytes_per_hour == 0
        assert len(result.advisories) == 2
        assert all(a.severity == AdvisorySeverity.WARNING for a in result.advisories)
        assert "Statement Summary Tables" in result.advisories[0].message
        assert "statement-summary-tables" in result.advisories[1].message

    def test_short_summary_window_warns(self):
        """Verify the summary window is checked like the MySQL one."""
        result = normalize_tidb(SMALL_TABLES, self.METRICS, _tidb_summary(5))
        assert len(result.advisories) == 1
        assert result.advisories[0].severity == AdvisorySeverity.ERROR

    def test_storage_is_raw_table_size(self):
        """Verify storage is copied from table metadata."""
        result = normalize_tidb(SMALL_TABLES, self.METRICS)
        assert result.workload.storage.total_in_bytes == 1_000_000

    def test_missing_statistics_do_not_fail(self):
        """Verify zeroed metrics and metadata produce a zero workload."""
        result = normalize_tidb(TablesInformation(), TiDBSystemMetrics(), _tidb_summary(0))
        workload = result.workload
        assert workload.read.requests_per_hour == 0
        assert workload.write.requests_per_hour == 0
        assert workload.write.bytes_per_hour == 0
        assert workload.egress.bytes_per_hour == 0
        assert workload.storage.total_in_bytes == 0


class TestNormalize:
    """Test dispatch over the statistics shapes."""

    def test_dispatch_mysql(self):
        """Verify MySQL statistics use the digest formulas."""
        summary = _mysql_summary(WEEK_IN_MINUTES, read_queries=100_800)
        statistics = MySQLWorkloadStatistics(tables=SMALL_TABLES, summary=summary)
        assert normalize(statistics) == normalize_mysql(SMALL_TABLES, summary)

    def test_dispatch_tidb(self):
        """Verify TiDB statistics use the metrics formulas."""
        metrics = TiDBSystemMetrics(read_requests_per_hour=7)
        statistics = TiDBWorkloadStatistics(tables=SMALL_TABLES, metrics=metrics)
        assert normalize(statistics) == normalize_tidb(SMALL_TABLES, metrics, None)

    def test_unknown_shape(self):
        """Verify unknown statistics objects are rejected."""
        with pytest.raises(TypeError, match="Unsupported workload statistics"):
            normalize(SMALL_TABLES)
