"""
Statistics reader.

Classifies the server, then collects the raw statistics the normalizer
understands: table metadata, statement digests over the last seven days
and, on TiDB, throughput from the metrics schema.
"""

import logging
import re
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Iterable, List, Optional, Sequence

import pymysql

from serverless_cost_calculator.config.loader import WorkloadSourceConfiguration
from serverless_cost_calculator.core.normalizer import (
    MySQLStatementsSummary,
    MySQLWorkloadStatistics,
    NormalizationResult,
    TablesInformation,
    TiDBStatementsSummary,
    TiDBSystemMetrics,
    TiDBWorkloadStatistics,
    WorkloadStatistics,
    normalize,
)
from .db import get_connection

logger = logging.getLogger(__name__)

SUMMARY_WINDOW_DAYS = 7
HOURS_PER_DAY = 24

MYSQL_PERFORMANCE_SCHEMA_DOCS_URL = (
    "https://dev.mysql.com/doc/refman/5.7/en/performance-schema-startup-configuration.html"
)
MARIADB_PERFORMANCE_SCHEMA_DOCS_URL = (
    "https://mariadb.com/kb/en/performance-schema-overview/#activating-the-performance-schema"
)

_TIDB_PATTERN = re.compile(r"^\d+\.\d+\.\d+-TiDB-", re.IGNORECASE)
_TIDB_SERVERLESS_PATTERN = re.compile(
    r"^\d+\.\d+\.\d+-TiDB-v\d+\.\d+\.\d+-serverless", re.IGNORECASE
)
_MARIADB_PATTERN = re.compile(r"^\d+\.\d+\.\d+-MariaDB", re.IGNORECASE)
_MYSQL_WRITE_PATTERN = re.compile(r"^(INSERT|DELETE|UPDATE) ")
_TIDB_WRITE_STATEMENT_TYPES = {"Delete", "Update", "Insert", "Replace"}

TABLES_INFORMATION_QUERY = """
    SELECT CAST(SUM(TABLE_ROWS) AS UNSIGNED),
           CAST(SUM(DATA_LENGTH) AS UNSIGNED),
           CAST(SUM(INDEX_LENGTH) AS UNSIGNED)
    FROM information_schema.TABLES
    WHERE TABLE_SCHEMA = %s
"""

MYSQL_STATEMENTS_QUERY = """
    SELECT DIGEST_TEXT, COUNT_STAR, SUM_ROWS_AFFECTED, SUM_ROWS_SENT,
           SUM_ROWS_EXAMINED, FIRST_SEEN, LAST_SEEN
    FROM performance_schema.events_statements_summary_by_digest
    WHERE SCHEMA_NAME = %s AND LAST_SEEN >= DATE_SUB(NOW(), INTERVAL 7 DAY)
"""

TIDB_STATEMENTS_QUERY = """
    SELECT STMT_TYPE, EXEC_COUNT, CAST(AVG_RESULT_ROWS AS UNSIGNED),
           AVG_PROCESSED_KEYS, CAST(AVG_WRITE_SIZE AS UNSIGNED), FIRST_SEEN, LAST_SEEN
    FROM information_schema.CLUSTER_STATEMENTS_SUMMARY
    WHERE SCHEMA_NAME = %s AND LAST_SEEN >= DATE_SUB(NOW(), INTERVAL 7 DAY)
    UNION ALL
    SELECT STMT_TYPE, EXEC_COUNT, CAST(AVG_RESULT_ROWS AS UNSIGNED),
           AVG_PROCESSED_KEYS, CAST(AVG_WRITE_SIZE AS UNSIGNED), FIRST_SEEN, LAST_SEEN
    FROM information_schema.CLUSTER_STATEMENTS_SUMMARY_HISTORY
    WHERE SCHEMA_NAME = %s AND LAST_SEEN >= DATE_SUB(NOW(), INTERVAL 7 DAY)
"""

METRICS_WINDOW_QUERY = (
    "SELECT CAST(DATE_SUB(NOW(), INTERVAL %s DAY) AS CHAR), CAST(NOW() AS CHAR)"
)

TIDB_METRICS_QUERY = """
    SELECT 'write_bytes', CAST(SUM(`value`) AS UNSIGNED)
    FROM metrics_schema.tidb_kv_write_total_size
    WHERE time BETWEEN %s AND %s
    UNION
    SELECT 'write_requests', CAST(SUM(`value`) AS UNSIGNED)
    FROM metrics_schema.tidb_kv_request_total_count
    WHERE type IN ('Prewrite', 'Commit') AND time BETWEEN %s AND %s
    UNION
    SELECT 'read_bytes', CAST(SUM(`value`) AS UNSIGNED)
    FROM metrics_schema.tikv_cop_total_rocksdb_perf_statistics
    WHERE metric IN ('get_read_bytes', 'iter_read_bytes') AND req IN ('index', 'select')
      AND time BETWEEN %s AND %s
    UNION
    SELECT 'read_requests', CAST(SUM(`value`) AS UNSIGNED)
    FROM metrics_schema.tidb_kv_request_total_count
    WHERE type NOT IN ('Prewrite', 'Commit') AND time BETWEEN %s AND %s
"""


class WorkloadSourceError(Exception):
    """Raised when usable statistics cannot be read from a source."""


class PerformanceSchemaDisabled(WorkloadSourceError):
    """Raised when a MySQL or MariaDB server has no performance schema."""
    def __init__(self, product: str, docs_url: str):
        super().__init__(
            f"Please enable the 'Performance Schema' on your {product} server and keep "
            "it active for at least a full business day to ensure comprehensive "
            f"workload coverage. For instructions, see this guide: {docs_url}"
        )
        self.product = product


class MetricsUnavailable(WorkloadSourceError):
    """Raised when the TiDB metrics schema cannot be read for any window."""


class ServerKind(Enum):
    """Flavor of MySQL-compatible server, as reported by version()."""
    MYSQL = "mysql"
    MARIADB = "mariadb"
    TIDB = "tidb"
    TIDB_SERVERLESS = "tidb-serverless"


def detect_server_kind(version: str) -> ServerKind:
    """Classify a server from its version string."""
    if _TIDB_SERVERLESS_PATTERN.search(version):
        return ServerKind.TIDB_SERVERLESS
    if _TIDB_PATTERN.search(version):
        return ServerKind.TIDB
    if _MARIADB_PATTERN.search(version):
        return ServerKind.MARIADB
    return ServerKind.MYSQL


def _as_int(value: Any) -> int:
    return int(value or 0)


def summarize_mysql_statements(
    rows: Iterable[Sequence[Any]],
    now: datetime
) -> MySQLStatementsSummary:
    """Fold performance-schema digest rows into one summary.

    Each row is (digest_text, count, rows_affected, rows_sent,
    rows_examined, first_seen, last_seen). Without any rows the summary
    covers the full seven-day window with zero traffic.
    """
    rows = list(rows)
    window_start = now - timedelta(days=SUMMARY_WINDOW_DAYS)
    if not rows:
        return MySQLStatementsSummary(start_time=window_start, end_time=now)

    start_time, end_time = now, window_start
    read_queries = read_rows = sent_rows = write_queries = write_rows = 0
    for digest_text, count, affected_rows, rows_sent, rows_examined, first_seen, last_seen in rows:
        start_time = min(start_time, first_seen)
        end_time = max(end_time, last_seen)
        read_rows += _as_int(rows_examined)
        sent_rows += _as_int(rows_sent)
        write_rows += _as_int(affected_rows)
        if _MYSQL_WRITE_PATTERN.search(digest_text or ""):
            write_queries += _as_int(count)
        else:
            read_queries += _as_int(count)

    return MySQLStatementsSummary(
        start_time=start_time,
        end_time=end_time,
        read_queries=read_queries,
        read_rows=read_rows,
        sent_rows=sent_rows,
        write_queries=write_queries,
        write_rows=write_rows
    )


def summarize_tidb_statements(
    rows: Iterable[Sequence[Any]],
    now: datetime
) -> TiDBStatementsSummary:
    """Fold TiDB statement summary rows into one summary.

    Each row is (statement_type, exec_count, avg_result_rows,
    avg_processed_keys, avg_write_size, first_seen, last_seen); averages
    are multiplied back by the execution count.
    """
    rows = list(rows)
    window_start = now - timedelta(days=SUMMARY_WINDOW_DAYS)
    if not rows:
        return TiDBStatementsSummary(start_time=window_start, end_time=now)

    start_time, end_time = now, window_start
    read_queries = read_rows = sent_rows = write_queries = write_bytes = 0
    for statement_type, count, avg_result_rows, avg_processed_keys, avg_write_size, first_seen, last_seen in rows:
        count = _as_int(count)
        start_time = min(start_time, first_seen)
        end_time = max(end_time, last_seen)
        read_rows += _as_int(avg_processed_keys) * count
        sent_rows += _as_int(avg_result_rows) * count
        write_bytes += _as_int(avg_write_size) * count
        if statement_type in _TIDB_WRITE_STATEMENT_TYPES:
            write_queries += count
        else:
            read_queries += count

    return TiDBStatementsSummary(
        start_time=start_time,
        end_time=end_time,
        read_queries=read_queries,
        read_rows=read_rows,
        sent_rows=sent_rows,
        write_queries=write_queries,
        write_bytes=write_bytes
    )


def summarize_tidb_metrics(rows: Iterable[Sequence[Any]], hours: int) -> TiDBSystemMetrics:
    """Turn (metric_type, total) rows into hourly rates over ``hours``."""
    totals = {metric_type: _as_int(value) for metric_type, value in rows}
    return TiDBSystemMetrics(
        write_bytes_per_hour=totals.get("write_bytes", 0) // hours,
        write_requests_per_hour=totals.get("write_requests", 0) // hours,
        read_bytes_per_hour=totals.get("read_bytes", 0) // hours,
        read_requests_per_hour=totals.get("read_requests", 0) // hours
    )


class StatisticsReader:
    """Reads raw workload statistics from a MySQL-compatible server.

    Each method issues read-only queries, except analyze_tables which
    refreshes table statistics on the server.
    """

    def __init__(self, connection: Any, database: str):
        """Initialize the reader.

        Args:
            connection: Open DB-API connection
            database: Schema whose workload is estimated
        """
        self.connection = connection
        self.database = database

    def _fetch_all(self, query: str, params: Optional[Sequence[Any]] = None) -> List[Sequence[Any]]:
        with self.connection.cursor() as cursor:
            cursor.execute(query, params)
            return list(cursor.fetchall())

    def _fetch_one(self, query: str, params: Optional[Sequence[Any]] = None) -> Optional[Sequence[Any]]:
        with self.connection.cursor() as cursor:
            cursor.execute(query, params)
            return cursor.fetchone()

    def server_version(self) -> str:
        return self._fetch_one("SELECT version()")[0]

    def server_now(self) -> datetime:
        """Current time on the server, comparable with FIRST_SEEN/LAST_SEEN."""
        return self._fetch_one("SELECT NOW()")[0]

    def check_variable_value(self, variable: str, value: str) -> bool:
        """Whether a server variable exists and equals ``value``."""
        row = self._fetch_one("SHOW VARIABLES LIKE %s", (variable,))
        return row is not None and row[1] == value

    def read_tables_information(self) -> TablesInformation:
        row = self._fetch_one(TABLES_INFORMATION_QUERY, (self.database,))
        if row is None:
            return TablesInformation()
        total_rows, total_data_in_bytes, total_index_in_bytes = row
        return TablesInformation(
            total_rows=total_rows,
            total_data_in_bytes=total_data_in_bytes,
            total_index_in_bytes=total_index_in_bytes
        )

    def read_mysql_statements_summary(self) -> MySQLStatementsSummary:
        rows = self._fetch_all(MYSQL_STATEMENTS_QUERY, (self.database,))
        logger.debug("Read %d statement digests for '%s'", len(rows), self.database)
        return summarize_mysql_statements(rows, self.server_now())

    def read_tidb_statements_summary(self) -> Optional[TiDBStatementsSummary]:
        """Statement summary, or None when the summary tables are disabled."""
        if not self.check_variable_value("tidb_enable_stmt_summary", "ON"):
            return None
        rows = self._fetch_all(TIDB_STATEMENTS_QUERY, (self.database, self.database))
        logger.debug("Read %d statement summaries for '%s'", len(rows), self.database)
        return summarize_tidb_statements(rows, self.server_now())

    def read_tidb_system_metrics(self) -> TiDBSystemMetrics:
        """Hourly throughput from the metrics schema.

        The metrics schema is backed by Prometheus, whose retention may be
        shorter than a week, so the window shrinks one day at a time until
        a query succeeds.

        Raises:
            MetricsUnavailable: If even a one-day window cannot be read
        """
        for interval in range(SUMMARY_WINDOW_DAYS, 0, -1):
            start, end = self._fetch_one(METRICS_WINDOW_QUERY, (interval,))
            try:
                rows = self._fetch_all(TIDB_METRICS_QUERY, (start, end) * 4)
            except pymysql.MySQLError as e:
                logger.debug("Metrics schema unreadable over %d day(s): %s", interval, e)
                continue
            return summarize_tidb_metrics(rows, interval * HOURS_PER_DAY)
        raise MetricsUnavailable(
            "Failed to read metrics schema, please check your prometheus setup "
            "and make sure it is working as expected"
        )

    def list_base_tables(self) -> List[str]:
        rows = self._fetch_all("SHOW FULL TABLES WHERE Table_type = 'BASE TABLE'")
        return [row[0] for row in rows]

    def analyze_tables(self) -> None:
        """Run ANALYZE TABLE on every base table of the schema."""
        for table in self.list_base_tables():
            logger.warning(
                "Analyzing table `%s`. Press CTRL+C to terminate if you notice "
                "unexpected performance impacts on the production system.", table
            )
            quoted = table.replace("`", "``")
            self._fetch_all(f"ANALYZE TABLE `{quoted}`")

    def read_workload_statistics(self) -> Optional[WorkloadStatistics]:
        """Read the statistics shape matching the server.

        Returns:
            The statistics, or None when the server is already serverless

        Raises:
            PerformanceSchemaDisabled: If a MySQL/MariaDB server lacks the performance schema
            MetricsUnavailable: If TiDB metrics cannot be read
        """
        kind = detect_server_kind(self.server_version())
        logger.info("Detected %s server", kind.value)
        if kind == ServerKind.TIDB_SERVERLESS:
            return None

        tables = self.read_tables_information()
        if kind == ServerKind.TIDB:
            return TiDBWorkloadStatistics(
                tables=tables,
                metrics=self.read_tidb_system_metrics(),
                summary=self.read_tidb_statements_summary()
            )
        if self.check_variable_value("performance_schema", "ON"):
            return MySQLWorkloadStatistics(
                tables=tables,
                summary=self.read_mysql_statements_summary()
            )
        if kind == ServerKind.MARIADB:
            raise PerformanceSchemaDisabled("MariaDB", MARIADB_PERFORMANCE_SCHEMA_DOCS_URL)
        raise PerformanceSchemaDisabled("MySQL", MYSQL_PERFORMANCE_SCHEMA_DOCS_URL)


def load_workload(
    config: WorkloadSourceConfiguration,
    analyze: bool = False,
    confirm: Optional[Callable[[], bool]] = None
) -> Optional[NormalizationResult]:
    """Read and normalize the workload of one source database.

    Args:
        config: Connection settings
        analyze: Run ANALYZE TABLE before reading table statistics
        confirm: Asked before analyzing; a False answer skips ANALYZE

    Returns:
        NormalizationResult, or None when the source is already serverless

    Raises:
        WorkloadSourceError: If the source cannot provide usable statistics
        pymysql.MySQLError: Connection and query errors, propagated unchanged
    """
    connection = get_connection(config)
    try:
        reader = StatisticsReader(connection, config.database)
        if analyze and (confirm is None or confirm()):
            reader.analyze_tables()
        statistics = reader.read_workload_statistics()
    finally:
        connection.close()

    if statistics is None:
        return None
    return normalize(statistics)
