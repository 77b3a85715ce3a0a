"""Sync history persisted in DuckDB.

Every finished sync attempt is stored as one row in ``sync_history`` so it can
be queried later from the CLI (``actualsync history``) or the health API.
Rows older than the retention period are removed on startup.
"""

import logging
import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import duckdb

from actualsync.sync.models import SyncAttempt, SyncStatus

logger = logging.getLogger(__name__)

CREATE_SEQUENCE_SQL = "CREATE SEQUENCE IF NOT EXISTS sync_history_id_seq START 1"

CREATE_TABLE_SQL = """
    CREATE TABLE IF NOT EXISTS sync_history (
        id BIGINT PRIMARY KEY DEFAULT nextval('sync_history_id_seq'),
        timestamp TIMESTAMP NOT NULL,
        server_name VARCHAR NOT NULL,
        status VARCHAR NOT NULL,
        duration_ms BIGINT,
        accounts_processed INTEGER,
        accounts_succeeded INTEGER,
        accounts_failed INTEGER,
        error_message VARCHAR,
        error_code VARCHAR,
        correlation_id VARCHAR
    )
"""

CREATE_INDEXES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_sync_history_timestamp ON sync_history(timestamp)",
    "CREATE INDEX IF NOT EXISTS idx_sync_history_server ON sync_history(server_name)",
    "CREATE INDEX IF NOT EXISTS idx_sync_history_correlation ON sync_history(correlation_id)",
]


def _utcnow() -> datetime:
    # DuckDB TIMESTAMP columns are naive; values are stored in UTC
    return datetime.now(UTC).replace(tzinfo=None)


def _success_rate(successful: int, total: int) -> str:
    if not total:
        return "N/A"
    return f"{successful / total * 100:.2f}%"


class SyncHistoryStore:
    """DuckDB-backed store of sync attempts."""

    def __init__(self, db_path: Path | str, retention_days: int = 90):
        """Open (or create) the history database.

        Args:
            db_path: Path to the DuckDB file, or ``":memory:"``
            retention_days: Rows older than this are deleted by ``cleanup()``
        """
        self.db_path = Path(db_path) if str(db_path) != ":memory:" else db_path
        self.retention_days = retention_days
        self._lock = threading.Lock()

        if isinstance(self.db_path, Path):
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = duckdb.connect(str(self.db_path))
            self._conn.execute(CREATE_SEQUENCE_SQL)
            self._conn.execute(CREATE_TABLE_SQL)
            for statement in CREATE_INDEXES_SQL:
                self._conn.execute(statement)
        except Exception as e:
            logger.error(f"Failed to initialize sync history database {db_path}: {e}")
            raise

        logger.debug(f"Sync history database opened: {self.db_path}")
        self.cleanup()

    def record_sync(self, attempt: SyncAttempt) -> int:
        """Insert one attempt and return its row id."""
        with self._lock:
            row = self._conn.execute(
                """
                INSERT INTO sync_history (
                    timestamp, server_name, status, duration_ms,
                    accounts_processed, accounts_succeeded, accounts_failed,
                    error_message, error_code, correlation_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                RETURNING id
                """,
                [
                    attempt.started_at.astimezone(UTC).replace(tzinfo=None),
                    attempt.server_name,
                    attempt.status.value,
                    attempt.duration_ms,
                    attempt.accounts_processed,
                    attempt.accounts_succeeded,
                    attempt.accounts_failed,
                    attempt.error or attempt.final_sync_error,
                    attempt.error_code,
                    attempt.correlation_id,
                ],
            ).fetchone()

        record_id = int(row[0]) if row else -1
        logger.debug(
            f"Recorded sync {record_id} for {attempt.server_name}: {attempt.status.value}"
        )
        return record_id

    def _query(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        with self._lock:
            cursor = self._conn.execute(sql, params)
            columns = [d[0] for d in cursor.description or []]
            rows = cursor.fetchall()
        return [
            {
                col: value.isoformat() if isinstance(value, datetime) else value
                for col, value in zip(columns, row, strict=True)
            }
            for row in rows
        ]

    @staticmethod
    def _filters(
        server_name: str | None = None,
        status: SyncStatus | str | None = None,
        days: int | None = None,
    ) -> tuple[str, list[Any]]:
        clauses: list[str] = []
        params: list[Any] = []
        if server_name:
            clauses.append("server_name = ?")
            params.append(server_name)
        if status:
            clauses.append("status = ?")
            params.append(status.value if isinstance(status, SyncStatus) else status)
        if days:
            clauses.append("timestamp >= ?")
            params.append(_utcnow() - timedelta(days=days))
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params

    def get_history(
        self,
        server_name: str | None = None,
        status: SyncStatus | str | None = None,
        days: int | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return recorded attempts, newest first.

        Args:
            server_name: Only attempts for this server
            status: Only attempts with this status
            days: Only attempts from the last ``days`` days
            limit: Maximum number of rows
            offset: Rows to skip, for pagination

        Returns:
            list[dict]: One dict per attempt
        """
        where, params = self._filters(server_name, status, days)
        sql = f"SELECT * FROM sync_history {where} ORDER BY timestamp DESC, id DESC"  # noqa: S608
        if limit:
            sql += " LIMIT ?"
            params.append(limit)
        if offset:
            sql += " OFFSET ?"
            params.append(offset)
        return self._query(sql, params)

    def get_statistics(
        self, server_name: str | None = None, days: int | None = None
    ) -> dict[str, Any]:
        """Return aggregate statistics across recorded attempts."""
        where, params = self._filters(server_name=server_name, days=days)
        rows = self._query(
            f"""
            SELECT
                COUNT(*) AS total_syncs,
                COUNT(*) FILTER (WHERE status = 'success') AS successful_syncs,
                COUNT(*) FILTER (WHERE status = 'partial') AS partial_syncs,
                COUNT(*) FILTER (WHERE status = 'failure') AS failed_syncs,
                AVG(duration_ms) AS avg_duration_ms,
                MIN(duration_ms) AS min_duration_ms,
                MAX(duration_ms) AS max_duration_ms,
                COALESCE(SUM(accounts_processed), 0) AS total_accounts_processed,
                MIN(timestamp) AS earliest_sync,
                MAX(timestamp) AS latest_sync
            FROM sync_history
            {where}
            """,  # noqa: S608
            params,
        )
        stats = rows[0]
        stats["success_rate"] = _success_rate(
            stats["successful_syncs"], stats["total_syncs"]
        )
        return stats

    def get_statistics_by_server(self, days: int | None = None) -> list[dict[str, Any]]:
        """Return per-server aggregate statistics, ordered by server name."""
        where, params = self._filters(days=days)
        stats = self._query(
            f"""
            SELECT
                server_name,
                COUNT(*) AS total_syncs,
                COUNT(*) FILTER (WHERE status = 'success') AS successful_syncs,
                COUNT(*) FILTER (WHERE status = 'partial') AS partial_syncs,
                COUNT(*) FILTER (WHERE status = 'failure') AS failed_syncs,
                AVG(duration_ms) AS avg_duration_ms,
                MAX(timestamp) AS last_sync
            FROM sync_history
            {where}
            GROUP BY server_name
            ORDER BY server_name
            """,  # noqa: S608
            params,
        )
        for stat in stats:
            stat["success_rate"] = _success_rate(
                stat["successful_syncs"], stat["total_syncs"]
            )
        return stats

    def get_recent_errors(self, limit: int = 10) -> list[dict[str, Any]]:
        """Return the most recent failed attempts."""
        return self.get_history(status=SyncStatus.FAILURE, limit=limit)

    def cleanup(self) -> int:
        """Delete attempts older than the retention period.

        Returns:
            int: Number of deleted rows
        """
        cutoff = _utcnow() - timedelta(days=self.retention_days)
        with self._lock:
            row = self._conn.execute(
                "DELETE FROM sync_history WHERE timestamp < ?", [cutoff]
            ).fetchone()
        deleted = int(row[0]) if row else 0
        if deleted:
            logger.info(
                f"Removed {deleted} sync history records older than "
                f"{self.retention_days} days"
            )
        return deleted

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.debug("Sync history database closed")
