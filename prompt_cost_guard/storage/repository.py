"""
Repository pattern for data access.

Persists usage-variance events so estimate accuracy can be analysed later.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import UsageVarianceEvent

_COLUMNS = (
    "timestamp, request_id, tool_name, estimated_input_tokens, "
    "estimated_output_tokens, estimated_cost, actual_input_tokens, "
    "actual_output_tokens, actual_cost"
)

_INSERT = f"""
    INSERT INTO usage_variance_event ({_COLUMNS})
    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


def _to_row(event: UsageVarianceEvent) -> tuple:
    return (
        event.timestamp.isoformat(),
        event.request_id,
        event.tool_name,
        event.estimated_input_tokens,
        event.estimated_output_tokens,
        event.estimated_cost,
        event.actual_input_tokens,
        event.actual_output_tokens,
        event.actual_cost,
    )


def _from_row(row: tuple) -> UsageVarianceEvent:
    return UsageVarianceEvent(
        timestamp=datetime.fromisoformat(row[0]),
        request_id=row[1],
        tool_name=row[2],
        estimated_input_tokens=row[3],
        estimated_output_tokens=row[4],
        estimated_cost=row[5],
        actual_input_tokens=row[6],
        actual_output_tokens=row[7],
        actual_cost=row[8],
    )


class UsageRepository:
    """Repository for reading and appending usage-variance events.

    The recorder writes through ``record``; reporting reads through
    ``get_recent_events`` and ``get_usage_stats``.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def initialize(self) -> None:
        initialize_schema(self.db_path)

    def record(self, event: UsageVarianceEvent) -> None:
        insert_variance_event(event, self.db_path)

    def get_recent_events(
        self,
        tool_name: Optional[str] = None,
        days: Optional[int] = None,
        limit: int = 1000
    ) -> List[UsageVarianceEvent]:
        """Get recent variance events with optional filtering.

        Args:
            tool_name: Optional filter for specific tool
            days: Optional number of days to look back
            limit: Maximum number of events to return

        Returns:
            List of events ordered by timestamp (newest first)
        """
        conn = get_connection(self.db_path)
        try:
            query = f"SELECT {_COLUMNS} FROM usage_variance_event"
            params = []
            conditions = []

            if tool_name:
                conditions.append("tool_name = ?")
                params.append(tool_name)
            if days is not None:
                cutoff = (datetime.now() - timedelta(days=days)).isoformat()
                conditions.append("timestamp >= ?")
                params.append(cutoff)

            if conditions:
                query += " WHERE " + " AND ".join(conditions)

            query += " ORDER BY timestamp DESC LIMIT ?"
            params.append(limit)

            cursor = conn.execute(query, params)
            return [_from_row(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_usage_stats(
        self,
        tool_name: Optional[str] = None,
        days: int = 30
    ) -> Dict[str, float]:
        """Get aggregate usage and estimate drift for a time window.

        Args:
            tool_name: Optional filter for specific tool
            days: Number of days to include in the statistics

        Returns:
            Dictionary containing usage statistics
        """
        conn = get_connection(self.db_path)
        try:
            cutoff = (datetime.now() - timedelta(days=days)).isoformat()

            query = """
                SELECT
                    COUNT(*) as total_requests,
                    SUM(actual_cost) as total_cost,
                    SUM(estimated_cost) as estimated_cost,
                    SUM(actual_input_tokens + actual_output_tokens) as total_tokens,
                    AVG(actual_cost - estimated_cost) as avg_cost_variance
                FROM usage_variance_event
                WHERE timestamp >= ?
            """
            params = [cutoff]

            if tool_name:
                query += " AND tool_name = ?"
                params.append(tool_name)

            cursor = conn.execute(query, params)
            row = cursor.fetchone()

            return {
                "total_requests": row[0] or 0,
                "total_cost": float(row[1] or 0),
                "estimated_cost": float(row[2] or 0),
                "total_tokens": row[3] or 0,
                "avg_cost_variance": float(row[4] or 0),
            }
        finally:
            conn.close()


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the usage_variance_event table if it doesn't exist.

    This creates an append-only ledger of reconciled requests.
    No UPDATE or DELETE operations should ever be performed on this table.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS usage_variance_event (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL,
                request_id TEXT NOT NULL,
                tool_name TEXT NOT NULL,
                estimated_input_tokens INTEGER NOT NULL,
                estimated_output_tokens INTEGER NOT NULL,
                estimated_cost REAL NOT NULL,
                actual_input_tokens INTEGER NOT NULL,
                actual_output_tokens INTEGER NOT NULL,
                actual_cost REAL NOT NULL
            )
        """)
        conn.commit()
    finally:
        conn.close()


def insert_variance_event(event: UsageVarianceEvent, db_path: str = DEFAULT_DB_PATH) -> None:
    """Insert a single variance event into the append-only ledger.

    Args:
        event: The reconciled usage to record
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute(_INSERT, _to_row(event))
        conn.commit()
    finally:
        conn.close()
