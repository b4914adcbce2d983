"""SQLite database for persisted alerts, recorded metrics, and captured log entries."""
import json
import sqlite3
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path

from models.alerts import Alert
from models.enums import Aggregation

logger = logging.getLogger("pmonitor.db")

# Columns update_alert() may touch. Type, severity, title, message and
# created_at are fixed once an alert is persisted.
MUTABLE_ALERT_FIELDS = {
    "acknowledged", "acknowledged_by", "acknowledged_at",
    "resolved_at", "retry_count", "metadata",
}

_AGGREGATE_SQL = {
    Aggregation.AVG: "AVG(value)",
    Aggregation.SUM: "SUM(value)",
    Aggregation.COUNT: "COUNT(*)",
    Aggregation.MIN: "MIN(value)",
    Aggregation.MAX: "MAX(value)",
}


def _ts(dt):
    """Normalize a datetime to a sortable UTC ISO string."""
    if dt is None:
        return None
    if isinstance(dt, str):
        return dt
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_ts(value):
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _as_list(value):
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [v.value if hasattr(v, "value") else v for v in value]
    return [value.value if hasattr(value, "value") else value]


class Database:
    def __init__(self, db_path="data/monitoring.db"):
        self.db_path = db_path
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS system_alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                type TEXT NOT NULL,
                severity TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT,
                metadata TEXT DEFAULT '{}',
                channels TEXT DEFAULT '[]',
                created_at TEXT NOT NULL,
                acknowledged INTEGER DEFAULT 0,
                acknowledged_by TEXT,
                acknowledged_at TEXT,
                resolved_at TEXT,
                retry_count INTEGER DEFAULT 0
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_created
                ON system_alerts(created_at);

            CREATE INDEX IF NOT EXISTS idx_alerts_type
                ON system_alerts(type, created_at);

            CREATE TABLE IF NOT EXISTS metrics (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                value REAL NOT NULL,
                recorded_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_metrics_name_time
                ON metrics(name, recorded_at);

            CREATE TABLE IF NOT EXISTS log_entries (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                level TEXT NOT NULL,
                logger TEXT,
                message TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_logs_created
                ON log_entries(created_at);
        """)
        self.conn.commit()

    # --- Alerts ---

    def insert_alert(self, alert: Alert) -> int:
        with self._lock:
            cur = self.conn.execute("""
                INSERT INTO system_alerts
                (type, severity, title, message, metadata, channels, created_at,
                 acknowledged, acknowledged_by, acknowledged_at, resolved_at, retry_count)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                alert.type.value, alert.severity.value, alert.title, alert.message,
                json.dumps(alert.metadata or {}, default=str),
                json.dumps([c.value for c in alert.channels]),
                _ts(alert.created_at), int(alert.acknowledged), alert.acknowledged_by,
                _ts(alert.acknowledged_at), _ts(alert.resolved_at), alert.retry_count,
            ))
            self.conn.commit()
        logger.debug(f"Stored alert {cur.lastrowid} ({alert.alert_class})")
        return cur.lastrowid

    def get_alert(self, alert_id):
        with self._lock:
            row = self.conn.execute(
                "SELECT * FROM system_alerts WHERE id = ?", (alert_id,)
            ).fetchone()
        return self._row_to_alert(row) if row else None

    def list_alerts(self, severity=None, alert_type=None, start=None, end=None,
                    limit=100, offset=0):
        """Filtered, newest-first page of alerts plus the unpaginated total."""
        where = " WHERE 1=1"
        params = []
        severities = _as_list(severity)
        if severities:
            where += f" AND severity IN ({','.join('?' * len(severities))})"
            params.extend(severities)
        types = _as_list(alert_type)
        if types:
            where += f" AND type IN ({','.join('?' * len(types))})"
            params.extend(types)
        if start:
            where += " AND created_at >= ?"
            params.append(_ts(start))
        if end:
            where += " AND created_at <= ?"
            params.append(_ts(end))

        with self._lock:
            total = self.conn.execute(
                f"SELECT COUNT(*) as cnt FROM system_alerts{where}", params
            ).fetchone()["cnt"]
            rows = self.conn.execute(
                f"SELECT * FROM system_alerts{where} ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
                params + [limit, offset],
            ).fetchall()
        return {"items": [self._row_to_alert(r) for r in rows], "total": total}

    def update_alert(self, alert_id, patch: dict) -> bool:
        unknown = set(patch) - MUTABLE_ALERT_FIELDS
        if unknown:
            raise ValueError(f"Cannot update alert fields: {sorted(unknown)}")
        if not patch:
            return False

        columns = []
        params = []
        for key, val in patch.items():
            if key == "metadata":
                val = json.dumps(val or {}, default=str)
            elif key == "acknowledged":
                val = int(bool(val))
            elif isinstance(val, datetime):
                val = _ts(val)
            columns.append(f"{key} = ?")
            params.append(val)
        params.append(alert_id)

        with self._lock:
            cur = self.conn.execute(
                f"UPDATE system_alerts SET {', '.join(columns)} WHERE id = ?", params
            )
            self.conn.commit()
        return cur.rowcount > 0

    def find_unresolved_alert(self, alert_type, since):
        """Most recent unresolved alert of a type created at or after `since`."""
        t = alert_type.value if hasattr(alert_type, "value") else alert_type
        with self._lock:
            row = self.conn.execute("""
                SELECT * FROM system_alerts
                WHERE type = ? AND resolved_at IS NULL AND created_at >= ?
                ORDER BY created_at DESC LIMIT 1
            """, (t, _ts(since))).fetchone()
        return self._row_to_alert(row) if row else None

    def get_alerts_since(self, since, alert_types=None):
        """Alerts created at or after `since`, oldest first."""
        query = "SELECT * FROM system_alerts WHERE created_at >= ?"
        params = [_ts(since)]
        types = _as_list(alert_types)
        if types:
            query += f" AND type IN ({','.join('?' * len(types))})"
            params.extend(types)
        query += " ORDER BY created_at ASC, id ASC"
        with self._lock:
            rows = self.conn.execute(query, params).fetchall()
        return [self._row_to_alert(r) for r in rows]

    def _row_to_alert(self, row) -> Alert:
        return Alert(
            id=row["id"],
            type=row["type"],
            severity=row["severity"],
            title=row["title"],
            message=row["message"] or "",
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            channels=json.loads(row["channels"]) if row["channels"] else [],
            created_at=_parse_ts(row["created_at"]),
            acknowledged=bool(row["acknowledged"]),
            acknowledged_by=row["acknowledged_by"],
            acknowledged_at=_parse_ts(row["acknowledged_at"]),
            resolved_at=_parse_ts(row["resolved_at"]),
            retry_count=row["retry_count"] or 0,
        )

    # --- Metrics ---

    def record_metric(self, name, value, recorded_at=None):
        recorded_at = recorded_at or datetime.now(timezone.utc)
        with self._lock:
            self.conn.execute(
                "INSERT INTO metrics (name, value, recorded_at) VALUES (?, ?, ?)",
                (name, float(value), _ts(recorded_at)),
            )
            self.conn.commit()

    def query_metric(self, names, start, end, aggregation=Aggregation.AVG):
        """Aggregate recorded values in [start, end]. None when there is no data."""
        names = _as_list(names)
        if not names:
            return None
        select = _AGGREGATE_SQL[Aggregation(aggregation)]
        with self._lock:
            row = self.conn.execute(f"""
                SELECT {select} as aggregated_value, COUNT(*) as samples
                FROM metrics
                WHERE name IN ({','.join('?' * len(names))})
                  AND recorded_at >= ? AND recorded_at <= ?
            """, names + [_ts(start), _ts(end)]).fetchone()
        if row["samples"] == 0:
            return None
        return float(row["aggregated_value"])

    # --- Log entries ---

    def save_log_entry(self, level, logger_name, message, created_at=None):
        created_at = created_at or datetime.now(timezone.utc)
        with self._lock:
            if self.conn is None:
                return
            self.conn.execute(
                "INSERT INTO log_entries (level, logger, message, created_at) VALUES (?, ?, ?, ?)",
                (level, logger_name, message, _ts(created_at)),
            )
            self.conn.commit()

    def count_log_matches(self, pattern, start, end):
        """Case-insensitive substring match count over the message and level."""
        like = f"%{pattern}%"
        with self._lock:
            row = self.conn.execute("""
                SELECT COUNT(*) as cnt FROM log_entries
                WHERE created_at >= ? AND created_at <= ?
                  AND (message LIKE ? OR level LIKE ?)
            """, (_ts(start), _ts(end), like, like)).fetchone()
        return row["cnt"]
