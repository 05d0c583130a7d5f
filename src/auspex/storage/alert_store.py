"""
SQLite-based storage for the Auspex alerting engine.

Holds the tables shared with the collector and the web UI: targets, poll
results, alert rules and channels, per-target alert state, alert history,
maintenance windows and the delivery audit trail.
"""
import logging
import sqlite3
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Dict, Optional, Any, Iterable, Iterator
from contextlib import contextmanager

from pydantic import ValidationError

from ..exceptions import StoreError, StoreUnavailableError
from ..models import (
    Alert,
    AlertChannel,
    AlertRule,
    AlertState,
    AlertType,
    DeliveryRecord,
    Recurrence,
    StatusSample,
    Suppression,
    Target,
    TargetStatus,
    naive_local,
)

logger = logging.getLogger(__name__)

MEMORY_DB = ":memory:"


def _ts(value: Optional[datetime]) -> Optional[str]:
    """Serialize a timestamp so that text ordering matches time ordering.

    Aware values are converted to naive local time first; every stored
    timestamp has the same shape.
    """
    if value is None:
        return None
    return naive_local(value).isoformat(timespec="microseconds")


def _enum_value(value: Any) -> Any:
    return getattr(value, "value", value)


class AlertStore:
    """
    SQLite-based storage for alert rules, state, history and deliveries.

    Every public method raises StoreError when the database operation fails,
    so callers can abandon the current unit of work and carry on.

    Example:
        >>> store = AlertStore("auspex.db")
        >>> target = store.add_target("core-sw1", "10.0.0.1")
        >>> store.record_poll_result(target.id, "down", 0, "timeout")
        >>> store.latest_status(target.id).status
        <TargetStatus.DOWN: 'down'>
    """

    def __init__(self, db_path: str | Path = "auspex.db"):
        """
        Initialize the store and create the schema if needed.

        Args:
            db_path: Path to SQLite database file, or ":memory:"

        Raises:
            StoreUnavailableError: If the database cannot be opened
        """
        self.db_path = db_path if db_path == MEMORY_DB else Path(db_path)
        self._memory_conn: Optional[sqlite3.Connection] = None
        if db_path == MEMORY_DB:
            self._memory_conn = self._connect()
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=10)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _init_database(self) -> None:
        """Initialize database schema."""
        try:
            with self._get_connection() as conn:
                conn.executescript("""
                    CREATE TABLE IF NOT EXISTS targets (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        host TEXT NOT NULL,
                        enabled INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS poll_results (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        target_id INTEGER NOT NULL REFERENCES targets(id) ON DELETE CASCADE,
                        status TEXT NOT NULL,
                        latency_ms INTEGER NOT NULL DEFAULT 0,
                        message TEXT,
                        polled_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS alert_channels (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL,
                        type TEXT NOT NULL,
                        config TEXT NOT NULL DEFAULT '{}',
                        enabled INTEGER NOT NULL DEFAULT 1,
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS alert_rules (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        target_id INTEGER NOT NULL REFERENCES targets(id) ON DELETE CASCADE,
                        name TEXT NOT NULL DEFAULT '',
                        rule_type TEXT NOT NULL DEFAULT 'status_change',
                        severity TEXT NOT NULL DEFAULT 'warning',
                        enabled INTEGER NOT NULL DEFAULT 1,
                        channels TEXT NOT NULL DEFAULT '[]',
                        created_at TEXT NOT NULL
                    );

                    CREATE TABLE IF NOT EXISTS alert_state (
                        target_id INTEGER PRIMARY KEY,
                        last_status TEXT NOT NULL,
                        last_checked TEXT NOT NULL,
                        alert_active INTEGER NOT NULL DEFAULT 0,
                        active_alert_id INTEGER,
                        state_change_count INTEGER NOT NULL DEFAULT 0,
                        last_state_change TEXT
                    );

                    CREATE TABLE IF NOT EXISTS alert_history (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        rule_id INTEGER NOT NULL,
                        target_id INTEGER NOT NULL,
                        alert_type TEXT NOT NULL,
                        severity TEXT NOT NULL,
                        message TEXT NOT NULL,
                        fired_at TEXT NOT NULL,
                        resolved_at TEXT,
                        notification_count INTEGER NOT NULL DEFAULT 0,
                        last_notification TEXT
                    );

                    CREATE TABLE IF NOT EXISTS alert_suppressions (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        name TEXT NOT NULL DEFAULT '',
                        target_id INTEGER,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        recurrence TEXT,
                        days_of_week TEXT NOT NULL DEFAULT '[]',
                        enabled INTEGER NOT NULL DEFAULT 1,
                        reason TEXT NOT NULL DEFAULT ''
                    );

                    CREATE TABLE IF NOT EXISTS alert_deliveries (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        alert_history_id INTEGER NOT NULL REFERENCES alert_history(id),
                        channel_id INTEGER NOT NULL,
                        channel_type TEXT NOT NULL,
                        recipient TEXT NOT NULL,
                        status TEXT NOT NULL,
                        error_message TEXT,
                        delivered_at TEXT NOT NULL
                    );

                    CREATE INDEX IF NOT EXISTS idx_poll_results_target_time
                    ON poll_results(target_id, polled_at DESC);

                    CREATE INDEX IF NOT EXISTS idx_alert_history_fired
                    ON alert_history(fired_at DESC);

                    -- at most one unresolved alert per target
                    CREATE UNIQUE INDEX IF NOT EXISTS idx_alert_history_one_open
                    ON alert_history(target_id) WHERE resolved_at IS NULL;

                    CREATE INDEX IF NOT EXISTS idx_alert_deliveries_alert
                    ON alert_deliveries(alert_history_id);
                """)
                conn.commit()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot initialize database {self.db_path}: {e}") from e

        logger.info(f"Database initialized at {self.db_path}")

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database connections."""
        if self._memory_conn is not None:
            yield self._memory_conn
            return

        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Run one unit of work, committing on success and wrapping failures."""
        try:
            with self._get_connection() as conn:
                try:
                    yield conn
                    conn.commit()
                except BaseException:
                    conn.rollback()
                    raise
        except StoreError:
            raise
        except (sqlite3.Error, ValidationError, ValueError) as e:
            raise StoreError(f"{operation} failed: {e}") from e

    def ping(self) -> None:
        """
        Check that the database answers a trivial query.

        Raises:
            StoreUnavailableError: If the database cannot be reached
        """
        try:
            with self._get_connection() as conn:
                conn.execute("SELECT 1").fetchone()
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Database {self.db_path} unavailable: {e}") from e

    def close(self) -> None:
        """Close the shared connection of an in-memory store."""
        if self._memory_conn is not None:
            self._memory_conn.close()
            self._memory_conn = None

    # ------------------------------------------------------------------
    # Targets and poll results (collector interface)
    # ------------------------------------------------------------------

    def add_target(self, name: str, host: str, enabled: bool = True) -> Target:
        """Register a monitored target."""
        with self._transaction("add_target") as conn:
            cursor = conn.execute(
                "INSERT INTO targets (name, host, enabled, created_at) VALUES (?, ?, ?, ?)",
                (name, host, int(enabled), _ts(datetime.now())),
            )
            return Target(id=cursor.lastrowid, name=name, host=host)

    def record_poll_result(
        self,
        target_id: int,
        status: TargetStatus | str,
        latency_ms: int = 0,
        message: str = "",
        polled_at: Optional[datetime] = None
    ) -> None:
        """
        Append one status sample for a target.

        This is the write side of the collector contract: every poll writes an
        independent row and the engine only ever reads the newest one.
        """
        status = TargetStatus(_enum_value(status).lower())
        with self._transaction("record_poll_result") as conn:
            conn.execute(
                """
                INSERT INTO poll_results (target_id, status, latency_ms, message, polled_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (target_id, status.value, latency_ms, message, _ts(polled_at or datetime.now())),
            )

    def latest_status(self, target_id: int) -> Optional[StatusSample]:
        """
        Get the most recent status sample for a target.

        Returns:
            StatusSample or None if the target has never been polled
        """
        with self._transaction("latest_status") as conn:
            row = conn.execute(
                """
                SELECT pr.target_id, t.name, t.host, pr.status, pr.latency_ms,
                       pr.message, pr.polled_at
                FROM poll_results pr
                JOIN targets t ON t.id = pr.target_id
                WHERE pr.target_id = ?
                ORDER BY pr.polled_at DESC, pr.id DESC
                LIMIT 1
                """,
                (target_id,),
            ).fetchone()

            if row is None:
                return None

            return StatusSample(
                target_id=row["target_id"],
                target_name=row["name"],
                host=row["host"],
                status=row["status"],
                latency_ms=row["latency_ms"],
                message=row["message"],
                sampled_at=row["polled_at"],
            )

    # ------------------------------------------------------------------
    # Rules and channels
    # ------------------------------------------------------------------

    def add_rule(
        self,
        target_id: int,
        name: str = "",
        rule_type: str = "status_change",
        severity: str = "warning",
        channels: Optional[List[int]] = None,
        enabled: bool = True
    ) -> AlertRule:
        """Create an alert rule bound to one target."""
        channels = list(channels or [])
        with self._transaction("add_rule") as conn:
            cursor = conn.execute(
                """
                INSERT INTO alert_rules (target_id, name, rule_type, severity, enabled,
                                         channels, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (target_id, name, rule_type, severity, int(enabled),
                 json.dumps(channels), _ts(datetime.now())),
            )
            return AlertRule(
                id=cursor.lastrowid,
                target_id=target_id,
                name=name,
                rule_type=rule_type,
                severity=severity,
                enabled=enabled,
                channels=channels,
            )

    def load_enabled_rules(self) -> List[AlertRule]:
        """Load every enabled alert rule, ordered by id."""
        with self._transaction("load_enabled_rules") as conn:
            rows = conn.execute(
                """
                SELECT id, target_id, name, rule_type, severity, enabled, channels
                FROM alert_rules
                WHERE enabled = 1
                ORDER BY id
                """
            ).fetchall()

            return [
                AlertRule(
                    id=row["id"],
                    target_id=row["target_id"],
                    name=row["name"],
                    rule_type=row["rule_type"],
                    severity=row["severity"],
                    enabled=bool(row["enabled"]),
                    channels=json.loads(row["channels"] or "[]"),
                )
                for row in rows
            ]

    def add_channel(
        self,
        name: str,
        kind: str,
        config: Optional[Dict[str, Any]] = None,
        enabled: bool = True
    ) -> AlertChannel:
        """Create a notification channel with its kind-specific JSON config."""
        config = dict(config or {})
        kind = _enum_value(kind)
        with self._transaction("add_channel") as conn:
            cursor = conn.execute(
                """
                INSERT INTO alert_channels (name, type, config, enabled, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (name, kind, json.dumps(config), int(enabled), _ts(datetime.now())),
            )
            return AlertChannel.from_raw(cursor.lastrowid, name, kind, config, enabled)

    def load_channels(self, channel_ids: Iterable[int]) -> List[AlertChannel]:
        """
        Load channels by id.

        Channels are returned in the order of ``channel_ids``; ids with no
        matching row are logged and skipped.
        """
        channel_ids = list(channel_ids)
        if not channel_ids:
            return []

        placeholders = ",".join("?" for _ in channel_ids)
        with self._transaction("load_channels") as conn:
            rows = conn.execute(
                f"""
                SELECT id, name, type, config, enabled
                FROM alert_channels
                WHERE id IN ({placeholders})
                """,
                channel_ids,
            ).fetchall()

            by_id = {}
            for row in rows:
                try:
                    raw_config = json.loads(row["config"] or "{}")
                except json.JSONDecodeError as e:
                    logger.warning(f"Failed to parse config for channel {row['id']}: {e}")
                    raw_config = {}
                by_id[row["id"]] = AlertChannel.from_raw(
                    row["id"], row["name"], row["type"], raw_config, bool(row["enabled"])
                )

        channels = []
        for channel_id in channel_ids:
            channel = by_id.get(channel_id)
            if channel is None:
                logger.warning(f"Channel {channel_id} referenced by a rule does not exist")
                continue
            channels.append(channel)
        return channels

    # ------------------------------------------------------------------
    # Alert state
    # ------------------------------------------------------------------

    def get_state(self, target_id: int) -> Optional[AlertState]:
        """Get the correlation state of a target, or None if never observed."""
        with self._transaction("get_state") as conn:
            row = conn.execute(
                """
                SELECT target_id, last_status, last_checked, alert_active,
                       active_alert_id, state_change_count, last_state_change
                FROM alert_state
                WHERE target_id = ?
                """,
                (target_id,),
            ).fetchone()

            if row is None:
                return None

            return AlertState(
                target_id=row["target_id"],
                last_status=row["last_status"],
                last_checked=row["last_checked"],
                alert_active=bool(row["alert_active"]),
                active_alert_id=row["active_alert_id"],
                state_change_count=row["state_change_count"],
                last_state_change=row["last_state_change"],
            )

    def save_state(self, state: AlertState) -> None:
        """Insert or update the correlation state of a target."""
        with self._transaction("save_state") as conn:
            self._upsert_state(conn, state)

    def _upsert_state(self, conn: sqlite3.Connection, state: AlertState) -> None:
        conn.execute(
            """
            INSERT INTO alert_state (target_id, last_status, last_checked, alert_active,
                                     active_alert_id, state_change_count, last_state_change)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT (target_id) DO UPDATE
            SET last_status = excluded.last_status,
                last_checked = excluded.last_checked,
                alert_active = excluded.alert_active,
                active_alert_id = excluded.active_alert_id,
                state_change_count = excluded.state_change_count,
                last_state_change = excluded.last_state_change
            """,
            (
                state.target_id,
                state.last_status.value,
                _ts(state.last_checked),
                int(state.alert_active),
                state.active_alert_id,
                state.state_change_count,
                _ts(state.last_state_change),
            ),
        )

    def save_transition(
        self,
        state: AlertState,
        rule: AlertRule,
        alert_type: AlertType,
        message: str,
        at: datetime
    ) -> Optional[Alert]:
        """
        Write an alert lifecycle change together with the target state.

        The alert rows and the state row are committed in one transaction,
        so a failure leaves neither behind and the next cycle sees the same
        transition again.

        For ``opened`` a new alert is created and becomes the active alert of
        ``state``. For ``recovered`` the active alert is resolved and a
        recovery notice, resolved at once, is created; when the active alert
        was already resolved no notice is created. The state is cleared in
        both recovery cases.

        Args:
            state: Target state, already updated with the new status
            rule: Rule that fired
            alert_type: opened or recovered
            message: Rendered message for the new alert
            at: Transition time

        Returns:
            The created alert, or None when no recovery notice was needed

        Raises:
            StoreError: If the write fails (nothing is committed)
        """
        alert = None
        with self._transaction("save_transition") as conn:
            if alert_type == AlertType.OPENED:
                alert = self._insert_alert(conn, rule, AlertType.OPENED, message, at)
                state.activate(alert.id)
            else:
                if self._resolve(conn, state.active_alert_id, at):
                    alert = self._insert_alert(
                        conn, rule, AlertType.RECOVERED, message, at, resolved_at=at
                    )
                else:
                    logger.warning(
                        f"Alert #{state.active_alert_id} was already resolved, "
                        "no recovery notice created"
                    )
                state.clear()
            self._upsert_state(conn, state)

        if alert is not None:
            logger.info(
                f"Created alert #{alert.id} for target {rule.target_id} "
                f"type={alert_type.value} severity={rule.severity}"
            )
        return alert

    # ------------------------------------------------------------------
    # Alert history
    # ------------------------------------------------------------------

    def create_alert(
        self,
        rule: AlertRule,
        alert_type: AlertType,
        message: str,
        fired_at: datetime,
        resolved_at: Optional[datetime] = None
    ) -> Alert:
        """
        Create an alert record for a rule.

        Args:
            rule: Rule that fired (provides target and severity)
            alert_type: opened or recovered
            message: Rendered message
            fired_at: Creation time
            resolved_at: Set for self-contained notices that are born resolved

        Raises:
            StoreError: Also raised when the target already has an open alert
        """
        with self._transaction("create_alert") as conn:
            alert = self._insert_alert(conn, rule, alert_type, message, fired_at, resolved_at)

        logger.info(
            f"Created alert #{alert.id} for target {rule.target_id} "
            f"type={alert_type.value} severity={rule.severity}"
        )
        return alert

    def _insert_alert(
        self,
        conn: sqlite3.Connection,
        rule: AlertRule,
        alert_type: AlertType,
        message: str,
        fired_at: datetime,
        resolved_at: Optional[datetime] = None
    ) -> Alert:
        cursor = conn.execute(
            """
            INSERT INTO alert_history (rule_id, target_id, alert_type, severity, message,
                                       fired_at, resolved_at, notification_count)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0)
            """,
            (rule.id, rule.target_id, alert_type.value, rule.severity, message,
             _ts(fired_at), _ts(resolved_at)),
        )
        return Alert(
            id=cursor.lastrowid,
            rule_id=rule.id,
            target_id=rule.target_id,
            alert_type=alert_type,
            severity=rule.severity,
            message=message,
            fired_at=fired_at,
            resolved_at=resolved_at,
        )

    def resolve_alert(self, alert_id: int, resolved_at: datetime) -> bool:
        """
        Mark an alert as resolved.

        Returns:
            True if an unresolved alert was updated, False if it was already
            resolved or does not exist
        """
        with self._transaction("resolve_alert") as conn:
            return self._resolve(conn, alert_id, resolved_at)

    def _resolve(self, conn: sqlite3.Connection, alert_id: int, resolved_at: datetime) -> bool:
        cursor = conn.execute(
            "UPDATE alert_history SET resolved_at = ? WHERE id = ? AND resolved_at IS NULL",
            (_ts(resolved_at), alert_id),
        )
        if cursor.rowcount > 0:
            logger.info(f"Resolved alert #{alert_id}")
            return True
        return False

    def record_notification(self, alert_id: int, at: datetime) -> None:
        """Count one dispatch call for an alert and stamp its time."""
        with self._transaction("record_notification") as conn:
            conn.execute(
                """
                UPDATE alert_history
                SET notification_count = notification_count + 1,
                    last_notification = ?
                WHERE id = ?
                """,
                (_ts(at), alert_id),
            )

    def get_alert(self, alert_id: int) -> Optional[Alert]:
        """Retrieve a specific alert."""
        with self._transaction("get_alert") as conn:
            row = conn.execute(
                "SELECT * FROM alert_history WHERE id = ?", (alert_id,)
            ).fetchone()
            return self._row_to_alert(row) if row else None

    def active_alerts(self) -> List[Alert]:
        """Unresolved alerts, newest first."""
        with self._transaction("active_alerts") as conn:
            rows = conn.execute(
                """
                SELECT * FROM alert_history
                WHERE resolved_at IS NULL
                ORDER BY fired_at DESC, id DESC
                """
            ).fetchall()
            return [self._row_to_alert(row) for row in rows]

    def open_alert_for_target(self, target_id: int) -> Optional[Alert]:
        """The unresolved alert of a target, if any (there is at most one)."""
        with self._transaction("open_alert_for_target") as conn:
            row = conn.execute(
                "SELECT * FROM alert_history WHERE target_id = ? AND resolved_at IS NULL",
                (target_id,),
            ).fetchone()
            return self._row_to_alert(row) if row else None

    def alert_history(
        self,
        target_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Alert]:
        """
        Alert history with pagination, newest first.

        Args:
            target_id: Optional filter by target
            limit: Maximum rows to return
            offset: Rows to skip
        """
        query = "SELECT * FROM alert_history"
        params: List[Any] = []
        if target_id is not None:
            query += " WHERE target_id = ?"
            params.append(target_id)
        query += " ORDER BY fired_at DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        with self._transaction("alert_history") as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_alert(row) for row in rows]

    def alert_stats(self, hours: int = 24, now: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Alert statistics over a recent window.

        Args:
            hours: Time window for stats
            now: Reference time (defaults to the current time)

        Returns:
            Dictionary with alert counts by type, state and severity
        """
        cutoff = (now or datetime.now()) - timedelta(hours=hours)
        with self._transaction("alert_stats") as conn:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_alerts,
                    COALESCE(SUM(alert_type = ?), 0) AS opened_alerts,
                    COALESCE(SUM(alert_type = ?), 0) AS recovered_alerts,
                    COALESCE(SUM(resolved_at IS NULL), 0) AS active_alerts,
                    COALESCE(SUM(severity = 'critical'), 0) AS critical_alerts,
                    COALESCE(SUM(severity = 'warning'), 0) AS warning_alerts,
                    COALESCE(SUM(severity = 'info'), 0) AS info_alerts,
                    COUNT(DISTINCT target_id) AS affected_targets
                FROM alert_history
                WHERE fired_at > ?
                """,
                (AlertType.OPENED.value, AlertType.RECOVERED.value, _ts(cutoff)),
            ).fetchone()

        stats = dict(row)
        stats["time_window_hours"] = hours
        return stats

    @staticmethod
    def _row_to_alert(row: sqlite3.Row) -> Alert:
        return Alert(
            id=row["id"],
            rule_id=row["rule_id"],
            target_id=row["target_id"],
            alert_type=row["alert_type"],
            severity=row["severity"],
            message=row["message"],
            fired_at=row["fired_at"],
            resolved_at=row["resolved_at"],
            notification_count=row["notification_count"],
            last_notification=row["last_notification"],
        )

    # ------------------------------------------------------------------
    # Maintenance windows
    # ------------------------------------------------------------------

    def add_suppression(
        self,
        start_time: datetime,
        end_time: datetime,
        target_id: Optional[int] = None,
        name: str = "",
        recurrence: Optional[Recurrence | str] = None,
        days_of_week: Optional[List[int]] = None,
        enabled: bool = True,
        reason: str = ""
    ) -> Suppression:
        """Create a maintenance window (target_id None means every target)."""
        suppression = Suppression(
            id=0,
            name=name,
            target_id=target_id,
            start_time=start_time,
            end_time=end_time,
            recurrence=recurrence,
            days_of_week=days_of_week or [],
            enabled=enabled,
            reason=reason,
        )
        with self._transaction("add_suppression") as conn:
            cursor = conn.execute(
                """
                INSERT INTO alert_suppressions (name, target_id, start_time, end_time,
                                                recurrence, days_of_week, enabled, reason)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    suppression.name,
                    suppression.target_id,
                    _ts(suppression.start_time),
                    _ts(suppression.end_time),
                    suppression.recurrence.value if suppression.recurrence else None,
                    json.dumps(suppression.days_of_week),
                    int(suppression.enabled),
                    suppression.reason,
                ),
            )
            suppression.id = cursor.lastrowid
        return suppression

    def load_suppressions(self, target_id: int) -> List[Suppression]:
        """Enabled maintenance windows scoped to ``target_id`` or global."""
        with self._transaction("load_suppressions") as conn:
            rows = conn.execute(
                """
                SELECT * FROM alert_suppressions
                WHERE enabled = 1 AND (target_id = ? OR target_id IS NULL)
                ORDER BY id
                """,
                (target_id,),
            ).fetchall()
            return [self._row_to_suppression(row) for row in rows]

    def list_suppressions(
        self,
        active_only: bool = False,
        at: Optional[datetime] = None
    ) -> List[Suppression]:
        """
        List maintenance windows, most recent start first.

        With ``active_only``, returns enabled windows that are either one-time
        windows covering ``at`` or recurring windows.
        """
        query = "SELECT * FROM alert_suppressions"
        params: List[Any] = []
        if active_only:
            query += """
                WHERE enabled = 1
                  AND ((recurrence IS NULL AND start_time <= ? AND end_time >= ?)
                       OR recurrence IS NOT NULL)
            """
            moment = _ts(at or datetime.now())
            params.extend([moment, moment])
        query += " ORDER BY start_time DESC, id DESC"

        with self._transaction("list_suppressions") as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_suppression(row) for row in rows]

    @staticmethod
    def _row_to_suppression(row: sqlite3.Row) -> Suppression:
        return Suppression(
            id=row["id"],
            name=row["name"],
            target_id=row["target_id"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            recurrence=row["recurrence"],
            days_of_week=json.loads(row["days_of_week"] or "[]"),
            enabled=bool(row["enabled"]),
            reason=row["reason"],
        )

    # ------------------------------------------------------------------
    # Delivery audit trail
    # ------------------------------------------------------------------

    def record_delivery(self, record: DeliveryRecord) -> DeliveryRecord:
        """Append one delivery attempt to the audit trail."""
        with self._transaction("record_delivery") as conn:
            cursor = conn.execute(
                """
                INSERT INTO alert_deliveries (alert_history_id, channel_id, channel_type,
                                              recipient, status, error_message, delivered_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.alert_id,
                    record.channel_id,
                    record.channel_type,
                    record.recipient,
                    record.status.value,
                    record.error_message,
                    _ts(record.delivered_at),
                ),
            )
            return record.model_copy(update={"id": cursor.lastrowid})

    def deliveries_for_alert(self, alert_id: int) -> List[DeliveryRecord]:
        """Delivery attempts for an alert, in the order they were made."""
        with self._transaction("deliveries_for_alert") as conn:
            rows = conn.execute(
                """
                SELECT * FROM alert_deliveries
                WHERE alert_history_id = ?
                ORDER BY id
                """,
                (alert_id,),
            ).fetchall()

            return [
                DeliveryRecord(
                    id=row["id"],
                    alert_id=row["alert_history_id"],
                    channel_id=row["channel_id"],
                    channel_type=row["channel_type"],
                    recipient=row["recipient"],
                    status=row["status"],
                    error_message=row["error_message"],
                    delivered_at=row["delivered_at"],
                )
                for row in rows
            ]
