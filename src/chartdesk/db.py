"""SQLite database layer for chartdesk.

ChartdeskDB wraps a SQLite database with:
- Schema initialization from schema.sql
- Append-only record snapshots with SHA-256 content hashes (identical
  saves are skipped)
- Read-only query helper returning list[dict]
- Command logging for audit trail
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from chartdesk.billing import billing_totals
from chartdesk.models import PatientRecord
from chartdesk.serialize import record_from_dict, record_to_json

logger = logging.getLogger(__name__)


class SaveResult:
    """Result of a save_record operation."""

    def __init__(self, snapshot_id: int | None, content_hash: str, skipped: bool):
        self.snapshot_id = snapshot_id
        self.content_hash = content_hash
        self.skipped = skipped

    def __repr__(self):
        return (
            f"SaveResult(snapshot_id={self.snapshot_id!r}, "
            f"content_hash={self.content_hash[:12]!r}, skipped={self.skipped!r})"
        )


def _content_hash(payload: str) -> str:
    return hashlib.sha256(payload.encode()).hexdigest()


def _get_schema_sql() -> str:
    """Read the schema.sql file bundled with the package."""
    schema_path = Path(__file__).parent / "schema.sql"
    return schema_path.read_text()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ChartdeskDB:
    """SQLite-backed patient record store."""

    def __init__(self, db_path: str = "chartdesk.db"):
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA foreign_keys=ON")

    def init_schema(self) -> None:
        """Create all tables from schema.sql (IF NOT EXISTS)."""
        self.conn.executescript(_get_schema_sql())

    def save_record(self, record: PatientRecord, reason: str = "") -> SaveResult:
        """Append a snapshot of the record unless it matches the latest one.

        Args:
            record: The full patient record to persist.
            reason: Free-text label stored with the snapshot (e.g. the
                command that produced it).

        Returns:
            SaveResult with the new snapshot id, or skipped=True when the
            content hash equals the most recent snapshot for this patient.
        """
        patient = record.patient
        payload = record_to_json(record)
        chash = _content_hash(payload)

        last = self.conn.execute(
            "SELECT content_hash FROM record_snapshots WHERE patient_id = ? "
            "ORDER BY id DESC LIMIT 1",
            (patient.id,),
        ).fetchone()
        if last and last["content_hash"] == chash:
            return SaveResult(snapshot_id=None, content_hash=chash, skipped=True)

        now = _now_iso()
        counts = record.counts()
        totals = billing_totals(record.charges)
        with self.conn:
            self.conn.execute(
                "INSERT INTO patients (id, first_name, last_name, date_of_birth, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET first_name = excluded.first_name, "
                "last_name = excluded.last_name, date_of_birth = excluded.date_of_birth, "
                "updated_at = excluded.updated_at",
                (
                    patient.id,
                    patient.first_name,
                    patient.last_name,
                    patient.date_of_birth.isoformat() if patient.date_of_birth else "",
                    now,
                    now,
                ),
            )
            cursor = self.conn.execute(
                "INSERT INTO record_snapshots (patient_id, saved_at, reason, content_hash, "
                "charges_count, events_count, memos_count, alerts_count, total_outstanding, payload) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    patient.id,
                    now,
                    reason,
                    chash,
                    counts["charges"],
                    counts["events"],
                    counts["memos"],
                    counts["alerts"],
                    str(totals["total_outstanding"]),
                    payload,
                ),
            )
        logger.debug("Saved snapshot %s for patient %s (%s)", cursor.lastrowid, patient.id, reason)
        return SaveResult(snapshot_id=cursor.lastrowid, content_hash=chash, skipped=False)

    def load_record(self, patient_id: str) -> PatientRecord | None:
        """Return the latest record for a patient, or None if never saved."""
        row = self.conn.execute(
            "SELECT payload FROM record_snapshots WHERE patient_id = ? ORDER BY id DESC LIMIT 1",
            (patient_id,),
        ).fetchone()
        if row is None:
            return None
        return record_from_dict(json.loads(row["payload"]))

    def load_snapshot(self, snapshot_id: int) -> PatientRecord | None:
        row = self.conn.execute(
            "SELECT payload FROM record_snapshots WHERE id = ?", (snapshot_id,)
        ).fetchone()
        if row is None:
            return None
        return record_from_dict(json.loads(row["payload"]))

    def history(self, patient_id: str) -> list[dict]:
        """Snapshot metadata for a patient, newest first (payload excluded)."""
        return self.query(
            "SELECT id, saved_at, reason, content_hash, charges_count, events_count, "
            "memos_count, alerts_count, total_outstanding "
            "FROM record_snapshots WHERE patient_id = ? ORDER BY id DESC",
            (patient_id,),
        )

    def patients(self) -> list[dict]:
        return self.query(
            "SELECT id, first_name, last_name, date_of_birth, updated_at "
            "FROM patients ORDER BY last_name, first_name"
        )

    def log_command(
        self,
        patient_id: str,
        command: str,
        outcome: str,
        error_code: str = "",
        detail: str = "",
    ) -> int:
        """Record a command attempt (ok or rejected). Returns the log row id."""
        with self.conn:
            cursor = self.conn.execute(
                "INSERT INTO command_log (patient_id, logged_at, command, outcome, error_code, detail) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (patient_id, _now_iso(), command, outcome, error_code, detail),
            )
        return cursor.lastrowid or 0

    def command_log(self, patient_id: str, limit: int = 50) -> list[dict]:
        return self.query(
            "SELECT id, logged_at, command, outcome, error_code, detail "
            "FROM command_log WHERE patient_id = ? ORDER BY id DESC LIMIT ?",
            (patient_id, limit),
        )

    def query(self, sql: str, params: tuple = ()) -> list[dict]:
        """Execute a read-only SQL query and return results as list of dicts."""
        cursor = self.conn.execute(sql, params)
        columns = [desc[0] for desc in cursor.description] if cursor.description else []
        return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]

    def summary(self) -> dict[str, int]:
        """Return row counts for all tables."""
        rows = self.query(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' "
            "ORDER BY name"
        )
        result = {}
        for r in rows:
            table = r["name"]
            row = self.conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()
            result[table] = row[0]
        return result

    def close(self) -> None:
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
