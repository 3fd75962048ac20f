"""
Audit Log Store — append-only, hash-chained record of what the assistant said.

Every delivered interruption produces one AuditRecord; every user reply to an
interruption produces another.

Behavioral Contract:
- Append-only. No record is ever modified or deleted.
- Each record is hashed and chained to the previous record (tamper-evident).
- Queryable by subject, trigger kind, and recency.
"""

import hashlib
import json
import sqlite3
import threading
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from proactive_kernel.models.audit import AuditEventType, AuditRecord
from proactive_kernel.models.interruption import Interruption, TriggerKind


def _sign(record: AuditRecord) -> str:
    record_dict = record.model_dump(mode="json")
    # Zero out signature before hashing (it's what we're computing)
    record_dict["signature"] = ""
    record_bytes = json.dumps(record_dict, sort_keys=True, default=str).encode()
    return hashlib.sha256(record_bytes).hexdigest()


class AuditLogStore:
    """
    Append-only audit log.
    Prototype: SQLite. Production: the hosted store's event table.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._write_lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        """Create the audit table if it doesn't exist."""
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                id TEXT PRIMARY KEY,
                subject_id TEXT NOT NULL,
                event_type TEXT NOT NULL,
                interruption_id TEXT NOT NULL,
                trigger TEXT,
                priority TEXT,
                recorded_at TEXT NOT NULL,
                signature TEXT NOT NULL,
                prior_record_hash TEXT,
                record_json TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_subject ON audit_log(subject_id)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_trigger ON audit_log(trigger)
        """)
        self._conn.commit()

    def append(self, record: AuditRecord) -> AuditRecord:
        """Append a record, signing it and chaining it to its predecessor."""
        with self._write_lock:
            record.prior_record_hash = self._get_latest_hash()
            record.signature = _sign(record)

            self._conn.execute(
                """
                INSERT INTO audit_log (
                    id, subject_id, event_type, interruption_id, trigger,
                    priority, recorded_at, signature, prior_record_hash, record_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.id,
                    record.subject_id,
                    record.event_type.value,
                    record.interruption_id,
                    record.trigger.value if record.trigger else None,
                    record.priority.value if record.priority else None,
                    record.recorded_at.isoformat(),
                    record.signature,
                    record.prior_record_hash,
                    record.model_dump_json(),
                ),
            )
            self._conn.commit()
        return record

    def record_interruption(
        self, subject_id: str, interruption: Interruption, recorded_at: datetime
    ) -> AuditRecord:
        """Log one delivered interruption: trigger, message, priority, time."""
        return self.append(AuditRecord(
            id=f"audit_{uuid4().hex[:12]}",
            subject_id=subject_id,
            event_type=AuditEventType.INTERRUPTION,
            interruption_id=interruption.id,
            trigger=interruption.trigger,
            message=interruption.message,
            priority=interruption.priority,
            recorded_at=recorded_at,
        ))

    def record_response(
        self, subject_id: str, interruption_id: str, response: str, recorded_at: datetime
    ) -> AuditRecord:
        """Log the user's reply to an interruption."""
        return self.append(AuditRecord(
            id=f"audit_{uuid4().hex[:12]}",
            subject_id=subject_id,
            event_type=AuditEventType.RESPONSE,
            interruption_id=interruption_id,
            message=response,
            response=response,
            recorded_at=recorded_at,
        ))

    def _get_latest_hash(self) -> Optional[str]:
        """Get the signature of the most recent record."""
        row = self._conn.execute(
            "SELECT signature FROM audit_log ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> AuditRecord:
        return AuditRecord.model_validate_json(row["record_json"])

    def query_recent(self, limit: int = 50) -> List[AuditRecord]:
        """Most recent records, oldest first."""
        rows = self._conn.execute(
            "SELECT record_json FROM audit_log ORDER BY rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._deserialize(r) for r in reversed(rows)]

    def query_by_subject(self, subject_id: str) -> List[AuditRecord]:
        rows = self._conn.execute(
            "SELECT record_json FROM audit_log WHERE subject_id = ? ORDER BY rowid",
            (subject_id,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_trigger(self, trigger: TriggerKind) -> List[AuditRecord]:
        rows = self._conn.execute(
            "SELECT record_json FROM audit_log WHERE trigger = ? ORDER BY rowid",
            (trigger.value,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def verify_chain_integrity(self) -> bool:
        """Verify no records have been tampered with."""
        rows = self._conn.execute(
            "SELECT record_json, signature FROM audit_log ORDER BY rowid"
        ).fetchall()

        prior_sig = None
        for row in rows:
            record = self._deserialize(row)
            if record.signature != row["signature"] or _sign(record) != record.signature:
                return False
            if record.prior_record_hash != prior_sig:
                return False
            prior_sig = record.signature

        return True

    def count(self) -> int:
        """Total number of audit records."""
        row = self._conn.execute("SELECT COUNT(*) as cnt FROM audit_log").fetchone()
        return row["cnt"]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
