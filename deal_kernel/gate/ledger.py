"""
Decision Ledger — append-only record of review decisions and feedback.

Every approve, edit, reject, auto-send, thumbs up/down and threshold edit
becomes one OutcomeEvent row. The calibration component reads from here.

Behavioral Contract:
- Append-only. No event is ever modified or deleted.
- Each row is hashed and chained to the previous row (tamper-evident).
- Queryable by situation, draft and recency.
"""

import hashlib
import sqlite3
from typing import List, Optional

from deal_kernel.models.confidence import OutcomeEvent


class DecisionLedger:
    """
    Append-only outcome ledger.
    Backed by SQLite; ``:memory:`` by default.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS outcomes (
                id TEXT PRIMARY KEY,
                situation TEXT NOT NULL,
                kind TEXT NOT NULL,
                draft_id TEXT,
                recorded_at TEXT NOT NULL,
                signature TEXT NOT NULL,
                prior_hash TEXT,
                record_json TEXT NOT NULL
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_outcomes_situation ON outcomes(situation)
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_outcomes_draft_id ON outcomes(draft_id)
        """)
        self._conn.commit()

    @staticmethod
    def _sign(record_json: str, prior_hash: Optional[str]) -> str:
        return hashlib.sha256(f"{prior_hash or ''}|{record_json}".encode()).hexdigest()

    def append(self, event: OutcomeEvent) -> OutcomeEvent:
        prior_hash = self._get_latest_hash()
        record_json = event.model_dump_json()

        self._conn.execute(
            """
            INSERT INTO outcomes (
                id, situation, kind, draft_id, recorded_at,
                signature, prior_hash, record_json
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event.id,
                event.situation,
                event.kind.value,
                event.draft_id,
                event.recorded_at.isoformat(),
                self._sign(record_json, prior_hash),
                prior_hash,
                record_json,
            ),
        )
        self._conn.commit()
        return event

    def _get_latest_hash(self) -> Optional[str]:
        row = self._conn.execute(
            "SELECT signature FROM outcomes ORDER BY rowid DESC LIMIT 1"
        ).fetchone()
        return row["signature"] if row else None

    def _deserialize(self, row: sqlite3.Row) -> OutcomeEvent:
        return OutcomeEvent.model_validate_json(row["record_json"])

    def get_by_id(self, event_id: str) -> Optional[OutcomeEvent]:
        row = self._conn.execute(
            "SELECT record_json FROM outcomes WHERE id = ?", (event_id,)
        ).fetchone()
        return self._deserialize(row) if row else None

    def query_by_situation(self, situation: str) -> List[OutcomeEvent]:
        """All outcomes for a situation, oldest first."""
        rows = self._conn.execute(
            "SELECT record_json FROM outcomes WHERE situation = ? ORDER BY rowid",
            (situation,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_by_draft(self, draft_id: str) -> List[OutcomeEvent]:
        rows = self._conn.execute(
            "SELECT record_json FROM outcomes WHERE draft_id = ? ORDER BY rowid",
            (draft_id,),
        ).fetchall()
        return [self._deserialize(r) for r in rows]

    def query_recent(self, limit: int = 50) -> List[OutcomeEvent]:
        rows = self._conn.execute(
            "SELECT record_json FROM outcomes ORDER BY rowid DESC LIMIT ?",
            (limit,),
        ).fetchall()
        return [self._deserialize(r) for r in reversed(rows)]

    def verify_chain_integrity(self) -> bool:
        """Verify no rows have been altered since they were written."""
        rows = self._conn.execute(
            "SELECT record_json, signature, prior_hash FROM outcomes ORDER BY rowid"
        ).fetchall()

        previous: Optional[str] = None
        for row in rows:
            if row["prior_hash"] != previous:
                return False
            if row["signature"] != self._sign(row["record_json"], previous):
                return False
            previous = row["signature"]
        return True

    def count(self, situation: Optional[str] = None) -> int:
        if situation is None:
            row = self._conn.execute("SELECT COUNT(*) as cnt FROM outcomes").fetchone()
        else:
            row = self._conn.execute(
                "SELECT COUNT(*) as cnt FROM outcomes WHERE situation = ?", (situation,)
            ).fetchone()
        return row["cnt"]

    def close(self) -> None:
        self._conn.close()
