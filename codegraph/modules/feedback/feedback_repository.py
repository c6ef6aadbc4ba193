"""
Feedback persistence
Durable audit log of feedback events and the truth-value updates they caused
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import UUID

from codegraph.core.interfaces.feedback_repository_interface import FeedbackRepositoryInterface
from codegraph.core.types.common_types import FeedbackEvent
from codegraph.modules.feedback.propagation import PropagationResult
from codegraph.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class FeedbackSummary:
    element_id: UUID
    positive_count: int = 0
    negative_count: int = 0
    net_confidence_delta: float = 0.0
    last_feedback_at: Optional[datetime] = None

    @property
    def total(self) -> int:
        return self.positive_count + self.negative_count

    @property
    def negative_ratio(self) -> float:
        return self.negative_count / self.total if self.total else 0.0


@dataclass
class FeedbackMetrics:
    total_feedback: int = 0
    positive_count: int = 0
    negative_count: int = 0
    positive_ratio: float = 0.0
    negative_ratio: float = 0.0
    avg_confidence_delta: float = 0.0


class FeedbackRepository(FeedbackRepositoryInterface):
    """
    SQLite-backed feedback store.
    Each save appends one feedback row plus one row per propagated truth update.
    """

    def __init__(self, db_path: str):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_database(self):
        """Initialize feedback tables"""
        conn = self._connect()
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS feedback (
                id TEXT PRIMARY KEY,
                element_id TEXT NOT NULL,
                polarity TEXT CHECK(polarity IN ('positive', 'negative')),
                query_context TEXT,
                comment TEXT,
                confidence_delta REAL NOT NULL,
                partial INTEGER DEFAULT 0,
                created_at TIMESTAMP NOT NULL
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS propagation_updates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                feedback_id TEXT NOT NULL REFERENCES feedback(id),
                element_id TEXT NOT NULL,
                hop_distance INTEGER NOT NULL,
                old_frequency REAL,
                old_confidence REAL,
                new_frequency REAL,
                new_confidence REAL
            )
        ''')

        cursor.execute('CREATE INDEX IF NOT EXISTS idx_feedback_element ON feedback(element_id)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_feedback_created_at ON feedback(created_at DESC)')

        conn.commit()
        conn.close()

    async def save(self, event: FeedbackEvent, result: PropagationResult, confidence_delta: float) -> None:
        """
        Append a feedback event and its propagation updates

        Args:
            event: The recorded feedback
            result: Propagation outcome for the event
            confidence_delta: Confidence change applied to the target element
        """
        conn = self._connect()
        cursor = conn.cursor()

        try:
            cursor.execute('''
                INSERT INTO feedback
                (id, element_id, polarity, query_context, comment, confidence_delta, partial, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ''', (str(event.id), str(event.target_element), event.polarity.value, event.query_context,
                  event.comment, confidence_delta, int(result.partial), event.created_at.isoformat()))

            cursor.executemany('''
                INSERT INTO propagation_updates
                (feedback_id, element_id, hop_distance, old_frequency, old_confidence, new_frequency, new_confidence)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            ''', [
                (str(event.id), str(u.element_id), u.hop_distance, u.old_truth.frequency,
                 u.old_truth.confidence, u.new_truth.frequency, u.new_truth.confidence)
                for u in result.updates
            ])

            conn.commit()
            logger.info(
                f"Recorded feedback {event.id}: {event.target_element} -> {event.polarity.value} "
                f"(Δ{confidence_delta:+.3f}, {len(result.updates)} updates)"
            )
        finally:
            conn.close()

    async def get(self, feedback_id: UUID) -> Dict[str, Any]:
        conn = self._connect()
        try:
            row = conn.execute('SELECT * FROM feedback WHERE id = ?', (str(feedback_id),)).fetchone()
            if row is None:
                raise NotFoundError(f"Feedback {feedback_id} not found")
            record = dict(row)
            record["updates"] = [
                dict(u) for u in conn.execute(
                    'SELECT element_id, hop_distance, old_frequency, old_confidence, new_frequency, new_confidence '
                    'FROM propagation_updates WHERE feedback_id = ? ORDER BY hop_distance, id',
                    (str(feedback_id),)
                ).fetchall()
            ]
            return record
        finally:
            conn.close()

    async def find_by_element(self, element_id: UUID, limit: int = 50) -> List[Dict[str, Any]]:
        conn = self._connect()
        try:
            rows = conn.execute('''
                SELECT * FROM feedback
                WHERE element_id = ?
                ORDER BY created_at DESC
                LIMIT ?
            ''', (str(element_id), limit)).fetchall()
            return [dict(r) for r in rows]
        finally:
            conn.close()

    async def summary_for_element(self, element_id: UUID) -> FeedbackSummary:
        conn = self._connect()
        try:
            row = conn.execute('''
                SELECT
                    SUM(CASE WHEN polarity = 'positive' THEN 1 ELSE 0 END) AS positive_count,
                    SUM(CASE WHEN polarity = 'negative' THEN 1 ELSE 0 END) AS negative_count,
                    COALESCE(SUM(confidence_delta), 0.0) AS net_delta,
                    MAX(created_at) AS last_feedback_at
                FROM feedback
                WHERE element_id = ?
            ''', (str(element_id),)).fetchone()
        finally:
            conn.close()

        last = row["last_feedback_at"]
        return FeedbackSummary(
            element_id=element_id,
            positive_count=row["positive_count"] or 0,
            negative_count=row["negative_count"] or 0,
            net_confidence_delta=row["net_delta"] or 0.0,
            last_feedback_at=datetime.fromisoformat(last) if last else None
        )

    async def negative_ratio(self, element_id: UUID) -> float:
        summary = await self.summary_for_element(element_id)
        return summary.negative_ratio

    async def metrics(self) -> FeedbackMetrics:
        """Aggregate counts and ratios across all recorded feedback"""
        conn = self._connect()
        try:
            row = conn.execute('''
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN polarity = 'positive' THEN 1 ELSE 0 END) AS positive_count,
                    SUM(CASE WHEN polarity = 'negative' THEN 1 ELSE 0 END) AS negative_count,
                    AVG(confidence_delta) AS avg_delta
                FROM feedback
            ''').fetchone()
        finally:
            conn.close()

        total = row["total"] or 0
        positive = row["positive_count"] or 0
        negative = row["negative_count"] or 0
        return FeedbackMetrics(
            total_feedback=total,
            positive_count=positive,
            negative_count=negative,
            positive_ratio=positive / total if total else 0.0,
            negative_ratio=negative / total if total else 0.0,
            avg_confidence_delta=row["avg_delta"] or 0.0
        )
