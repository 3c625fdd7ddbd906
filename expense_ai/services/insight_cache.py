"""
Insight cache — append-only, TTL-bounded store of AI artifacts per
``(user_id, type)``. Rows are never updated; lookups return the most
recently created row that has not expired. Expired rows are left in place.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from expense_ai.models import AIInsightModel
from expense_ai.schemas import AIInsight, InsightType

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Naive UTC, matching what SQLite ``DateTime`` columns round-trip."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InsightCache:
    def __init__(
        self,
        db: Session,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.ttl = ttl
        self._clock = clock

    def with_session(self, db: Session) -> InsightCache:
        return InsightCache(db, self.ttl, self._clock)

    def store(
        self,
        user_id: int,
        insight_type: InsightType,
        content: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> AIInsight:
        now = self._clock()
        row = AIInsightModel(
            user_id=user_id,
            type=InsightType(insight_type).value,
            content=json.dumps(content, ensure_ascii=False, default=str),
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False, default=str),
            created_at=now,
            expires_at=now + self.ttl,
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        logger.info("Stored %s insight for user %s (expires %s)", row.type, user_id, row.expires_at)
        return _to_schema(row)

    def fetch_latest_valid(self, user_id: int, insight_type: InsightType) -> AIInsight | None:
        row = (
            self.db.query(AIInsightModel)
            .filter(
                AIInsightModel.user_id == user_id,
                AIInsightModel.type == InsightType(insight_type).value,
                AIInsightModel.expires_at > self._clock(),
            )
            .order_by(AIInsightModel.created_at.desc(), AIInsightModel.id.desc())
            .first()
        )
        return _to_schema(row) if row else None


def _to_schema(row: AIInsightModel) -> AIInsight:
    return AIInsight(
        id=row.id,
        user_id=row.user_id,
        type=InsightType(row.type),
        content=json.loads(row.content),
        metadata=json.loads(row.metadata_json) if row.metadata_json else {},
        created_at=row.created_at,
        expires_at=row.expires_at,
    )
