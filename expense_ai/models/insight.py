"""
SQLAlchemy model for cached AI insights (insert-only).
"""
from sqlalchemy import Column, DateTime, Index, Integer, String, Text

from expense_ai.database import Base


class AIInsightModel(Base):
    __tablename__ = "ai_insights"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False)
    type = Column(String, nullable=False)
    content = Column(Text, nullable=False)  # JSON text
    metadata_json = Column("metadata", Text)  # JSON text
    created_at = Column(DateTime, nullable=False)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (
        Index("ix_ai_insights_lookup", "user_id", "type", "created_at"),
    )
