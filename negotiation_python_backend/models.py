"""
SQLAlchemy models for the negotiation analysis backend.

Only the daily usage ledger lives here; analysis results are returned to
callers and stored by them.
"""

from sqlalchemy import BigInteger, CheckConstraint, Column, Date, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class UsageDaily(Base):
    """One row per UTC calendar day of LLM token consumption"""
    __tablename__ = "usage_daily"

    day = Column(Date, primary_key=True)
    tokens_used = Column(BigInteger, nullable=False, default=0, server_default="0")  # Never decreases within a day
    locked_until = Column(DateTime(timezone=True), nullable=True)  # Set when the daily limit is hit

    __table_args__ = (
        CheckConstraint("tokens_used >= 0", name="usage_daily_tokens_non_negative"),
    )

    def __repr__(self):
        return f"<UsageDaily(day={self.day}, tokens_used={self.tokens_used}, locked_until={self.locked_until})>"
