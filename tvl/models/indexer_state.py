"""
Indexer State model.

Persisted progress cursor of one indexer.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tvl.models.base import Base


class IndexerState(Base):
    """
    Progress cursor of an indexer.

    Used to:
    - Resume after restart from the last persisted hour
    - Detect configuration changes through config_hash
    - Report the last failure of the indexer
    """

    __tablename__ = "indexer_state"

    # Indexer identity, e.g. "value_ethereum_token_0x..._0x..."
    indexer_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    # Cursor: every hour <= safe_height has a persisted record
    safe_height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    min_height: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_height: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    config_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Error tracking
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<IndexerState(indexer_id={self.indexer_id!r}, "
            f"safe_height={self.safe_height})>"
        )
