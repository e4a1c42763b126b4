"""
Block Timestamp model.

Block number at or before a full hour on a chain.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from tvl.models.base import Base


class BlockTimestamp(Base):
    """Hour to block mapping for one chain."""

    __tablename__ = "block_timestamps"

    chain: Mapped[str] = mapped_column(String(64), primary_key=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
