"""
Value model.

Priced value of one asset position at one hour, attributed to a project.
"""

from decimal import Decimal

from sqlalchemy import DECIMAL, BigInteger, Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from tvl.models.base import Base


class Value(Base):
    """Priced value record."""

    __tablename__ = "priced_values"

    # Data indexer identity of the position
    data_source: Mapped[str] = mapped_column(String(255), primary_key=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    project: Mapped[str] = mapped_column(String(128), nullable=False)
    value_usd: Mapped[Decimal] = mapped_column(DECIMAL(38, 18), nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False)  # canonical, external, native
    include_in_total: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("ix_priced_values_project_timestamp", "project", "timestamp"),
    )
