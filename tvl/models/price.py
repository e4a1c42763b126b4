"""
Price model.

USD price of a price reference at one hour.
"""

from decimal import Decimal

from sqlalchemy import DECIMAL, BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from tvl.models.base import Base


class Price(Base):
    """Hourly USD price point."""

    __tablename__ = "prices"

    price_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    price_usd: Mapped[Decimal] = mapped_column(DECIMAL(38, 18), nullable=False)
