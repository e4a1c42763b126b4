"""
Amount model.

Raw base-unit amount of one asset position at one hour.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from tvl.models.base import Base


class Amount(Base):
    """
    Raw amount record.

    The amount is stored as a decimal string: uint256 values exceed
    the numeric range of BIGINT and of NUMERIC on some engines.
    """

    __tablename__ = "amounts"

    indexer_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    amount: Mapped[str] = mapped_column(String(78), nullable=False)

    @property
    def amount_raw(self) -> int:
        return int(self.amount)
