"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from tvl.models.amount import Amount
from tvl.models.base import Base
from tvl.models.block_timestamp import BlockTimestamp
from tvl.models.indexer_state import IndexerState
from tvl.models.price import Price
from tvl.models.value import Value

__all__ = [
    "Amount",
    "Base",
    "BlockTimestamp",
    "IndexerState",
    "Price",
    "Value",
]
