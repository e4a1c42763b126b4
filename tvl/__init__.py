"""
Locked-value indexer.

Hourly raw amounts, prices and priced values computed by a graph of
incremental indexers.
"""
