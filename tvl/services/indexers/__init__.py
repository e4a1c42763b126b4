"""
Indexer graph.

Each indexer owns a cursor, processes hours strictly after it up to the
minimum of its parents' cursors, and persists one record per hour before
advancing.
"""
