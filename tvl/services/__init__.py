"""Indexer pipeline services."""
