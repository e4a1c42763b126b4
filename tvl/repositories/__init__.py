"""Data access layer over the async session factory."""
