"""Process entry point and health server."""
