"""Settings, constants, database and project configuration."""
