"""Configuration and logging for the backup scheduler."""
