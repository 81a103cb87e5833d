"""Backend services and persistence for the backup scheduler."""
